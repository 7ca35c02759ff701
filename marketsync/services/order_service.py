# marketsync/services/order_service.py
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import PaymentStatus
from marketsync.core.exceptions import OrderNotFoundError, ValidationError
from marketsync.core.utils import as_naive_utc, quantize
from marketsync.models.order import MarketplaceOrder
from marketsync.services.finance.exchange_rates import ExchangeRateService
from marketsync.services.finance.pipeline import FinancialPipeline, compute_earnings

logger = logging.getLogger(__name__)

Amount = Union[Decimal, float, str, None]

REFUNDED_STATUSES = (PaymentStatus.PARTIALLY_REFUNDED.value, PaymentStatus.FULLY_REFUNDED.value)


def _amount(value: Amount, field_name: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return quantize(Decimal(str(value)))
    except ArithmeticError:
        raise ValidationError(f"{field_name} must be a number")


class OrderService:
    """
    Manual edits and recompute hooks for stored orders.

    Each edit writes the input field and then re-runs the financial pipeline
    so derived figures never drift from their inputs.
    """

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.pipeline = FinancialPipeline(ExchangeRateService(db, self.settings), self.settings)

    async def get_order(self, order_id: str) -> MarketplaceOrder:
        stmt = select(MarketplaceOrder).where(MarketplaceOrder.order_id == order_id)
        order = (await self.db.execute(stmt)).scalars().first()
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    def _refresh_earnings(self, order: MarketplaceOrder) -> None:
        if order.earnings_override or order.order_payment_status in REFUNDED_STATUSES:
            return
        order.earnings = compute_earnings(order)

    async def _finish(self, order: MarketplaceOrder, action: str) -> MarketplaceOrder:
        await self.pipeline.recalculate_and_apply(order)
        await self.db.commit()
        await self.db.refresh(order)
        logger.info(f"Order {order.order_id}: {action}; earnings={order.earnings} profit={order.profit}")
        return order

    async def set_ad_fee(self, order_id: str, ad_fee: Amount) -> MarketplaceOrder:
        order = await self.get_order(order_id)
        order.ad_fee_general = _amount(ad_fee, "ad_fee")
        self._refresh_earnings(order)
        return await self._finish(order, f"ad fee set to {order.ad_fee_general}")

    async def set_earnings(self, order_id: str, earnings: Amount) -> MarketplaceOrder:
        """
        Hand-entered earnings, typically for partially refunded orders where
        eBay doesn't say how much was kept. Passing None clears the override.
        """
        order = await self.get_order(order_id)
        value = _amount(earnings, "earnings")
        if value is None:
            order.earnings_override = False
            order.earnings = None
            self._refresh_earnings(order)
        else:
            order.earnings = value
            order.earnings_override = True
        return await self._finish(order, f"earnings set to {order.earnings}")

    async def set_secondary_costs(
        self,
        order_id: str,
        before_tax_usd: Amount = None,
        estimated_tax_usd: Amount = None,
    ) -> MarketplaceOrder:
        order = await self.get_order(order_id)
        if before_tax_usd is not None:
            order.before_tax_usd = _amount(before_tax_usd, "before_tax_usd")
        if estimated_tax_usd is not None:
            order.estimated_tax_usd = _amount(estimated_tax_usd, "estimated_tax_usd")
        return await self._finish(order, "secondary costs updated")

    async def recompute_order(self, order_id: str) -> MarketplaceOrder:
        order = await self.get_order(order_id)
        self._refresh_earnings(order)
        return await self._finish(order, "recomputed")

    async def recompute_sold_since(self, since: datetime) -> int:
        """Recompute every order sold on or after ``since``. Used when rate edits are set to cascade."""
        stmt = select(MarketplaceOrder).where(MarketplaceOrder.date_sold >= as_naive_utc(since))
        orders: List[MarketplaceOrder] = list((await self.db.execute(stmt)).scalars().all())
        for order in orders:
            self._refresh_earnings(order)
            await self.pipeline.recalculate_and_apply(order)
        await self.db.commit()
        logger.info(f"Recomputed {len(orders)} orders sold since {since}")
        return len(orders)
