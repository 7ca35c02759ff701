"""
Order reconciler: merges one remote order into the local store.

A new order is inserted as-is. An existing order is only touched when eBay's
lastModifiedDate is strictly newer than the stored one, which makes replays of
the same page harmless. Changes are classified through the comparator table;
only notifiable changes produce a SyncEvent.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import PaymentStatus, SyncEventStatus
from marketsync.core.exceptions import ValidationError
from marketsync.core.utils import utc_now
from marketsync.models.order import MarketplaceOrder
from marketsync.models.sync_event import SyncEvent
from marketsync.services.ebay.client import EbayClient
from marketsync.services.finance.pipeline import FinancialPipeline, compute_earnings
from marketsync.services.finance.refunds import ZEROED_ON_FULL_REFUND, apply_payment_transition
from marketsync.services.sync.comparators import MONETARY_INPUT_FIELDS, ChangeRecord, compare_fields
from marketsync.services.sync.mapping import first_fulfillment_href, map_remote_order

logger = logging.getLogger(__name__)

NO_AUTO_EARNINGS = (PaymentStatus.PARTIALLY_REFUNDED.value, PaymentStatus.FULLY_REFUNDED.value)


@dataclass
class ReconcileResult:
    order: Optional[MarketplaceOrder]
    change: Optional[ChangeRecord] = None
    is_new: bool = False
    written: bool = False
    event: Optional[SyncEvent] = None

    @property
    def notifiable(self) -> bool:
        return bool(self.change and self.change.has_notifiable)


class OrderReconciler:
    def __init__(
        self,
        db: AsyncSession,
        client: EbayClient,
        pipeline: FinancialPipeline,
        sync_run_id: str,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.client = client
        self.pipeline = pipeline
        self.sync_run_id = sync_run_id
        self.settings = settings or get_settings()

    async def get_existing(self, order_id: str) -> Optional[MarketplaceOrder]:
        stmt = select(MarketplaceOrder).where(MarketplaceOrder.order_id == order_id)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def _resolve_tracking(self, remote: Dict, token: str) -> Optional[str]:
        href = first_fulfillment_href(remote)
        if not href:
            return None
        return await self.client.get_tracking_number(token, href)

    async def reconcile(
        self,
        remote: Dict[str, Any],
        state,
        token: str,
        fee_map: Optional[Dict[str, Decimal]] = None,
    ) -> ReconcileResult:
        values = map_remote_order(remote, self.settings.REFERENCE_MARKETPLACE)
        order_id = values.get("order_id")
        if not order_id:
            raise ValidationError("Remote order has no orderId")

        existing = await self.get_existing(order_id)
        if existing is None:
            return await self._insert(values, remote, state, token, fee_map)

        remote_clock = values.get("last_modified_date")
        stored_clock = existing.last_modified_date
        if stored_clock is not None and (remote_clock is None or remote_clock <= stored_clock):
            logger.debug(f"{state.log_prefix} order {order_id} unchanged since {stored_clock}; skipped")
            return ReconcileResult(order=existing)

        return await self._update(existing, values, remote, state, token, fee_map)

    async def _insert(self, values, remote, state, token, fee_map) -> ReconcileResult:
        order_id = values["order_id"]
        values["tracking_number"] = await self._resolve_tracking(remote, token)
        if fee_map and order_id in fee_map:
            values["ad_fee_general"] = fee_map[order_id]

        order = MarketplaceOrder(account_id=state.account_id, **values)
        status = order.order_payment_status
        if status in NO_AUTO_EARNINGS:
            # First seen already refunded: treat as if it was PAID before
            apply_payment_transition(order, PaymentStatus.PAID.value, status)
        else:
            order.earnings = compute_earnings(order)

        await self.pipeline.recalculate_and_apply(order)
        self.db.add(order)
        await self.db.flush()

        logger.info(f"{state.log_prefix} new order {order_id} ({status})")
        return ReconcileResult(order=order, is_new=True, written=True)

    async def _update(self, order, values, remote, state, token, fee_map) -> ReconcileResult:
        order_id = order.order_id
        values["tracking_number"] = await self._resolve_tracking(remote, token)
        if fee_map and order_id in fee_map:
            values["ad_fee_general"] = fee_map[order_id]

        old_status = order.order_payment_status
        new_status = values.get("order_payment_status") or old_status
        if old_status == PaymentStatus.FULLY_REFUNDED.value and new_status == old_status:
            # Money stays zeroed for as long as the order is fully refunded
            for name in ZEROED_ON_FULL_REFUND:
                values.pop(name, None)

        change = compare_fields(order, values)
        if not change.has_changes:
            return ReconcileResult(order=order, change=change)

        for name, diff in {**change.silent, **change.notifiable}.items():
            setattr(order, name, diff["new"])

        recalc = None
        if "order_payment_status" in change.notifiable:
            recalc = apply_payment_transition(order, old_status, new_status)

        monetary_changed = bool(change.changed_fields & MONETARY_INPUT_FIELDS)
        if recalc is None and not order.earnings_override and order.order_payment_status not in NO_AUTO_EARNINGS:
            if monetary_changed or order.earnings is None:
                order.earnings = compute_earnings(order)

        if recalc is not None or monetary_changed or order.order_payment_status == PaymentStatus.PAID.value:
            await self.pipeline.recalculate_and_apply(order)

        event = None
        if change.has_notifiable:
            event = SyncEvent(
                sync_run_id=self.sync_run_id,
                account_id=state.account_id,
                order_id=order_id,
                change_type=change.change_type,
                change_data=change.as_change_data(),
                status=SyncEventStatus.PENDING.value,
                detected_at=utc_now(),
            )
            self.db.add(event)
            logger.info(
                f"{state.log_prefix} order {order_id} {change.change_type}: "
                f"{', '.join(sorted(change.notifiable))}"
            )
        else:
            logger.debug(f"{state.log_prefix} order {order_id} silent update: {', '.join(sorted(change.silent))}")

        await self.db.flush()
        return ReconcileResult(order=order, change=change, written=True, event=event)
