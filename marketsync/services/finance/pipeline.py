"""
Financial recalculation for marketplace orders.

    earnings -> withholding, fixed fee -> net -> balance (EBAY rate at sale date)
    before tax + estimated tax -> secondary total (AMAZON rate) -> card fee
    profit = balance - secondary total - secondary fee total

``compute_derived`` is pure. ``FinancialPipeline`` resolves the two rates
through the exchange rate ledger and writes the result onto the order.
Missing inputs produce None rather than exceptions.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Optional

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import Ledger, PaymentStatus
from marketsync.core.utils import as_naive_utc, quantize, utc_now

logger = logging.getLogger(__name__)

REFUNDED_STATUSES = (PaymentStatus.PARTIALLY_REFUNDED.value, PaymentStatus.FULLY_REFUNDED.value)
ZERO = Decimal("0")


@dataclass
class FinancialInputs:
    earnings: Optional[Decimal]
    before_tax_usd: Optional[Decimal]
    estimated_tax_usd: Optional[Decimal]
    date_sold: Optional[datetime]
    payment_status: Optional[str]

    @classmethod
    def from_order(cls, order) -> "FinancialInputs":
        return cls(
            earnings=order.earnings,
            before_tax_usd=order.before_tax_usd,
            estimated_tax_usd=order.estimated_tax_usd,
            date_sold=order.date_sold or order.creation_date,
            payment_status=order.order_payment_status,
        )


@dataclass
class DerivedFields:
    withholding: Optional[Decimal] = None
    fixed_fee: Optional[Decimal] = None
    net: Optional[Decimal] = None
    exchange_rate: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    secondary_exchange_rate: Optional[Decimal] = None
    secondary_total: Optional[Decimal] = None
    secondary_fee_total: Optional[Decimal] = None
    profit: Optional[Decimal] = None

    def as_dict(self) -> dict:
        return asdict(self)


def _dec(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def compute_earnings(order) -> Optional[Decimal]:
    """subtotal + shipping - marketplace fees - ad fee, all USD. None if any USD input is unknown."""
    subtotal = _dec(order.subtotal_usd)
    shipping = _dec(order.shipping_usd)
    fees = _dec(order.transaction_fees_usd)
    if subtotal is None or shipping is None or fees is None:
        return None
    ad_fee = _dec(order.ad_fee_general) or ZERO
    return quantize(subtotal + shipping - fees - ad_fee)


def card_fee_tax_applies(inputs: FinancialInputs, settings: Settings) -> bool:
    """Refunded orders sold on or after the policy date carry no tax on the card fee."""
    if inputs.payment_status not in REFUNDED_STATUSES or inputs.date_sold is None:
        return True
    return as_naive_utc(inputs.date_sold) < as_naive_utc(settings.CARD_FEE_TAX_POLICY_DATE)


def compute_derived(
    inputs: FinancialInputs,
    ebay_rate: Optional[Decimal],
    secondary_rate: Optional[Decimal],
    settings: Optional[Settings] = None,
) -> DerivedFields:
    settings = settings or get_settings()
    derived = DerivedFields(exchange_rate=ebay_rate, secondary_exchange_rate=secondary_rate)

    # Sale side
    earnings = _dec(inputs.earnings)
    if earnings is not None:
        derived.withholding = quantize(earnings * Decimal(str(settings.WITHHOLDING_RATE)))
        derived.fixed_fee = quantize(Decimal(str(settings.FIXED_ORDER_FEE))) if earnings > 0 else ZERO
        derived.net = quantize(earnings - derived.withholding - derived.fixed_fee)
        if ebay_rate is not None:
            derived.balance = quantize(derived.net * ebay_rate)
        elif derived.net == 0:
            derived.balance = ZERO

    # Purchase side
    before_tax = _dec(inputs.before_tax_usd)
    estimated_tax = _dec(inputs.estimated_tax_usd)
    if (before_tax is not None or estimated_tax is not None) and secondary_rate is not None:
        cost_usd = (before_tax or ZERO) + (estimated_tax or ZERO)
        derived.secondary_total = quantize(cost_usd * secondary_rate)
        tax = Decimal(str(settings.CARD_FEE_TAX_PERCENT)) if card_fee_tax_applies(inputs, settings) else ZERO
        derived.secondary_fee_total = quantize(
            derived.secondary_total * Decimal(str(settings.CARD_FEE_PERCENT)) * (1 + tax)
        )

    if derived.balance is not None and derived.secondary_total is not None:
        derived.profit = quantize(derived.balance - derived.secondary_total - derived.secondary_fee_total)

    return derived


class FinancialPipeline:
    """
    Recalculates derived fields for one order.

    ``rate_lookup`` is anything with an async ``rate_for_date(ledger, date)``,
    normally ExchangeRateService.
    """

    def __init__(self, rate_lookup, settings: Optional[Settings] = None):
        self.rate_lookup = rate_lookup
        self.settings = settings or get_settings()

    async def recalculate(self, order) -> DerivedFields:
        inputs = FinancialInputs.from_order(order)
        ebay_rate = None
        secondary_rate = None
        if inputs.earnings is not None:
            ebay_rate = await self.rate_lookup.rate_for_date(Ledger.EBAY, inputs.date_sold)
        if inputs.before_tax_usd is not None or inputs.estimated_tax_usd is not None:
            secondary_rate = await self.rate_lookup.rate_for_date(Ledger.AMAZON, inputs.date_sold)
        return compute_derived(inputs, ebay_rate, secondary_rate, self.settings)

    def apply(self, order, derived: DerivedFields) -> None:
        for name, value in derived.as_dict().items():
            setattr(order, name, value)
        order.recalculated_at = utc_now()

    async def recalculate_and_apply(self, order) -> DerivedFields:
        derived = await self.recalculate(order)
        self.apply(order, derived)
        logger.debug(f"Recalculated order {order.order_id}: net={derived.net} balance={derived.balance} profit={derived.profit}")
        return derived
