"""
Payment status transitions that rewrite an order's money fields.

    PAID -> FULLY_REFUNDED      every monetary field and earnings become 0
    PAID -> PARTIALLY_REFUNDED  earnings become None until entered by hand

Any other transition (including a return to PAID) leaves the order alone.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from marketsync.core.enums import PaymentStatus
from marketsync.services.sync.mapping import MONETARY_FIELDS, USD_MIRRORS

logger = logging.getLogger(__name__)

ZEROED_ON_FULL_REFUND = (
    MONETARY_FIELDS
    + tuple(USD_MIRRORS.values())
    + ("ad_fee_general", "before_tax_usd", "estimated_tax_usd")
)


@dataclass
class RecalcRequest:
    order_id: str
    reason: str


def apply_payment_transition(order, old_status: Optional[str], new_status: Optional[str]) -> Optional[RecalcRequest]:
    old = PaymentStatus.from_value(old_status)
    new = PaymentStatus.from_value(new_status)
    if old is None or new is None or old == new:
        return None
    if old != PaymentStatus.PAID:
        return None

    if new == PaymentStatus.FULLY_REFUNDED:
        for name in ZEROED_ON_FULL_REFUND:
            setattr(order, name, Decimal("0"))
        order.earnings = Decimal("0")
        order.earnings_override = False
        logger.info(f"Order {order.order_id} fully refunded; monetary fields zeroed")
        return RecalcRequest(order.order_id, "fully_refunded")

    if new == PaymentStatus.PARTIALLY_REFUNDED:
        order.earnings = None
        order.earnings_override = False
        logger.info(f"Order {order.order_id} partially refunded; earnings need manual entry")
        return RecalcRequest(order.order_id, "partially_refunded")

    return None
