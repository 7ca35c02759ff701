"""
Field comparator table for order reconciliation.

Every column the reconciler copies from eBay is listed with the strategy used
to decide whether it changed. A ``None`` incoming value never counts as a
change. The notifiable subset drives SyncEvent creation; anything else is a
silent change that is persisted without alerting anyone.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping

from marketsync.core.utils import as_naive_utc


class CompareStrategy(str, Enum):
    DATE = "date"        # one-second granularity
    JSON = "json"        # structural equality of nested objects/arrays
    DECIMAL = "decimal"  # numeric equality
    SCALAR = "scalar"


FIELD_COMPARATORS: Dict[str, CompareStrategy] = {
    "legacy_order_id": CompareStrategy.SCALAR,
    "seller_user_id": CompareStrategy.SCALAR,
    "creation_date": CompareStrategy.DATE,
    "last_modified_date": CompareStrategy.DATE,
    "order_fulfillment_status": CompareStrategy.SCALAR,
    "order_payment_status": CompareStrategy.SCALAR,
    "cancel_state": CompareStrategy.SCALAR,
    "sales_record_reference": CompareStrategy.SCALAR,
    "ebay_collect_and_remit_tax": CompareStrategy.SCALAR,
    "buyer": CompareStrategy.JSON,
    "buyer_checkout_notes": CompareStrategy.SCALAR,
    "pricing_summary": CompareStrategy.JSON,
    "cancel_status": CompareStrategy.JSON,
    "payment_summary": CompareStrategy.JSON,
    "fulfillment_start_instructions": CompareStrategy.JSON,
    "fulfillment_hrefs": CompareStrategy.JSON,
    "line_items": CompareStrategy.JSON,
    "refunds": CompareStrategy.JSON,
    "total_fee_basis_amount": CompareStrategy.JSON,
    "total_marketplace_fee": CompareStrategy.JSON,
    "date_sold": CompareStrategy.DATE,
    "ship_by_date": CompareStrategy.DATE,
    "estimated_delivery": CompareStrategy.DATE,
    "product_name": CompareStrategy.SCALAR,
    "item_number": CompareStrategy.SCALAR,
    "quantity": CompareStrategy.SCALAR,
    "purchase_marketplace_id": CompareStrategy.SCALAR,
    "buyer_address": CompareStrategy.SCALAR,
    "shipping_full_name": CompareStrategy.SCALAR,
    "shipping_address_line1": CompareStrategy.SCALAR,
    "shipping_address_line2": CompareStrategy.SCALAR,
    "shipping_city": CompareStrategy.SCALAR,
    "shipping_state": CompareStrategy.SCALAR,
    "shipping_postal_code": CompareStrategy.SCALAR,
    "shipping_country": CompareStrategy.SCALAR,
    "shipping_phone": CompareStrategy.SCALAR,
    "tracking_number": CompareStrategy.SCALAR,
    "subtotal": CompareStrategy.DECIMAL,
    "shipping": CompareStrategy.DECIMAL,
    "sales_tax": CompareStrategy.DECIMAL,
    "discount": CompareStrategy.DECIMAL,
    "transaction_fees": CompareStrategy.DECIMAL,
    "ad_fee": CompareStrategy.DECIMAL,
    "conversion_rate": CompareStrategy.DECIMAL,
    "subtotal_usd": CompareStrategy.DECIMAL,
    "shipping_usd": CompareStrategy.DECIMAL,
    "sales_tax_usd": CompareStrategy.DECIMAL,
    "discount_usd": CompareStrategy.DECIMAL,
    "transaction_fees_usd": CompareStrategy.DECIMAL,
    "ad_fee_usd": CompareStrategy.DECIMAL,
    "refund_total_usd": CompareStrategy.DECIMAL,
    "ad_fee_general": CompareStrategy.DECIMAL,
}

NOTIFIABLE_FIELDS = frozenset({
    "order_payment_status",
    "cancel_state",
    "order_fulfillment_status",
    "tracking_number",
    "shipping_full_name",
    "shipping_address_line1",
    "shipping_address_line2",
    "shipping_city",
    "shipping_state",
    "shipping_postal_code",
    "shipping_country",
})

ADDRESS_FIELDS = frozenset(f for f in NOTIFIABLE_FIELDS if f.startswith("shipping_"))

MONETARY_INPUT_FIELDS = frozenset({
    "subtotal_usd",
    "shipping_usd",
    "transaction_fees_usd",
    "ad_fee_general",
    "conversion_rate",
})


def _to_decimal(value: Any):
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def values_differ(strategy: CompareStrategy, old: Any, new: Any) -> bool:
    if new is None:
        return False
    if old is None:
        return True

    if strategy == CompareStrategy.DATE:
        if isinstance(old, datetime) and isinstance(new, datetime):
            return as_naive_utc(old).replace(microsecond=0) != as_naive_utc(new).replace(microsecond=0)
        return old != new
    if strategy == CompareStrategy.DECIMAL:
        old_dec, new_dec = _to_decimal(old), _to_decimal(new)
        if old_dec is None or new_dec is None:
            return old != new
        return old_dec != new_dec
    # JSON payloads come back from the column as plain dicts/lists, so == is structural
    return old != new


def to_jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


@dataclass
class ChangeRecord:
    """Changed fields split into notifiable and silent, each mapping field -> {"old", "new"}."""
    notifiable: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    silent: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.notifiable or self.silent)

    @property
    def has_notifiable(self) -> bool:
        return bool(self.notifiable)

    @property
    def changed_fields(self) -> set:
        return set(self.notifiable) | set(self.silent)

    def as_change_data(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {"old": to_jsonable(diff["old"]), "new": to_jsonable(diff["new"])}
            for name, diff in self.notifiable.items()
        }

    @property
    def change_type(self) -> str:
        fields = set(self.notifiable)
        categories = set()
        if "order_payment_status" in fields:
            categories.add("payment_status")
        if "cancel_state" in fields:
            categories.add("cancellation")
        if "order_fulfillment_status" in fields:
            categories.add("fulfillment")
        if "tracking_number" in fields:
            categories.add("tracking")
        if fields & ADDRESS_FIELDS:
            categories.add("address")
        if len(categories) == 1:
            return categories.pop()
        return "order_update"


def compare_fields(existing: Any, incoming: Mapping[str, Any]) -> ChangeRecord:
    """Compare ``incoming`` column values against an existing row."""
    change = ChangeRecord()
    for name, strategy in FIELD_COMPARATORS.items():
        if name not in incoming:
            continue
        old = getattr(existing, name, None)
        new = incoming[name]
        if not values_differ(strategy, old, new):
            continue
        bucket = change.notifiable if name in NOTIFIABLE_FIELDS else change.silent
        bucket[name] = {"old": old, "new": new}
    return change
