"""
Maps eBay Fulfillment API order payloads onto MarketplaceOrder columns.

Missing nested pieces (no line item, no ship-to) default to empty values so a
malformed order is still stored rather than dropped.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from marketsync.core.enums import CancelState
from marketsync.core.utils import parse_decimal, parse_ebay_datetime, quantize

logger = logging.getLogger(__name__)

PLACEHOLDER_PHONE = "0000000000"
SHIP_TO = "SHIP_TO"

MONETARY_FIELDS = ("subtotal", "shipping", "sales_tax", "discount", "transaction_fees", "ad_fee")
USD_MIRRORS = {field: f"{field}_usd" for field in MONETARY_FIELDS}


def _first(items: Any) -> Dict:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def source_amount(node: Any) -> Decimal:
    """Amount in the buyer's currency: convertedFromValue when eBay converted, else value."""
    if not isinstance(node, dict):
        return parse_decimal(node) or Decimal("0")
    if node.get("convertedFromValue") not in (None, ""):
        return parse_decimal(node["convertedFromValue"]) or Decimal("0")
    return parse_decimal(node.get("value")) or Decimal("0")


def marketplace_of(remote: Dict) -> Optional[str]:
    line_item = _first(remote.get("lineItems"))
    return line_item.get("purchaseMarketplaceId") or line_item.get("listingMarketplaceId")


def compute_conversion_rate(remote: Dict, reference_marketplace: str) -> Decimal:
    """
    1 on the reference marketplace. Elsewhere the rate implied by the order
    total's converted/original pair, or 0 when eBay sent no pair. Callers
    treat 0 as unknown.
    """
    if marketplace_of(remote) == reference_marketplace:
        return Decimal("1")

    total = (remote.get("pricingSummary") or {}).get("total") or {}
    value = parse_decimal(total.get("value"))
    converted_from = parse_decimal(total.get("convertedFromValue"))
    if value is None or not converted_from:
        return Decimal("0")
    try:
        return (value / converted_from).quantize(Decimal("0.00000001"))
    except (InvalidOperation, ZeroDivisionError):
        return Decimal("0")


def to_usd(amount: Optional[Decimal], rate: Optional[Decimal]) -> Optional[Decimal]:
    if amount is None or not rate:
        return None
    return quantize(Decimal(amount) * Decimal(rate))


def apply_usd_mirrors(values: Dict[str, Any]) -> None:
    """Recompute every USD mirror in ``values`` from its source field and conversion_rate."""
    rate = values.get("conversion_rate")
    for field, mirror in USD_MIRRORS.items():
        values[mirror] = to_usd(values.get(field), rate)
    values["refund_total_usd"] = to_usd(refund_total(values.get("refunds")), rate)


def refund_total(refunds: Any) -> Optional[Decimal]:
    if not refunds:
        return None
    total = Decimal("0")
    for refund in refunds:
        if isinstance(refund, dict):
            total += source_amount(refund.get("refundAmount") or refund.get("amount"))
    return quantize(total)


def format_buyer_address(address: Dict) -> str:
    return ", ".join([
        address.get("addressLine1") or "",
        address.get("city") or "",
        address.get("stateOrProvince") or "",
        address.get("postalCode") or "",
        address.get("countryCode") or "",
    ]).strip()


def is_ship_to(remote: Dict) -> bool:
    instruction = _first(remote.get("fulfillmentStartInstructions"))
    return instruction.get("fulfillmentInstructionsType") == SHIP_TO


def first_fulfillment_href(remote: Dict) -> Optional[str]:
    """Fulfillment URL for tracking lookups; only SHIP_TO orders have a useful one."""
    hrefs = remote.get("fulfillmentHrefs") or []
    if not is_ship_to(remote) or not hrefs:
        return None
    return hrefs[0]


def map_remote_order(remote: Dict, reference_marketplace: str = "EBAY_US") -> Dict[str, Any]:
    """Flatten a remote order into column values, including USD mirrors."""
    pricing = remote.get("pricingSummary") or {}
    payment_summary = remote.get("paymentSummary") or {}
    cancel_status = remote.get("cancelStatus") or {}
    line_item = _first(remote.get("lineItems"))
    if not line_item:
        logger.warning(f"Order {remote.get('orderId')} has no line items; denormalized fields defaulted")
    line_instructions = line_item.get("lineItemFulfillmentInstructions") or {}
    instruction = _first(remote.get("fulfillmentStartInstructions"))
    ship_to = (instruction.get("shippingStep") or {}).get("shipTo") or {}
    address = ship_to.get("contactAddress") or {}
    phone = (ship_to.get("primaryPhone") or {}).get("phoneNumber")

    creation_date = parse_ebay_datetime(remote.get("creationDate"))

    values: Dict[str, Any] = {
        "order_id": remote.get("orderId"),
        "legacy_order_id": remote.get("legacyOrderId"),
        "seller_user_id": remote.get("sellerId"),
        "creation_date": creation_date,
        "last_modified_date": parse_ebay_datetime(remote.get("lastModifiedDate")),
        "order_fulfillment_status": remote.get("orderFulfillmentStatus"),
        "order_payment_status": remote.get("orderPaymentStatus"),
        "cancel_state": cancel_status.get("cancelState") or CancelState.NONE_REQUESTED.value,
        "sales_record_reference": remote.get("salesRecordReference"),
        "ebay_collect_and_remit_tax": remote.get("ebayCollectAndRemitTax"),
        # Raw payloads
        "buyer": remote.get("buyer"),
        "buyer_checkout_notes": remote.get("buyerCheckoutNotes"),
        "pricing_summary": remote.get("pricingSummary"),
        "cancel_status": remote.get("cancelStatus"),
        "payment_summary": remote.get("paymentSummary"),
        "fulfillment_start_instructions": remote.get("fulfillmentStartInstructions"),
        "fulfillment_hrefs": remote.get("fulfillmentHrefs") or [],
        "line_items": remote.get("lineItems") or [],
        "refunds": payment_summary.get("refunds") or [],
        "total_fee_basis_amount": remote.get("totalFeeBasisAmount"),
        "total_marketplace_fee": remote.get("totalMarketplaceFee"),
        # Denormalized
        "date_sold": creation_date,
        "ship_by_date": parse_ebay_datetime(line_instructions.get("shipByDate")),
        "estimated_delivery": parse_ebay_datetime(line_instructions.get("maxEstimatedDeliveryDate")),
        "product_name": line_item.get("title"),
        "item_number": line_item.get("legacyItemId"),
        "quantity": line_item.get("quantity"),
        "purchase_marketplace_id": marketplace_of(remote),
        "buyer_address": format_buyer_address(address),
        "shipping_full_name": ship_to.get("fullName") or "",
        "shipping_address_line1": address.get("addressLine1") or "",
        "shipping_address_line2": address.get("addressLine2") or "",
        "shipping_city": address.get("city") or "",
        "shipping_state": address.get("stateOrProvince") or "",
        "shipping_postal_code": address.get("postalCode") or "",
        "shipping_country": address.get("countryCode") or "",
        "shipping_phone": phone or PLACEHOLDER_PHONE,
        # Source currency amounts
        "subtotal": quantize(source_amount(pricing.get("priceSubtotal"))),
        "shipping": quantize(source_amount(pricing.get("deliveryCost"))),
        "sales_tax": quantize(source_amount(_first(line_item.get("ebayCollectAndRemitTaxes")).get("amount"))),
        "discount": quantize(source_amount(pricing.get("priceDiscount"))),
        "transaction_fees": quantize(source_amount(remote.get("totalMarketplaceFee"))),
        "ad_fee": quantize(source_amount(_first(line_item.get("appliedPromotions")).get("discountAmount"))),
        "conversion_rate": compute_conversion_rate(remote, reference_marketplace),
    }
    apply_usd_mirrors(values)
    return values
