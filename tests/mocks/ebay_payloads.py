"""Builders for eBay Fulfillment and Finances API payloads used across tests."""
from copy import deepcopy
from typing import Dict, List, Optional


def money(value: str, currency: str = "USD", converted_from: Optional[str] = None,
          converted_currency: Optional[str] = None) -> Dict:
    node = {"value": value, "currency": currency}
    if converted_from is not None:
        node["convertedFromValue"] = converted_from
        node["convertedFromCurrency"] = converted_currency or "GBP"
    return node


def build_order(
    order_id: str = "12-34567-89012",
    creation_date: str = "2025-11-03T10:15:00.000Z",
    last_modified: str = "2025-11-03T10:20:00.000Z",
    payment_status: str = "PAID",
    fulfillment_status: str = "NOT_STARTED",
    marketplace: str = "EBAY_US",
    subtotal: str = "120.00",
    delivery: str = "10.00",
    marketplace_fee: str = "15.00",
    total: Optional[Dict] = None,
    ship_to_name: str = "Jane Buyer",
    city: str = "Austin",
    hrefs: Optional[List[str]] = None,
    instructions_type: str = "SHIP_TO",
    cancel_state: str = "NONE_REQUESTED",
    refunds: Optional[List[Dict]] = None,
    line_items: Optional[List[Dict]] = None,
) -> Dict:
    order = {
        "orderId": order_id,
        "legacyOrderId": f"legacy-{order_id}",
        "creationDate": creation_date,
        "lastModifiedDate": last_modified,
        "orderFulfillmentStatus": fulfillment_status,
        "orderPaymentStatus": payment_status,
        "sellerId": "test_seller",
        "salesRecordReference": "1001",
        "buyer": {"username": "buyer_one"},
        "pricingSummary": {
            "priceSubtotal": money(subtotal),
            "deliveryCost": money(delivery),
            "total": total or money("130.00"),
        },
        "cancelStatus": {"cancelState": cancel_state, "cancelRequests": []},
        "paymentSummary": {"totalDueSeller": money("115.00"), "refunds": refunds or [], "payments": []},
        "fulfillmentStartInstructions": [{
            "fulfillmentInstructionsType": instructions_type,
            "shippingStep": {
                "shipTo": {
                    "fullName": ship_to_name,
                    "contactAddress": {
                        "addressLine1": "1 Main St",
                        "city": city,
                        "stateOrProvince": "TX",
                        "postalCode": "73301",
                        "countryCode": "US",
                    },
                    "primaryPhone": {"phoneNumber": "5125550100"},
                },
            },
        }],
        "fulfillmentHrefs": hrefs if hrefs is not None else [],
        "lineItems": line_items if line_items is not None else [{
            "lineItemId": "1000",
            "legacyItemId": "3960000001",
            "title": "Vintage Fuzz Pedal",
            "quantity": 1,
            "purchaseMarketplaceId": marketplace,
            "lineItemFulfillmentInstructions": {
                "shipByDate": "2025-11-06T23:59:59.000Z",
                "maxEstimatedDeliveryDate": "2025-11-12T08:00:00.000Z",
            },
            "ebayCollectAndRemitTaxes": [{"amount": money("8.25")}],
            "appliedPromotions": [],
        }],
        "totalMarketplaceFee": money(marketplace_fee),
        "totalFeeBasisAmount": money("130.00"),
    }
    return deepcopy(order)


def orders_page(orders: List[Dict], total: int) -> Dict:
    return {"orders": orders, "total": total}


def ad_fee_transaction(transaction_id: str, order_id: str, amount: str,
                       booking_entry: str = "DEBIT", fee_type: str = "AD_FEE") -> Dict:
    return {
        "transactionId": transaction_id,
        "transactionType": "NON_SALE_CHARGE",
        "feeType": fee_type,
        "bookingEntry": booking_entry,
        "amount": money(amount),
        "transactionDate": "2025-11-05T12:00:00.000Z",
        "references": [{"referenceId": order_id, "referenceType": "ORDER_ID"}],
    }
