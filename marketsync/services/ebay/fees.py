"""
Ad fee aggregation from the Finances transaction feed.

eBay books promoted-listing charges as NON_SALE_CHARGE transactions that
reference the order they belong to. A charge (DEBIT) adds to the order's ad
fee and a reversal (CREDIT) subtracts from it. Totals are only usable once
the whole window has been read; a partial feed is never joined to orders.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import BookingEntry
from marketsync.core.exceptions import IncompleteFeedError
from marketsync.core.utils import format_ebay_datetime, parse_decimal, parse_ebay_datetime, quantize, utc_now
from marketsync.services.ebay.client import EbayClient
from marketsync.services.ebay.pagination import PaginatedFetcher

logger = logging.getLogger(__name__)

NON_SALE_CHARGE = "NON_SALE_CHARGE"
ORDER_REFERENCE = "ORDER_ID"


@dataclass
class FeeEntry:
    transaction_id: str
    order_id: Optional[str]
    transaction_type: Optional[str]
    fee_type: Optional[str]
    booking_entry: Optional[str]
    amount: Decimal
    currency: Optional[str]
    transaction_date: Optional[datetime]

    @property
    def signed_amount(self) -> Decimal:
        if self.booking_entry == BookingEntry.CREDIT.value:
            return -abs(self.amount)
        return abs(self.amount)

    @classmethod
    def from_transaction(cls, txn: Dict) -> "FeeEntry":
        amount = parse_decimal(txn.get("amount")) or Decimal("0")
        currency = (txn.get("amount") or {}).get("currency")
        return cls(
            transaction_id=str(txn.get("transactionId") or ""),
            order_id=_referenced_order_id(txn),
            transaction_type=txn.get("transactionType"),
            fee_type=txn.get("feeType"),
            booking_entry=txn.get("bookingEntry"),
            amount=amount,
            currency=currency,
            transaction_date=parse_ebay_datetime(txn.get("transactionDate")),
        )


@dataclass
class FeeCollection:
    entries: List[FeeEntry] = field(default_factory=list)
    fee_map: Dict[str, Decimal] = field(default_factory=dict)
    complete: bool = True
    pages: int = 0
    error: Optional[str] = None


def _referenced_order_id(txn: Dict) -> Optional[str]:
    for reference in txn.get("references") or []:
        if reference.get("referenceType") == ORDER_REFERENCE and reference.get("referenceId"):
            return reference["referenceId"]
    return txn.get("orderId")


def build_transaction_filter(since: datetime, until: datetime) -> str:
    return (
        f"transactionDate:[{format_ebay_datetime(since)}..{format_ebay_datetime(until)}],"
        f"transactionType:{{{NON_SALE_CHARGE}}}"
    )


class TransactionAggregator:
    def __init__(self, client: EbayClient, settings: Optional[Settings] = None, sleep=None):
        self.client = client
        self.settings = settings or get_settings()
        self.fee_types = frozenset(self.settings.AD_FEE_TYPES)
        self.fetcher = PaginatedFetcher(
            client.get_transactions_page,
            items_key="transactions",
            page_size=self.settings.FEE_PAGE_SIZE,
            settings=self.settings,
            sleep=sleep,
            label="fee transactions",
        )

    def is_ad_fee(self, entry: FeeEntry) -> bool:
        return entry.fee_type in self.fee_types

    async def collect(self, token: str, since: datetime, until: Optional[datetime] = None) -> FeeCollection:
        """Page through the whole window, then net the ad fees per order."""
        until = until or utc_now()
        result = await self.fetcher.fetch_all(token, build_transaction_filter(since, until))

        collection = FeeCollection(complete=result.complete, pages=result.pages, error=result.error)
        for txn in result.items:
            entry = FeeEntry.from_transaction(txn)
            if not self.is_ad_fee(entry):
                continue
            collection.entries.append(entry)
            if not entry.order_id:
                logger.debug(f"Fee transaction {entry.transaction_id} has no order reference; skipped")
                continue
            collection.fee_map[entry.order_id] = collection.fee_map.get(entry.order_id, Decimal("0")) + entry.signed_amount

        collection.fee_map = {order_id: quantize(total) for order_id, total in collection.fee_map.items()}

        if not result.complete:
            logger.warning(
                f"Fee feed incomplete after {result.pages} pages "
                f"({len(collection.entries)} ad fee entries read): {result.error}"
            )
        else:
            logger.info(f"Fee map built for {len(collection.fee_map)} orders from {len(collection.entries)} ad fee entries")
        return collection

    async def build_fee_map(self, token: str, since: datetime, until: Optional[datetime] = None) -> Dict[str, Decimal]:
        collection = await self.collect(token, since, until)
        if not collection.complete:
            raise IncompleteFeedError(
                f"Fee feed stopped after {collection.pages} pages: {collection.error or 'unknown error'}"
            )
        return collection.fee_map
