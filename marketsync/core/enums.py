"""
Shared enums and constants used across the application.
"""

from enum import Enum


class PaymentStatus(str, Enum):
    """eBay orderPaymentStatus values the engine reacts to"""
    PENDING = "PENDING"
    FAILED = "FAILED"
    PAID = "PAID"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    FULLY_REFUNDED = "FULLY_REFUNDED"

    @classmethod
    def from_value(cls, value):
        if value is None:
            return None
        try:
            return cls(str(value).upper())
        except ValueError:
            return None


class CancelState(str, Enum):
    NONE_REQUESTED = "NONE_REQUESTED"
    CANCEL_REQUESTED = "CANCEL_REQUESTED"
    CANCELED = "CANCELED"


class Ledger(str, Enum):
    """Exchange rate series"""
    EBAY = "EBAY"
    AMAZON = "AMAZON"
    OTHER = "OTHER"


class SyncMode(str, Enum):
    NEW = "new"
    MODIFIED = "modified"
    ALL = "all"

    @property
    def includes_new(self) -> bool:
        return self in (SyncMode.NEW, SyncMode.ALL)

    @property
    def includes_modified(self) -> bool:
        return self in (SyncMode.MODIFIED, SyncMode.ALL)


class SyncEventStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    IGNORED = "ignored"


class BookingEntry(str, Enum):
    """Finances API bookingEntry: DEBIT charges the seller, CREDIT reverses a charge"""
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"
