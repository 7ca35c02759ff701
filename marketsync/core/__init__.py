"""
Core module exports.
"""
from .enums import (
    PaymentStatus,
    CancelState,
    Ledger,
    SyncMode,
    SyncEventStatus,
    BookingEntry,
)

from .exceptions import (
    BaseServiceError,
    PlatformServiceError,
    EbayServiceError,
    EbayAPIError,
    EbayAuthorizationError,
    IncompleteFeedError,
    AccountNotFoundError,
    OrderNotFoundError,
    ExchangeRateError,
    ValidationError,
)
