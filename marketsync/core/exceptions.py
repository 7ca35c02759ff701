from typing import Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class PlatformServiceError(BaseServiceError):
    """Base exception for platform service errors."""
    pass

class EbayServiceError(PlatformServiceError):
    """Base exception for eBay-specific errors."""
    pass

class EbayAPIError(EbayServiceError):
    """Raised when eBay API calls fail."""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable

class EbayAuthorizationError(EbayAPIError):
    """Raised when a token cannot be refreshed or the API rejects the credentials."""
    pass

class IncompleteFeedError(EbayServiceError):
    """Raised when a paged feed stopped before its reported total was read."""
    pass

class AccountNotFoundError(BaseServiceError):
    """Raised when a seller account is not found."""
    pass

class OrderNotFoundError(BaseServiceError):
    """Raised when an order is not found."""
    pass

class ExchangeRateError(BaseServiceError):
    """Raised when an exchange rate cannot be recorded."""
    pass

class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass
