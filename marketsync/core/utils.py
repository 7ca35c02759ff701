"""
Utility functions for the application.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def utc_now() -> datetime:
    """Current time as naive UTC, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_ebay_datetime(dt_str: Any) -> Optional[datetime]:
    """Parse an eBay ISO-8601 timestamp ("2025-11-03T10:15:00.000Z") to naive UTC."""
    if not dt_str:
        return None
    if isinstance(dt_str, datetime):
        return as_naive_utc(dt_str)
    try:
        dt = datetime.fromisoformat(str(dt_str).replace('Z', '+00:00'))
        return as_naive_utc(dt)
    except (ValueError, TypeError):
        try:
            return datetime.strptime(str(dt_str), "%Y-%m-%dT%H:%M:%S.%fZ")
        except (ValueError, TypeError):
            logger.warning(f"Could not parse eBay datetime: {dt_str}")
            return None


def format_ebay_datetime(value: datetime) -> str:
    """Format naive-UTC datetime the way eBay filters expect (millisecond precision, Z suffix)."""
    value = as_naive_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a decimal value from an eBay amount node or a scalar."""
    if value in (None, "", "null"):
        return None
    if isinstance(value, dict):
        value = value.get("value") or value.get("amount")
        if value is None:
            return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning(f"Could not parse decimal: {value!r}")
        return None


def quantize(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
