"""
Schemas for the exchange rate ledger.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator

from marketsync.core.enums import Ledger

from .base import BaseSchema


class ExchangeRateCreate(BaseModel):
    rate: Decimal
    effective_date: datetime
    ledger: Ledger = Ledger.EBAY
    notes: Optional[str] = None
    created_by: Optional[str] = None

    @field_validator('rate')
    @classmethod
    def validate_rate(cls, v):
        if v <= 0:
            raise ValueError('Rate must be positive')
        return v


class ExchangeRateRead(BaseSchema):
    id: Optional[int] = None
    ledger: str
    rate: Decimal
    effective_date: datetime
    created_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    is_fallback: bool = False
