"""
Schemas for order financial endpoints.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator

from .base import BaseSchema


class OrderFinancials(BaseSchema):
    order_id: str
    account_id: int
    order_payment_status: Optional[str] = None
    date_sold: Optional[datetime] = None
    conversion_rate: Optional[Decimal] = None
    subtotal_usd: Optional[Decimal] = None
    shipping_usd: Optional[Decimal] = None
    transaction_fees_usd: Optional[Decimal] = None
    ad_fee_general: Optional[Decimal] = None
    before_tax_usd: Optional[Decimal] = None
    estimated_tax_usd: Optional[Decimal] = None
    earnings: Optional[Decimal] = None
    earnings_override: bool = False
    withholding: Optional[Decimal] = None
    fixed_fee: Optional[Decimal] = None
    net: Optional[Decimal] = None
    exchange_rate: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    secondary_exchange_rate: Optional[Decimal] = None
    secondary_total: Optional[Decimal] = None
    secondary_fee_total: Optional[Decimal] = None
    profit: Optional[Decimal] = None
    recalculated_at: Optional[datetime] = None


class _AmountMixin(BaseModel):
    @field_validator('*', mode='before')
    @classmethod
    def blank_to_none(cls, v):
        if v == '':
            return None
        return v


class AdFeeUpdate(_AmountMixin):
    ad_fee: Optional[Decimal] = None


class EarningsUpdate(_AmountMixin):
    earnings: Optional[Decimal] = None


class SecondaryCostsUpdate(_AmountMixin):
    before_tax_usd: Optional[Decimal] = None
    estimated_tax_usd: Optional[Decimal] = None
