# marketsync/models/exchange_rate.py
from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, UniqueConstraint, Index

from marketsync.core.enums import Ledger
from marketsync.core.utils import utc_now
from marketsync.database import Base


class ExchangeRate(Base):
    """
    Append-only time series of conversion rates per ledger.

    Lookups take the most recent row whose effective_date is on or before the
    target date. Rows are never updated.
    """
    __tablename__ = "exchange_rates"

    id = Column(Integer, primary_key=True, index=True)
    ledger = Column(String, nullable=False, default=Ledger.EBAY.value)
    rate = Column(Numeric(18, 6), nullable=False)
    effective_date = Column(DateTime, nullable=False)
    created_by = Column(String, nullable=False, default="system")
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("ledger", "effective_date", name="uq_exchange_rates_ledger_effective_date"),
        Index("ix_exchange_rates_ledger_effective_date", "ledger", "effective_date"),
    )

    def __repr__(self):
        return f"<ExchangeRate(ledger='{self.ledger}', rate={self.rate}, effective={self.effective_date})>"
