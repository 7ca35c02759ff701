from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey

from marketsync.core.utils import utc_now
from marketsync.database import Base


class FeeTransaction(Base):
    """Cached fee line item from the Finances feed. Rebuilt on each backfill run."""
    __tablename__ = "fee_transactions"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("seller_accounts.id"), nullable=False, index=True)
    transaction_id = Column(String, nullable=False)
    order_id = Column(String, index=True)
    transaction_type = Column(String)
    fee_type = Column(String)
    booking_entry = Column(String)
    amount = Column(Numeric(14, 2))
    currency = Column(String)
    transaction_date = Column(DateTime)
    cached_at = Column(DateTime, nullable=False, default=utc_now)
