# marketsync/models/account.py
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, Text

from marketsync.core.utils import utc_now
from marketsync.database import Base


class SellerAccount(Base):
    """
    One connected eBay seller.

    Holds the OAuth token pair and the two sync watermarks. Token fields are
    written by the credential manager, watermarks by the sync task.
    """
    __tablename__ = "seller_accounts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    marketplaces = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)

    # --- OAuth ---
    access_token = Column(Text)
    refresh_token = Column(Text)
    expires_in = Column(Integer)                 # seconds
    refresh_token_expires_in = Column(Integer)   # seconds
    token_type = Column(String)
    scope = Column(Text)
    token_issued_at = Column(DateTime)

    # --- Watermarks ---
    initial_sync_date = Column(DateTime, nullable=False)
    latest_creation_watermark = Column(DateTime)
    last_modified_sync_at = Column(DateTime)
    last_fee_backfill_at = Column(DateTime)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def is_connected(self) -> bool:
        return bool(self.refresh_token)

    def __repr__(self):
        return f"<SellerAccount(id={self.id}, name='{self.name}', active={self.is_active})>"
