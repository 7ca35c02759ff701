# marketsync/models/sync_event.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Text

from marketsync.core.enums import SyncEventStatus
from marketsync.core.utils import utc_now
from marketsync.database import Base


class SyncEvent(Base):
    """
    A notifiable change detected on an order during a sync pass.
    This table is the queue operators review; silent changes never land here.
    """
    __tablename__ = "sync_events"

    id = Column(Integer, primary_key=True, index=True)

    # Groups all events from a single orchestrator run.
    sync_run_id = Column(String, index=True, nullable=False)

    account_id = Column(Integer, ForeignKey("seller_accounts.id"), nullable=False, index=True)
    order_id = Column(String, index=True, nullable=False)

    # e.g. 'payment_status', 'tracking', 'address', 'order_update'
    change_type = Column(String, nullable=False, index=True)

    # {"field": {"old": ..., "new": ...}}
    change_data = Column(JSON, nullable=False)

    status = Column(String, default=SyncEventStatus.PENDING.value, nullable=False, index=True)

    detected_at = Column(DateTime, nullable=False, default=utc_now)
    processed_at = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)

    def __repr__(self):
        return (f"<SyncEvent(id={self.id}, run_id={self.sync_run_id}, order='{self.order_id}', "
                f"change='{self.change_type}', status='{self.status}')>")
