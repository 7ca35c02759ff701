# marketsync/services/event_service.py
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import SyncEventStatus
from marketsync.core.exceptions import ValidationError
from marketsync.core.utils import utc_now
from marketsync.models.sync_event import SyncEvent

logger = logging.getLogger(__name__)


class SyncEventService:
    """Read side of the notifiable-change queue."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_events(
        self,
        status: Optional[str] = SyncEventStatus.PENDING.value,
        account_id: Optional[int] = None,
        sync_run_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[SyncEvent]:
        stmt = select(SyncEvent).order_by(SyncEvent.detected_at.desc(), SyncEvent.id.desc()).limit(limit)
        if status:
            stmt = stmt.where(SyncEvent.status == status)
        if account_id is not None:
            stmt = stmt.where(SyncEvent.account_id == account_id)
        if sync_run_id:
            stmt = stmt.where(SyncEvent.sync_run_id == sync_run_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def mark(self, event_id: int, status: str, notes: Optional[str] = None) -> Optional[SyncEvent]:
        if status not in {s.value for s in SyncEventStatus}:
            raise ValidationError(f"Unknown sync event status '{status}'")
        event = await self.db.get(SyncEvent, event_id)
        if event is None:
            return None
        event.status = status
        event.processed_at = utc_now() if status != SyncEventStatus.PENDING.value else None
        if notes:
            event.notes = notes
        await self.db.commit()
        logger.info(f"Sync event {event_id} marked {status}")
        return event


def serialize_event(event: SyncEvent) -> dict:
    return {
        "id": event.id,
        "sync_run_id": event.sync_run_id,
        "account_id": event.account_id,
        "order_id": event.order_id,
        "change_type": event.change_type,
        "change_data": event.change_data,
        "status": event.status,
        "detected_at": event.detected_at.isoformat() if event.detected_at else None,
        "processed_at": event.processed_at.isoformat() if event.processed_at else None,
        "notes": event.notes,
    }
