# marketsync/routes/sync.py
"""
Manual triggers for the sync engine and the notifiable-change queue.

Each trigger runs the orchestrator inline and returns its summary.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import SyncEventStatus, SyncMode
from marketsync.core.exceptions import ValidationError
from marketsync.database import get_db
from marketsync.services.event_service import SyncEventService, serialize_event
from marketsync.services.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sync", tags=["sync"])


def get_orchestrator() -> SyncOrchestrator:
    return SyncOrchestrator()


def _parse_account_ids(account_ids: Optional[str]) -> Optional[List[int]]:
    if not account_ids:
        return None
    try:
        return [int(part) for part in account_ids.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(status_code=400, detail="account_ids must be a comma separated list of integers")


async def _run(orchestrator: SyncOrchestrator, mode: SyncMode, account_ids: Optional[str]) -> Dict[str, Any]:
    ids = _parse_account_ids(account_ids)
    logger.info("Manual %s sync requested (accounts=%s)", mode.value, ids or "all active")
    report = await orchestrator.sync_all(ids, mode)
    return report.as_dict()


@router.post("/new-orders")
async def sync_new_orders(
    account_ids: Optional[str] = Query(None, description="Comma separated seller account ids"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    return await _run(orchestrator, SyncMode.NEW, account_ids)


@router.post("/modified-orders")
async def sync_modified_orders(
    account_ids: Optional[str] = Query(None, description="Comma separated seller account ids"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    return await _run(orchestrator, SyncMode.MODIFIED, account_ids)


@router.post("/all")
async def sync_all_accounts(
    account_ids: Optional[str] = Query(None, description="Comma separated seller account ids"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    return await _run(orchestrator, SyncMode.ALL, account_ids)


@router.post("/fees/backfill")
async def backfill_fees(
    since: Optional[datetime] = Query(None, description="Start of the transaction window (defaults to last backfill)"),
    account_ids: Optional[str] = Query(None, description="Comma separated seller account ids"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.backfill_fees(_parse_account_ids(account_ids), since)


@router.get("/events")
async def list_sync_events(
    status: Optional[str] = Query(SyncEventStatus.PENDING.value),
    account_id: Optional[int] = None,
    sync_run_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    events = await SyncEventService(db).list_events(
        status=status or None,
        account_id=account_id,
        sync_run_id=sync_run_id,
        limit=limit,
    )
    return {"count": len(events), "events": [serialize_event(e) for e in events]}


@router.patch("/events/{event_id}")
async def update_sync_event(
    event_id: int,
    status: str = Query(SyncEventStatus.PROCESSED.value),
    notes: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    try:
        event = await SyncEventService(db).mark(event_id, status, notes)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if event is None:
        raise HTTPException(status_code=404, detail=f"Sync event {event_id} not found")
    return serialize_event(event)
