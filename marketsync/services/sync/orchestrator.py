"""
Sync orchestrator: fans out one task per seller account and collects results.

Every account gets its own AsyncSession. All tasks share one httpx client.
A failing account never cancels the others; its exception is turned into an
``AccountResult(success=False)`` entry so callers can retry just that account.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

import httpx
from sqlalchemy import select

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import SyncMode
from marketsync.core.utils import utc_now
from marketsync.database import get_sessionmaker
from marketsync.models.account import SellerAccount
from marketsync.services.sync.account_sync import AccountResult, AccountSynchronizer, FeeBackfillResult

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    sync_run_id: str
    mode: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[AccountResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def status(self) -> str:
        if not self.results or self.failed == 0:
            return "success"
        if self.succeeded:
            return "partial_success"
        return "error"

    def totals(self) -> Dict[str, int]:
        return {
            "total_accounts": len(self.results),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "total_new_orders": sum(r.new_orders for r in self.results),
            "total_updated_orders": sum(r.updated_orders for r in self.results),
            "total_notifiable_changes": sum(r.notifiable_changes for r in self.results),
            "total_failed_records": sum(r.failed_records for r in self.results),
        }

    def as_dict(self) -> Dict:
        return {
            "sync_run_id": self.sync_run_id,
            "mode": self.mode,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "results": [r.as_dict() for r in self.results],
            **self.totals(),
        }


class SyncOrchestrator:
    def __init__(
        self,
        session_factory: Optional[Callable] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        synchronizer_factory: Callable = AccountSynchronizer,
        sleep=None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory or get_sessionmaker()
        self.http_client = http_client
        self.synchronizer_factory = synchronizer_factory
        self.sleep = sleep

    async def list_accounts(self, account_ids: Optional[Sequence[int]] = None) -> Dict[int, str]:
        async with self.session_factory() as db:
            stmt = select(SellerAccount.id, SellerAccount.name).order_by(SellerAccount.id)
            if account_ids:
                stmt = stmt.where(SellerAccount.id.in_(list(account_ids)))
            else:
                stmt = stmt.where(SellerAccount.is_active.is_(True))
            rows = (await db.execute(stmt)).all()
        return {row.id: row.name for row in rows}

    def _new_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT)

    async def _run_account(self, account_id: int, mode: SyncMode, sync_run_id: str, http_client) -> AccountResult:
        async with self.session_factory() as db:
            synchronizer = self.synchronizer_factory(db, http_client, sync_run_id, self.settings, sleep=self.sleep)
            return await synchronizer.run(account_id, mode)

    async def sync_all(self, account_ids: Optional[Sequence[int]] = None, mode: SyncMode = SyncMode.ALL) -> SyncReport:
        mode = SyncMode(mode)
        sync_run_id = str(uuid.uuid4())
        report = SyncReport(sync_run_id=sync_run_id, mode=mode.value, started_at=utc_now())

        accounts = await self.list_accounts(account_ids)
        if not accounts:
            logger.info("No seller accounts to sync")
            report.finished_at = utc_now()
            return report

        logger.info(f"Sync run {sync_run_id} ({mode.value}) starting for {len(accounts)} accounts")

        owns_client = self.http_client is None
        http_client = self.http_client or self._new_http_client()
        try:
            tasks = [
                self._run_account(account_id, mode, sync_run_id, http_client)
                for account_id in accounts
            ]
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            if owns_client:
                await http_client.aclose()

        for (account_id, name), outcome in zip(accounts.items(), outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"[account {name}] sync failed: {outcome}", exc_info=outcome)
                outcome = AccountResult(account_id=account_id, account_name=name, success=False, error=str(outcome))
            report.results.append(outcome)

        report.finished_at = utc_now()
        logger.info(f"Sync run {sync_run_id} finished ({report.status}): {report.totals()}")
        return report

    async def _backfill_account(self, account_id: int, since, sync_run_id: str, http_client) -> FeeBackfillResult:
        async with self.session_factory() as db:
            synchronizer = self.synchronizer_factory(db, http_client, sync_run_id, self.settings, sleep=self.sleep)
            return await synchronizer.backfill_fees(account_id, since)

    async def backfill_fees(self, account_ids: Optional[Sequence[int]] = None, since: Optional[datetime] = None) -> Dict:
        sync_run_id = str(uuid.uuid4())
        accounts = await self.list_accounts(account_ids)

        owns_client = self.http_client is None
        http_client = self.http_client or self._new_http_client()
        try:
            outcomes = await asyncio.gather(
                *[self._backfill_account(account_id, since, sync_run_id, http_client) for account_id in accounts],
                return_exceptions=True,
            )
        finally:
            if owns_client:
                await http_client.aclose()

        results = []
        for (account_id, name), outcome in zip(accounts.items(), outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"[account {name}] fee backfill failed: {outcome}", exc_info=outcome)
                outcome = FeeBackfillResult(account_id=account_id, account_name=name, error=str(outcome))
            results.append(outcome.as_dict())

        failed = sum(1 for r in results if not r["success"])
        return {
            "sync_run_id": sync_run_id,
            "status": "success" if failed == 0 else ("partial_success" if failed < len(results) else "error"),
            "results": results,
            "total_transactions": sum(r["transactions"] for r in results),
            "total_orders_updated": sum(r["orders_updated"] for r in results),
        }
