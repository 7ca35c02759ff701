"""
Per-account sync task.

Phases run strictly in order inside one AsyncSession:

    credentials -> plan -> new orders -> modified orders

Account state is checkpointed after the credential refresh and after each
completed phase. Failures of a single order roll back to a savepoint and are
counted; an authorization failure ends the account's pass.
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

import httpx
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import BookingEntry, PaymentStatus, SyncMode
from marketsync.core.exceptions import EbayAuthorizationError
from marketsync.core.utils import as_naive_utc, quantize, utc_now
from marketsync.models.fee_transaction import FeeTransaction
from marketsync.models.order import MarketplaceOrder
from marketsync.services.ebay.auth import EbayOAuthClient
from marketsync.services.ebay.client import EbayClient
from marketsync.services.ebay.credentials import AccountStore, AccountSyncState, CredentialManager
from marketsync.services.ebay.fees import TransactionAggregator
from marketsync.services.ebay.pagination import FetchResult, PaginatedFetcher
from marketsync.services.finance.exchange_rates import ExchangeRateService
from marketsync.services.finance.pipeline import FinancialPipeline, compute_earnings
from marketsync.services.sync.planner import SyncPlanner, TimeWindow
from marketsync.services.sync.reconciler import OrderReconciler

logger = logging.getLogger(__name__)


@dataclass
class AccountResult:
    account_id: int
    account_name: Optional[str] = None
    success: bool = False
    error: Optional[str] = None
    new_orders: int = 0
    updated_orders: int = 0
    notifiable_changes: int = 0
    failed_records: int = 0
    new_orders_complete: Optional[bool] = None
    modified_orders_complete: Optional[bool] = None
    skipped: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> Dict:
        return asdict(self)


@dataclass
class FeeBackfillResult:
    account_id: int
    account_name: Optional[str] = None
    success: bool = False
    error: Optional[str] = None
    transactions: int = 0
    orders_with_fees: int = 0
    orders_updated: int = 0
    complete: bool = False

    def as_dict(self) -> Dict:
        return asdict(self)


class AccountSynchronizer:
    def __init__(
        self,
        db: AsyncSession,
        http_client: httpx.AsyncClient,
        sync_run_id: str,
        settings: Optional[Settings] = None,
        sleep=None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.sync_run_id = sync_run_id
        self.store = AccountStore(db)
        self.client = EbayClient(http_client, self.settings)
        self.credentials = CredentialManager(
            EbayOAuthClient(http_client, self.settings),
            store=self.store,
            settings=self.settings,
            sleep=sleep,
        )
        self.planner = SyncPlanner(self.settings)
        self.fetcher = PaginatedFetcher(
            self.client.get_orders_page,
            items_key="orders",
            page_size=self.settings.ORDER_PAGE_SIZE,
            settings=self.settings,
            sleep=sleep,
            label="orders",
        )
        self.aggregator = TransactionAggregator(self.client, self.settings, sleep=sleep)
        self.pipeline = FinancialPipeline(ExchangeRateService(db, self.settings), self.settings)
        self.reconciler = OrderReconciler(db, self.client, self.pipeline, sync_run_id, self.settings)

    async def latest_local_creation(self, state: AccountSyncState) -> Optional[datetime]:
        stmt = select(func.max(MarketplaceOrder.creation_date)).where(MarketplaceOrder.account_id == state.account_id)
        latest = (await self.db.execute(stmt)).scalar()
        candidates = [d for d in (as_naive_utc(latest), state.latest_creation_watermark) if d is not None]
        return max(candidates) if candidates else None

    async def load_cached_fee_map(self, account_id: int) -> Dict[str, Decimal]:
        stmt = select(FeeTransaction).where(FeeTransaction.account_id == account_id)
        fee_map: Dict[str, Decimal] = {}
        for txn in (await self.db.execute(stmt)).scalars().all():
            if not txn.order_id or txn.amount is None:
                continue
            amount = abs(Decimal(str(txn.amount)))
            signed = -amount if txn.booking_entry == BookingEntry.CREDIT.value else amount
            fee_map[txn.order_id] = fee_map.get(txn.order_id, Decimal("0")) + signed
        return {order_id: quantize(total) for order_id, total in fee_map.items()}

    async def run(self, account_id: int, mode: SyncMode = SyncMode.ALL, now: Optional[datetime] = None) -> AccountResult:
        result = AccountResult(account_id=account_id)
        state = await self.store.load(account_id)
        result.account_name = state.name
        prefix = state.log_prefix

        try:
            token = await self.credentials.ensure_valid(state)
            plan = self.planner.plan_windows(
                state,
                await self.latest_local_creation(state),
                state.last_modified_sync_at,
                now=now,
            )
            fee_map = await self.load_cached_fee_map(account_id)

            if mode.includes_new:
                if plan.new_orders is None:
                    result.skipped["new_orders"] = plan.new_orders_skip_reason
                    logger.info(f"{prefix} new orders skipped: {plan.new_orders_skip_reason}")
                else:
                    fetched = await self._sync_window(state, token, plan.new_orders, fee_map, result)
                    result.new_orders_complete = fetched.complete
                    await self.store.checkpoint(state)

            if mode.includes_modified:
                if plan.modified_orders is None:
                    result.skipped["modified_orders"] = plan.modified_orders_skip_reason
                    logger.info(f"{prefix} modified orders skipped: {plan.modified_orders_skip_reason}")
                else:
                    token = await self.credentials.ensure_valid(state)
                    fetched = await self._sync_window(state, token, plan.modified_orders, fee_map, result)
                    result.modified_orders_complete = fetched.complete
                    if fetched.complete:
                        state.last_modified_sync_at = plan.modified_orders.end
                    else:
                        logger.warning(f"{prefix} modified scan incomplete; last poll time not advanced")
                    await self.store.checkpoint(state)

            result.success = True
        except EbayAuthorizationError as e:
            await self.db.rollback()
            result.error = str(e)
            logger.error(f"{prefix} authorization failed: {e}")
            return result

        logger.info(
            f"{prefix} sync complete: {result.new_orders} new, {result.updated_orders} updated, "
            f"{result.notifiable_changes} notifiable, {result.failed_records} failed"
        )
        return result

    async def _sync_window(
        self,
        state: AccountSyncState,
        token: str,
        window: TimeWindow,
        fee_map: Dict[str, Decimal],
        result: AccountResult,
    ) -> FetchResult:
        logger.info(f"{state.log_prefix} fetching {window.filter_expression}")
        fetched = await self.fetcher.fetch_all(token, window.filter_expression)
        logger.info(
            f"{state.log_prefix} {len(fetched.items)} orders in {fetched.pages} pages "
            f"(total={fetched.total}, complete={fetched.complete})"
        )

        # Counted locally; nothing reaches the result until the window commits.
        window_result = AccountResult(account_id=state.account_id)
        creation_dates: List[datetime] = []

        for remote in fetched.items:
            try:
                async with self.db.begin_nested():
                    outcome = await self.reconciler.reconcile(remote, state, token, fee_map)
            except EbayAuthorizationError:
                raise
            except Exception as e:
                window_result.failed_records += 1
                logger.error(
                    f"{state.log_prefix} failed to reconcile order {remote.get('orderId')}: {e}",
                    exc_info=True,
                )
                continue

            if outcome.is_new:
                window_result.new_orders += 1
            elif outcome.written:
                window_result.updated_orders += 1
            if outcome.notifiable:
                window_result.notifiable_changes += 1
            if outcome.order is not None and outcome.order.creation_date is not None:
                creation_dates.append(outcome.order.creation_date)

        await self.db.commit()

        result.new_orders += window_result.new_orders
        result.updated_orders += window_result.updated_orders
        result.notifiable_changes += window_result.notifiable_changes
        result.failed_records += window_result.failed_records
        for creation_date in creation_dates:
            state.advance_creation_watermark(creation_date)
        return fetched

    async def backfill_fees(self, account_id: int, since: Optional[datetime] = None) -> FeeBackfillResult:
        """Pull ad fees from the Finances feed, refresh the cache and push them onto stored orders."""
        result = FeeBackfillResult(account_id=account_id)
        state = await self.store.load(account_id)
        result.account_name = state.name
        since = as_naive_utc(since or state.last_fee_backfill_at or state.initial_sync_date)
        until = utc_now()

        try:
            token = await self.credentials.ensure_valid(state)
            collection = await self.aggregator.collect(token, since, until)
        except EbayAuthorizationError as e:
            await self.db.rollback()
            result.error = str(e)
            logger.error(f"{state.log_prefix} fee backfill authorization failed: {e}")
            return result

        result.complete = collection.complete
        if not collection.complete:
            await self.db.rollback()
            result.error = f"fee feed incomplete: {collection.error or 'unknown error'}"
            logger.error(f"{state.log_prefix} fee backfill aborted, cache and orders left unchanged: {result.error}")
            return result

        await self.db.execute(
            delete(FeeTransaction).where(
                FeeTransaction.account_id == account_id,
                FeeTransaction.transaction_date >= since,
            )
        )
        for entry in collection.entries:
            self.db.add(FeeTransaction(
                account_id=account_id,
                transaction_id=entry.transaction_id,
                order_id=entry.order_id,
                transaction_type=entry.transaction_type,
                fee_type=entry.fee_type,
                booking_entry=entry.booking_entry,
                amount=entry.amount,
                currency=entry.currency,
                transaction_date=entry.transaction_date,
                cached_at=until,
            ))
        await self.db.flush()

        fee_map = await self.load_cached_fee_map(account_id)
        result.orders_updated = await self.apply_fee_map(account_id, fee_map)
        result.transactions = len(collection.entries)
        result.orders_with_fees = len(fee_map)

        state.last_fee_backfill_at = until
        await self.store.checkpoint(state)

        result.success = True
        logger.info(
            f"{state.log_prefix} fee backfill: {result.transactions} ad fee entries, "
            f"{result.orders_updated} orders updated"
        )
        return result

    async def apply_fee_map(self, account_id: int, fee_map: Dict[str, Decimal]) -> int:
        if not fee_map:
            return 0
        stmt = select(MarketplaceOrder).where(
            MarketplaceOrder.account_id == account_id,
            MarketplaceOrder.order_id.in_(list(fee_map)),
        )
        orders: List[MarketplaceOrder] = list((await self.db.execute(stmt)).scalars().all())

        updated = 0
        for order in orders:
            if order.order_payment_status == PaymentStatus.FULLY_REFUNDED.value:
                continue
            new_fee = fee_map[order.order_id]
            if order.ad_fee_general is not None and Decimal(str(order.ad_fee_general)) == new_fee:
                continue
            order.ad_fee_general = new_fee
            if not order.earnings_override and order.order_payment_status != PaymentStatus.PARTIALLY_REFUNDED.value:
                order.earnings = compute_earnings(order)
            await self.pipeline.recalculate_and_apply(order)
            updated += 1

        await self.db.flush()
        return updated
