"""
Incremental sync window planning.

Two windows are planned per account and pass:

* new orders: from the initial sync date (first run) or one second after
  the newest known creation time, up to now. Skipped when shorter than the
  minimum window so frequent polls don't hammer the API.
* modified orders: from the last completed modified scan (never further back
  than the lookback limit) up to now.

``now`` is always pulled back by a small clock-skew buffer because eBay
rejects filters that end in the future.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from marketsync.core.config import Settings, get_settings
from marketsync.core.utils import as_naive_utc, format_ebay_datetime, utc_now

logger = logging.getLogger(__name__)

CREATION_FILTER_FIELD = "creationdate"
MODIFIED_FILTER_FIELD = "lastmodifieddate"


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime
    filter_field: str

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def filter_expression(self) -> str:
        return f"{self.filter_field}:[{format_ebay_datetime(self.start)}..{format_ebay_datetime(self.end)}]"


@dataclass
class SyncPlan:
    now: datetime
    new_orders: Optional[TimeWindow] = None
    modified_orders: Optional[TimeWindow] = None
    new_orders_skip_reason: Optional[str] = None
    modified_orders_skip_reason: Optional[str] = None


class SyncPlanner:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def effective_now(self, now: Optional[datetime] = None) -> datetime:
        now = as_naive_utc(now) if now else utc_now()
        return now - timedelta(seconds=self.settings.CLOCK_SKEW_SECONDS)

    def plan_windows(
        self,
        state,
        latest_local_creation: Optional[datetime],
        last_poll: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> SyncPlan:
        end = self.effective_now(now)
        plan = SyncPlan(now=end)

        # New orders
        if latest_local_creation is None:
            start = as_naive_utc(state.initial_sync_date or self.settings.DEFAULT_INITIAL_SYNC_DATE)
        else:
            start = as_naive_utc(latest_local_creation) + timedelta(seconds=1)

        min_window = timedelta(seconds=self.settings.MIN_WINDOW_SECONDS)
        if end - start < min_window:
            plan.new_orders_skip_reason = (
                f"window {format_ebay_datetime(start)}..{format_ebay_datetime(end)} "
                f"is shorter than {self.settings.MIN_WINDOW_SECONDS}s"
            )
        else:
            plan.new_orders = TimeWindow(start, end, CREATION_FILTER_FIELD)

        # Modified orders
        floor = end - timedelta(days=self.settings.MODIFIED_LOOKBACK_DAYS)
        last_poll = as_naive_utc(last_poll)
        modified_start = max(floor, last_poll) if last_poll else floor
        if modified_start >= end:
            plan.modified_orders_skip_reason = "modified window is empty"
        else:
            plan.modified_orders = TimeWindow(modified_start, end, MODIFIED_FILTER_FIELD)

        return plan
