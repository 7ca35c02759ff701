"""
Offset-based paging over eBay collection endpoints.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from marketsync.core.config import Settings, get_settings
from marketsync.core.exceptions import EbayAPIError, EbayAuthorizationError
from marketsync.services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

PageGetter = Callable[[str, Optional[str], int, int], Awaitable[Dict[str, Any]]]


@dataclass
class FetchResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    total: Optional[int] = None
    pages: int = 0
    complete: bool = False
    error: Optional[str] = None


class PaginatedFetcher:
    """
    Pulls every page of a filtered collection.

    Stops when the server-reported total is reached, when a page comes back
    short, or when the next offset would pass the record ceiling. Each page is
    retried on transient failures; once retries run out the loop ends and the
    items gathered so far are returned with ``complete=False``. Authorization
    errors are not swallowed.
    """

    def __init__(
        self,
        page_getter: PageGetter,
        items_key: str,
        page_size: Optional[int] = None,
        settings: Optional[Settings] = None,
        sleep=None,
        label: str = "fetch",
    ):
        self.settings = settings or get_settings()
        self.page_getter = page_getter
        self.items_key = items_key
        self.page_size = page_size or self.settings.ORDER_PAGE_SIZE
        self.max_records = self.settings.MAX_RECORDS
        self.page_delay = self.settings.PAGE_DELAY_SECONDS
        self.sleep = sleep or asyncio.sleep
        self.label = label

    async def fetch_all(self, token: str, filter_expression: Optional[str]) -> FetchResult:
        result = FetchResult()
        offset = 0

        while True:
            if offset >= self.max_records:
                logger.warning(
                    f"{self.label}: stopped at the {self.max_records} record ceiling "
                    f"(filter={filter_expression})"
                )
                result.error = f"record ceiling of {self.max_records} reached"
                break

            limit = min(self.page_size, self.max_records - offset)
            page_offset = offset
            try:
                page = await retry_with_backoff(
                    lambda: self.page_getter(token, filter_expression, limit, page_offset),
                    label=f"{self.label} page at offset {page_offset}",
                    max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
                    base_delay=self.settings.RETRY_BASE_DELAY,
                    max_delay=self.settings.RETRY_MAX_DELAY,
                    sleep=self.sleep,
                )
            except EbayAuthorizationError:
                raise
            except (EbayAPIError, httpx.HTTPError) as e:
                logger.error(
                    f"{self.label}: giving up at offset {page_offset} with {len(result.items)} items fetched: {e}"
                )
                result.error = str(e)
                break

            result.pages += 1
            batch = page.get(self.items_key) or []
            if page.get("total") is not None:
                result.total = int(page["total"])

            result.items.extend(batch)
            offset += len(batch)
            logger.debug(
                f"{self.label}: page {result.pages} returned {len(batch)} items "
                f"({len(result.items)}/{result.total})"
            )

            if result.total is not None and len(result.items) >= result.total:
                result.complete = True
                break
            if len(batch) < limit:
                result.complete = True
                break

            await self.sleep(self.page_delay)

        return result
