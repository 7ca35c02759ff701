"""
Credential lifecycle for seller accounts.

``AccountSyncState`` is the in-memory copy of a seller account that a sync
task threads through its phases. ``AccountStore`` writes it back to the
``seller_accounts`` row, and ``CredentialManager`` keeps its access token
valid, refreshing ahead of expiry.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.exceptions import AccountNotFoundError, EbayAPIError, EbayAuthorizationError
from marketsync.core.utils import as_naive_utc, utc_now
from marketsync.models.account import SellerAccount
from marketsync.services.ebay.auth import EbayOAuthClient
from marketsync.services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 7200


@dataclass
class AccountSyncState:
    account_id: int
    name: str
    initial_sync_date: datetime
    marketplaces: List[str] = field(default_factory=list)
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_token_expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    token_issued_at: Optional[datetime] = None
    latest_creation_watermark: Optional[datetime] = None
    last_modified_sync_at: Optional[datetime] = None
    last_fee_backfill_at: Optional[datetime] = None

    @classmethod
    def from_account(cls, account: SellerAccount) -> "AccountSyncState":
        return cls(
            account_id=account.id,
            name=account.name,
            initial_sync_date=account.initial_sync_date,
            marketplaces=list(account.marketplaces or []),
            access_token=account.access_token,
            refresh_token=account.refresh_token,
            expires_in=account.expires_in,
            refresh_token_expires_in=account.refresh_token_expires_in,
            token_type=account.token_type,
            scope=account.scope,
            token_issued_at=account.token_issued_at,
            latest_creation_watermark=account.latest_creation_watermark,
            last_modified_sync_at=account.last_modified_sync_at,
            last_fee_backfill_at=account.last_fee_backfill_at,
        )

    def apply_to(self, account: SellerAccount) -> None:
        account.access_token = self.access_token
        account.refresh_token = self.refresh_token
        account.expires_in = self.expires_in
        account.refresh_token_expires_in = self.refresh_token_expires_in
        account.token_type = self.token_type
        account.scope = self.scope
        account.token_issued_at = self.token_issued_at
        account.latest_creation_watermark = self.latest_creation_watermark
        account.last_modified_sync_at = self.last_modified_sync_at
        account.last_fee_backfill_at = self.last_fee_backfill_at

    def advance_creation_watermark(self, creation_date: Optional[datetime]) -> None:
        """The creation watermark only ever moves forward."""
        creation_date = as_naive_utc(creation_date)
        if creation_date is None:
            return
        if self.latest_creation_watermark is None or creation_date > self.latest_creation_watermark:
            self.latest_creation_watermark = creation_date

    @property
    def log_prefix(self) -> str:
        return f"[account {self.name}]"


class AccountStore:
    """Loads and checkpoints account state through the task's session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load(self, account_id: int) -> AccountSyncState:
        account = await self.db.get(SellerAccount, account_id)
        if account is None:
            raise AccountNotFoundError(f"Seller account {account_id} not found")
        return AccountSyncState.from_account(account)

    async def checkpoint(self, state: AccountSyncState) -> None:
        account = await self.db.get(SellerAccount, state.account_id)
        if account is None:
            raise AccountNotFoundError(f"Seller account {state.account_id} not found")
        state.apply_to(account)
        await self.db.commit()
        logger.debug(f"{state.log_prefix} checkpoint saved")


class CredentialManager:
    """
    Keeps an account's access token valid.

    The token is refreshed when less than the safety margin (2 minutes by
    default) of validity remains, or when no token or issue time is known.
    Transient failures are retried; anything else surfaces as
    ``EbayAuthorizationError`` and fails the account's current pass.
    """

    def __init__(
        self,
        oauth_client: EbayOAuthClient,
        store: Optional[AccountStore] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep=None,
    ):
        self.oauth_client = oauth_client
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock
        self.sleep = sleep

    def remaining_validity_ms(self, state: AccountSyncState, now: Optional[datetime] = None) -> Optional[float]:
        if not state.access_token or state.token_issued_at is None or state.expires_in is None:
            return None
        now = now or self.clock()
        elapsed_ms = (now - as_naive_utc(state.token_issued_at)).total_seconds() * 1000
        return state.expires_in * 1000 - elapsed_ms

    def needs_refresh(self, state: AccountSyncState, now: Optional[datetime] = None) -> bool:
        remaining = self.remaining_validity_ms(state, now)
        if remaining is None:
            return True
        return remaining < self.settings.TOKEN_SAFETY_MARGIN_SECONDS * 1000

    async def ensure_valid(self, state: AccountSyncState) -> str:
        """Return an access token valid for the current operation, refreshing if needed."""
        if not self.needs_refresh(state):
            return state.access_token

        logger.info(f"{state.log_prefix} access token expiring or missing, refreshing")
        if not state.refresh_token:
            raise EbayAuthorizationError(f"{state.log_prefix} no refresh token stored; account must be reconnected")

        try:
            token_data = await retry_with_backoff(
                lambda: self.oauth_client.refresh_access_token(state.refresh_token),
                label=f"{state.log_prefix} token refresh",
                max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
                base_delay=self.settings.RETRY_BASE_DELAY,
                max_delay=self.settings.RETRY_MAX_DELAY,
                sleep=self.sleep,
            )
        except EbayAuthorizationError:
            raise
        except (EbayAPIError, httpx.HTTPError) as e:
            raise EbayAuthorizationError(
                f"{state.log_prefix} token refresh failed after retries: {e}",
                status_code=getattr(e, "status_code", None),
            ) from e

        self._apply_token_data(state, token_data)
        if self.store is not None:
            await self.store.checkpoint(state)

        logger.info(f"{state.log_prefix} access token refreshed (expires in {state.expires_in}s)")
        return state.access_token

    def _apply_token_data(self, state: AccountSyncState, token_data: dict) -> None:
        access_token = token_data.get("access_token")
        if not access_token:
            raise EbayAuthorizationError(f"{state.log_prefix} token response did not include an access token")

        state.access_token = access_token
        state.expires_in = int(token_data.get("expires_in") or DEFAULT_EXPIRES_IN)
        state.token_type = token_data.get("token_type", state.token_type)
        state.token_issued_at = self.clock()

        # eBay omits the refresh token on refresh_token grants; keep the stored one
        if token_data.get("refresh_token"):
            state.refresh_token = token_data["refresh_token"]
        if token_data.get("refresh_token_expires_in"):
            state.refresh_token_expires_in = int(token_data["refresh_token_expires_in"])
        if token_data.get("scope"):
            state.scope = token_data["scope"]
