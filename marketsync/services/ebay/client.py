import logging
from typing import Any, Dict, Optional

import httpx

from marketsync.core.config import Settings, get_settings
from marketsync.core.exceptions import EbayAPIError, EbayAuthorizationError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (429, 503)
AUTH_STATUS_CODES = (401, 403)


class EbayClient:
    """
    Client for the eBay Sell Fulfillment and Finances APIs.

    The caller supplies the bearer token on every call; this class never
    refreshes or stores tokens. Non-200 responses are raised as
    ``EbayAPIError`` with ``retryable`` set for throttling/unavailability,
    and 401/403 are raised as ``EbayAuthorizationError``. Transport errors
    (timeouts, resets) propagate as httpx exceptions for the retry helper.
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: Optional[Settings] = None):
        self.http_client = http_client
        self.settings = settings or get_settings()

        if self.settings.EBAY_SANDBOX_MODE:
            self.FULFILLMENT_API = "https://api.sandbox.ebay.com/sell/fulfillment/v1"
            self.FINANCES_API = "https://apiz.sandbox.ebay.com/sell/finances/v1"
        else:
            self.FULFILLMENT_API = "https://api.ebay.com/sell/fulfillment/v1"
            self.FINANCES_API = "https://apiz.ebay.com/sell/finances/v1"

    @staticmethod
    def _headers(token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _get(self, url: str, token: str, params: Optional[Dict[str, Any]] = None) -> Dict:
        response = await self.http_client.get(url, headers=self._headers(token), params=params)

        if response.status_code == 200:
            return response.json()

        error_text = response.text
        if response.status_code in AUTH_STATUS_CODES:
            logger.error(f"eBay rejected credentials ({response.status_code}): {error_text}")
            raise EbayAuthorizationError(
                f"eBay API authorization failed: {error_text}",
                status_code=response.status_code,
            )

        retryable = response.status_code in RETRYABLE_STATUS_CODES
        log = logger.warning if retryable else logger.error
        log(f"eBay API error ({response.status_code}) for {url}: {error_text}")
        raise EbayAPIError(
            f"eBay API request failed ({response.status_code}): {error_text}",
            status_code=response.status_code,
            retryable=retryable,
        )

    async def get_orders_page(self, token: str, filter_expression: Optional[str], limit: int, offset: int = 0) -> Dict:
        """
        GET /order. Returns the raw page: ``{"orders": [...], "total": N, ...}``
        """
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if filter_expression:
            params["filter"] = filter_expression
        return await self._get(f"{self.FULFILLMENT_API}/order", token, params)

    async def get_transactions_page(self, token: str, filter_expression: Optional[str], limit: int, offset: int = 0) -> Dict:
        """
        GET /transaction on the Finances API: ``{"transactions": [...], "total": N}``
        """
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if filter_expression:
            params["filter"] = filter_expression
        return await self._get(f"{self.FINANCES_API}/transaction", token, params)

    async def get_order(self, token: str, order_id: str) -> Dict:
        return await self._get(f"{self.FULFILLMENT_API}/order/{order_id}", token)

    async def get_tracking_number(self, token: str, fulfillment_href: Optional[str]) -> Optional[str]:
        """
        Follow a fulfillment href and pull its shipment tracking number.
        Lookup failures other than authorization yield None.
        """
        if not fulfillment_href:
            return None
        try:
            data = await self._get(fulfillment_href, token)
        except EbayAuthorizationError:
            raise
        except (EbayAPIError, httpx.HTTPError) as e:
            logger.warning(f"Failed to fetch tracking number from {fulfillment_href}: {e}")
            return None

        tracking = data.get("shipmentTrackingNumber")
        if not tracking:
            line_items = data.get("lineItems") or []
            if line_items:
                tracking = line_items[0].get("shipmentTrackingNumber")
        return tracking or None
