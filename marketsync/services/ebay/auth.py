"""
eBay OAuth token endpoint client.

Stateless: tokens are never cached here. The credential manager owns token
state and persists it on the seller account.
"""

import logging
from typing import Dict, List, Optional
from urllib.parse import urlencode

import httpx

from marketsync.core.config import Settings, get_settings
from marketsync.core.exceptions import EbayAPIError, EbayAuthorizationError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/identity/v1/oauth2/token"
RETRYABLE_STATUS_CODES = (429, 503)


class EbayOAuthClient:
    """Thin wrapper over POST /identity/v1/oauth2/token"""

    def __init__(self, http_client: httpx.AsyncClient, settings: Optional[Settings] = None):
        self.http_client = http_client
        self.settings = settings or get_settings()
        self.client_id = self.settings.EBAY_CLIENT_ID
        self.client_secret = self.settings.EBAY_CLIENT_SECRET
        self.ru_name = self.settings.EBAY_RU_NAME
        self.scopes: List[str] = list(self.settings.EBAY_SCOPES)

    @property
    def token_url(self) -> str:
        return f"{self.settings.ebay_api_base}{TOKEN_PATH}"

    def generate_user_authorization_url(self, state: Optional[str] = None) -> str:
        """Consent URL a seller visits to connect an account."""
        if not self.ru_name:
            raise ValueError("RuName is required for authorization URL generation")

        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.ru_name,
            "scope": " ".join(self.scopes),
        }
        if state:
            params["state"] = state
        return f"{self.settings.ebay_auth_base}/oauth2/authorize?{urlencode(params)}"

    async def refresh_access_token(self, refresh_token: str) -> Dict:
        if not refresh_token:
            raise EbayAuthorizationError("No refresh token available", status_code=None)

        return await self._post_token({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "scope": " ".join(self.scopes),
        })

    async def exchange_authorization_code(self, authorization_code: str) -> Dict:
        """Exchange a consent-flow code for the initial token pair."""
        return await self._post_token({
            "grant_type": "authorization_code",
            "code": authorization_code,
            "redirect_uri": self.ru_name,
        })

    async def _post_token(self, data: Dict[str, str]) -> Dict:
        if not self.client_id or not self.client_secret:
            raise EbayAuthorizationError("Missing eBay client credentials. Please check your .env file.")

        auth = httpx.BasicAuth(self.client_id, self.client_secret)
        response = await self.http_client.post(
            self.token_url,
            data=data,
            auth=auth,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        if response.status_code == 200:
            return response.json()

        error_text = response.text
        if response.status_code in RETRYABLE_STATUS_CODES:
            logger.warning(f"Token endpoint returned {response.status_code}: {error_text}")
            raise EbayAPIError(
                f"Token endpoint unavailable ({response.status_code})",
                status_code=response.status_code,
                retryable=True,
            )

        logger.error(f"Token request ({data.get('grant_type')}) failed: {error_text}")
        if "invalid_grant" in error_text:
            raise EbayAuthorizationError(
                "Invalid refresh token. The seller must reconnect the eBay account.",
                status_code=response.status_code,
            )
        raise EbayAuthorizationError(
            f"Failed to obtain access token: {error_text}",
            status_code=response.status_code,
        )
