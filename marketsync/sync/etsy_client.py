"""Etsy Open API v3 client for authenticated seller accounts.

Covers the OAuth authorization-code flow (authorization URL, code exchange,
token refresh) and the read endpoints the sync orchestrator pages through.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

import aiohttp

from ..config import EtsyApiConfig
from ..errors import ErrorKind, ProviderError
from ..models import EtsyListing, EtsyListingPage, EtsyShop, EtsyTokenResponse

logger = logging.getLogger(__name__)

ETSY_OAUTH_BASE = "https://www.etsy.com/oauth/connect"
ETSY_API_BASE = "https://openapi.etsy.com/v3/application"
ETSY_TOKEN_URL = "https://api.etsy.com/v3/public/oauth/token"

DEFAULT_SCOPES = ["listings_r", "listings_w", "shops_r"]
MAX_PAGE_LIMIT = 200


class EtsyApiClient:
    """Async client for the Etsy OAuth and shop listing endpoints.

    Attributes:
        api_config: OAuth client credentials and redirect URI.
        api_base: Base URL of the application API.
        token_url: OAuth token endpoint.
    """

    def __init__(
        self,
        api_config: EtsyApiConfig,
        session: aiohttp.ClientSession | None = None,
        api_base: str = ETSY_API_BASE,
        token_url: str = ETSY_TOKEN_URL,
        timeout_seconds: float = 25.0,
    ):
        self.api_config = api_config
        self.api_base = api_base.rstrip("/")
        self.token_url = token_url
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None

    def is_configured(self) -> bool:
        return self.api_config.oauth_configured

    def _ensure_configured(self) -> None:
        if not self.is_configured():
            raise ProviderError(
                ErrorKind.CONFIGURATION,
                "Etsy OAuth credentials are not configured (ETSY_CLIENT_ID, ETSY_CLIENT_SECRET, ETSY_REDIRECT_URI)",
                can_retry=False,
            )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_seconds))
            self._owns_session = True
        return self._session

    def build_authorization_url(
        self,
        state: str,
        scopes: list[str] | None = None,
        redirect_uri: str | None = None,
    ) -> str:
        """URL of the marketplace consent screen.

        Args:
            state: Opaque anti-CSRF value echoed back on redirect.
            scopes: Requested OAuth scopes.
            redirect_uri: Override for the configured redirect URI.

        Raises:
            ProviderError: CONFIGURATION when no redirect URI is available.
        """
        redirect_uri = redirect_uri or self.api_config.redirect_uri
        if not redirect_uri:
            raise ProviderError(ErrorKind.CONFIGURATION, "ETSY_REDIRECT_URI is not configured", can_retry=False)

        params = {
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": " ".join(scopes or DEFAULT_SCOPES),
            "client_id": self.api_config.client_id or "",
            "state": state,
        }
        return f"{ETSY_OAUTH_BASE}?{urlencode(params)}"

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        session = self._get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                if not 200 <= response.status < 300:
                    body = await response.text(errors="replace")
                    raise ProviderError(
                        ErrorKind.FETCH_FAILED,
                        f"Etsy API request failed ({response.status}): {body[:200]}",
                        status=response.status,
                        can_retry=response.status == 429 or response.status >= 500,
                        details={"url": url},
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ProviderError(ErrorKind.FETCH_FAILED, f"Etsy API request timed out: {url}") from e
        except aiohttp.ClientError as e:
            raise ProviderError(ErrorKind.FETCH_FAILED, f"Etsy API network error: {e}") from e

    async def _token_request(self, form: dict[str, str]) -> EtsyTokenResponse:
        self._ensure_configured()
        data = await self._request_json(
            "POST",
            self.token_url,
            data=form,
            auth=aiohttp.BasicAuth(self.api_config.client_id or "", self.api_config.client_secret or ""),
            headers={"Accept": "application/json"},
        )
        return EtsyTokenResponse.model_validate(data)

    async def exchange_code(self, code: str) -> EtsyTokenResponse:
        """Exchange an authorization code for a token pair."""
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "client_id": self.api_config.client_id or "",
                "redirect_uri": self.api_config.redirect_uri or "",
                "code": code,
            }
        )

    async def refresh_token(self, refresh_token: str) -> EtsyTokenResponse:
        """Obtain a new token pair from a refresh token."""
        return await self._token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})

    def _auth_headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "x-api-key": self.api_config.client_id or "",
            "Accept": "application/json",
        }

    async def fetch_shops(self, access_token: str) -> list[EtsyShop]:
        """Shops owned by the token's user."""
        self._ensure_configured()
        data = await self._request_json("GET", f"{self.api_base}/shops", headers=self._auth_headers(access_token))
        return [EtsyShop.model_validate(item) for item in (data or {}).get("results") or []]

    async def fetch_listings(
        self,
        access_token: str,
        shop_id: str | int,
        limit: int = 100,
        updated_since: datetime | None = None,
        cursor: str | None = None,
    ) -> EtsyListingPage:
        """One page of a shop's active listings.

        Args:
            access_token: OAuth access token.
            shop_id: Marketplace shop id.
            limit: Page size, capped at 200.
            updated_since: Only listings modified at or after this time.
            cursor: Cursor returned with the previous page.

        Returns:
            EtsyListingPage whose cursor is None on the last page.
        """
        self._ensure_configured()
        params = {"limit": str(max(1, min(limit, MAX_PAGE_LIMIT)))}
        if cursor:
            params["cursor"] = cursor
        if updated_since is not None:
            params["min_last_modified_tsz"] = str(int(updated_since.timestamp()))

        data = await self._request_json(
            "GET",
            f"{self.api_base}/shops/{shop_id}/listings/active",
            params=params,
            headers=self._auth_headers(access_token),
        )
        data = data or {}
        results = data.get("results") or []
        return EtsyListingPage(
            listings=[EtsyListing.model_validate(item) for item in results],
            total=data.get("count") if data.get("count") is not None else len(results),
            cursor=str(data["next"]) if data.get("next") else None,
        )

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
