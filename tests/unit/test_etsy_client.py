"""Tests for the Etsy OAuth and listings API client."""

from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import aiohttp
import pytest
from conftest import FakeResponse, FakeSession

from marketsync.config import EtsyApiConfig
from marketsync.errors import ErrorKind, ProviderError
from marketsync.sync.etsy_client import ETSY_API_BASE, ETSY_TOKEN_URL, EtsyApiClient

OAUTH_CONFIG = EtsyApiConfig(
    client_id="client-id",
    client_secret="client-secret",
    redirect_uri="https://app.test/oauth/callback",
)
LISTINGS_URL = f"{ETSY_API_BASE}/shops/123/listings/active"
TOKEN_PAYLOAD = {"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 3600}


class TestAuthorization:
    def test_authorization_url(self):
        client = EtsyApiClient(OAUTH_CONFIG, session=FakeSession())

        url = client.build_authorization_url("state-1", scopes=["listings_r"])
        query = parse_qs(urlsplit(url).query)

        assert url.startswith("https://www.etsy.com/oauth/connect?")
        assert query["client_id"] == ["client-id"]
        assert query["redirect_uri"] == ["https://app.test/oauth/callback"]
        assert query["scope"] == ["listings_r"]
        assert query["state"] == ["state-1"]
        assert query["response_type"] == ["code"]

    def test_authorization_url_requires_redirect_uri(self):
        client = EtsyApiClient(EtsyApiConfig(client_id="id"), session=FakeSession())
        with pytest.raises(ProviderError) as exc_info:
            client.build_authorization_url("state")
        assert exc_info.value.kind == ErrorKind.CONFIGURATION

    @pytest.mark.asyncio
    async def test_exchange_code_posts_form_with_basic_auth(self):
        session = FakeSession({ETSY_TOKEN_URL: FakeResponse(json_data=TOKEN_PAYLOAD)})
        client = EtsyApiClient(OAUTH_CONFIG, session=session)

        token = await client.exchange_code("auth-code")

        assert token.access_token == "new-access"
        assert token.expires_in == 3600
        call = session.calls[0]
        assert call["method"] == "POST"
        assert call["data"]["grant_type"] == "authorization_code"
        assert call["data"]["code"] == "auth-code"
        assert call["auth"] == aiohttp.BasicAuth("client-id", "client-secret")

    @pytest.mark.asyncio
    async def test_refresh_token(self):
        session = FakeSession({ETSY_TOKEN_URL: FakeResponse(json_data=TOKEN_PAYLOAD)})
        client = EtsyApiClient(OAUTH_CONFIG, session=session)

        token = await client.refresh_token("old-refresh")

        assert token.refresh_token == "new-refresh"
        assert session.calls[0]["data"] == {"grant_type": "refresh_token", "refresh_token": "old-refresh"}

    @pytest.mark.asyncio
    async def test_unconfigured_client_raises_configuration(self):
        session = FakeSession()
        client = EtsyApiClient(EtsyApiConfig(), session=session)

        assert client.is_configured() is False
        with pytest.raises(ProviderError) as exc_info:
            await client.refresh_token("refresh")

        assert exc_info.value.kind == ErrorKind.CONFIGURATION
        assert session.calls == []


class TestListings:
    @pytest.mark.asyncio
    async def test_fetch_listings_page(self):
        payload = {
            "count": 2,
            "next": "cursor-2",
            "results": [
                {
                    "listing_id": 1,
                    "title": "Mug",
                    "price": {"amount": 1850, "divisor": 100, "currency_code": "USD"},
                    "tags": ["Mug"],
                    "unknown_field": True,
                },
                {"listing_id": 2, "title": "Plate"},
            ],
        }
        session = FakeSession({LISTINGS_URL: FakeResponse(json_data=payload)})
        client = EtsyApiClient(OAUTH_CONFIG, session=session)
        since = datetime(2024, 1, 1, tzinfo=timezone.utc)

        page = await client.fetch_listings("token", 123, limit=500, updated_since=since, cursor="cursor-1")

        assert [listing.listing_id for listing in page.listings] == [1, 2]
        assert page.listings[0].price.to_cents() == 1850
        assert page.total == 2
        assert page.cursor == "cursor-2"

        call = session.calls[0]
        assert call["params"] == {"limit": "200", "cursor": "cursor-1", "min_last_modified_tsz": "1704067200"}
        assert call["headers"]["Authorization"] == "Bearer token"
        assert call["headers"]["x-api-key"] == "client-id"

    @pytest.mark.asyncio
    async def test_last_page_has_no_cursor(self):
        session = FakeSession({LISTINGS_URL: FakeResponse(json_data={"results": []})})
        client = EtsyApiClient(OAUTH_CONFIG, session=session)

        page = await client.fetch_listings("token", "123")

        assert page.listings == []
        assert page.cursor is None
        assert page.total == 0

    @pytest.mark.parametrize("status,retryable", [(401, False), (429, True), (502, True)])
    @pytest.mark.asyncio
    async def test_http_errors(self, status, retryable):
        session = FakeSession({LISTINGS_URL: FakeResponse(status=status, text="error")})
        client = EtsyApiClient(OAUTH_CONFIG, session=session)

        with pytest.raises(ProviderError) as exc_info:
            await client.fetch_listings("token", 123)

        assert exc_info.value.kind == ErrorKind.FETCH_FAILED
        assert exc_info.value.status == status
        assert exc_info.value.can_retry is retryable

    @pytest.mark.asyncio
    async def test_fetch_shops(self):
        session = FakeSession(
            {f"{ETSY_API_BASE}/shops": FakeResponse(json_data={"results": [{"shop_id": 123, "shop_name": "Mugs"}]})}
        )
        client = EtsyApiClient(OAUTH_CONFIG, session=session)

        shops = await client.fetch_shops("token")

        assert shops[0].shop_id == 123
        assert shops[0].shop_name == "Mugs"

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self):
        session = FakeSession()
        await EtsyApiClient(OAUTH_CONFIG, session=session).close()
        assert session.closed is False
