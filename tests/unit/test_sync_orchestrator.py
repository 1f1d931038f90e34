"""Tests for the seller account sync orchestrator."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from marketsync.config import SyncConfig
from marketsync.errors import ErrorKind, ProviderError
from marketsync.models import (
    EtsyListing,
    EtsyListingPage,
    EtsyShop,
    EtsyTokenResponse,
    MarketplaceAccount,
    SyncOptions,
    SyncStatus,
)
from marketsync.sync.catalog import SqliteCatalogStore
from marketsync.sync.orchestrator import SYNC_TYPE, SyncOrchestrator, listing_to_record

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_listing(listing_id: int, **overrides) -> EtsyListing:
    data = {
        "listing_id": listing_id,
        "title": f"Listing {listing_id}",
        "price": {"amount": 1999, "divisor": 100, "currency_code": "USD"},
        "tags": [" Mug ", "gift", "GIFT"],
        "views": 10,
        "num_favorers": 3,
        "last_modified_timestamp": 1714564800,
    }
    data.update(overrides)
    return EtsyListing.model_validate(data)


def make_pages(page_count: int, per_page: int = 2) -> dict[str | None, EtsyListingPage]:
    """Pages keyed by the cursor that requests them."""
    pages = {}
    for index in range(page_count):
        cursor = None if index == 0 else f"c{index}"
        next_cursor = f"c{index + 1}" if index + 1 < page_count else None
        listings = [make_listing(index * per_page + offset + 1) for offset in range(per_page)]
        pages[cursor] = EtsyListingPage(listings=listings, total=page_count * per_page, cursor=next_cursor)
    return pages


class FakeEtsyClient:
    """Serves listing pages by cursor and optionally fails on one cursor."""

    def __init__(self, pages: dict[str | None, EtsyListingPage], fail_on: str | None = None):
        self.pages = pages
        self.fail_on = fail_on
        self.calls: list[dict] = []
        self.refresh_token = AsyncMock(
            return_value=EtsyTokenResponse(access_token="fresh", refresh_token="fresh-refresh", expires_in=3600)
        )
        self.fetch_shops = AsyncMock(return_value=[EtsyShop(shop_id=123, shop_name="Mugs")])
        self.exchange_code = AsyncMock(
            return_value=EtsyTokenResponse(access_token="code-access", refresh_token="code-refresh", expires_in=3600)
        )

    async def fetch_listings(self, access_token, shop_id, limit=100, updated_since=None, cursor=None):
        self.calls.append(
            {"access_token": access_token, "shop_id": shop_id, "limit": limit, "updated_since": updated_since, "cursor": cursor}
        )
        if cursor is not None and cursor == self.fail_on:
            raise ProviderError(ErrorKind.FETCH_FAILED, "upstream 502", status=502)
        return self.pages[cursor]


class TestSyncOrchestrator:
    @pytest.fixture(autouse=True)
    def _store(self, tmp_path):
        self.store = SqliteCatalogStore(str(tmp_path / "catalog.db"))
        self.account = self.store.upsert_account(
            MarketplaceAccount(
                id="acc-1",
                user_id="user-1",
                external_shop_id="123",
                access_token="access",
                refresh_token="refresh",
                token_expires_at=NOW + timedelta(hours=1),
            )
        )

    def make_orchestrator(self, client: FakeEtsyClient) -> SyncOrchestrator:
        return SyncOrchestrator(self.store, client, SyncConfig(), clock=lambda: NOW)

    @pytest.mark.asyncio
    async def test_full_sync(self):
        client = FakeEtsyClient(make_pages(3))
        result = await self.make_orchestrator(client).sync_account(self.account)

        assert result.status == SyncStatus.SUCCESS
        assert result.listings_processed == 6
        assert result.listings_upserted == 6
        assert result.tags_upserted == 12
        assert result.stats_upserted == 6
        assert [call["cursor"] for call in client.calls] == [None, "c1", "c2"]
        assert self.store.count_rows("listings") == 6
        assert self.store.count_rows("listing_tags") == 12

        state = self.store.get_sync_state("acc-1", SYNC_TYPE)
        assert state.status == SyncStatus.SUCCESS
        assert state.next_run_at == NOW + timedelta(hours=6)
        assert state.metadata["listings_processed"] == 6
        assert self.store.get_account("acc-1").last_synced_at == NOW

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self):
        orchestrator = self.make_orchestrator(FakeEtsyClient(make_pages(2)))

        await orchestrator.sync_account(self.account)
        counts = [self.store.count_rows(table) for table in ("listings", "listing_tags", "listing_stats")]
        await orchestrator.sync_account(self.account)

        assert [self.store.count_rows(table) for table in ("listings", "listing_tags", "listing_stats")] == counts
        assert counts == [4, 8, 4]

    @pytest.mark.asyncio
    async def test_failure_after_two_of_five_pages_keeps_partial_progress(self):
        client = FakeEtsyClient(make_pages(5), fail_on="c2")

        result = await self.make_orchestrator(client).sync_account(self.account)

        assert result.status == SyncStatus.FAILED
        assert result.listings_processed == 4
        assert "upstream 502" in result.error
        assert self.store.count_rows("listings") == 4

        state = self.store.get_sync_state("acc-1", SYNC_TYPE)
        assert state.status == SyncStatus.FAILED
        assert state.cursor == "c2"
        assert state.message == result.error
        assert state.metadata["listings_processed"] == 4
        assert self.store.get_account("acc-1").last_synced_at == NOW

    @pytest.mark.asyncio
    async def test_resume_starts_from_failed_cursor(self):
        pages = make_pages(5)
        orchestrator = self.make_orchestrator(FakeEtsyClient(pages, fail_on="c2"))
        await orchestrator.sync_account(self.account)

        client = FakeEtsyClient(pages)
        result = await self.make_orchestrator(client).sync_account(self.account, SyncOptions(resume=True))

        assert result.status == SyncStatus.SUCCESS
        assert [call["cursor"] for call in client.calls] == ["c2", "c3", "c4"]
        assert self.store.count_rows("listings") == 10

    @pytest.mark.asyncio
    async def test_incremental_passes_last_synced_at(self):
        self.store.mark_synced("acc-1", NOW - timedelta(days=1))
        account = self.store.get_account("acc-1")
        client = FakeEtsyClient(make_pages(1))

        await self.make_orchestrator(client).sync_account(account, SyncOptions(incremental=True, limit=500))

        assert client.calls[0]["updated_since"] == NOW - timedelta(days=1)
        assert client.calls[0]["limit"] == 200

    @pytest.mark.asyncio
    async def test_expiring_token_is_refreshed_and_persisted(self):
        account = self.account.model_copy(update={"token_expires_at": NOW + timedelta(minutes=2)})
        client = FakeEtsyClient(make_pages(1))

        await self.make_orchestrator(client).sync_account(account)

        client.refresh_token.assert_awaited_once_with("refresh")
        assert client.calls[0]["access_token"] == "fresh"
        stored = self.store.get_account("acc-1")
        assert stored.access_token == "fresh"
        assert stored.refresh_token == "fresh-refresh"
        assert stored.token_expires_at == NOW + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_refresh_failure_falls_back_to_stored_token(self):
        account = self.account.model_copy(update={"token_expires_at": NOW - timedelta(minutes=1)})
        client = FakeEtsyClient(make_pages(1))
        client.refresh_token.side_effect = ProviderError(ErrorKind.FETCH_FAILED, "token endpoint down")

        result = await self.make_orchestrator(client).sync_account(account)

        assert result.status == SyncStatus.SUCCESS
        assert client.calls[0]["access_token"] == "access"

    @pytest.mark.asyncio
    async def test_account_without_token_is_skipped(self):
        account = self.account.model_copy(update={"access_token": None, "refresh_token": None})
        client = FakeEtsyClient(make_pages(1))

        result = await self.make_orchestrator(client).sync_account(account)

        assert result.status == SyncStatus.SKIPPED
        assert client.calls == []
        assert self.store.get_sync_state("acc-1", SYNC_TYPE).status == SyncStatus.SKIPPED
        assert self.store.get_account("acc-1").last_synced_at is None

    @pytest.mark.asyncio
    async def test_repeated_cursor_stops_pagination(self):
        page = EtsyListingPage(listings=[make_listing(1)], cursor="loop")
        client = FakeEtsyClient({None: page, "loop": page})

        result = await self.make_orchestrator(client).sync_account(self.account)

        assert result.status == SyncStatus.SUCCESS
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_sync_all_accounts_isolates_failures(self):
        self.store.upsert_account(
            MarketplaceAccount(id="acc-2", user_id="user-2", external_shop_id="456", access_token="other")
        )

        class PerShopClient(FakeEtsyClient):
            async def fetch_listings(self, access_token, shop_id, **kwargs):
                if shop_id == "456":
                    raise ProviderError(ErrorKind.FETCH_FAILED, "shop 456 unavailable")
                return await super().fetch_listings(access_token, shop_id, **kwargs)

        orchestrator = self.make_orchestrator(PerShopClient(make_pages(1)))

        results = await orchestrator.sync_all_accounts(max_concurrency=2)

        statuses = {result.account_id: result.status for result in results}
        assert statuses == {"acc-1": SyncStatus.SUCCESS, "acc-2": SyncStatus.FAILED}

    @pytest.mark.asyncio
    async def test_sync_account_by_id_unknown(self):
        with pytest.raises(ProviderError) as exc_info:
            await self.make_orchestrator(FakeEtsyClient({})).sync_account_by_id("missing")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_connect_account_links_primary_shop(self):
        client = FakeEtsyClient({})

        account = await self.make_orchestrator(client).connect_account("user-9", "auth-code")

        client.exchange_code.assert_awaited_once_with("auth-code")
        client.fetch_shops.assert_awaited_once_with("code-access")
        assert account.id == "acc-1"
        assert account.user_id == "user-9"
        assert account.access_token == "code-access"
        assert account.refresh_token == "code-refresh"
        assert self.store.count_rows("data_providers") == 1

    @pytest.mark.asyncio
    async def test_link_account_without_shop(self):
        client = FakeEtsyClient({})
        client.fetch_shops.return_value = []

        with pytest.raises(ProviderError) as exc_info:
            await self.make_orchestrator(client).link_account("user-1", "token")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND


class TestListingMapping:
    def test_price_in_cents_and_modified_time(self):
        record = listing_to_record("acc-1", make_listing(7, price={"amount": 4550, "divisor": 100}))

        assert record.external_id == "7"
        assert record.price_cents == 4550
        assert record.currency is None
        assert record.last_modified_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_missing_price(self):
        record = listing_to_record("acc-1", make_listing(8, price=None))
        assert record.price_cents is None
