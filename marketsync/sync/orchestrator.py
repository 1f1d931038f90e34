"""Seller account sync orchestrator.

Runs ``TokenCheck -> Paginate -> Upsert -> RecordState`` for one linked
marketplace account, and fans out over all accounts with bounded concurrency.
Every page is upserted before the next one is requested, so a run that fails
mid-pagination keeps everything written so far and records a ``failed`` state
holding the partial counts and the cursor of the page that failed.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone

from ..config import SyncConfig
from ..errors import ErrorKind, ProviderError
from ..models import (
    EtsyListing,
    EtsyListingPage,
    ListingRecord,
    ListingStatRecord,
    ListingTagRecord,
    MarketplaceAccount,
    SyncOptions,
    SyncResult,
    SyncState,
    SyncStatus,
    utcnow,
)
from .catalog import CatalogStore
from .etsy_client import DEFAULT_SCOPES, MAX_PAGE_LIMIT, EtsyApiClient

logger = logging.getLogger(__name__)

SYNC_TYPE = "etsy:listings"


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def listing_to_record(account_id: str, listing: EtsyListing) -> ListingRecord:
    """Map an API listing to its catalog row, price stored in cents."""
    modified = None
    if listing.last_modified_timestamp is not None:
        modified = datetime.fromtimestamp(listing.last_modified_timestamp, tz=timezone.utc)

    return ListingRecord(
        account_id=account_id,
        external_id=str(listing.listing_id),
        title=listing.title,
        description=listing.description,
        state=listing.state,
        url=listing.url,
        price_cents=listing.price.to_cents() if listing.price else None,
        currency=listing.price.currency_code if listing.price else None,
        quantity=listing.quantity,
        materials=listing.materials,
        last_modified_at=modified,
        raw=listing.model_dump(mode="json"),
    )


def listing_tags(listing_id: str, listing: EtsyListing) -> list[ListingTagRecord]:
    tags = dict.fromkeys(tag.strip().lower() for tag in listing.tags if tag and tag.strip())
    return [ListingTagRecord(listing_id=listing_id, tag=tag) for tag in tags]


def listing_stat(listing_id: str, listing: EtsyListing, today: date) -> ListingStatRecord:
    recorded_on = today
    if listing.last_modified_timestamp is not None:
        recorded_on = datetime.fromtimestamp(listing.last_modified_timestamp, tz=timezone.utc).date()
    return ListingStatRecord(
        listing_id=listing_id,
        recorded_on=recorded_on,
        views=listing.views,
        favorites=listing.num_favorers,
    )


class SyncOrchestrator:
    """Synchronizes linked seller accounts into the catalog store.

    Attributes:
        store: Catalog persistence.
        client: Marketplace API client.
        sync_config: Page size, token margin and scheduling parameters.
    """

    def __init__(
        self,
        store: CatalogStore,
        client: EtsyApiClient,
        sync_config: SyncConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.client = client
        self.sync_config = sync_config or SyncConfig()
        self.clock = clock

    async def _ensure_token(self, account: MarketplaceAccount) -> MarketplaceAccount:
        """Refresh the access token when it expires within the safety margin.

        The new pair is persisted before any listing is fetched. A refresh
        failure is logged and the stored token is used as is.
        """
        if not account.refresh_token or account.token_expires_at is None:
            return account

        now = self.clock()
        margin = timedelta(seconds=self.sync_config.token_refresh_margin_seconds)
        if _aware(account.token_expires_at) - now > margin:
            return account

        try:
            token = await self.client.refresh_token(account.refresh_token)
            expires_at = now + timedelta(seconds=token.expires_in)
            self.store.update_account_tokens(account.id, token.access_token, token.refresh_token, expires_at)
        except Exception as e:
            logger.warning(f"Token refresh failed for account {account.id}, using stored token: {e}")
            return account

        logger.info(f"Refreshed access token for account {account.id}")
        return account.model_copy(
            update={
                "access_token": token.access_token,
                "refresh_token": token.refresh_token,
                "token_expires_at": expires_at,
            }
        )

    def _upsert_page(self, account: MarketplaceAccount, page: EtsyListingPage, result: SyncResult) -> None:
        if not page.listings:
            return

        records = [listing_to_record(account.id, listing) for listing in page.listings]
        id_map = self.store.upsert_listings(account.id, records)
        result.listings_upserted += len(id_map)

        today = self.clock().date()
        tags: list[ListingTagRecord] = []
        stats: list[ListingStatRecord] = []
        for listing in page.listings:
            listing_id = id_map.get(str(listing.listing_id))
            if listing_id is None:
                continue
            tags.extend(listing_tags(listing_id, listing))
            stats.append(listing_stat(listing_id, listing, today))

        try:
            result.tags_upserted += self.store.upsert_listing_tags(tags)
        except Exception as e:
            logger.warning(f"Failed to upsert tags for account {account.id}: {e}")

        try:
            result.stats_upserted += self.store.upsert_listing_stats(stats)
        except Exception as e:
            logger.warning(f"Failed to upsert stats for account {account.id}: {e}")

    def _record_state(self, account: MarketplaceAccount, result: SyncResult) -> None:
        finished_at = result.finished_at or self.clock()
        state = SyncState(
            account_id=account.id,
            sync_type=SYNC_TYPE,
            cursor=result.cursor,
            last_run_at=finished_at,
            next_run_at=finished_at + timedelta(hours=self.sync_config.next_run_interval_hours),
            status=result.status,
            message=result.error,
            metadata={
                "listings_processed": result.listings_processed,
                "listings_upserted": result.listings_upserted,
                "tags_upserted": result.tags_upserted,
                "stats_upserted": result.stats_upserted,
            },
        )
        try:
            self.store.upsert_sync_state(state)
            if result.status != SyncStatus.SKIPPED:
                self.store.mark_synced(account.id, finished_at)
        except Exception as e:
            logger.error(f"Failed to record sync state for account {account.id}: {e}")

    async def sync_account(self, account: MarketplaceAccount, options: SyncOptions | None = None) -> SyncResult:
        """Sync one account's active listings into the catalog.

        Args:
            account: Linked marketplace account.
            options: Page size, incremental and resume flags.

        Returns:
            SyncResult with status success, failed or skipped. Failures are
            captured in the result and the stored SyncState, never raised.
        """
        options = options or SyncOptions()
        result = SyncResult(account_id=account.id, started_at=self.clock(), status=SyncStatus.SUCCESS)

        account = await self._ensure_token(account)
        if not account.access_token:
            logger.warning(f"Skipping account {account.id}: no access token")
            result.status = SyncStatus.SKIPPED
            result.error = "Account has no access token"
            result.finished_at = self.clock()
            self._record_state(account, result)
            return result

        cursor: str | None = None
        if options.resume:
            previous = self.store.get_sync_state(account.id, SYNC_TYPE)
            if previous is not None and previous.status == SyncStatus.FAILED and previous.cursor:
                cursor = previous.cursor
                logger.info(f"Resuming sync of account {account.id} from cursor {cursor}")

        updated_since = account.last_synced_at if options.incremental else None
        limit = min(options.limit or self.sync_config.page_limit, MAX_PAGE_LIMIT)
        seen_cursors: set[str] = set()

        try:
            while True:
                result.cursor = cursor
                page = await self.client.fetch_listings(
                    account.access_token,
                    account.external_shop_id,
                    limit=limit,
                    updated_since=updated_since,
                    cursor=cursor,
                )
                self._upsert_page(account, page, result)
                result.listings_processed += len(page.listings)

                if not page.cursor:
                    break
                if page.cursor == cursor or page.cursor in seen_cursors:
                    logger.warning(f"Cursor {page.cursor} repeated for account {account.id}, stopping pagination")
                    break
                if cursor:
                    seen_cursors.add(cursor)
                cursor = page.cursor
        except Exception as e:
            logger.error(f"Sync failed for account {account.id} after {result.listings_processed} listings: {e}")
            result.status = SyncStatus.FAILED
            result.error = str(e)

        result.finished_at = self.clock()
        self._record_state(account, result)

        logger.info(
            f"Sync of account {account.id} finished with status {result.status.value}: "
            f"{result.listings_processed} processed, {result.listings_upserted} listings, "
            f"{result.tags_upserted} tags, {result.stats_upserted} stats"
        )
        return result

    async def sync_account_by_id(self, account_id: str, options: SyncOptions | None = None) -> SyncResult:
        account = self.store.get_account(account_id)
        if account is None:
            raise ProviderError(ErrorKind.NOT_FOUND, f"Account not found: {account_id}", can_retry=False)
        return await self.sync_account(account, options)

    async def sync_all_accounts(
        self,
        options: SyncOptions | None = None,
        user_id: str | None = None,
        max_concurrency: int | None = None,
    ) -> list[SyncResult]:
        """Sync every active account, optionally only those of one user.

        Accounts are independent: one account's failure is recorded in its
        own result and never aborts the others.
        """
        accounts = self.store.list_accounts(user_id=user_id)
        semaphore = asyncio.Semaphore(max(1, max_concurrency or self.sync_config.max_concurrency))

        async def run(account: MarketplaceAccount) -> SyncResult:
            async with semaphore:
                try:
                    return await self.sync_account(account, options)
                except Exception as e:
                    logger.error(f"Unexpected error syncing account {account.id}: {e}")
                    return SyncResult(
                        account_id=account.id,
                        started_at=self.clock(),
                        finished_at=self.clock(),
                        status=SyncStatus.FAILED,
                        error=str(e),
                    )

        return list(await asyncio.gather(*(run(account) for account in accounts)))

    async def link_account(
        self,
        user_id: str,
        access_token: str,
        scopes: list[str] | None = None,
        refresh_token: str | None = None,
        expires_in: int = 3600,
    ) -> MarketplaceAccount:
        """Store the token owner's primary shop as an active account.

        Raises:
            ProviderError: NOT_FOUND when the token owns no shop.
        """
        shops = await self.client.fetch_shops(access_token)
        if not shops:
            raise ProviderError(ErrorKind.NOT_FOUND, "No shop found for this marketplace account", can_retry=False)

        shop = shops[0]
        self.store.ensure_provider()
        account = MarketplaceAccount(
            id=str(uuid.uuid4()),
            user_id=user_id,
            external_shop_id=str(shop.shop_id),
            shop_name=shop.shop_name,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=self.clock() + timedelta(seconds=expires_in),
            scopes=scopes or list(DEFAULT_SCOPES),
        )
        stored = self.store.upsert_account(account)
        logger.info(f"Linked shop {stored.external_shop_id} to user {user_id}")
        return stored

    async def connect_account(self, user_id: str, code: str, scopes: list[str] | None = None) -> MarketplaceAccount:
        """Complete the OAuth flow: exchange the code and link the shop."""
        token = await self.client.exchange_code(code)
        return await self.link_account(
            user_id,
            token.access_token,
            scopes,
            refresh_token=token.refresh_token,
            expires_in=token.expires_in,
        )
