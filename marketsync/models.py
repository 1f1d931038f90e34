"""Data models for marketplace acquisition and catalog sync.

Defines Pydantic models for every data structure crossing a component
boundary: the canonical normalized listing produced by all providers, the
multi-marketplace product record, seller accounts and sync bookkeeping, and
the payloads returned by the marketplace API. Absent source data is always
represented as None or an empty list, never as a sentinel value.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class ListingSource(str, Enum):
    """Acquisition provenance of a listing."""

    SCRAPE = "scrape"
    API = "api"


class Price(BaseModel):
    """Monetary amount with ISO-4217 currency code.

    Attributes:
        amount: Price amount, None if not found (never defaulted to 0).
        currency: Currency code such as 'USD', None if unknown.
    """

    model_config = ConfigDict(frozen=True)

    amount: Decimal | None = None
    currency: str | None = None


class ShopInfo(BaseModel):
    """Seller identity attached to a listing."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str | None = None
    url: str | None = None
    location: str | None = None

    def is_empty(self) -> bool:
        return not any((self.id, self.name, self.url, self.location))


class Reviews(BaseModel):
    """Aggregate review data.

    Attributes:
        count: Number of reviews, 0 is a real value distinct from None.
        rating: Average rating value.
    """

    model_config = ConfigDict(frozen=True)

    count: int | None = None
    rating: float | None = None


class ShippingInfo(BaseModel):
    """Shipping terms of a listing."""

    model_config = ConfigDict(frozen=True)

    free_shipping: bool | None = None
    ships_from: str | None = None
    processing_time: str | None = None


class NormalizedListing(BaseModel):
    """Canonical listing schema produced by every acquisition provider.

    Instances are immutable; refreshing a listing means building a new one.

    Attributes:
        id: Marketplace-native identifier, None if unknown.
        url: Canonical absolute URL without query string or fragment.
        title: Plain-text title.
        description: Plain-text description with HTML stripped.
        price: Offer price and currency.
        images: Ordered, de-duplicated absolute image URLs.
        tags: De-duplicated, lower-cased tags.
        materials: Free-text materials.
        category_path: Category breadcrumb, root first.
        shop: Seller identity.
        reviews: Aggregate reviews.
        shipping: Shipping terms.
        raw: Structured-data payload retained for debugging only.
        fetched_at: Acquisition timestamp.
        source: Which provider produced the listing.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    url: str
    title: str | None = None
    description: str | None = None
    price: Price = Field(default_factory=Price)
    images: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    materials: list[str] = Field(default_factory=list)
    category_path: list[str] = Field(default_factory=list)
    shop: ShopInfo = Field(default_factory=ShopInfo)
    reviews: Reviews = Field(default_factory=Reviews)
    shipping: ShippingInfo = Field(default_factory=ShippingInfo)
    raw: Any = None
    fetched_at: datetime = Field(default_factory=utcnow)
    source: ListingSource = ListingSource.SCRAPE

    @field_validator("images", "materials", "category_path")
    @classmethod
    def _dedupe_strings(cls, value: list[str]) -> list[str]:
        return _dedupe([item.strip() for item in value if isinstance(item, str)])

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str]) -> list[str]:
        return _dedupe([tag.strip().lower() for tag in value if isinstance(tag, str)])

    def populated_field_count(self) -> int:
        """Count fields carrying real data, reported on successful acquisitions."""
        populated = [
            self.id is not None,
            self.title is not None,
            self.description is not None,
            self.price.amount is not None,
            self.price.currency is not None,
            bool(self.images),
            bool(self.tags),
            bool(self.materials),
            bool(self.category_path),
            not self.shop.is_empty(),
            self.reviews.count is not None or self.reviews.rating is not None,
            any(
                value is not None
                for value in (
                    self.shipping.free_shipping,
                    self.shipping.ships_from,
                    self.shipping.processing_time,
                )
            ),
        ]
        return sum(populated)


class NormalizedShop(BaseModel):
    """Seller storefront returned by get_shop_by_url."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    url: str
    name: str | None = None
    location: str | None = None
    raw: Any = None
    fetched_at: datetime = Field(default_factory=utcnow)
    source: ListingSource = ListingSource.SCRAPE


class SearchOptions(BaseModel):
    """Bulk discovery options.

    Attributes:
        strategy: Discovery strategy, only 'best-sellers' is served.
        limit: Requested listing count, clamped to 1..20 by providers.
        category: Category slug or full category URL.
    """

    model_config = ConfigDict(frozen=True)

    strategy: Literal["keyword", "best-sellers"] = "best-sellers"
    limit: int = 10
    category: str | None = None


class CacheEntry(BaseModel):
    """Listing cache slot, replaced wholesale on refresh."""

    model_config = ConfigDict(frozen=True)

    listing: NormalizedListing
    expires_at: float


class ProductShop(BaseModel):
    """Seller reference on a multi-marketplace product."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    url: str | None = None


class NormalizedProduct(BaseModel):
    """Product record shared by all marketplace extractors.

    Attributes:
        url: Product URL as extracted.
        marketplace: Extractor name ('etsy', 'amazon', 'shopify', 'ebay', 'generic').
        id: Marketplace-native product id.
        title: Product title.
        description: Plain-text description.
        price: Price and currency.
        images: Ordered, de-duplicated image URLs.
        tags: Lower-cased keywords.
        category: Category breadcrumb.
        shop: Seller reference.
        extras: Marketplace-specific attributes.
        fetched_at: Extraction timestamp.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    marketplace: str
    id: str | None = None
    title: str | None = None
    description: str | None = None
    price: Price = Field(default_factory=Price)
    images: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    category: list[str] = Field(default_factory=list)
    shop: ProductShop | None = None
    extras: dict[str, Any] = Field(default_factory=dict)
    fetched_at: datetime = Field(default_factory=utcnow)

    @field_validator("images", "category")
    @classmethod
    def _dedupe_strings(cls, value: list[str]) -> list[str]:
        return _dedupe([item.strip() for item in value if isinstance(item, str)])

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str]) -> list[str]:
        return _dedupe([tag.strip().lower() for tag in value if isinstance(tag, str)])

    def is_empty(self) -> bool:
        """True when there is no title, no description and no price amount."""
        return not self.title and not self.description and self.price.amount is None


class AccountStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"


class MarketplaceAccount(BaseModel):
    """Seller account linked through the marketplace OAuth flow.

    Attributes:
        id: Catalog row id.
        user_id: Owning user.
        provider_id: Data provider key, e.g. 'etsy'.
        external_shop_id: Marketplace shop id.
        shop_name: Display name of the shop.
        access_token: Current OAuth access token.
        refresh_token: OAuth refresh token.
        token_expires_at: Access token expiry.
        scopes: Granted OAuth scopes.
        status: 'active' or 'revoked'.
        last_synced_at: End of the last sync run, successful or not.
    """

    id: str
    user_id: str
    provider_id: str = "etsy"
    external_shop_id: str
    shop_name: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    scopes: list[str] = Field(default_factory=list)
    status: AccountStatus = AccountStatus.ACTIVE
    last_synced_at: datetime | None = None


class SyncStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SyncState(BaseModel):
    """Durable checkpoint of the latest sync run for one (account, sync type)."""

    account_id: str
    sync_type: str
    cursor: str | None = None
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    status: SyncStatus
    message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SyncOptions(BaseModel):
    """Per-run sync options.

    Attributes:
        limit: Page size override, capped at 200.
        incremental: Only fetch listings modified since the last sync.
        resume: Start from the checkpoint cursor of a previously failed run.
    """

    model_config = ConfigDict(frozen=True)

    limit: int | None = None
    incremental: bool = False
    resume: bool = False


class SyncResult(BaseModel):
    """Outcome of one account sync run."""

    account_id: str
    listings_processed: int = 0
    listings_upserted: int = 0
    tags_upserted: int = 0
    stats_upserted: int = 0
    started_at: datetime
    finished_at: datetime | None = None
    cursor: str | None = None
    status: SyncStatus
    error: str | None = None


class EtsyTokenResponse(BaseModel):
    """OAuth token endpoint response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


class EtsyShop(BaseModel):
    model_config = ConfigDict(extra="ignore")

    shop_id: int
    shop_name: str | None = None
    url: str | None = None
    currency_code: str | None = None


class EtsyMoney(BaseModel):
    """Integer money as returned by the API (amount / divisor)."""

    model_config = ConfigDict(extra="ignore")

    amount: int
    divisor: int = 100
    currency_code: str | None = None

    def to_cents(self) -> int:
        if not self.divisor:
            return self.amount
        return int((Decimal(self.amount) * 100 / Decimal(self.divisor)).to_integral_value())


class EtsyListing(BaseModel):
    """Active listing as returned by the shop listings endpoint."""

    model_config = ConfigDict(extra="ignore")

    listing_id: int
    title: str | None = None
    description: str | None = None
    state: str | None = None
    url: str | None = None
    quantity: int | None = None
    price: EtsyMoney | None = None
    tags: list[str] = Field(default_factory=list)
    materials: list[str] = Field(default_factory=list)
    views: int | None = None
    num_favorers: int | None = None
    last_modified_timestamp: int | None = None


class EtsyListingPage(BaseModel):
    """One page of shop listings with the cursor for the next page."""

    listings: list[EtsyListing] = Field(default_factory=list)
    total: int = 0
    cursor: str | None = None


class ListingRecord(BaseModel):
    """Catalog row for a synced listing, keyed by (account_id, external_id)."""

    account_id: str
    external_id: str
    title: str | None = None
    description: str | None = None
    state: str | None = None
    url: str | None = None
    price_cents: int | None = None
    currency: str | None = None
    quantity: int | None = None
    materials: list[str] = Field(default_factory=list)
    last_modified_at: datetime | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class ListingTagRecord(BaseModel):
    listing_id: str
    tag: str


class ListingStatRecord(BaseModel):
    """Daily listing counters, keyed by (listing_id, recorded_on)."""

    listing_id: str
    recorded_on: date
    views: int | None = None
    favorites: int | None = None
