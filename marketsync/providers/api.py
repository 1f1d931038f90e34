"""Official marketplace API provider.

Boundary for acquisition through marketplace-issued credentials. The
credentials are validated eagerly, so a misconfigured deployment fails at
construction with a non-retryable CONFIGURATION error. Listing operations
return stub records whose ``raw`` payload documents the planned endpoint
mapping; filling them in does not change the provider contract.
"""

import logging
from typing import Any

from ..config import EtsyApiConfig
from ..errors import ErrorKind, ProviderError
from ..models import ListingSource, NormalizedListing, NormalizedShop, SearchOptions

logger = logging.getLogger(__name__)

PLANNED_MAPPING = {
    "listing_endpoint": "/listings/{listing_id}",
    "shop_endpoint": "/shops/{shop_id}",
    "images_endpoint": "/listings/{listing_id}/images",
    "reviews_endpoint": "/listings/{listing_id}/reviews",
}
PLANNED_SEARCH_ENDPOINT = (
    "GET /v3/application/shops/{shop_id}/listings?sort_on=score&sort_order=down&limit={limit}"
)
DEFAULT_BEST_SELLERS_CATEGORY = "c/best-selling-items"


class ApiEtsyProvider:
    """API-credential provider implementing the EtsyProvider protocol."""

    name = "api"

    def __init__(self, api_config: EtsyApiConfig):
        self.api_config = api_config
        self._validate()

    def _validate(self) -> None:
        """Raise CONFIGURATION when key, secret or base URL is missing."""
        missing = self.api_config.missing_api_settings()
        if missing:
            raise ProviderError(
                ErrorKind.CONFIGURATION,
                f"Missing Etsy API configuration: {', '.join(missing)}",
                can_retry=False,
                details={"missing": missing},
            )

    @staticmethod
    def _stub_listing(url: str, **raw_overrides: Any) -> NormalizedListing:
        raw = {
            "message": "Etsy API provider not implemented",
            "planned_mapping": PLANNED_MAPPING,
            **raw_overrides,
        }
        return NormalizedListing(url=url, raw=raw, source=ListingSource.API)

    async def get_listing_by_url(self, url: str) -> NormalizedListing:
        self._validate()
        return self._stub_listing(url)

    async def get_shop_by_url(self, url: str) -> NormalizedShop:
        raise ProviderError(ErrorKind.UNKNOWN, "Shop lookup not implemented", can_retry=False)

    async def search(self, query: str, options: SearchOptions | None = None) -> list[NormalizedListing]:
        """Return ``limit`` stub listings for the best-sellers strategy."""
        self._validate()
        options = options or SearchOptions()
        if options.strategy != "best-sellers":
            raise ProviderError(ErrorKind.UNKNOWN, "Search strategy not implemented", can_retry=False)

        limit = max(1, min(options.limit, 20))
        category = options.category or DEFAULT_BEST_SELLERS_CATEGORY
        if category.lower().startswith(("http://", "https://")):
            url = category
        else:
            url = f"https://www.etsy.com/{category.lstrip('/')}"

        return [
            self._stub_listing(
                url,
                planned_search_strategy="best-sellers",
                planned_endpoint=PLANNED_SEARCH_ENDPOINT,
                note="Awaiting Etsy API integration to surface official best seller feed",
            )
            for _ in range(limit)
        ]

    async def close(self) -> None:
        return None
