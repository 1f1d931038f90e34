"""Listing provider protocol.

Every acquisition strategy (scraping engine, official API, fallback chain)
implements this interface so callers never depend on which one is active.
"""

from typing import Protocol

from ..models import NormalizedListing, NormalizedShop, SearchOptions


class EtsyProvider(Protocol):
    """Protocol for primary-marketplace listing providers.

    Attributes:
        name: Provider identifier used in logs ('scrape', 'api', 'fallback').
    """

    name: str

    async def get_listing_by_url(self, url: str) -> NormalizedListing:
        """Acquire and normalize one listing.

        Raises:
            ProviderError: With kind INVALID_URL, NOT_FOUND, BLOCKED, FETCH_FAILED
                or CONFIGURATION.
        """
        ...

    async def get_shop_by_url(self, url: str) -> NormalizedShop:
        """Acquire a seller storefront."""
        ...

    async def search(self, query: str, options: SearchOptions | None = None) -> list[NormalizedListing]:
        """Bulk listing discovery."""
        ...

    async def close(self) -> None:
        """Release network and browser resources."""
        ...
