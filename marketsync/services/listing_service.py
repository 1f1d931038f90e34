"""Inbound listing acquisition service.

Canonicalizes the requested URL, serves it from the listing cache when
fresh and otherwise delegates to the configured provider, caching the result.
"""

import logging

from ..models import NormalizedListing, NormalizedShop, SearchOptions
from ..providers.base import EtsyProvider
from ..providers.etsy_parsing import canonicalize_listing_url
from .listing_cache import ListingCache

logger = logging.getLogger(__name__)


class ListingService:
    """Cache-first facade over an EtsyProvider.

    Attributes:
        provider: Provider returned by the factory.
        cache: Listing cache owned by this service.
        allowed_host_suffix: Host suffix accepted by canonicalization.
    """

    def __init__(self, provider: EtsyProvider, cache: ListingCache, allowed_host_suffix: str = "etsy.com"):
        self.provider = provider
        self.cache = cache
        self.allowed_host_suffix = allowed_host_suffix

    async def acquire_listing(self, url: str) -> NormalizedListing:
        """Return a listing by URL, fetching it only on a cache miss.

        Raises:
            ProviderError: Propagated from canonicalization or the provider.
        """
        canonical = canonicalize_listing_url(url, self.allowed_host_suffix)

        cached = self.cache.get(canonical)
        if cached is not None:
            logger.debug(f"Listing cache hit: {canonical}")
            return cached

        listing = await self.provider.get_listing_by_url(canonical)
        self.cache.set(listing)
        return listing

    def get_cached_by_id(self, native_id: str) -> NormalizedListing | None:
        """Listing previously acquired under any URL, looked up by marketplace id."""
        return self.cache.get_by_id(native_id)

    async def search(self, query: str, options: SearchOptions | None = None) -> list[NormalizedListing]:
        """Run bulk discovery and cache every returned listing."""
        listings = await self.provider.search(query, options)
        for listing in listings:
            self.cache.set(listing)
        return listings

    async def get_shop_by_url(self, url: str) -> NormalizedShop:
        return await self.provider.get_shop_by_url(url)

    async def close(self) -> None:
        await self.provider.close()
