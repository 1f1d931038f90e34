"""Fallback provider chain.

Wraps a primary and a secondary provider. Each operation tries the primary
first; any failure is logged as a structured ``fallback`` event and the
secondary is called instead. The primary's error is never surfaced when the
secondary succeeds, and the result's ``source`` still records which strategy
served it.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..errors import MarketSyncError
from ..logging_config import log_event
from ..models import NormalizedListing, NormalizedShop, SearchOptions
from .base import EtsyProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FallbackEtsyProvider:
    """Primary-then-secondary composition of two EtsyProviders."""

    name = "fallback"

    def __init__(self, primary: EtsyProvider, secondary: EtsyProvider):
        self.primary = primary
        self.secondary = secondary

    async def _run(
        self,
        method: str,
        url: str | None,
        primary_call: Callable[[], Awaitable[T]],
        secondary_call: Callable[[], Awaitable[T]],
    ) -> T:
        try:
            return await primary_call()
        except Exception as e:
            kind = e.kind.value if isinstance(e, MarketSyncError) else type(e).__name__
            log_event(
                logger,
                logging.WARNING,
                method=f"FallbackEtsyProvider.{method}",
                url=url,
                status="fallback",
                primary=getattr(self.primary, "name", type(self.primary).__name__),
                secondary=getattr(self.secondary, "name", type(self.secondary).__name__),
                kind=kind,
                error=str(e),
            )
        return await secondary_call()

    async def get_listing_by_url(self, url: str) -> NormalizedListing:
        return await self._run(
            "get_listing_by_url",
            url,
            lambda: self.primary.get_listing_by_url(url),
            lambda: self.secondary.get_listing_by_url(url),
        )

    async def get_shop_by_url(self, url: str) -> NormalizedShop:
        return await self._run(
            "get_shop_by_url",
            url,
            lambda: self.primary.get_shop_by_url(url),
            lambda: self.secondary.get_shop_by_url(url),
        )

    async def search(self, query: str, options: SearchOptions | None = None) -> list[NormalizedListing]:
        return await self._run(
            "search",
            None,
            lambda: self.primary.search(query, options),
            lambda: self.secondary.search(query, options),
        )

    async def close(self) -> None:
        await self.primary.close()
        await self.secondary.close()
