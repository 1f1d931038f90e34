"""Short-lived in-memory listing cache.

Each listing is reachable by its canonical URL and by its marketplace id.
Entries expire lazily on read; ``clear_expired`` only reclaims memory.
Entries are immutable and replaced wholesale, never merged.
"""

import logging
import time
from collections.abc import Callable

from ..models import CacheEntry, NormalizedListing
from ..urls import canonicalize_url

logger = logging.getLogger(__name__)

ID_PREFIX = "id:"


def id_key(native_id: str) -> str:
    return f"{ID_PREFIX}{native_id}"


class ListingCache:
    """Dual-indexed TTL cache of normalized listings.

    Attributes:
        default_ttl: Lifetime in seconds used when set() gets no ttl.
    """

    def __init__(self, default_ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def _normalize_key(key: str) -> str:
        if key.startswith(ID_PREFIX):
            return key
        return canonicalize_url(key)

    def get(self, key: str) -> NormalizedListing | None:
        """Look up a listing by URL or by ``id:<native id>``.

        Args:
            key: Listing URL (canonicalized here) or id key.

        Returns:
            Cached listing, or None when absent or expired.
        """
        normalized = self._normalize_key(key)
        entry = self._entries.get(normalized)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[normalized]
            return None
        return entry.listing

    def get_by_id(self, native_id: str) -> NormalizedListing | None:
        return self.get(id_key(native_id))

    def set(self, listing: NormalizedListing, ttl: float | None = None) -> CacheEntry:
        """Store a listing under its URL and, if known, its id.

        Both index slots point to the same new entry, replacing whatever was
        there before.
        """
        lifetime = self.default_ttl if ttl is None else ttl
        entry = CacheEntry(listing=listing, expires_at=self._clock() + lifetime)
        self._entries[canonicalize_url(listing.url)] = entry
        if listing.id:
            self._entries[id_key(listing.id)] = entry
        return entry

    def clear_expired(self) -> int:
        """Drop expired entries.

        Returns:
            Number of index slots removed.
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Removed {len(expired)} expired listing cache slots")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
