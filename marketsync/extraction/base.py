"""Marketplace extractor protocol and shared fetch helpers."""

import asyncio
import logging
from typing import Any, Protocol

import aiohttp

from ..errors import ErrorKind, ExtractionError
from ..models import NormalizedProduct
from ..urls import hostname

logger = logging.getLogger(__name__)

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class MarketplaceExtractor(Protocol):
    """Protocol for per-marketplace product extractors.

    ``can_handle`` decides applicability from hostname and path alone and
    never touches the network.
    """

    name: str

    def can_handle(self, url: str) -> bool:
        ...

    async def extract(self, url: str, session: aiohttp.ClientSession) -> NormalizedProduct:
        ...


class BaseExtractor:
    """Base class providing fetch and logging helpers for extractors."""

    name = "base"

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    @staticmethod
    def _host(url: str) -> str:
        host = hostname(url)
        return host[4:] if host.startswith("www.") else host

    async def _fetch_html(self, url: str, session: aiohttp.ClientSession) -> str:
        """GET a page and return its body.

        Raises:
            ExtractionError: NOT_FOUND on 404, FETCH_FAILED on other non-2xx
                responses and network errors.
        """
        try:
            async with session.get(url, headers={"Accept": HTML_ACCEPT}) as response:
                if response.status == 404:
                    raise ExtractionError(
                        ErrorKind.NOT_FOUND,
                        f"{self.name} page not found",
                        status=404,
                        details={"url": url, "marketplace": self.name},
                    )
                if not 200 <= response.status < 300:
                    raise ExtractionError(
                        ErrorKind.FETCH_FAILED,
                        f"{self.name} returned status {response.status}",
                        status=response.status,
                        can_retry=response.status == 429 or response.status >= 500,
                        details={"url": url, "marketplace": self.name},
                    )
                return await response.text(errors="replace")
        except asyncio.TimeoutError as e:
            raise ExtractionError(
                ErrorKind.FETCH_FAILED,
                f"Timed out fetching {self.name} page",
                details={"url": url, "marketplace": self.name},
            ) from e
        except aiohttp.ClientError as e:
            raise ExtractionError(
                ErrorKind.FETCH_FAILED,
                f"Network error fetching {self.name} page: {e}",
                details={"url": url, "marketplace": self.name},
            ) from e

    async def _fetch_json(self, url: str, session: aiohttp.ClientSession) -> Any | None:
        """GET a JSON document, returning None on any failure."""
        try:
            async with session.get(url, headers={"Accept": "application/json"}) as response:
                if not 200 <= response.status < 300:
                    return None
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.debug(f"JSON fetch failed for {url}: {e}")
            return None
