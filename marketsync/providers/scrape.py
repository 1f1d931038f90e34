"""Anti-bot scraping provider for the primary marketplace.

Fetches listing pages over plain HTTPS with session cookie continuity,
minimum-interval throttling, referer rotation and block detection, then
normalizes them with the pure parsing module. When every referer is blocked
and the headless fallback is enabled, the page is rendered once in an
isolated browser context.

Every acquisition attempt emits one structured log event with method, URL,
status, duration and, on success, the number of populated fields.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import NamedTuple

import aiohttp
from playwright.async_api import Error as PlaywrightError

from ..config import ScrapingConfig
from ..errors import ErrorKind, ProviderError
from ..logging_config import log_event
from ..models import NormalizedListing, NormalizedShop, SearchOptions
from ..services.cookie_jar import CookieJar
from ..services.headless import HeadlessFetcher
from ..services.http import create_session, navigation_headers
from ..services.throttle import RequestThrottle
from .etsy_parsing import (
    build_best_seller_url,
    build_listing_referers,
    canonicalize_listing_url,
    detect_block,
    extract_listing_urls_from_html,
    normalize_listing,
    normalize_shop,
)

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 20


class FetchedPage(NamedTuple):
    status: int
    text: str
    url: str
    referer: str | None = None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _event_status(error: ProviderError) -> str:
    match error.kind:
        case ErrorKind.NOT_FOUND:
            return "not_found"
        case ErrorKind.BLOCKED:
            return "blocked"
        case _:
            return "error"


class ScrapeEtsyProvider:
    """HTTP scraping engine implementing the EtsyProvider protocol.

    One instance owns one cookie jar and one throttle; concurrent calls on
    the same instance share both.

    Attributes:
        name: Provider identifier, 'scrape'.
        throttle: Request admission queue.
        cookie_jar: Session cookies replayed on every request.
        headless: Optional headless browser fallback.
    """

    name = "scrape"

    def __init__(
        self,
        scraping: ScrapingConfig | None = None,
        throttle: RequestThrottle | None = None,
        cookie_jar: CookieJar | None = None,
        headless: HeadlessFetcher | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 25.0,
    ):
        self.scraping = scraping or ScrapingConfig()
        self.throttle = throttle or RequestThrottle()
        self.cookie_jar = cookie_jar or CookieJar()
        self.headless = headless
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None

    @property
    def _primary_best_sellers_url(self) -> str:
        return self.scraping.best_seller_urls[0]

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_session(self.timeout_seconds, self.scraping.user_agent)
            self._owns_session = True
        return self._session

    async def _request(self, url: str, referer: str | None) -> FetchedPage:
        """Throttled GET with cookie injection and absorption.

        Raises:
            ProviderError: FETCH_FAILED on network errors and timeouts.
        """
        await self.throttle.schedule()
        headers = self.cookie_jar.inject(navigation_headers(referer))
        session = self._get_session()
        try:
            async with session.get(url, headers=headers, allow_redirects=True) as response:
                self.cookie_jar.absorb(response.headers.getall("Set-Cookie", []))
                text = await response.text(errors="replace")
                return FetchedPage(response.status, text, str(response.url), referer)
        except asyncio.TimeoutError as e:
            raise ProviderError(
                ErrorKind.FETCH_FAILED,
                f"Timed out fetching {url}",
                can_retry=True,
                details={"url": url},
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderError(
                ErrorKind.FETCH_FAILED,
                f"Network error fetching {url}: {e}",
                can_retry=True,
                details={"url": url},
            ) from e

    def _block_reason(self, page: FetchedPage) -> str | None:
        if page.status == 403:
            return "http_403"
        if 200 <= page.status < 300:
            return detect_block(page.text, self.scraping.block_signatures)
        return None

    async def _fetch_with_rotation(self, url: str, referers: Sequence[str], method: str) -> FetchedPage:
        """Fetch ``url`` trying each referer until one is not blocked.

        Falls back to the headless browser when all referers are blocked and
        the fallback is enabled; otherwise returns the last blocked page.
        """
        last_page: FetchedPage | None = None
        for attempt, referer in enumerate(referers, start=1):
            page = await self._request(url, referer)
            reason = self._block_reason(page)
            if reason is None:
                return page

            last_page = page
            log_event(
                logger,
                logging.WARNING,
                method=method,
                url=url,
                status="blocked",
                referer=referer,
                attempt=attempt,
                status_code=page.status,
                reason=reason,
            )

        headless_page = await self._fetch_headless(url, method)
        if headless_page is not None:
            return headless_page

        if last_page is not None:
            return last_page
        return await self._request(url, self.scraping.site_root)

    async def _fetch_headless(self, url: str, method: str) -> FetchedPage | None:
        if self.headless is None or not self.headless.enabled:
            return None

        await self.throttle.schedule()
        try:
            result = await self.headless.fetch(url, referer=self.scraping.site_root)
        except PlaywrightError as e:
            raise ProviderError(
                ErrorKind.FETCH_FAILED,
                f"Headless fetch failed for {url}: {e}",
                can_retry=True,
                details={"url": url, "via": "headless"},
            ) from e
        if result is None:
            return None

        log_event(logger, logging.INFO, method=method, url=url, status="headless", status_code=result.status)
        return FetchedPage(result.status or 200, result.html, result.url, self.scraping.site_root)

    def _raise_for_page(self, page: FetchedPage, what: str) -> None:
        """Map a fetched page onto the error taxonomy."""
        if page.status == 404:
            raise ProviderError(ErrorKind.NOT_FOUND, f"{what} not found", status=404, can_retry=False)
        if page.status == 403:
            raise ProviderError(ErrorKind.BLOCKED, f"Blocked while fetching {what.lower()}", status=403, can_retry=True)
        if not 200 <= page.status < 300:
            retryable = page.status == 429 or page.status >= 500
            raise ProviderError(
                ErrorKind.FETCH_FAILED,
                f"Failed to fetch {what.lower()} ({page.status})",
                status=page.status,
                can_retry=retryable,
            )
        signature = detect_block(page.text, self.scraping.block_signatures)
        if signature:
            raise ProviderError(
                ErrorKind.BLOCKED,
                f"Encountered block page ({signature})",
                status=429,
                can_retry=True,
                details={"signature": signature},
            )

    async def get_listing_by_url(self, url: str) -> NormalizedListing:
        """Fetch and normalize one listing page.

        Args:
            url: Listing URL on the primary marketplace.

        Returns:
            NormalizedListing with source 'scrape'.

        Raises:
            ProviderError: INVALID_URL, NOT_FOUND, BLOCKED or FETCH_FAILED.
        """
        method = "ScrapeEtsyProvider.get_listing_by_url"
        started = time.perf_counter()
        event_url = url
        try:
            canonical = canonicalize_listing_url(url, self.scraping.allowed_host_suffix)
            event_url = canonical
            referers = build_listing_referers(canonical, self.scraping.site_root, self._primary_best_sellers_url)
            page = await self._fetch_with_rotation(canonical, referers, method)
            self._raise_for_page(page, "Listing")
            listing = normalize_listing(canonical, page.text)
        except ProviderError as e:
            log_event(
                logger,
                logging.WARNING if e.kind in (ErrorKind.NOT_FOUND, ErrorKind.BLOCKED) else logging.ERROR,
                method=method,
                url=event_url,
                status=_event_status(e),
                duration_ms=_elapsed_ms(started),
                provider=self.name,
                kind=e.kind.value,
                status_code=e.status,
                error=e.message,
            )
            raise

        log_event(
            logger,
            logging.INFO,
            method=method,
            url=event_url,
            status="success",
            duration_ms=_elapsed_ms(started),
            provider=self.name,
            fields_extracted=listing.populated_field_count(),
        )
        return listing

    async def get_shop_by_url(self, url: str) -> NormalizedShop:
        """Fetch a shop page and return its storefront identity."""
        method = "ScrapeEtsyProvider.get_shop_by_url"
        started = time.perf_counter()
        event_url = url
        try:
            canonical = canonicalize_listing_url(url, self.scraping.allowed_host_suffix)
            event_url = canonical
            page = await self._fetch_with_rotation(canonical, [self.scraping.site_root], method)
            self._raise_for_page(page, "Shop")
            shop = normalize_shop(canonical, page.text)
        except ProviderError as e:
            log_event(
                logger,
                logging.WARNING,
                method=method,
                url=event_url,
                status=_event_status(e),
                duration_ms=_elapsed_ms(started),
                provider=self.name,
                kind=e.kind.value,
                error=e.message,
            )
            raise

        log_event(
            logger,
            logging.INFO,
            method=method,
            url=event_url,
            status="success",
            duration_ms=_elapsed_ms(started),
            provider=self.name,
        )
        return shop

    async def _gather_best_seller_listing_urls(self, limit: int, category: str | None) -> list[str]:
        method = "ScrapeEtsyProvider.gather_best_seller_listing_urls"
        candidates = list(self.scraping.best_seller_urls)
        if category:
            candidates = list(dict.fromkeys([build_best_seller_url(category, candidates[0]), *candidates]))

        last_not_found: ProviderError | None = None
        for url in candidates:
            page = await self._request(url, self.scraping.site_root)

            if page.status == 404:
                last_not_found = ProviderError(
                    ErrorKind.NOT_FOUND, "Best seller category not found", status=404, can_retry=False
                )
                log_event(logger, logging.WARNING, method=method, url=url, status="not_found", status_code=404)
                continue

            self._raise_for_page(page, "Best seller category")

            urls = extract_listing_urls_from_html(page.text, limit, self.scraping.allowed_host_suffix)
            if not urls:
                raise ProviderError(ErrorKind.NOT_FOUND, "Unable to locate best seller listings", can_retry=True)

            log_event(logger, logging.INFO, method=method, url=url, status="success", discovered=len(urls))
            return urls

        raise last_not_found or ProviderError(
            ErrorKind.FETCH_FAILED, "Best seller listings unavailable", can_retry=True
        )

    async def search(self, query: str, options: SearchOptions | None = None) -> list[NormalizedListing]:
        """Discover best-selling listings.

        Resolves each discovered URL into a full listing, skipping the ones
        that fail, so fewer than ``limit`` listings may be returned.

        Args:
            query: Unused by the best-sellers strategy.
            options: Strategy, limit (clamped to 1..20) and category.

        Returns:
            Up to ``limit`` listings.

        Raises:
            ProviderError: UNKNOWN for unsupported strategies; FETCH_FAILED when
                no listing could be resolved.
        """
        options = options or SearchOptions()
        if options.strategy != "best-sellers":
            raise ProviderError(ErrorKind.UNKNOWN, "Search strategy not implemented", can_retry=False)

        started = time.perf_counter()
        limit = max(1, min(options.limit, MAX_SEARCH_LIMIT))
        urls = await self._gather_best_seller_listing_urls(limit, options.category)

        listings: list[NormalizedListing] = []
        for url in urls:
            try:
                listings.append(await self.get_listing_by_url(url))
            except Exception as e:
                log_event(
                    logger,
                    logging.WARNING,
                    method="ScrapeEtsyProvider.search",
                    strategy="best-sellers",
                    url=url,
                    status="error",
                    error=e.message if isinstance(e, ProviderError) else f"{type(e).__name__}: {e}",
                )
            if len(listings) >= limit:
                break

        if not listings:
            raise ProviderError(ErrorKind.FETCH_FAILED, "Best seller listings unavailable", can_retry=True)

        log_event(
            logger,
            logging.INFO,
            method="ScrapeEtsyProvider.search",
            strategy="best-sellers",
            status="success",
            duration_ms=_elapsed_ms(started),
            provider=self.name,
            category=options.category,
            count=len(listings),
        )
        return listings[:limit]

    async def close(self) -> None:
        """Close the HTTP session and the headless browser."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        if self.headless is not None:
            await self.headless.close()
