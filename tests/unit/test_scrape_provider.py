"""Tests for the anti-bot scraping provider."""

import asyncio
import logging
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from conftest import (
    BLOCK_PAGE_HTML,
    CATEGORY_HTML,
    LISTING_URL,
    FakeClock,
    FakeResponse,
    FakeSession,
    listing_html,
)

from marketsync.config import ScrapingConfig
from marketsync.errors import ErrorKind, ProviderError
from marketsync.models import SearchOptions
from marketsync.providers.scrape import ScrapeEtsyProvider
from marketsync.services.headless import HeadlessPage
from marketsync.services.throttle import RequestThrottle

PRIMARY_BEST_SELLERS = "https://www.etsy.com/market/top_sellers"
SECONDARY_BEST_SELLERS = "https://www.etsy.com/c/best-selling-items"


def make_provider(session: FakeSession, no_sleep, headless=None) -> ScrapeEtsyProvider:
    return ScrapeEtsyProvider(
        scraping=ScrapingConfig(),
        throttle=RequestThrottle(min_interval=1.5, clock=FakeClock(), sleep=no_sleep),
        headless=headless,
        session=session,
    )


def events(caplog) -> list[dict]:
    return [record.event for record in caplog.records if hasattr(record, "event")]


class TestGetListingByUrl:
    @pytest.mark.asyncio
    async def test_success_emits_structured_event(self, no_sleep, caplog):
        session = FakeSession({LISTING_URL: FakeResponse(text=listing_html())})
        provider = make_provider(session, no_sleep)

        with caplog.at_level(logging.INFO):
            listing = await provider.get_listing_by_url(f"{LISTING_URL}?ref=hp#reviews")

        assert listing.id == "945529830"
        assert listing.price.amount == Decimal("45.00")
        assert session.calls[0]["url"] == LISTING_URL
        assert session.calls[0]["headers"]["Referer"] == "https://www.etsy.com/"

        success = [event for event in events(caplog) if event["status"] == "success"]
        assert len(success) == 1
        assert success[0]["method"] == "ScrapeEtsyProvider.get_listing_by_url"
        assert success[0]["url"] == LISTING_URL
        assert success[0]["fields_extracted"] == listing.populated_field_count()
        assert "duration_ms" in success[0]

    @pytest.mark.asyncio
    async def test_referer_rotation_on_block(self, no_sleep):
        session = FakeSession(
            {
                LISTING_URL: [
                    FakeResponse(status=403, text="forbidden"),
                    FakeResponse(text=BLOCK_PAGE_HTML),
                    FakeResponse(text=listing_html()),
                ]
            }
        )
        provider = make_provider(session, no_sleep)

        listing = await provider.get_listing_by_url(LISTING_URL)

        assert listing.title == "Personalized Leather Journal Notebook"
        assert [call["headers"]["Referer"] for call in session.calls] == [
            "https://www.etsy.com/",
            "https://www.etsy.com/listing/945529830",
            "https://www.etsy.com/search?q=personalized%20leather%20journal%20notebook",
        ]
        assert no_sleep.waits == [1.5, 3.0]

    @pytest.mark.asyncio
    async def test_all_referers_blocked_raises_retryable_blocked(self, no_sleep, caplog):
        session = FakeSession({LISTING_URL: FakeResponse(status=403, text="forbidden")})
        provider = make_provider(session, no_sleep)

        with caplog.at_level(logging.INFO), pytest.raises(ProviderError) as exc_info:
            await provider.get_listing_by_url(LISTING_URL)

        assert exc_info.value.kind == ErrorKind.BLOCKED
        assert exc_info.value.can_retry is True
        assert len(session.calls) == 4
        assert events(caplog)[-1]["status"] == "blocked"

    @pytest.mark.asyncio
    async def test_block_page_with_200_raises_blocked(self, no_sleep):
        session = FakeSession({LISTING_URL: FakeResponse(text=BLOCK_PAGE_HTML)})
        provider = make_provider(session, no_sleep)

        with pytest.raises(ProviderError) as exc_info:
            await provider.get_listing_by_url(LISTING_URL)

        assert exc_info.value.kind == ErrorKind.BLOCKED
        assert exc_info.value.status == 429

    @pytest.mark.asyncio
    async def test_not_found(self, no_sleep, caplog):
        session = FakeSession({LISTING_URL: FakeResponse(status=404)})
        provider = make_provider(session, no_sleep)

        with caplog.at_level(logging.INFO), pytest.raises(ProviderError) as exc_info:
            await provider.get_listing_by_url(LISTING_URL)

        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert exc_info.value.can_retry is False
        assert len(session.calls) == 1
        assert events(caplog)[-1]["status"] == "not_found"

    @pytest.mark.parametrize("status,retryable", [(500, True), (503, True), (429, True), (410, False)])
    @pytest.mark.asyncio
    async def test_http_failures(self, no_sleep, status, retryable):
        session = FakeSession({LISTING_URL: FakeResponse(status=status)})
        provider = make_provider(session, no_sleep)

        with pytest.raises(ProviderError) as exc_info:
            await provider.get_listing_by_url(LISTING_URL)

        assert exc_info.value.kind == ErrorKind.FETCH_FAILED
        assert exc_info.value.status == status
        assert exc_info.value.can_retry is retryable

    @pytest.mark.asyncio
    async def test_timeout_is_retryable_fetch_failed(self, no_sleep):
        session = FakeSession({LISTING_URL: asyncio.TimeoutError()})
        provider = make_provider(session, no_sleep)

        with pytest.raises(ProviderError) as exc_info:
            await provider.get_listing_by_url(LISTING_URL)

        assert exc_info.value.kind == ErrorKind.FETCH_FAILED
        assert exc_info.value.can_retry is True

    @pytest.mark.asyncio
    async def test_network_error(self, no_sleep):
        session = FakeSession({LISTING_URL: aiohttp.ClientConnectionError("reset")})
        provider = make_provider(session, no_sleep)

        with pytest.raises(ProviderError) as exc_info:
            await provider.get_listing_by_url(LISTING_URL)

        assert exc_info.value.kind == ErrorKind.FETCH_FAILED

    @pytest.mark.asyncio
    async def test_foreign_host_is_invalid_url(self, no_sleep):
        session = FakeSession()
        provider = make_provider(session, no_sleep)

        with pytest.raises(ProviderError) as exc_info:
            await provider.get_listing_by_url("https://www.amazon.com/dp/B000000000")

        assert exc_info.value.kind == ErrorKind.INVALID_URL
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_cookies_are_replayed(self, no_sleep):
        session = FakeSession(
            {
                LISTING_URL: [
                    FakeResponse(status=403, headers=[("Set-Cookie", "uaid=abc; Path=/")]),
                    FakeResponse(text=listing_html(), headers=[("Set-Cookie", "session=s1; Path=/")]),
                ]
            }
        )
        provider = make_provider(session, no_sleep)

        await provider.get_listing_by_url(LISTING_URL)

        assert "Cookie" not in session.calls[0]["headers"]
        assert session.calls[1]["headers"]["Cookie"] == "uaid=abc"
        assert provider.cookie_jar.get("session") == "s1"

    @pytest.mark.asyncio
    async def test_undecodable_bytes_are_replaced(self, no_sleep, caplog):
        body = listing_html().encode("utf-8") + b"<p>\xff\xfe</p>"
        session = FakeSession({LISTING_URL: FakeResponse(text=body)})
        provider = make_provider(session, no_sleep)

        with caplog.at_level(logging.INFO):
            listing = await provider.get_listing_by_url(LISTING_URL)

        assert listing.id == "945529830"
        assert [event["status"] for event in events(caplog)][-1] == "success"


class TestHeadlessFallback:
    @pytest.mark.asyncio
    async def test_headless_used_after_all_referers_blocked(self, no_sleep):
        session = FakeSession({LISTING_URL: FakeResponse(status=403)})
        headless = MagicMock()
        headless.enabled = True
        headless.fetch = AsyncMock(return_value=HeadlessPage(200, listing_html(), LISTING_URL))
        headless.close = AsyncMock()
        provider = make_provider(session, no_sleep, headless=headless)

        listing = await provider.get_listing_by_url(LISTING_URL)

        assert listing.title == "Personalized Leather Journal Notebook"
        headless.fetch.assert_awaited_once_with(LISTING_URL, referer="https://www.etsy.com/")

    @pytest.mark.asyncio
    async def test_disabled_headless_is_not_called(self, no_sleep):
        session = FakeSession({LISTING_URL: FakeResponse(status=403)})
        headless = MagicMock()
        headless.enabled = False
        headless.fetch = AsyncMock()
        headless.close = AsyncMock()
        provider = make_provider(session, no_sleep, headless=headless)

        with pytest.raises(ProviderError):
            await provider.get_listing_by_url(LISTING_URL)

        headless.fetch.assert_not_awaited()


class TestSearch:
    @pytest.mark.asyncio
    async def test_best_sellers_skips_failed_listings(self, no_sleep):
        session = FakeSession(
            {
                PRIMARY_BEST_SELLERS: FakeResponse(text=CATEGORY_HTML),
                "https://www.etsy.com/listing/111/first-item": FakeResponse(text=listing_html()),
                "https://www.etsy.com/listing/222/second-item": FakeResponse(status=404),
                "https://www.etsy.com/listing/333": FakeResponse(text=listing_html()),
            }
        )
        provider = make_provider(session, no_sleep)

        listings = await provider.search("", SearchOptions(limit=3))

        assert [listing.url for listing in listings] == [
            "https://www.etsy.com/listing/111/first-item",
            "https://www.etsy.com/listing/333",
        ]

    @pytest.mark.asyncio
    async def test_category_404_moves_to_next_candidate(self, no_sleep):
        session = FakeSession(
            {
                "https://www.etsy.com/c/jewelry?ref=best_sellers": FakeResponse(status=404),
                PRIMARY_BEST_SELLERS: FakeResponse(text='<a href="/listing/111/first-item">x</a>'),
                "https://www.etsy.com/listing/111/first-item": FakeResponse(text=listing_html()),
            }
        )
        provider = make_provider(session, no_sleep)

        listings = await provider.search("", SearchOptions(limit=5, category="jewelry"))

        assert len(listings) == 1
        assert session.calls[0]["url"] == "https://www.etsy.com/c/jewelry?ref=best_sellers"
        assert session.calls[1]["url"] == PRIMARY_BEST_SELLERS

    @pytest.mark.asyncio
    async def test_no_listing_urls_raises_not_found(self, no_sleep):
        session = FakeSession({PRIMARY_BEST_SELLERS: FakeResponse(text="<html><body>empty</body></html>")})
        provider = make_provider(session, no_sleep)

        with pytest.raises(ProviderError) as exc_info:
            await provider.search("", SearchOptions())

        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert exc_info.value.can_retry is True

    @pytest.mark.asyncio
    async def test_all_candidates_missing(self, no_sleep):
        session = FakeSession()
        provider = make_provider(session, no_sleep)

        with pytest.raises(ProviderError) as exc_info:
            await provider.search("", SearchOptions())

        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert [call["url"] for call in session.calls] == [PRIMARY_BEST_SELLERS, SECONDARY_BEST_SELLERS]

    @pytest.mark.asyncio
    async def test_every_listing_failing_raises_fetch_failed(self, no_sleep):
        session = FakeSession({PRIMARY_BEST_SELLERS: FakeResponse(text=CATEGORY_HTML)})
        provider = make_provider(session, no_sleep)

        with pytest.raises(ProviderError) as exc_info:
            await provider.search("", SearchOptions(limit=2))

        assert exc_info.value.kind == ErrorKind.FETCH_FAILED

    @pytest.mark.asyncio
    async def test_keyword_strategy_is_not_implemented(self, no_sleep):
        provider = make_provider(FakeSession(), no_sleep)

        with pytest.raises(ProviderError) as exc_info:
            await provider.search("journal", SearchOptions(strategy="keyword"))

        assert exc_info.value.kind == ErrorKind.UNKNOWN

    @pytest.mark.asyncio
    async def test_unexpected_listing_error_is_skipped(self, no_sleep, caplog):
        class UndecodableResponse(FakeResponse):
            async def text(self, encoding=None, errors="strict"):
                raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        session = FakeSession(
            {
                PRIMARY_BEST_SELLERS: FakeResponse(text=CATEGORY_HTML),
                "https://www.etsy.com/listing/111/first-item": UndecodableResponse(),
                "https://www.etsy.com/listing/222/second-item": FakeResponse(text=listing_html()),
                "https://www.etsy.com/listing/333": FakeResponse(text=listing_html()),
            }
        )
        provider = make_provider(session, no_sleep)

        with caplog.at_level(logging.INFO):
            listings = await provider.search("", SearchOptions(limit=3))

        assert [listing.url for listing in listings] == [
            "https://www.etsy.com/listing/222/second-item",
            "https://www.etsy.com/listing/333",
        ]
        skipped = [
            event
            for event in events(caplog)
            if event.get("method") == "ScrapeEtsyProvider.search" and event["status"] == "error"
        ]
        assert skipped[0]["url"] == "https://www.etsy.com/listing/111/first-item"
        assert skipped[0]["error"].startswith("UnicodeDecodeError")


class TestClose:
    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self, no_sleep):
        session = FakeSession()
        provider = make_provider(session, no_sleep)
        await provider.close()
        assert session.closed is False
