"""Tests for the headless browser fallback."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from marketsync.services.headless import HeadlessFetcher


class TestHeadlessFetcher:
    @pytest.mark.asyncio
    async def test_disabled_fetch_returns_none(self):
        fetcher = HeadlessFetcher(enabled=False)

        assert await fetcher.fetch("https://www.etsy.com/listing/1") is None
        assert fetcher._browser is None

    @pytest.mark.asyncio
    async def test_each_fetch_uses_a_fresh_context(self):
        page = MagicMock()
        page.goto = AsyncMock(return_value=MagicMock(status=200))
        page.wait_for_timeout = AsyncMock()
        page.content = AsyncMock(return_value="<html>ok</html>")
        page.url = "https://www.etsy.com/listing/1"

        contexts = []

        async def new_context(**kwargs):
            context = MagicMock()
            context.new_page = AsyncMock(return_value=page)
            context.close = AsyncMock()
            contexts.append(context)
            return context

        browser = MagicMock()
        browser.is_connected = MagicMock(return_value=True)
        browser.new_context = new_context

        fetcher = HeadlessFetcher(enabled=True, settle_ms=0)
        fetcher._ensure_browser = AsyncMock(return_value=browser)

        first = await fetcher.fetch("https://www.etsy.com/listing/1", referer="https://www.etsy.com/")
        await fetcher.fetch("https://www.etsy.com/listing/1")

        assert first.status == 200
        assert first.html == "<html>ok</html>"
        assert len(contexts) == 2
        assert contexts[0] is not contexts[1]
        for context in contexts:
            context.close.assert_awaited_once()
        page.goto.assert_any_await(
            "https://www.etsy.com/listing/1",
            wait_until="domcontentloaded",
            timeout=25_000,
            referer="https://www.etsy.com/",
        )

    @pytest.mark.asyncio
    async def test_context_closed_when_navigation_fails(self):
        context = MagicMock()
        context.new_page = AsyncMock(side_effect=RuntimeError("crashed"))
        context.close = AsyncMock()
        browser = MagicMock()
        browser.new_context = AsyncMock(return_value=context)

        fetcher = HeadlessFetcher(enabled=True)
        fetcher._ensure_browser = AsyncMock(return_value=browser)

        with pytest.raises(RuntimeError):
            await fetcher.fetch("https://www.etsy.com/listing/1")

        context.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_without_browser_is_noop(self):
        fetcher = HeadlessFetcher(enabled=True)
        await fetcher.close()
        assert fetcher._browser is None
