"""HTTP session factory and browser-like request headers."""

import aiohttp

from ..config import DEFAULT_USER_AGENT


def browser_headers(user_agent: str = DEFAULT_USER_AGENT) -> dict[str, str]:
    """Default headers of a desktop browser performing a top-level navigation."""
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate, br",
        "DNT": "1",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-User": "?1",
    }


def navigation_headers(referer: str | None) -> dict[str, str]:
    """Per-request headers for a navigation arriving from ``referer``."""
    if not referer:
        return {"Sec-Fetch-Site": "none"}
    return {"Referer": referer, "Sec-Fetch-Site": "same-origin"}


def create_session(timeout_seconds: float = 25.0, user_agent: str = DEFAULT_USER_AGENT) -> aiohttp.ClientSession:
    """Create configured aiohttp session for marketplace scraping.

    Sets up connection limits, per-request timeouts and browser-like headers.
    Cookies are not stored by aiohttp; the scraping engine replays its own jar.

    Args:
        timeout_seconds: Total timeout for one request.
        user_agent: User-Agent header value.

    Returns:
        aiohttp.ClientSession: Configured HTTP session.
    """
    connector = aiohttp.TCPConnector(limit=100, limit_per_host=10)
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    return aiohttp.ClientSession(
        connector=connector,
        timeout=timeout,
        headers=browser_headers(user_agent),
        cookie_jar=aiohttp.DummyCookieJar(),
    )
