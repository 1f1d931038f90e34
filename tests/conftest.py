"""Global test configuration and fixtures.

Provides in-memory HTTP doubles, a controllable clock, marketplace page
fixtures and environment isolation shared by every test module. No test
touches the network.
"""

import json
import os
from typing import Any

import pytest
from multidict import CIMultiDict

LISTING_URL = "https://www.etsy.com/listing/945529830/personalized-leather-journal-notebook"

LISTING_JSON_LD = {
    "@context": "https://schema.org",
    "@type": "Product",
    "name": "Personalized Leather Journal Notebook",
    "description": "Hand-stitched   leather\njournal.",
    "image": [
        "https://i.etsystatic.com/1/il_fullxfull.jpg",
        "https://i.etsystatic.com/2/il_fullxfull.jpg",
        "https://i.etsystatic.com/1/il_fullxfull.jpg",
    ],
    "keywords": "Journal, Leather; notebook, journal",
    "material": "leather, paper",
    "category": "Paper & Party Supplies > Paper > Journals",
    "offers": {
        "@type": "Offer",
        "price": "45.00",
        "priceCurrency": "usd",
        "availableAtOrFrom": "Portland, OR",
        "shippingDetails": {"freeShipping": True},
    },
    "aggregateRating": {"ratingValue": "4.9", "reviewCount": "0"},
    "brand": {"@type": "Brand", "name": "LeatherCraftCo", "url": "https://www.etsy.com/shop/LeatherCraftCo"},
}


def listing_html(json_ld: dict[str, Any] | None = None, extra_head: str = "") -> str:
    """Listing page with a Product JSON-LD block and og meta tags."""
    block = json_ld if json_ld is not None else LISTING_JSON_LD
    return f"""
    <html><head>
      <meta property="og:title" content="Meta title" />
      <meta property="og:description" content="Meta description" />
      <meta property="og:image" content="https://i.etsystatic.com/og.jpg" />
      {extra_head}
      <script type="application/ld+json">{json.dumps(block)}</script>
    </head><body><h1>Listing</h1></body></html>
    """


META_ONLY_HTML = """
<html><head>
  <meta property="og:title" content="Walnut Cutting Board" />
  <meta property="og:description" content="Solid walnut" />
  <meta property="og:image" content="https://i.etsystatic.com/board.jpg" />
  <meta property="product:price:amount" content="1,299.50" />
  <meta property="product:price:currency" content="eur" />
</head><body></body></html>
"""

BLOCK_PAGE_HTML = "<html><body><h1>Pardon Our Interruption</h1><p>Please verify you are human.</p></body></html>"

CATEGORY_HTML = """
<html><body>
  <a href="/listing/111/first-item?ref=best_sellers">One</a>
  <a href="https://www.etsy.com/listing/222/second-item">Two</a>
  <a href="/listing/111/first-item?ref=other">Dup</a>
  <div data-listing-id="333"></div>
</body></html>
"""


class FakeResponse:
    """Minimal stand-in for aiohttp.ClientResponse used as an async context manager."""

    def __init__(
        self,
        status: int = 200,
        text: str | bytes = "",
        json_data: Any = None,
        headers: list[tuple[str, str]] | None = None,
        url: str | None = None,
    ):
        self.status = status
        self._text = text
        self._json = json_data
        self.headers = CIMultiDict(headers or [])
        self.url = url

    async def text(self, encoding: str | None = None, errors: str = "strict") -> str:
        if isinstance(self._text, bytes):
            return self._text.decode(encoding or "utf-8", errors)
        if self._json is not None and not self._text:
            return json.dumps(self._json)
        return self._text

    async def json(self, content_type: str | None = "application/json") -> Any:
        if self._json is not None:
            return self._json
        return json.loads(self._text)

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        return False


class FakeSession:
    """Records requests and replays queued responses.

    ``routes`` maps a URL to a response or a list of responses consumed in
    order (the last one repeats). A route may also be an exception instance,
    which is raised when the request is made.
    """

    def __init__(self, routes: dict[str, Any] | None = None, default: FakeResponse | None = None):
        self.routes: dict[str, Any] = dict(routes or {})
        self.default = default or FakeResponse(status=404, text="not found")
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def _next(self, url: str) -> Any:
        route = self.routes.get(url, self.default)
        if isinstance(route, list):
            response = route[0]
            if len(route) > 1:
                route.pop(0)
        else:
            response = route
        if isinstance(response, BaseException):
            raise response
        if response.url is None:
            response.url = url
        return response

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        return self._next(url)

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("POST", url, **kwargs)

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Monotonic clock advanced manually by tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def test_environment():
    """Setup test environment variables for all tests."""
    test_env = {
        "ETSY_PROVIDER": "scrape",
        "ENABLE_HEADLESS_BROWSER": "false",
        "LOG_LEVEL": "DEBUG",
    }
    cleared = [
        "ETSY_API_KEY",
        "ETSY_API_SECRET",
        "ETSY_BASE_URL",
        "ETSY_CLIENT_ID",
        "ETSY_CLIENT_SECRET",
        "ETSY_REDIRECT_URI",
        "CATALOG_DB_PATH",
        "SYNC_PAGE_LIMIT",
    ]

    original_env = {key: os.environ.get(key) for key in [*test_env, *cleared]}
    os.environ.update(test_env)
    for key in cleared:
        os.environ.pop(key, None)

    yield

    for key, original_value in original_env.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def no_sleep():
    """Throttle sleep double recording requested waits."""
    waits: list[float] = []

    async def _sleep(seconds: float) -> None:
        waits.append(seconds)

    _sleep.waits = waits
    return _sleep
