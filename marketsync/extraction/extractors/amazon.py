"""Amazon product extractor.

Amazon pages expose little structured data, so this extractor relies on
meta tags, element ids and a chain of price regexes tried in order.
"""

import re

import aiohttp

from ...errors import ErrorKind, ExtractionError
from ...models import NormalizedProduct, Price
from ...parsing import absolute_urls, extract_json_ld, extract_meta, make_soup, parse_price, strip_html, value_array
from ..base import BaseExtractor

AMAZON_HOST_RE = re.compile(
    r"(^|\.)amazon\.(com|co\.uk|ca|de|fr|es|it|co\.jp|in|com\.mx|com\.br|com\.au|nl|se|pl|sg)$",
    re.IGNORECASE,
)
ASIN_RE = re.compile(r"/(?:dp|gp/product)/([A-Z0-9]{10})", re.IGNORECASE)

PRICE_PATTERNS = [
    re.compile(r'"priceAmount":\s*([0-9.]+)'),
    re.compile(r'"price":\s*([0-9.]+)'),
    re.compile(r"\$([0-9]+\.[0-9]{2})"),
    re.compile(r'<span[^>]*class="[^"]*a-price-whole[^"]*"[^>]*>([0-9,]+)'),
]
CURRENCY_RE = re.compile(r'"currencyCode":\s*"([A-Z]{3})"')
HIRES_RE = re.compile(r'"hiRes":"([^"]+)"')
LARGE_RE = re.compile(r'"large":"([^"]+)"')

ROBOT_CHECK_MARKERS = ("api-services-support@amazon.com", "Robot Check")

# Storefront currency by host suffix, used only when a price was found
TLD_CURRENCIES = {
    "amazon.com": "USD",
    "amazon.co.uk": "GBP",
    "amazon.ca": "CAD",
    "amazon.de": "EUR",
    "amazon.fr": "EUR",
    "amazon.es": "EUR",
    "amazon.it": "EUR",
    "amazon.nl": "EUR",
    "amazon.co.jp": "JPY",
    "amazon.in": "INR",
    "amazon.com.mx": "MXN",
    "amazon.com.br": "BRL",
    "amazon.com.au": "AUD",
    "amazon.se": "SEK",
    "amazon.pl": "PLN",
    "amazon.sg": "SGD",
}

MAX_CATEGORIES = 5


def extract_asin(url: str) -> str | None:
    match = ASIN_RE.search(url)
    return match.group(1).upper() if match else None


class AmazonExtractor(BaseExtractor):
    """Extracts Amazon product pages."""

    name = "amazon"

    def can_handle(self, url: str) -> bool:
        return bool(AMAZON_HOST_RE.search(self._host(url)))

    def normalize_url(self, url: str) -> str:
        """Reduce a product URL to ``<scheme>://<host>/dp/<ASIN>`` when possible."""
        asin = extract_asin(url)
        if not asin:
            return url
        scheme, _, rest = url.partition("://")
        host = rest.split("/", 1)[0]
        return f"{scheme}://{host}/dp/{asin}"

    async def extract(self, url: str, session: aiohttp.ClientSession) -> NormalizedProduct:
        normalized_url = self.normalize_url(url)
        html = await self._fetch_html(normalized_url, session)

        if any(marker in html for marker in ROBOT_CHECK_MARKERS):
            raise ExtractionError(
                ErrorKind.BLOCKED,
                "Amazon blocked the request with CAPTCHA",
                details={"url": normalized_url, "marketplace": self.name},
            )

        return self.parse_html(html, normalized_url)

    def parse_html(self, html: str, url: str) -> NormalizedProduct:
        soup = make_soup(html)

        title = extract_meta(soup, "og:title") or self._element_text(soup, "productTitle")
        description = (
            extract_meta(soup, "og:description")
            or self._element_text(soup, "feature-bullets")
            or self._element_text(soup, "productDescription")
        )
        primary_image = extract_meta(soup, "og:image")

        json_ld = extract_json_ld(soup)
        return NormalizedProduct(
            url=url,
            marketplace=self.name,
            id=extract_asin(url),
            title=strip_html(title),
            description=strip_html(description),
            price=self._extract_price(html, url),
            images=absolute_urls(self._extract_images(html, primary_image), url),
            tags=value_array(extract_meta(soup, "keywords")),
            category=self._extract_category(soup),
            extras={"json_ld": json_ld} if json_ld else {},
        )

    @staticmethod
    def _element_text(soup, element_id: str) -> str | None:
        element = soup.find(id=element_id)
        if element is None:
            return None
        return strip_html(element.get_text(" "))

    def _extract_price(self, html: str, url: str) -> Price:
        amount = None
        for pattern in PRICE_PATTERNS:
            match = pattern.search(html)
            if match:
                amount = parse_price(match.group(1))
                if amount is not None:
                    break

        currency_match = CURRENCY_RE.search(html)
        currency = currency_match.group(1) if currency_match else None
        if currency is None and amount is not None:
            currency = TLD_CURRENCIES.get(self._host(url))
        return Price(amount=amount, currency=currency)

    @staticmethod
    def _extract_images(html: str, primary_image: str | None) -> list[str]:
        images = [primary_image] if primary_image else []
        images.extend(match.group(1) for match in HIRES_RE.finditer(html))
        images.extend(match.group(1) for match in LARGE_RE.finditer(html))
        return images

    @staticmethod
    def _extract_category(soup) -> list[str]:
        categories = []
        for link in soup.select("a.a-link-normal"):
            text = strip_html(link.get_text(" "))
            if text and len(text) < 100:
                categories.append(text)
        return categories[:MAX_CATEGORIES]
