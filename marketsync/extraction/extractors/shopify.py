"""Shopify product extractor.

Shopify stores expose ``<product path>.json``; that endpoint is tried first
and the HTML page is parsed only when it is unavailable.
"""

from typing import Any
from urllib.parse import urlsplit, urlunsplit

import aiohttp

from ...errors import ErrorKind, ExtractionError
from ...models import NormalizedProduct, Price, ProductShop
from ...parsing import (
    absolute_urls,
    extract_json_ld,
    extract_meta,
    find_product,
    image_urls,
    make_soup,
    parse_price,
    strip_html,
    value_array,
)
from ..base import BaseExtractor

SHOPIFY_MARKERS = ("Shopify", "cdn.shopify.com")


def build_json_url(url: str) -> str:
    """Product JSON endpoint for a product page URL."""
    parts = urlsplit(url)
    path = parts.path
    if not path.endswith(".json"):
        path = f"{path.rstrip('/')}.json"
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


class ShopifyExtractor(BaseExtractor):
    """Extracts products from Shopify-powered stores."""

    name = "shopify"

    def can_handle(self, url: str) -> bool:
        try:
            path = urlsplit(url).path.lower()
        except ValueError:
            return False
        return "/products/" in path or self._host(url).endswith(".myshopify.com")

    async def extract(self, url: str, session: aiohttp.ClientSession) -> NormalizedProduct:
        data = await self._fetch_json(build_json_url(url), session)
        if isinstance(data, dict):
            product = data.get("product", data)
            if isinstance(product, dict) and (product.get("title") or product.get("variants")):
                return self.normalize_product_json(product, url)

        return await self._extract_from_html(url, session)

    def normalize_product_json(self, product: dict[str, Any], url: str) -> NormalizedProduct:
        variants = product.get("variants") or []
        amount = None
        if variants and isinstance(variants[0], dict):
            amount = parse_price(variants[0].get("price"))

        images = image_urls((product.get("image") or {}).get("src"))
        images.extend(image_urls([image.get("src") for image in product.get("images") or [] if isinstance(image, dict)]))

        product_id = product.get("id")
        vendor = product.get("vendor")
        return NormalizedProduct(
            url=url,
            marketplace=self.name,
            id=str(product_id) if product_id else product.get("handle"),
            title=product.get("title") or None,
            description=strip_html(product.get("body_html")),
            price=Price(amount=amount, currency=product.get("currency") or None),
            images=absolute_urls(images, url),
            tags=value_array(product.get("tags")),
            category=[product["product_type"]] if product.get("product_type") else [],
            shop=ProductShop(name=vendor) if vendor else None,
            extras={"handle": product.get("handle"), "variants": variants},
        )

    async def _extract_from_html(self, url: str, session: aiohttp.ClientSession) -> NormalizedProduct:
        html = await self._fetch_html(url, session)
        if not any(marker in html for marker in SHOPIFY_MARKERS):
            raise ExtractionError(
                ErrorKind.UNSUPPORTED_MARKETPLACE,
                "URL does not appear to be a Shopify store",
                can_retry=False,
                details={"url": url},
            )

        soup = make_soup(html)
        product = find_product(extract_json_ld(soup))

        images = []
        og_image = extract_meta(soup, "og:image") or extract_meta(soup, "twitter:image")
        if og_image:
            images.append(og_image)
        if product:
            images.extend(image_urls(product.get("image")))

        return NormalizedProduct(
            url=url,
            marketplace=self.name,
            title=extract_meta(soup, "og:title") or extract_meta(soup, "twitter:title"),
            description=strip_html(extract_meta(soup, "og:description") or extract_meta(soup, "twitter:description")),
            price=Price(
                amount=parse_price(extract_meta(soup, "og:price:amount") or extract_meta(soup, "product:price:amount")),
                currency=extract_meta(soup, "og:price:currency") or extract_meta(soup, "product:price:currency"),
            ),
            images=absolute_urls(images, url),
            extras={"json_ld": product} if product else {},
        )
