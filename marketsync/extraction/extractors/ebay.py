"""eBay product extractor.

Reads the JSON-LD Product block first and falls back to the inline
``priceCurrency``/``price`` pair embedded in page scripts.
"""

import re

import aiohttp

from ...models import NormalizedProduct, Price, ProductShop
from ...parsing import (
    absolute_urls,
    extract_json_ld,
    extract_meta,
    find_product,
    first_offer,
    image_urls,
    make_soup,
    parse_price,
    strip_html,
    text_value,
    value_array,
)
from ..base import BaseExtractor

EBAY_HOST_RE = re.compile(r"(^|\.)ebay\.(com|co\.uk|ca|de|fr|es|it|com\.au|ie)$", re.IGNORECASE)
ITEM_ID_RE = re.compile(r"/itm/(?:[^/]+/)?(\d+)")
INLINE_PRICE_RE = re.compile(
    r"""["']priceCurrency["']:\s*["']([A-Z]{3})["'],\s*["']price["']:\s*["']?([0-9.]+)["']?"""
)


class EbayExtractor(BaseExtractor):
    """Extracts eBay item pages."""

    name = "ebay"

    def can_handle(self, url: str) -> bool:
        return bool(EBAY_HOST_RE.search(self._host(url)))

    async def extract(self, url: str, session: aiohttp.ClientSession) -> NormalizedProduct:
        html = await self._fetch_html(url, session)
        return self.parse_html(html, url)

    def parse_html(self, html: str, url: str) -> NormalizedProduct:
        soup = make_soup(html)
        product = find_product(extract_json_ld(soup))
        offer = first_offer(product) if product else None

        amount = parse_price(offer.get("price")) if offer else None
        currency = text_value(offer.get("priceCurrency")) if offer else None
        if amount is None:
            match = INLINE_PRICE_RE.search(html)
            if match:
                currency = match.group(1)
                amount = parse_price(match.group(2))

        images = []
        og_image = extract_meta(soup, "og:image") or extract_meta(soup, "twitter:image")
        if og_image:
            images.append(og_image)
        if product:
            images.extend(image_urls(product.get("image")))

        shop = None
        seller = (product.get("seller") or product.get("brand")) if product else None
        if isinstance(seller, dict):
            shop = ProductShop(name=text_value(seller.get("name")), url=text_value(seller.get("url")))

        item_id = ITEM_ID_RE.search(url)
        return NormalizedProduct(
            url=url,
            marketplace=self.name,
            id=item_id.group(1) if item_id else None,
            title=extract_meta(soup, "og:title") or extract_meta(soup, "twitter:title"),
            description=strip_html(extract_meta(soup, "og:description") or extract_meta(soup, "twitter:description")),
            price=Price(amount=amount, currency=currency),
            images=absolute_urls(images, url),
            category=value_array(product.get("category"), ">") if product else [],
            shop=shop,
            extras={"json_ld": product} if product else {},
        )
