"""Etsy product extractor built on the listing page normalizer."""

import aiohttp

from ...errors import ErrorKind, ExtractionError, ProviderError
from ...models import NormalizedProduct, ProductShop
from ...providers.etsy_parsing import canonicalize_listing_url, detect_block, normalize_listing
from ..base import BaseExtractor

BLOCK_SIGNATURES = ("captcha", "pardon our interruption")


class EtsyExtractor(BaseExtractor):
    """Extracts Etsy listings into NormalizedProduct."""

    name = "etsy"

    def can_handle(self, url: str) -> bool:
        host = self._host(url)
        return host == "etsy.com" or host.endswith(".etsy.com")

    async def extract(self, url: str, session: aiohttp.ClientSession) -> NormalizedProduct:
        try:
            canonical = canonicalize_listing_url(url)
        except ProviderError as e:
            raise ExtractionError(ErrorKind.INVALID_URL, e.message, details={"url": url}) from e

        html = await self._fetch_html(canonical, session)
        signature = detect_block(html, BLOCK_SIGNATURES)
        if signature:
            raise ExtractionError(
                ErrorKind.BLOCKED,
                "Etsy blocked the request",
                status=429,
                details={"url": canonical, "signature": signature},
            )

        listing = normalize_listing(canonical, html)
        shop = None
        if listing.shop.name or listing.shop.url:
            shop = ProductShop(name=listing.shop.name, url=listing.shop.url)

        return NormalizedProduct(
            url=canonical,
            marketplace=self.name,
            id=listing.id,
            title=listing.title,
            description=listing.description,
            price=listing.price,
            images=listing.images,
            tags=listing.tags,
            category=listing.category_path,
            shop=shop,
            extras={
                "materials": listing.materials,
                "reviews": listing.reviews.model_dump(),
                "shipping": listing.shipping.model_dump(),
                "json_ld": (listing.raw or {}).get("json_ld"),
            },
            fetched_at=listing.fetched_at,
        )
