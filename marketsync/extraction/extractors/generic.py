"""Last-resort extractor using meta tags and schema.org Product data."""

import aiohttp

from ...models import NormalizedProduct, Price
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


class GenericExtractor(BaseExtractor):
    """Meta tag and JSON-LD extractor; never claims a URL by itself."""

    name = "generic"

    def can_handle(self, url: str) -> bool:
        return False

    async def extract(self, url: str, session: aiohttp.ClientSession) -> NormalizedProduct:
        html = await self._fetch_html(url, session)
        return self.parse_html(html, url)

    def parse_html(self, html: str, url: str) -> NormalizedProduct:
        soup = make_soup(html)
        product = find_product(extract_json_ld(soup))
        offer = first_offer(product) if product else None

        title = (
            extract_meta(soup, "og:title")
            or extract_meta(soup, "twitter:title")
            or extract_meta(soup, "title")
            or (text_value(product.get("name")) if product else None)
        )
        description = (
            extract_meta(soup, "og:description")
            or extract_meta(soup, "twitter:description")
            or extract_meta(soup, "description")
            or (product.get("description") if product else None)
        )

        amount = parse_price(offer.get("price")) if offer else None
        currency = text_value(offer.get("priceCurrency")) if offer else None
        if amount is None:
            amount = parse_price(extract_meta(soup, "product:price:amount") or extract_meta(soup, "og:price:amount"))
            currency = currency or extract_meta(soup, "product:price:currency") or extract_meta(soup, "og:price:currency")

        images = []
        og_image = extract_meta(soup, "og:image") or extract_meta(soup, "twitter:image")
        if og_image:
            images.append(og_image)
        if product:
            images.extend(image_urls(product.get("image")))

        product_id = None
        if product:
            product_id = text_value(product.get("sku")) or text_value(product.get("productID"))

        return NormalizedProduct(
            url=url,
            marketplace=self.name,
            id=product_id,
            title=title,
            description=strip_html(description),
            price=Price(amount=amount, currency=currency),
            images=absolute_urls(images, url),
            tags=value_array(extract_meta(soup, "keywords")),
            category=value_array(product.get("category"), ">") if product else [],
            extras={"site": self._host(url).split(".")[0] or None, "json_ld": product},
        )
