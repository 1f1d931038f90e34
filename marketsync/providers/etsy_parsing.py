"""Etsy page parsing and URL heuristics.

Pure functions operating on URLs and in-memory HTML: canonicalization,
listing context and referer construction, best-seller URL discovery, block
detection and normalization of listing pages into ``NormalizedListing``.
Nothing here performs network I/O, which keeps page-format fragility away
from the fetch and retry logic.
"""

import re
from collections.abc import Iterable
from datetime import datetime
from typing import Any, NamedTuple
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from ..errors import ErrorKind, ProviderError
from ..models import (
    ListingSource,
    NormalizedListing,
    NormalizedShop,
    Price,
    Reviews,
    ShippingInfo,
    ShopInfo,
    utcnow,
)
from ..parsing import (
    absolute_urls,
    extract_json_ld,
    extract_meta,
    find_product,
    find_typed,
    first_offer,
    image_urls,
    make_soup,
    parse_float,
    parse_int,
    parse_price,
    strip_html,
    text_value,
    value_array,
)
from ..urls import canonicalize_url, host_matches, is_http_url

ALLOWED_HOST_SUFFIX = "etsy.com"
SITE_ROOT = "https://www.etsy.com/"
BEST_SELLERS_URLS = (
    "https://www.etsy.com/market/top_sellers",
    "https://www.etsy.com/c/best-selling-items",
)
PRIMARY_BEST_SELLERS_URL = BEST_SELLERS_URLS[0]

LISTING_ID_RE = re.compile(r"/listing/(\d+)")
HREF_LISTING_RE = re.compile(r'href="([^"]*/listing/\d+[^"]*)"', re.IGNORECASE)
DATA_LISTING_ID_RE = re.compile(r'data-listing-id="(\d+)"', re.IGNORECASE)
JSON_LISTING_ID_RE = re.compile(r'listing_id"\s*:\s*(\d+)', re.IGNORECASE)
SLUG_SEPARATORS_RE = re.compile(r"[-_]+")


class ListingContext(NamedTuple):
    """Listing id and slug parsed from a listing URL path."""

    id: str | None
    slug: str | None


def canonicalize_listing_url(url: str, allowed_host_suffix: str = ALLOWED_HOST_SUFFIX) -> str:
    """Validate a marketplace URL and strip its query string and fragment.

    Args:
        url: Absolute URL on the primary marketplace.
        allowed_host_suffix: Accepted hostname suffix.

    Returns:
        Canonical URL; applying this twice yields the same string.

    Raises:
        ProviderError: INVALID_URL for unparseable, non-http(s) or foreign URLs.
    """
    if not isinstance(url, str) or not is_http_url(url):
        raise ProviderError(ErrorKind.INVALID_URL, f"Invalid URL: {url!r}", can_retry=False)
    if not host_matches(url, allowed_host_suffix):
        host = urlsplit(url.strip()).hostname
        raise ProviderError(ErrorKind.INVALID_URL, f"Unsupported hostname: {host}", can_retry=False)
    return canonicalize_url(url)


def ensure_absolute_listing_url(href: str, allowed_host_suffix: str = ALLOWED_HOST_SUFFIX) -> str | None:
    """Resolve a relative or absolute href to a canonical marketplace URL."""
    href = href.strip().replace("&amp;", "&")
    if not re.match(r"^https?:", href, re.IGNORECASE):
        if href.startswith("//"):
            href = f"https:{href}"
        else:
            href = f"https://www.etsy.com{'' if href.startswith('/') else '/'}{href}"
    try:
        return canonicalize_listing_url(href, allowed_host_suffix)
    except ProviderError:
        return None


def extract_listing_context(url: str) -> ListingContext:
    """Parse listing id and slug from ``/listing/<id>/<slug>`` paths.

    Args:
        url: Any URL.

    Returns:
        ListingContext with None for every part that is absent.
    """
    try:
        path = urlsplit(url).path
    except ValueError:
        return ListingContext(None, None)

    segments = [segment for segment in path.split("/") if segment]
    lowered = [segment.lower() for segment in segments]
    if "listing" not in lowered:
        return ListingContext(None, None)

    index = lowered.index("listing")
    listing_id = segments[index + 1] if len(segments) > index + 1 else None
    slug = segments[index + 2] if len(segments) > index + 2 else None
    return ListingContext(listing_id, slug)


def build_listing_referers(
    url: str,
    site_root: str = SITE_ROOT,
    best_sellers_url: str = PRIMARY_BEST_SELLERS_URL,
) -> list[str]:
    """Ordered, de-duplicated referers to rotate through for a listing fetch.

    Order: site root, the listing's short URL, a search URL built from the
    slug, the primary best-sellers page.
    """
    referers = [site_root]
    context = extract_listing_context(url)
    if context.id:
        referers.append(f"https://www.etsy.com/listing/{context.id}")
    if context.slug:
        query = SLUG_SEPARATORS_RE.sub(" ", context.slug).strip()
        if query:
            referers.append(f"https://www.etsy.com/search?q={quote(query, safe='')}")
    referers.append(best_sellers_url)
    return list(dict.fromkeys(referers))


def extract_listing_urls_from_html(
    html: str,
    limit: int,
    allowed_host_suffix: str = ALLOWED_HOST_SUFFIX,
) -> list[str]:
    """Discover listing URLs on a category page.

    Strategies run in priority order until ``limit`` URLs are found: anchor
    hrefs, ``data-listing-id`` attributes, embedded ``listing_id`` JSON.
    """
    results: list[str] = []
    seen: set[str] = set()

    def _add(candidate: str | None) -> bool:
        if candidate and candidate not in seen:
            seen.add(candidate)
            results.append(candidate)
        return len(results) >= limit

    for match in HREF_LISTING_RE.finditer(html):
        if _add(ensure_absolute_listing_url(match.group(1), allowed_host_suffix)):
            return results

    for pattern in (DATA_LISTING_ID_RE, JSON_LISTING_ID_RE):
        for match in pattern.finditer(html):
            candidate = ensure_absolute_listing_url(f"/listing/{match.group(1)}", allowed_host_suffix)
            if _add(candidate):
                return results

    return results


def build_best_seller_url(category: str | None, best_sellers_url: str = PRIMARY_BEST_SELLERS_URL) -> str:
    """Category page URL for best-seller discovery.

    Args:
        category: None, a category slug ('jewelry', 'c/jewelry') or a full
            marketplace URL.
        best_sellers_url: Page used when no category is given.

    Returns:
        URL carrying a ``ref=best_sellers`` marker.
    """
    if not category:
        return best_sellers_url

    candidate = category.strip()
    if is_http_url(candidate) and host_matches(candidate, ALLOWED_HOST_SUFFIX):
        parts = urlsplit(candidate)
        query = parse_qsl(parts.query, keep_blank_values=True)
        if not any(key == "ref" for key, _ in query):
            query.append(("ref", "best_sellers"))
        return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", urlencode(query), ""))

    sanitized = re.sub(r"\?.*$", "", candidate.lstrip("/"))
    path = sanitized if re.match(r"^(c|featured)/", sanitized, re.IGNORECASE) else f"c/{sanitized}"
    return f"https://www.etsy.com/{path}?ref=best_sellers"


def detect_block(html: str, signatures: Iterable[str]) -> str | None:
    """Return the first block signature found in the page body, if any."""
    lowered = html.lower()
    for signature in signatures:
        if signature and signature.lower() in lowered:
            return signature
    return None


def _free_shipping(offer: dict[str, Any] | None) -> bool | None:
    if not offer:
        return None
    details = offer.get("shippingDetails")
    if isinstance(details, list):
        details = next((item for item in details if isinstance(item, dict)), None)
    if not isinstance(details, dict):
        return None
    if isinstance(details.get("freeShipping"), bool):
        return details["freeShipping"]
    rate = details.get("shippingRate")
    if isinstance(rate, dict):
        amount = parse_price(rate.get("price", rate.get("value")))
        if amount is not None:
            return amount == 0
    return None


def _processing_time(offer: dict[str, Any] | None) -> str | None:
    if not offer:
        return None
    lead_time = offer.get("deliveryLeadTime")
    if isinstance(lead_time, str):
        return lead_time.strip() or None
    details = offer.get("shippingDetails")
    if isinstance(details, dict):
        handling = details.get("handlingTime")
        if isinstance(handling, str):
            return handling.strip() or None
        delivery = details.get("deliveryTime")
        if isinstance(delivery, dict) and isinstance(delivery.get("handlingTime"), dict):
            window = delivery["handlingTime"]
            low, high = window.get("minValue"), window.get("maxValue")
            if low is not None and high is not None:
                return f"{low}-{high} {window.get('unitCode') or 'days'}".strip()
    return None


def _shop_info(product: dict[str, Any] | None) -> ShopInfo:
    seller = None
    if product:
        seller = product.get("seller") or product.get("brand")
    if not isinstance(seller, dict):
        return ShopInfo(name=text_value(seller)) if seller else ShopInfo()

    address = seller.get("address")
    location = None
    if isinstance(address, dict):
        location = text_value(address.get("addressLocality"))
    elif isinstance(address, str):
        location = address.strip() or None

    return ShopInfo(
        id=text_value(seller.get("identifier")) or text_value(seller.get("@id")),
        name=text_value(seller.get("name")),
        url=text_value(seller.get("url")),
        location=location,
    )


def normalize_listing(
    url: str,
    html: str,
    fetched_at: datetime | None = None,
    source: ListingSource = ListingSource.SCRAPE,
) -> NormalizedListing:
    """Map a listing page onto the canonical schema.

    Prefers the schema.org Product JSON-LD block and degrades to og:* and
    product:* meta tags when it is absent. Fields missing from both stay None
    or empty.

    Args:
        url: Canonical listing URL.
        html: Page body.
        fetched_at: Acquisition time, defaults to now.
        source: Provenance recorded on the listing.

    Returns:
        NormalizedListing.
    """
    soup = make_soup(html)
    blocks = extract_json_ld(soup)
    product = find_product(blocks)
    offer = first_offer(product) if product else None

    id_from_url = LISTING_ID_RE.search(url)
    listing_id = None
    if product:
        listing_id = next(
            (
                str(product[key]).strip()
                for key in ("productID", "sku", "identifier")
                if isinstance(product.get(key), str | int) and str(product[key]).strip()
            ),
            None,
        )
    if listing_id is None and id_from_url:
        listing_id = id_from_url.group(1)

    title = text_value(product.get("name")) if product else None
    title = title or extract_meta(soup, "og:title")

    description = strip_html(product.get("description")) if product else None
    description = description or strip_html(extract_meta(soup, "og:description"))

    amount = None
    currency = None
    if offer:
        amount = parse_price(offer.get("price"))
        if amount is None:
            amount = parse_price(offer.get("lowPrice"))
        currency = text_value(offer.get("priceCurrency"))
    if amount is None:
        amount = parse_price(extract_meta(soup, "product:price:amount") or extract_meta(soup, "og:price:amount"))
    if currency is None:
        currency = extract_meta(soup, "product:price:currency") or extract_meta(soup, "og:price:currency")

    images = image_urls(product.get("image")) if product else []
    if not images:
        og_image = extract_meta(soup, "og:image")
        images = [og_image] if og_image else []

    tags: list[str] = []
    materials: list[str] = []
    category_path: list[str] = []
    if product:
        tags = value_array(product.get("keywords"), ",;")
        materials = value_array(product.get("material"), ",;")
        category_path = value_array(product.get("category") or product.get("categoryPath"), ">")

    rating = product.get("aggregateRating") if product else None
    reviews = Reviews()
    if isinstance(rating, dict):
        reviews = Reviews(
            count=parse_int(rating.get("reviewCount", rating.get("ratingCount"))),
            rating=parse_float(rating.get("ratingValue")),
        )

    ships_from = None
    if offer:
        ships_from = text_value(offer.get("availableAtOrFrom")) or text_value(offer.get("areaServed"))

    return NormalizedListing(
        id=listing_id,
        url=url,
        title=title,
        description=description,
        price=Price(amount=amount, currency=currency.upper() if currency else None),
        images=absolute_urls(images, url),
        tags=tags,
        materials=materials,
        category_path=category_path,
        shop=_shop_info(product),
        reviews=reviews,
        shipping=ShippingInfo(
            free_shipping=_free_shipping(offer),
            ships_from=ships_from,
            processing_time=_processing_time(offer),
        ),
        raw={"json_ld": product, "offers": offer},
        fetched_at=fetched_at or utcnow(),
        source=source,
    )


def normalize_shop(url: str, html: str, fetched_at: datetime | None = None) -> NormalizedShop:
    """Map a shop page onto NormalizedShop from Organization/Store JSON-LD or og tags."""
    soup = make_soup(html)
    blocks = extract_json_ld(soup)
    org = find_typed(blocks, "Organization", "Store", "LocalBusiness", "OnlineStore")

    shop_id = None
    name = None
    location = None
    if org:
        shop_id = text_value(org.get("identifier")) or text_value(org.get("@id"))
        name = text_value(org.get("name"))
        address = org.get("address")
        if isinstance(address, dict):
            location = text_value(address.get("addressLocality"))

    if shop_id is None:
        match = re.search(r"/shop/([^/]+)", urlsplit(url).path)
        shop_id = match.group(1) if match else None

    return NormalizedShop(
        id=shop_id,
        url=url,
        name=name or extract_meta(soup, "og:title"),
        location=location,
        raw={"json_ld": org},
        fetched_at=fetched_at or utcnow(),
    )
