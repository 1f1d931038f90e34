"""Pure HTML and structured-data helpers.

Shared by the Etsy page normalizer and the marketplace extractors. Nothing in
this module performs I/O; every helper takes an in-memory document or value
and returns an optional typed result.
"""

import json
import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup

WHITESPACE_RE = re.compile(r"\s+")
PRICE_CHARS_RE = re.compile(r"[^\d.,]")


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def extract_json_ld(soup: BeautifulSoup) -> list[dict[str, Any]]:
    """Collect every JSON-LD object on the page.

    Top-level arrays and ``@graph`` containers are flattened; blocks that fail
    to decode are skipped.

    Args:
        soup: Parsed page.

    Returns:
        List of JSON-LD objects in document order.
    """
    blocks: list[dict[str, Any]] = []
    for script in soup.find_all("script", type="application/ld+json"):
        text = script.string or script.get_text()
        if not text or not text.strip():
            continue
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            continue
        _flatten_json_ld(data, blocks)
    return blocks


def _flatten_json_ld(data: Any, out: list[dict[str, Any]]) -> None:
    if isinstance(data, list):
        for item in data:
            _flatten_json_ld(item, out)
    elif isinstance(data, dict):
        out.append(data)
        graph = data.get("@graph")
        if isinstance(graph, list):
            for item in graph:
                _flatten_json_ld(item, out)


def has_type(block: dict[str, Any], *types: str) -> bool:
    """True if the JSON-LD @type (string or list) matches one of types."""
    declared = block.get("@type")
    if isinstance(declared, str):
        declared = [declared]
    if not isinstance(declared, list):
        return False
    wanted = {t.lower() for t in types}
    return any(isinstance(t, str) and t.lower() in wanted for t in declared)


def find_typed(blocks: list[dict[str, Any]], *types: str) -> dict[str, Any] | None:
    for block in blocks:
        if has_type(block, *types):
            return block
    return None


def find_product(blocks: list[dict[str, Any]]) -> dict[str, Any] | None:
    """First schema.org Product (or ProductGroup) block."""
    return find_typed(blocks, "Product", "ProductGroup")


def extract_meta(soup: BeautifulSoup, key: str) -> str | None:
    """Content of a meta tag matched by property= or name=.

    Args:
        soup: Parsed page.
        key: Meta property or name, e.g. 'og:title'.

    Returns:
        Stripped content or None when absent or blank.
    """
    tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
    if tag is None:
        return None
    content = tag.get("content")
    if not content or not str(content).strip():
        return None
    return str(content).strip()


def extract_meta_all(soup: BeautifulSoup, key: str) -> list[str]:
    values = []
    for attr in ("property", "name"):
        for tag in soup.find_all("meta", attrs={attr: key}):
            content = tag.get("content")
            if content and str(content).strip():
                values.append(str(content).strip())
    return values


def strip_html(value: Any) -> str | None:
    """Plain text from an HTML fragment with whitespace collapsed."""
    if value is None:
        return None
    text = str(value)
    if "<" in text:
        text = BeautifulSoup(text, "lxml").get_text(" ")
    text = WHITESPACE_RE.sub(" ", text).strip()
    return text or None


def text_value(value: Any) -> str | None:
    """Coerce a JSON-LD scalar, list head or named object into text."""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("name") or value.get("@id")
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def value_array(value: Any, separators: str = ",") -> list[str]:
    """Flatten a JSON-LD value into a list of non-empty strings.

    Strings are split on any of ``separators``; lists are flattened and named
    objects contribute their ``name``.
    """
    if value is None:
        return []
    if isinstance(value, str):
        if not separators:
            parts = [value]
        else:
            parts = re.split("[" + re.escape(separators) + "]", value)
        return [part.strip() for part in parts if part.strip()]
    if isinstance(value, dict):
        name = text_value(value)
        return [name] if name else []
    if isinstance(value, list):
        result: list[str] = []
        for item in value:
            result.extend(value_array(item, separators))
        return result
    return [str(value)]


def image_urls(value: Any) -> list[str]:
    """Image URLs from a JSON-LD image value (string, list or ImageObject)."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, dict):
        url = value.get("contentURL") or value.get("contentUrl") or value.get("url")
        return image_urls(url)
    if isinstance(value, list):
        result: list[str] = []
        for item in value:
            result.extend(image_urls(item))
        return result
    return []


def absolute_urls(urls: list[str], base_url: str) -> list[str]:
    """Resolve relative and protocol-relative URLs against the page URL."""
    return [urljoin(base_url, url.strip()) for url in urls if url and url.strip()]


def parse_price(value: Any) -> Decimal | None:
    """Parse a price from a number or a formatted string.

    Handles currency symbols, thousands separators and decimal commas.
    Returns None instead of 0 when nothing numeric is present.

    Args:
        value: Raw price value.

    Returns:
        Decimal amount or None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float | Decimal):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            return None
        return amount if amount.is_finite() else None

    raw = PRICE_CHARS_RE.sub("", str(value))
    if not raw or not any(ch.isdigit() for ch in raw):
        return None

    if "," in raw and "." in raw:
        if raw.rfind(",") > raw.rfind("."):
            raw = raw.replace(".", "").replace(",", ".")
        else:
            raw = raw.replace(",", "")
    elif "," in raw:
        head, _, tail = raw.rpartition(",")
        if len(tail) == 2 and "," not in head:
            raw = f"{head}.{tail}"
        else:
            raw = raw.replace(",", "")

    raw = raw.strip(".")
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(str(value).replace(",", "")))
    except (ValueError, OverflowError):
        return None


def parse_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace(",", "."))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def first_offer(product: dict[str, Any]) -> dict[str, Any] | None:
    """First offer of a Product, unwrapping AggregateOffer and offer lists."""
    offers = product.get("offers")
    if isinstance(offers, list):
        offers = next((item for item in offers if isinstance(item, dict)), None)
    if not isinstance(offers, dict):
        return None
    nested = offers.get("offers")
    if isinstance(nested, list) and nested and isinstance(nested[0], dict):
        return {**offers, **nested[0]}
    return offers
