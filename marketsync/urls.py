"""URL helpers shared by providers, the cache and the extractor registry."""

from urllib.parse import urlsplit, urlunsplit


def canonicalize_url(url: str) -> str:
    """Strip query string and fragment, lower-case scheme and host.

    Idempotent: canonicalize_url(canonicalize_url(u)) == canonicalize_url(u).

    Args:
        url: Absolute URL.

    Returns:
        Canonical URL string.
    """
    parts = urlsplit(url.strip())
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def hostname(url: str) -> str:
    """Lower-case hostname of a URL, empty string if it cannot be parsed."""
    try:
        return (urlsplit(url.strip()).hostname or "").lower()
    except ValueError:
        return ""


def is_http_url(url: str) -> bool:
    """True for absolute http(s) URLs with a hostname."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def host_matches(url: str, suffix: str) -> bool:
    """True if the URL host equals the suffix or is a subdomain of it."""
    host = hostname(url)
    suffix = suffix.lower().lstrip(".")
    return host == suffix or host.endswith(f".{suffix}")
