"""Session cookie jar for the scraping engine.

Absorbs ``Set-Cookie`` headers from every response and replays the collected
name/value pairs on subsequent requests. The jar is only mutated from
synchronous code running on the engine's event loop, so updates from
concurrent fetches never interleave.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from http.cookies import CookieError, Morsel, SimpleCookie

logger = logging.getLogger(__name__)


def _is_expired(morsel: Morsel) -> bool:
    """True when Max-Age or Expires tells the client to drop the cookie."""
    max_age = morsel["max-age"]
    if max_age:
        try:
            return int(max_age) <= 0
        except ValueError:
            return False
    expires = morsel["expires"]
    if expires:
        try:
            expires_at = parsedate_to_datetime(expires)
        except (TypeError, ValueError):
            return False
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= datetime.now(timezone.utc)
    return False


class CookieJar:
    """Name to value cookie store replayed as a single Cookie header."""

    def __init__(self) -> None:
        self._cookies: dict[str, str] = {}

    def absorb(self, set_cookie_values: Iterable[str]) -> int:
        """Store cookies from raw Set-Cookie header values.

        Args:
            set_cookie_values: Every Set-Cookie header of one response.

        Returns:
            Number of cookies stored, updated or removed.
        """
        stored = 0
        for header in set_cookie_values:
            parsed = SimpleCookie()
            try:
                parsed.load(header)
            except CookieError:
                pair = header.split(";", 1)[0]
                name, sep, value = pair.partition("=")
                if not sep or not name.strip():
                    logger.debug(f"Ignoring malformed Set-Cookie header: {header!r}")
                    continue
                self._cookies[name.strip()] = value.strip()
                stored += 1
                continue
            for name, morsel in parsed.items():
                if _is_expired(morsel):
                    self._cookies.pop(name, None)
                else:
                    self._cookies[name] = morsel.value
                stored += 1
        return stored

    def inject(self, headers: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return a copy of ``headers`` with the jar's Cookie header added.

        A Cookie header already set by the caller is left untouched.
        """
        result = dict(headers or {})
        if not self._cookies:
            return result
        if any(key.lower() == "cookie" for key in result):
            return result
        result["Cookie"] = self.header_value()
        return result

    def header_value(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def get(self, name: str) -> str | None:
        return self._cookies.get(name)

    def clear(self) -> None:
        self._cookies.clear()

    def __len__(self) -> int:
        return len(self._cookies)
