"""Error taxonomy shared by acquisition, extraction and sync.

Every failure raised across a component boundary carries an ``ErrorKind`` so
callers can branch on ``error.kind`` with a ``match`` statement instead of
walking exception hierarchies. ``ErrorKind.retryable`` holds the default
retry policy for each kind.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Kinds of failure a caller may need to distinguish."""

    INVALID_URL = "invalid_url"
    NOT_FOUND = "not_found"
    BLOCKED = "blocked"
    FETCH_FAILED = "fetch_failed"
    CONFIGURATION = "configuration"
    INSUFFICIENT_DATA = "insufficient_data"
    UNSUPPORTED_MARKETPLACE = "unsupported_marketplace"
    EXTRACTION_FAILED = "extraction_failed"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        """Whether retrying the same request may succeed."""
        return self in (ErrorKind.BLOCKED, ErrorKind.FETCH_FAILED)


class MarketSyncError(Exception):
    """Base error carrying a kind, an optional HTTP status and retry hint.

    Attributes:
        kind: Failure kind from the taxonomy.
        status: HTTP status associated with the failure, if any.
        can_retry: Whether the caller may retry.
        details: Free-form context for logs and diagnostics.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status: int | None = None,
        can_retry: bool | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status
        self.can_retry = kind.retryable if can_retry is None else can_retry
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serializable view used by the CLI and sync state messages."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status": self.status,
            "can_retry": self.can_retry,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r}, status={self.status!r})"


class ProviderError(MarketSyncError):
    """Failure raised by a listing acquisition provider or the marketplace API client."""


class ExtractionError(MarketSyncError):
    """Failure raised by the multi-marketplace product extraction registry."""
