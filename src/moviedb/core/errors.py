"""Exception hierarchy raised by the moviedb client."""

from __future__ import annotations

from typing import Any, Dict, Optional


class MovieDbError(Exception):
    """Base error for every failure surfaced by the client."""


class InvalidParameters(MovieDbError, ValueError):
    """Endpoint template and parameters do not fit together."""


class TransportFailure(MovieDbError):
    """Network error or HTTP error status returned by the API.

    ``status`` is ``None`` when the request never produced a response.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.data = data
        self.headers = headers or {}


class RateLimited(TransportFailure):
    """HTTP 429 returned while rate limiting is disabled for the client."""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs: Any) -> None:
        super().__init__(message, status=429, **kwargs)
        self.retry_after = retry_after


class MalformedServerFeedback(MovieDbError):
    """Quota headers were present but could not be parsed."""


class QueueTimeout(MovieDbError):
    """Request waited in the pending queue longer than allowed."""


class ClientClosed(MovieDbError):
    """Client was shut down before the request could complete."""
