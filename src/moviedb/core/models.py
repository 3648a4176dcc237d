"""Common request/response models for moviedb."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

Scalar = Union[str, int, float]
Params = Union[None, Scalar, Mapping[str, Any]]


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


@dataclass(frozen=True, slots=True)
class RequestOptions:
    """Per-call options recognised by the dispatcher."""

    timeout: Optional[int] = None  # milliseconds
    append_to_response: Tuple[str, ...] = ()

    @classmethod
    def coerce(cls, value: Union[None, "RequestOptions", Mapping[str, Any]]) -> "RequestOptions":
        if value is None:
            return cls()
        if isinstance(value, RequestOptions):
            return value
        append = value.get("append_to_response", value.get("appendToResponse")) or ()
        if isinstance(append, str):
            append = [part.strip() for part in append.split(",") if part.strip()]
        timeout = value.get("timeout")
        return cls(timeout=int(timeout) if timeout else None, append_to_response=tuple(append))


@dataclass(frozen=True, slots=True)
class RequestSpec:
    """Caller-facing description of a single API call.

    Mapping parameters are copied on construction so later changes to the
    caller's dict never leak into a queued request.
    """

    method: HttpMethod
    endpoint: str
    params: Params = None
    options: RequestOptions = field(default_factory=RequestOptions)

    def __post_init__(self) -> None:
        if not isinstance(self.method, HttpMethod):
            object.__setattr__(self, "method", HttpMethod(str(self.method).upper()))
        if isinstance(self.params, Mapping):
            object.__setattr__(self, "params", dict(self.params))
        object.__setattr__(self, "options", RequestOptions.coerce(self.options))

    @property
    def has_params(self) -> bool:
        if self.params is None:
            return False
        if isinstance(self.params, (str, Mapping)):
            return bool(self.params)
        return True


@dataclass(slots=True)
class Response:
    """Status, lower-cased headers and decoded body of an API response."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.status < 400


@dataclass(slots=True)
class QuotaState:
    """Remaining request budget and the epoch second at which it resets."""

    remaining: int
    reset_at: Optional[float] = None


@dataclass(slots=True)
class AuthenticationToken:
    """Request token issued by ``authentication/token/new``."""

    request_token: str
    expires_at: Optional[datetime] = None
    success: bool = True

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AuthenticationToken":
        return cls(
            request_token=str(payload.get("request_token", "")),
            expires_at=_parse_expiry(payload.get("expires_at")),
            success=bool(payload.get("success", True)),
        )

    def expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        current = now or datetime.now(timezone.utc)
        return current > self.expires_at


def _parse_expiry(value: Any) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()
    for pattern in ("%Y-%m-%d %H:%M:%S UTC", "%Y-%m-%dT%H:%M:%S.%fZ", "%Y-%m-%dT%H:%M:%SZ"):
        try:
            return datetime.strptime(text, pattern).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None
