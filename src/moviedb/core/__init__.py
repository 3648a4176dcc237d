"""Core utilities and models."""

from .config import ClientConfig, Credentials
from .endpoint import CURRENT_ACCOUNT, ResolvedEndpoint, placeholders, resolve_endpoint
from .errors import (
    ClientClosed,
    InvalidParameters,
    MalformedServerFeedback,
    MovieDbError,
    QueueTimeout,
    RateLimited,
    TransportFailure,
)
from .models import AuthenticationToken, HttpMethod, QuotaState, RequestOptions, RequestSpec, Response
from .rate_limit import QuotaTracker

__all__ = [
    "ClientConfig",
    "Credentials",
    "CURRENT_ACCOUNT",
    "ResolvedEndpoint",
    "placeholders",
    "resolve_endpoint",
    "ClientClosed",
    "InvalidParameters",
    "MalformedServerFeedback",
    "MovieDbError",
    "QueueTimeout",
    "RateLimited",
    "TransportFailure",
    "AuthenticationToken",
    "HttpMethod",
    "QuotaState",
    "RequestOptions",
    "RequestSpec",
    "Response",
    "QuotaTracker",
]
