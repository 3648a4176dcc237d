"""Quota-aware client for The Movie Database API."""

from .core import (
    ClientClosed,
    ClientConfig,
    Credentials,
    HttpMethod,
    InvalidParameters,
    MovieDbError,
    QueueTimeout,
    RateLimited,
    RequestOptions,
    Response,
    TransportFailure,
)
from .services.client import MovieDb

__all__ = [
    "MovieDb",
    "ClientClosed",
    "ClientConfig",
    "Credentials",
    "HttpMethod",
    "InvalidParameters",
    "MovieDbError",
    "QueueTimeout",
    "RateLimited",
    "RequestOptions",
    "Response",
    "TransportFailure",
]
