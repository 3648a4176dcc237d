"""HTTP transport backed by httpx."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol

import httpx

from ..core.errors import TransportFailure
from ..core.models import HttpMethod, Response

DEFAULT_TIMEOUT = 10.0  # seconds


class Transport(Protocol):
    async def execute(
        self,
        method: HttpMethod,
        base_url: str,
        path: str,
        query: Mapping[str, Any],
        body: Optional[Mapping[str, Any]] = None,
        timeout: Optional[int] = None,
    ) -> Response: ...

    async def aclose(self) -> None: ...


class HttpxTransport:
    """Sends requests with a shared ``httpx.AsyncClient``.

    HTTP error statuses are returned as responses; only failures that
    produce no response at all raise :class:`TransportFailure`.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    async def execute(
        self,
        method: HttpMethod,
        base_url: str,
        path: str,
        query: Mapping[str, Any],
        body: Optional[Mapping[str, Any]] = None,
        timeout: Optional[int] = None,
    ) -> Response:
        url = join_url(base_url, path)
        kwargs: Dict[str, Any] = {"params": dict(query)}
        if body is not None:
            kwargs["json"] = dict(body)
        if timeout:
            kwargs["timeout"] = timeout / 1000
        try:
            response = await self._client.request(HttpMethod(method).value, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportFailure(f"{HttpMethod(method).value} {path} failed: {exc}") from exc
        return Response(
            status=response.status_code,
            headers={key.lower(): value for key, value in response.headers.items()},
            data=_decode(response),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    if "json" in response.headers.get("content-type", ""):
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text
