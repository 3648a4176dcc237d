"""Public client for the movie database API."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Union

from ..core.config import ClientConfig
from ..core.models import AuthenticationToken, HttpMethod, Params, RequestOptions, RequestSpec, Response
from .dispatcher import Dispatcher
from .transport import HttpxTransport, Transport

Options = Union[None, RequestOptions, Mapping[str, Any]]


class MovieDb:
    """Handles authenticated, quota-aware requests to the API.

    ``use_default_limits`` in the config turns on client-side quota
    tracking; without it every call goes straight to the transport.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        cfg = config or ClientConfig()
        if api_key is not None:
            cfg = replace(cfg, credentials=replace(cfg.credentials, api_key=api_key))
        self.config = cfg
        self.session_id: Optional[str] = cfg.credentials.session_id or None
        self._token: Optional[AuthenticationToken] = None
        self._transport = transport or HttpxTransport()
        self._dispatcher = Dispatcher(cfg, self._transport, session=lambda: self.session_id)

    @classmethod
    def build(cls, config: Optional[ClientConfig] = None) -> "MovieDb":
        return cls(config=config or ClientConfig.load())

    async def submit(
        self,
        method: Union[HttpMethod, str],
        endpoint: str,
        params: Params = None,
        options: Options = None,
    ) -> Response:
        spec = RequestSpec(method=method, endpoint=endpoint, params=params, options=RequestOptions.coerce(options))
        return await self._dispatcher.submit(spec)

    async def get(self, endpoint: str, params: Params = None, options: Options = None) -> Any:
        return (await self.submit(HttpMethod.GET, endpoint, params, options)).data

    async def post(self, endpoint: str, params: Params = None, options: Options = None) -> Any:
        return (await self.submit(HttpMethod.POST, endpoint, params, options)).data

    async def put(self, endpoint: str, params: Params = None, options: Options = None) -> Any:
        return (await self.submit(HttpMethod.PUT, endpoint, params, options)).data

    async def delete(self, endpoint: str, params: Params = None, options: Options = None) -> Any:
        return (await self.submit(HttpMethod.DELETE, endpoint, params, options)).data

    async def request_token(self) -> AuthenticationToken:
        """Return a request token, fetching a new one once the cached one expires."""

        if self._token is None or self._token.expired():
            payload = await self.get("authentication/token/new")
            self._token = AuthenticationToken.from_payload(payload or {})
        return self._token

    async def session(self) -> Optional[str]:
        return self.session_id

    async def create_session(self, request_token: Optional[str] = None) -> str:
        """Exchange an approved request token for a session id."""

        token = request_token or (await self.request_token()).request_token
        payload = await self.post("authentication/session/new", {"request_token": token}) or {}
        self.session_id = payload.get("session_id") or None
        return self.session_id or ""

    def quota(self) -> Dict[str, Any]:
        return self._dispatcher.snapshot()

    async def aclose(self) -> None:
        await self._dispatcher.aclose()
        await self._transport.aclose()

    async def __aenter__(self) -> "MovieDb":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


__all__ = ["MovieDb"]
