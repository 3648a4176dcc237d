"""Quota-aware request dispatch."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Set

from ..core.config import ClientConfig
from ..core.endpoint import CURRENT_ACCOUNT, IDENTITY_PLACEHOLDER, ResolvedEndpoint, placeholders, resolve_endpoint
from ..core.errors import ClientClosed, RateLimited, TransportFailure
from ..core.models import HttpMethod, RequestSpec, Response
from ..core.rate_limit import QuotaTracker, parse_retry_after
from .queue import DrainScheduler, PendingRequest, PendingRequestQueue, QueueDrainer
from .transport import Transport

logger = logging.getLogger(__name__)

REMAINING_HEADER = "x-ratelimit-remaining"
RESET_HEADER = "x-ratelimit-reset"
RETRY_AFTER_HEADER = "retry-after"


class Dispatcher:
    """Admits requests against the quota and sends them through the transport.

    Requests that find the quota exhausted, or that the server rejects with
    429, wait in a FIFO queue until the drainer re-admits them. Every
    caller awaits a future that is completed exactly once. Quota and queue
    bookkeeping happens under a single lock; network calls run outside it.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Transport,
        session: Callable[[], Optional[str]] = lambda: None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._transport = transport
        self._session = session
        self._clock = clock
        self._lock = asyncio.Lock()
        self._closed = False
        self._inflight: Set["asyncio.Task[None]"] = set()
        self.tracker = QuotaTracker(config.limit_ceiling, config.window_seconds, clock)
        self.queue = PendingRequestQueue()
        max_wait = config.max_queue_wait_millis / 1000 if config.max_queue_wait_millis else None
        self._drainer = QueueDrainer(self.tracker, self.queue, self._dispatch, clock, max_wait)
        self._scheduler = DrainScheduler(self._drainer.drain, self._lock)

    @property
    def rate_limited(self) -> bool:
        return self._config.use_default_limits

    @property
    def queue_depth(self) -> int:
        return len(self.queue)

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    async def submit(self, spec: RequestSpec) -> Response:
        """Send ``spec`` once quota allows and return the response."""

        if self._closed:
            raise ClientClosed("Client is closed")
        endpoint = self.resolve(spec)
        pending = PendingRequest(spec=spec, endpoint=endpoint, future=asyncio.get_running_loop().create_future())

        if not self.rate_limited:
            self._dispatch(pending)
            return await pending.future

        async with self._lock:
            if self._closed:
                pending.fail(ClientClosed(f"Client closed before {endpoint.path} was sent"))
            elif self.tracker.try_admit():
                self._dispatch(pending)
            else:
                self._enqueue(pending)
        return await pending.future

    def resolve(self, spec: RequestSpec) -> ResolvedEndpoint:
        params = spec.params
        if not spec.has_params and self._session() and IDENTITY_PLACEHOLDER in placeholders(spec.endpoint):
            params = {IDENTITY_PLACEHOLDER: CURRENT_ACCOUNT}
        return resolve_endpoint(spec.endpoint, params)

    def build_query(self, pending: PendingRequest) -> Dict[str, Any]:
        query: Dict[str, Any] = {"api_key": self._config.credentials.api_key}
        session_id = self._session()
        if session_id:
            query["session_id"] = session_id
        if pending.spec.options.append_to_response:
            query["append_to_response"] = ",".join(pending.spec.options.append_to_response)
        query.update(pending.endpoint.query)
        return query

    def build_body(self, pending: PendingRequest) -> Optional[Dict[str, Any]]:
        if pending.spec.method is HttpMethod.GET or not pending.endpoint.query:
            return None
        return dict(pending.endpoint.query)

    def snapshot(self) -> Dict[str, Any]:
        stats = self.tracker.snapshot() if self.rate_limited else {}
        stats.update({"queued": self.queue_depth, "in_flight": self.in_flight, "rate_limited": self.rate_limited})
        return stats

    async def aclose(self) -> None:
        """Fail everything still queued and wait for in-flight requests."""

        async with self._lock:
            self._closed = True
            self._scheduler.cancel()
            for pending in self.queue.clear():
                pending.fail(ClientClosed(f"Client closed before {pending.endpoint.path} was sent"))
        await self._scheduler.aclose()
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # Internals -------------------------------------------------------

    def _dispatch(self, pending: PendingRequest) -> None:
        task = asyncio.get_running_loop().create_task(self._execute(pending))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def _enqueue(self, pending: PendingRequest) -> None:
        if self._closed:
            pending.fail(ClientClosed(f"Client closed before {pending.endpoint.path} was sent"))
            return
        if pending.enqueued_at is None:
            pending.enqueued_at = self._clock()
        self.queue.enqueue(pending)
        logger.debug("Queued %s %s (%d waiting)", pending.spec.method.value, pending.endpoint.path, len(self.queue))
        self._scheduler.wake()

    async def _execute(self, pending: PendingRequest) -> None:
        spec = pending.spec
        pending.attempts += 1
        try:
            response = await self._transport.execute(
                spec.method,
                self._config.base_url,
                pending.endpoint.path,
                self.build_query(pending),
                self.build_body(pending),
                spec.options.timeout or self._config.timeout,
            )
        except Exception as exc:  # routed to the waiting caller
            pending.fail(exc)
            return

        if self.rate_limited:
            async with self._lock:
                self.tracker.on_server_feedback(response.headers.get(REMAINING_HEADER), response.headers.get(RESET_HEADER))
                if response.status == 429:
                    self.tracker.on_rate_limit_rejection(response.headers.get(RETRY_AFTER_HEADER))
                    logger.info(
                        "%s %s rejected with 429 (attempt %d); requeued",
                        spec.method.value,
                        pending.endpoint.path,
                        pending.attempts,
                    )
                    self._enqueue(pending)
                    return
        self._complete(pending, response)

    def _complete(self, pending: PendingRequest, response: Response) -> None:
        if response.ok:
            pending.resolve(response)
            return
        label = f"{pending.spec.method.value} {pending.endpoint.path}"
        if response.status == 429:
            retry_after = parse_retry_after(response.headers.get(RETRY_AFTER_HEADER), self._clock())
            pending.fail(RateLimited(f"{label} was rate limited", retry_after=retry_after, data=response.data, headers=response.headers))
            return
        pending.fail(
            TransportFailure(
                f"{label} returned HTTP {response.status}",
                status=response.status,
                data=response.data,
                headers=response.headers,
            )
        )
