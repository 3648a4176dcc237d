"""Pending request queue and the routine that drains it."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Iterator, List, Optional, Set

from ..core.endpoint import ResolvedEndpoint
from ..core.errors import QueueTimeout
from ..core.models import RequestSpec, Response
from ..core.rate_limit import QuotaTracker

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class PendingRequest:
    """A submitted request together with the future its caller awaits.

    The future is completed exactly once however many times the request
    is retried; later completions are ignored.
    """

    spec: RequestSpec
    endpoint: ResolvedEndpoint
    future: "asyncio.Future[Response]"
    enqueued_at: Optional[float] = None
    attempts: int = field(default=0)

    @property
    def done(self) -> bool:
        return self.future.done()

    def resolve(self, response: Response) -> None:
        if not self.future.done():
            self.future.set_result(response)

    def fail(self, exc: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(exc)


class PendingRequestQueue:
    """FIFO of requests waiting for quota."""

    def __init__(self) -> None:
        self._items: Deque[PendingRequest] = deque()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[PendingRequest]:
        return iter(self._items)

    def enqueue(self, pending: PendingRequest) -> None:
        self._items.append(pending)

    def pop(self) -> PendingRequest:
        return self._items.popleft()

    def discard_done(self) -> int:
        """Drop entries whose caller stopped waiting."""

        before = len(self._items)
        self._items = deque(item for item in self._items if not item.done)
        return before - len(self._items)

    def expire(self, deadline: float) -> List[PendingRequest]:
        """Remove and return entries queued before ``deadline``."""

        expired = [item for item in self._items if item.enqueued_at is not None and item.enqueued_at < deadline]
        if expired:
            self._items = deque(item for item in self._items if item not in expired)
        return expired

    def earliest_enqueued_at(self) -> Optional[float]:
        """Enqueue time of the longest-waiting entry, wherever it sits.

        Requests requeued after a 429 keep their first enqueue time but go
        to the tail, so the head is not necessarily the oldest.
        """

        stamps = [item.enqueued_at for item in self._items if item.enqueued_at is not None]
        return min(stamps) if stamps else None

    def clear(self) -> List[PendingRequest]:
        items = list(self._items)
        self._items.clear()
        return items


class QueueDrainer:
    """Re-admits queued requests once quota is available.

    :meth:`drain` performs one cycle and returns the delay in seconds until
    it should run again, or ``None`` when the queue is empty. Scheduling is
    left to :class:`DrainScheduler`.
    """

    def __init__(
        self,
        tracker: QuotaTracker,
        queue: PendingRequestQueue,
        dispatch: Callable[[PendingRequest], None],
        clock: Callable[[], float] = time.time,
        max_wait: Optional[float] = None,
    ) -> None:
        self._tracker = tracker
        self._queue = queue
        self._dispatch = dispatch
        self._clock = clock
        self._max_wait = max_wait

    def drain(self) -> Optional[float]:
        self._queue.discard_done()
        self._expire_stale()
        if not self._queue:
            return None

        if self._tracker.remaining <= 0:
            delay = self._tracker.seconds_until_reset()
            if delay > 0:
                return self._until_next_expiry(delay)
            self._tracker.on_window_elapsed()

        dispatched = 0
        while self._queue and self._tracker.try_admit():
            self._dispatch(self._queue.pop())
            dispatched += 1
        logger.debug("Drained %d queued request(s); %d still waiting", dispatched, len(self._queue))
        return 0.0 if self._queue else None

    def _expire_stale(self) -> None:
        if self._max_wait is None:
            return
        for pending in self._queue.expire(self._clock() - self._max_wait):
            logger.warning("Dropping %s %s after %.1fs in queue", pending.spec.method.value, pending.endpoint.path, self._max_wait)
            pending.fail(QueueTimeout(f"{pending.spec.method.value} {pending.endpoint.path} waited more than {self._max_wait:.1f}s for quota"))

    def _until_next_expiry(self, delay: float) -> float:
        earliest = self._queue.earliest_enqueued_at()
        if self._max_wait is None or earliest is None:
            return delay
        return max(min(delay, earliest + self._max_wait - self._clock()), 0.0)


class DrainScheduler:
    """Runs drain cycles on the event loop, one at a time."""

    def __init__(self, drain: Callable[[], Optional[float]], lock: asyncio.Lock) -> None:
        self._drain = drain
        self._lock = lock
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set["asyncio.Task[None]"] = set()

    def wake(self, delay: float = 0.0) -> None:
        """Replace any pending wake with one ``delay`` seconds from now."""

        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(max(delay, 0.0), self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.get_running_loop().create_task(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self) -> None:
        async with self._lock:
            delay = self._drain()
            if delay is not None:
                self.wake(delay)

    async def aclose(self) -> None:
        self.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
