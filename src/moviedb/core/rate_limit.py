"""Windowed request quota tracking."""

from __future__ import annotations

import logging
import math
import time
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Optional

from .errors import MalformedServerFeedback
from .models import QuotaState

logger = logging.getLogger(__name__)

MIN_RETRY_AFTER = 0.5  # seconds


class QuotaTracker:
    """Remaining request budget for one client.

    ``reset_at`` is an epoch timestamp in seconds because the server reports
    its reset time that way. The tracker does no locking of its own; the
    dispatcher owning it serialises every call.
    """

    def __init__(self, ceiling: int = 40, window: float = 10.0, clock: Callable[[], float] = time.time) -> None:
        self._ceiling = ceiling
        self._window = window
        self._clock = clock
        self.state = QuotaState(remaining=ceiling, reset_at=clock() + window)

    @property
    def remaining(self) -> int:
        return self.state.remaining

    @property
    def reset_at(self) -> Optional[float]:
        return self.state.reset_at

    def try_admit(self) -> bool:
        if self.state.remaining <= 0:
            return False
        self.state.remaining -= 1
        return True

    def seconds_until_reset(self) -> float:
        if self.state.reset_at is None:
            return 0.0
        return max(self.state.reset_at - self._clock(), 0.0)

    def on_window_elapsed(self) -> bool:
        """Restore the ceiling once the current window is over."""

        now = self._clock()
        if self.state.reset_at is not None and now < self.state.reset_at:
            return False
        self.state.remaining = self._ceiling
        self.state.reset_at = now + self._window
        logger.debug("Quota window rolled over; %d requests until %.3f", self._ceiling, self.state.reset_at)
        return True

    def on_server_feedback(self, remaining_header: Any, reset_header: Any) -> bool:
        """Adopt the server's ``x-ratelimit-*`` values.

        Returns ``False`` and leaves the state untouched when the headers are
        absent or cannot be parsed.
        """

        if remaining_header is None and reset_header is None:
            return False
        try:
            remaining = _parse_int(remaining_header, "x-ratelimit-remaining")
            reset_at = _parse_int(reset_header, "x-ratelimit-reset")
        except MalformedServerFeedback as exc:
            logger.warning("Ignoring quota headers: %s", exc)
            return False
        if remaining is not None:
            self.state.remaining = max(remaining, 0)
        if reset_at is not None:
            self.state.reset_at = float(reset_at)
        return True

    def on_rate_limit_rejection(self, retry_after: Any = None) -> None:
        """Fallback for a 429 that carried no usable reset time.

        The reset is only moved when the current one is unknown or already
        past, so it never shortens a reset the server reported earlier.
        """

        now = self._clock()
        self.state.remaining = 0
        if self.state.reset_at is None or self.state.reset_at < now:
            delay = max(parse_retry_after(retry_after, now), MIN_RETRY_AFTER)
            self.state.reset_at = now + delay
            logger.warning("Rate limited by server; retrying in %.1fs", delay)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "ceiling": self._ceiling,
            "remaining": self.state.remaining,
            "reset_at": self.state.reset_at,
            "reset_in": self.seconds_until_reset(),
        }


def parse_retry_after(value: Any, now: Optional[float] = None) -> float:
    """Seconds to wait from a ``Retry-After`` value (delta or HTTP date)."""

    if value is None:
        return 0.0
    text = str(value).strip()
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        return seconds if math.isfinite(seconds) else 0.0
    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return 0.0
    current = time.time() if now is None else now
    return when.timestamp() - current


def _parse_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise MalformedServerFeedback(f"{name}={value!r}") from exc
