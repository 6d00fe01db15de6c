"""
Rolling-window rate limiter with server-imposed pauses.

Each client instance owns one limiter. The limiter tracks how many
requests succeeded in the current window and an optional hard-pause
deadline taken from a 429 response. Server deadlines are absolute epoch
times, so the limiter runs on the wall clock rather than a monotonic one.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from tabloid.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class RateLimitState:
    """Mutable budget accounting for a single client."""

    request_count: int = 0
    window_reset_at: float = 0.0
    paused_until: float | None = None

    @property
    def is_paused(self) -> bool:
        return self.paused_until is not None


class RollingWindowLimiter:
    """
    Request budget per fixed window plus a server-driven hard pause.

    acquire() is called before every HTTP request and may suspend the
    caller. record_request() is called only after a request succeeds, so
    retried attempts do not consume budget until they go through.

    Usage:
        limiter = RollingWindowLimiter(max_requests=1450, window_seconds=900)
        await limiter.acquire()
        response = await client.get(...)
        limiter.record_request()
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        name: str = "client",
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize limiter.

        Args:
            max_requests: Requests allowed per window
            window_seconds: Window length in seconds
            name: Label used in logs and metrics
            clock: Wall-clock source returning epoch seconds
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self._state = RateLimitState(window_reset_at=clock() + window_seconds)
        self._lock = asyncio.Lock()

    @property
    def state(self) -> RateLimitState:
        return self._state

    def _reset_window(self) -> None:
        self._state.request_count = 0
        self._state.window_reset_at = self._clock() + self.window_seconds

    async def acquire(self) -> None:
        """Suspend until a request may be sent under the current limits."""
        async with self._lock:
            now = self._clock()
            paused_until = self._state.paused_until

            if paused_until is not None:
                if now < paused_until:
                    wait_time = paused_until - now
                    logger.warning(
                        f"{self.name}: server rate limit in effect, pausing {wait_time:.1f}s"
                    )
                    get_metrics().record_rate_limit_pause(self.name, "server")
                    await asyncio.sleep(wait_time)
                    # The server's reset supersedes local accounting
                    self._reset_window()
                    now = self._clock()
                self._state.paused_until = None

            if now >= self._state.window_reset_at:
                self._reset_window()
                logger.debug(f"{self.name}: rate limit window reset")

            if self._state.request_count >= self.max_requests:
                wait_time = self._state.window_reset_at - now
                if wait_time > 0:
                    logger.warning(
                        f"{self.name}: request budget of {self.max_requests} used, "
                        f"pausing {wait_time:.1f}s"
                    )
                    get_metrics().record_rate_limit_pause(self.name, "budget")
                    await asyncio.sleep(wait_time)
                self._reset_window()

    def record_request(self) -> None:
        """Count a successful request against the current window."""
        self._state.request_count += 1

    def pause_until(self, deadline: float) -> None:
        """
        Block all requests until `deadline` (epoch seconds).

        A later deadline never gets shortened by an earlier one.
        """
        current = self._state.paused_until
        if current is None or deadline > current:
            self._state.paused_until = deadline
