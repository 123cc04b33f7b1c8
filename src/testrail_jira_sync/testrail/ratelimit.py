"""Fixed-interval request spacing for the TestRail API.

TestRail Cloud allows 180 API requests per minute per instance. The job
makes every call sequentially, so a fixed minimum gap between the start of
consecutive calls is enough to stay under the ceiling: 0.333s gives at most
~180 calls per minute. The spacing is unconditional, not adaptive.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_SECONDS = 0.333


class RequestSpacer:
    """Guarantees at least ``min_interval`` seconds between request starts.

    Callers wrap each request in ``async with spacer:``. Entering waits until
    the interval since the previous request has elapsed and holds a lock for
    the duration of the request, so concurrent callers are serialised and
    still observe the interval.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize request spacer.

        Args:
            min_interval: Minimum seconds between the start of two requests.
            clock: Monotonic clock returning seconds.
            sleep: Async sleep function.
        """
        if min_interval < 0:
            msg = f"min_interval must be >= 0, got {min_interval}"
            raise ValueError(msg)

        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request_at: float | None = None
        self.requests_made = 0

    def seconds_until_allowed(self) -> float:
        """Seconds the next request still has to wait (0.0 if allowed now)."""
        if self._last_request_at is None:
            return 0.0
        elapsed = self._clock() - self._last_request_at
        return max(0.0, self.min_interval - elapsed)

    async def acquire(self) -> None:
        """Block until the next request may start, then record its start."""
        await self._lock.acquire()
        try:
            wait = self.seconds_until_allowed()
            if wait > 0:
                logger.debug("Spacing TestRail request: sleeping %.3fs", wait)
                await self._sleep(wait)
            self._last_request_at = self._clock()
            self.requests_made += 1
        except BaseException:
            self._lock.release()
            raise

    def release(self) -> None:
        """Release the slot taken by ``acquire``."""
        self._lock.release()

    async def __aenter__(self) -> "RequestSpacer":
        """Async context manager entry."""
        await self.acquire()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Async context manager exit."""
        self.release()
