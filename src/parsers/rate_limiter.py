import asyncio
import time
from collections import deque
from collections.abc import Callable


class RateLimiter:
    """Rolling one-second window limiter for async API clients.

    Explorers cap calls per second rather than spacing between calls, so a
    burst of up to ``max_rps`` requests goes out at once and the next one
    waits until the oldest leaves the window.
    """

    def __init__(self, max_rps: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        if max_rps <= 0:
            raise ValueError("max_rps must be positive")
        self._capacity = max(1, int(max_rps))
        self._window = self._capacity / max_rps
        self._clock = clock
        self._sent: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._sent and now - self._sent[0] >= self._window:
            self._sent.popleft()

    async def acquire(self) -> None:
        async with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._sent) >= self._capacity:
                await asyncio.sleep(self._window - (now - self._sent[0]))
                now = self._clock()
                self._prune(now)
            self._sent.append(now)
