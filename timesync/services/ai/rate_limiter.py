"""
Per-minute request and token budget for language-model calls.

A sliding 60-second window of (timestamp, tokens) entries; callers await
``acquire`` which sleeps until both budgets have room.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable

from timesync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60.0


class MinuteBudget:
    """Async limiter for requests-per-minute and tokens-per-minute."""

    def __init__(
        self,
        requests_per_minute: int,
        tokens_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.requests_per_minute = max(requests_per_minute, 1)
        self.tokens_per_minute = max(tokens_per_minute, 1)
        self._clock = clock
        self._sleep = sleep
        self._entries: deque[tuple[float, int]] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._entries and now - self._entries[0][0] >= WINDOW_SECONDS:
            self._entries.popleft()

    def _wait_time(self, now: float, tokens: int) -> float:
        """Seconds until a request of `tokens` fits; 0 when it fits now."""
        self._prune(now)
        used_tokens = sum(t for _, t in self._entries)
        fits_requests = len(self._entries) < self.requests_per_minute
        fits_tokens = used_tokens + tokens <= self.tokens_per_minute or not self._entries
        if fits_requests and fits_tokens:
            return 0.0
        oldest = self._entries[0][0]
        return max(WINDOW_SECONDS - (now - oldest), 0.01)

    async def acquire(self, tokens: int) -> None:
        # an oversized prompt still gets sent once the window is empty
        tokens = min(max(tokens, 1), self.tokens_per_minute)
        async with self._lock:
            while True:
                now = self._clock()
                wait = self._wait_time(now, tokens)
                if wait <= 0:
                    self._entries.append((now, tokens))
                    return
                logger.debug("AI budget exhausted, waiting", wait_seconds=round(wait, 2), tokens=tokens)
                await self._sleep(wait)
