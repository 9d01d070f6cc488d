"""Rate limiting for App Search API calls."""

import asyncio
import time


class RateLimiter:
    """Token bucket rate limiter for API requests."""

    def __init__(self, requests_per_second: float = 10.0):
        """Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second allowed
        """
        self.requests_per_second = requests_per_second
        self.tokens = requests_per_second
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(
            self.requests_per_second,
            self.tokens + elapsed * self.requests_per_second,
        )
        self.last_update = now

    async def acquire(self) -> None:
        """Acquire a token for making a request.

        Blocks until a token is available. Concurrent callers queue on the
        internal lock, so tokens are handed out one at a time.
        """
        async with self._lock:
            self._refill()

            if self.tokens >= 1:
                self.tokens -= 1
                return

            sleep_time = (1 - self.tokens) / self.requests_per_second
            await asyncio.sleep(sleep_time)
            self._refill()
            self.tokens = max(0.0, self.tokens - 1)

    def can_proceed(self) -> bool:
        """Check if a request can proceed without blocking.

        Returns:
            True if a token is available, False otherwise
        """
        elapsed = time.monotonic() - self.last_update
        tokens = min(
            self.requests_per_second, self.tokens + elapsed * self.requests_per_second
        )
        return tokens >= 1
