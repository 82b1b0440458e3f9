"""
Token bucket rate limiter for the enumerator.

The bucket holds up to ``burst_size`` tokens and refills continuously at
``requests_per_second``. Refill is computed lazily from the monotonic clock
on every acquire, so no background task is needed.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

from ..utils.log import get_logger


@dataclass
class RateLimiterState:
    """Mutable bucket state, owned by one RateLimiter."""

    tokens: float
    max_tokens: float
    refill_rate_per_second: float
    last_refill_timestamp: float


class RateLimiter:
    """
    Async token bucket.

    Callers ``await acquire()`` before each request; when the bucket is empty
    the coroutine sleeps for exactly the time needed to earn one token.
    """

    def __init__(
        self,
        requests_per_second: float,
        burst_size: int,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the rate limiter.

        Args:
            requests_per_second: Refill rate
            burst_size: Bucket capacity, also the initial token count
            enabled: When False, acquire() returns immediately
            clock: Monotonic time source (seconds)
        """
        self.enabled = enabled
        self._clock = clock
        self._lock = asyncio.Lock()
        self.logger = get_logger("ratelimit")

        capacity = float(max(burst_size, 1))
        self.state = RateLimiterState(
            tokens=capacity,
            max_tokens=capacity,
            refill_rate_per_second=float(requests_per_second),
            last_refill_timestamp=clock(),
        )

    @classmethod
    def from_config(cls, rate_config) -> "RateLimiter":
        """Build a limiter from a RateLimitConfig."""
        return cls(
            requests_per_second=rate_config.requests_per_second,
            burst_size=rate_config.burst_size,
            enabled=rate_config.enabled,
        )

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self.state.last_refill_timestamp
        if elapsed > 0:
            self.state.tokens = min(
                self.state.max_tokens,
                self.state.tokens + elapsed * self.state.refill_rate_per_second
            )
            self.state.last_refill_timestamp = now

    async def acquire(self) -> None:
        """Wait until a token is available, then take it."""
        if not self.enabled:
            return

        async with self._lock:
            self._refill()

            if self.state.tokens < 1:
                wait = (1 - self.state.tokens) / self.state.refill_rate_per_second
                self.logger.debug(f"Rate limit reached, waiting {wait:.3f}s")
                await asyncio.sleep(wait)
                self._refill()
                # The clock may not have advanced by the full wait
                self.state.tokens = max(self.state.tokens, 1.0)

            self.state.tokens -= 1

    def limit_rate(self, requests_per_second: float) -> None:
        """
        Lower the refill rate, e.g. to honour a robots.txt Crawl-delay.

        A higher rate than the current one is ignored.

        Args:
            requests_per_second: New maximum rate
        """
        if requests_per_second <= 0:
            return
        if not self.enabled:
            # A crawl delay applies even when the config disables limiting
            self.enabled = True
            self.state.refill_rate_per_second = requests_per_second
            self.state.max_tokens = 1.0
            self.state.tokens = min(self.state.tokens, 1.0)
            return
        if requests_per_second < self.state.refill_rate_per_second:
            self.state.refill_rate_per_second = requests_per_second

    @property
    def tokens(self) -> float:
        return self.state.tokens
