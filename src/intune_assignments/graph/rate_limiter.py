from __future__ import annotations

import asyncio
import random
import time
from collections import deque
from dataclasses import dataclass

import httpx

from intune_assignments.graph.errors import GraphAPIError
from intune_assignments.utils import get_logger


logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class RateLimitPolicy:
    """Pacing and retry limits for one Graph client.

    Intune read endpoints throttle at roughly a thousand requests per twenty
    seconds per tenant; the defaults stay just under that.
    """

    window_requests: int = 1000
    window_seconds: float = 20.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 32.0
    cooldown_seconds: float = 60.0


class RateLimiter:
    """Sliding request window plus back-off bookkeeping after HTTP 429."""

    def __init__(self, policy: RateLimitPolicy | None = None) -> None:
        self.policy = policy or RateLimitPolicy()
        self._lock = asyncio.Lock()
        self._sent: deque[float] = deque()
        self._throttled_at: float | None = None
        self._throttle_streak = 0

    @property
    def max_retries(self) -> int:
        return self.policy.max_retries

    @staticmethod
    def _now() -> float:
        return time.monotonic()

    async def can_make_request(self) -> bool:
        async with self._lock:
            self._expire()
            if len(self._sent) < self.policy.window_requests:
                return True
            logger.debug("Request window full", in_window=len(self._sent))
            return False

    async def record_request(self) -> None:
        async with self._lock:
            self._sent.append(self._now())

    async def record_rate_limit(self) -> None:
        async with self._lock:
            self._throttled_at = self._now()
            self._throttle_streak += 1
        logger.warning("Graph throttled the request", streak=self._throttle_streak)

    async def reset_rate_limit_tracking(self) -> None:
        async with self._lock:
            self._throttle_streak = 0

    async def calculate_delay(self) -> float:
        """Seconds to wait before the next request is sent."""

        async with self._lock:
            self._expire()
            if (
                self._throttled_at is not None
                and self._now() - self._throttled_at < self.policy.cooldown_seconds
            ):
                return min(2.0 * self._throttle_streak, 10.0)
            # Ease off once the window is more than 80% used.
            usage = len(self._sent) / self.policy.window_requests
            return max(0.0, (usage - 0.8) * 5)

    async def calculate_retry_delay(
        self,
        *,
        attempt: int,
        retry_after_header: str | None = None,
    ) -> float:
        if retry_after_header:
            try:
                return float(retry_after_header)
            except ValueError:
                logger.debug("Ignoring malformed Retry-After", header=retry_after_header)

        backoff = self.policy.retry_base_delay * 2 ** max(0, attempt - 1)
        delay = min(backoff * random.uniform(0.8, 1.2), self.policy.retry_max_delay)
        logger.info("Backing off before retry", delay=round(delay, 2), attempt=attempt)
        return delay

    async def should_retry(self, *, attempt: int, error: Exception) -> bool:
        if attempt > self.policy.max_retries:
            logger.warning("Giving up after retries", attempt=attempt)
            return False
        if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
            return True
        if isinstance(error, GraphAPIError):
            return error.is_retriable
        return False

    def _expire(self) -> None:
        horizon = self._now() - self.policy.window_seconds
        while self._sent and self._sent[0] < horizon:
            self._sent.popleft()


rate_limiter = RateLimiter()

__all__ = ["RateLimitPolicy", "RateLimiter", "rate_limiter"]
