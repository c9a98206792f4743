"""
Resilience patterns for network operations.

Retry delays with exponential backoff, and a per-host circuit breaker that
stops hammering GitHub or the bottle registry once they keep failing.
"""

import logging
import random
import time
from collections import defaultdict

logger = logging.getLogger(__name__)

# Statuses worth another attempt; anything else is final.
RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


class ExponentialBackoff:
    """Exponential backoff with jitter for retry logic."""

    def __init__(self, base_delay: float = 1.0, max_delay: float = 30.0, max_retries: int = 3):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_retries = max_retries

    def calculate_delay(self, attempt: int, retry_after: str | None = None) -> float:
        """
        Delay before the next attempt.

        A numeric Retry-After header wins over the computed delay but is still
        capped at max_delay.
        """
        if retry_after is not None:
            try:
                return min(max(0.0, float(retry_after)), self.max_delay)
            except ValueError:
                logger.debug(f"Ignoring non-numeric Retry-After: {retry_after!r}")

        delay = min(self.base_delay * (2**attempt), self.max_delay)
        # ±25% jitter
        jitter = delay * 0.25 * (random.random() * 2 - 1)
        return max(0, delay + jitter)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_retries


class CircuitBreaker:
    """
    Stops sending requests to a host that keeps failing.

    After failure_threshold consecutive failures the host is blocked for
    timeout seconds. A success, or the block running out, clears its record.
    """

    def __init__(self, failure_threshold: int = 5, timeout: float = 120.0, clock=time.monotonic):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.clock = clock
        self.failures: dict[str, int] = defaultdict(int)
        self.blocked_until: dict[str, float] = {}

    def record_failure(self, host: str) -> None:
        self.failures[host] += 1
        # Only the failure that crosses the threshold starts a block.
        if self.failures[host] == self.failure_threshold:
            self.blocked_until[host] = self.clock() + self.timeout
            logger.warning(
                f"{host} failed {self.failures[host]} times in a row, skipping it for {self.timeout:.0f}s"
            )

    def record_success(self, host: str) -> None:
        if host in self.blocked_until:
            logger.info(f"{host} is answering again")
        self._forget(host)

    def is_open(self, host: str) -> bool:
        """True while requests to host should fail fast."""
        deadline = self.blocked_until.get(host)
        if deadline is None:
            return False
        if self.clock() < deadline:
            return True
        logger.info(f"Block on {host} expired, allowing requests again")
        self._forget(host)
        return False

    def _forget(self, host: str) -> None:
        self.failures.pop(host, None)
        self.blocked_until.pop(host, None)
