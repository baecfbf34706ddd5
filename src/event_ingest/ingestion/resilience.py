"""
event_ingest.ingestion.resilience

Politeness delays and retry backoff shared by adapters.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    backoff_mode: str = "exp"  # exp | fixed | none
    base_delay_s: float = 0.5
    max_delay_s: float = 30.0
    jitter: float = 0.25
    retry_on_status: tuple[int, ...] = (408, 429, 500, 502, 503, 504)

    def compute_backoff_s(self, attempt: int) -> float:
        """
        attempt: 1..N
        """
        if self.backoff_mode == "none":
            return 0.0
        if self.backoff_mode == "fixed":
            delay = self.base_delay_s
        else:
            delay = self.base_delay_s * (2 ** max(0, attempt - 1))

        delay = min(delay, self.max_delay_s)
        if self.jitter > 0:
            delay = delay * (1.0 + (random.random() * 2 - 1) * self.jitter)  # +- jitter
        return max(0.0, delay)

    def should_retry(self, attempt: int, status_code: int | None = None) -> bool:
        """True while attempts remain and the status (if any) is retryable."""
        if attempt >= self.max_retries:
            return False
        return status_code is None or status_code in self.retry_on_status


@dataclass(frozen=True)
class PolitenessDelay:
    """
    Randomized pause between requests to the same site.

    Every ``batch_size`` requests an extra, longer pause is taken.
    """

    min_ms: int = 1000
    max_ms: int = 1500
    batch_size: int = 0
    batch_min_ms: int = 0
    batch_max_ms: int = 0

    def sample_ms(self) -> float:
        low, high = sorted((self.min_ms, self.max_ms))
        return random.uniform(low, high)

    async def wait(self, completed: int = 0) -> float:
        """
        Sleep for one jittered interval.

        Args:
            completed: Requests completed so far (drives the batch pause)

        Returns:
            Total milliseconds slept
        """
        total = self.sample_ms()
        if self.batch_size > 0 and completed > 0 and completed % self.batch_size == 0:
            low, high = sorted((self.batch_min_ms, self.batch_max_ms))
            total += random.uniform(low, high)
        if total > 0:
            await asyncio.sleep(total / 1000.0)
        return total


async def sleep_ms(ms: float) -> None:
    """Sleep for a number of milliseconds (no-op for non-positive values)."""
    if ms > 0:
        await asyncio.sleep(ms / 1000.0)
