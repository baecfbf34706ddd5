"""
API Source Adapter.

Adapter base for structured JSON feeds.
"""

import asyncio
from typing import Any

import httpx

from event_ingest.ingestion.resilience import RetryPolicy

from .base_adapter import AdapterStats, BaseSourceAdapter, SourceType


class APIAdapter(BaseSourceAdapter):
    """
    Adapter for API-based data sources.

    Provides:
    - JSON GET with retry and exponential backoff on transient failures
    - Per-request rate limiting
    """

    SOURCE_TYPE = SourceType.API
    REQUESTS_PER_SECOND: float = 4.0

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.config.max_retries)

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None,
        stats: AdapterStats,
    ) -> dict[str, Any] | None:
        """
        GET a JSON document with retry logic.

        Args:
            url: Endpoint URL
            params: Query parameters
            stats: Counters; a final failure is recorded as one error

        Returns:
            Decoded JSON object, or None on failure
        """
        client = self._get_client()
        policy = self.retry_policy
        attempt = 0

        while True:
            if self.REQUESTS_PER_SECOND > 0:
                await asyncio.sleep(1.0 / self.REQUESTS_PER_SECOND)

            status_code = None
            try:
                response = await client.get(url, params=params, timeout=self.config.request_timeout)
                status_code = response.status_code
                response.raise_for_status()
                data = response.json()
                if not isinstance(data, dict):
                    stats.record_error(f"Unexpected JSON payload from {url}")
                    return None
                return data
            except (httpx.HTTPError, ValueError) as e:
                retryable = not isinstance(e, ValueError)
                if retryable and policy.should_retry(attempt, status_code):
                    attempt += 1
                    wait_time = policy.compute_backoff_s(attempt)
                    self.logger.warning(f"Request failed, retrying in {wait_time:.1f}s: {e}")
                    await asyncio.sleep(wait_time)
                    continue

                self.logger.error(f"Request failed after {attempt} retries: {e}")
                stats.record_error(f"Request to {url} failed: {type(e).__name__}")
                return None
