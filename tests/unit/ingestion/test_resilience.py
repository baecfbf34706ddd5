"""
Unit tests for retry backoff and politeness delays.
"""

import asyncio
from unittest.mock import AsyncMock, patch

from event_ingest.ingestion.resilience import PolitenessDelay, RetryPolicy, sleep_ms


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_exponential_backoff_without_jitter(self):
        policy = RetryPolicy(base_delay_s=0.5, jitter=0)
        assert [policy.compute_backoff_s(a) for a in (1, 2, 3)] == [0.5, 1.0, 2.0]

    def test_backoff_capped(self):
        policy = RetryPolicy(base_delay_s=1, max_delay_s=3, jitter=0)
        assert policy.compute_backoff_s(10) == 3

    def test_fixed_and_none_modes(self):
        assert RetryPolicy(backoff_mode="fixed", base_delay_s=2, jitter=0).compute_backoff_s(5) == 2
        assert RetryPolicy(backoff_mode="none").compute_backoff_s(3) == 0.0

    def test_jitter_bounds(self):
        policy = RetryPolicy(base_delay_s=1, jitter=0.25)
        for _ in range(50):
            assert 0.75 <= policy.compute_backoff_s(1) <= 1.25

    def test_should_retry(self):
        policy = RetryPolicy(max_retries=3)
        assert policy.should_retry(1)
        assert policy.should_retry(2, 503)
        assert not policy.should_retry(2, 404)
        assert not policy.should_retry(3, 503)


class TestPolitenessDelay:
    """Tests for PolitenessDelay."""

    def test_wait_within_bounds(self):
        delay = PolitenessDelay(min_ms=100, max_ms=200)
        with patch("event_ingest.ingestion.resilience.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            slept = asyncio.run(delay.wait())

        assert 100 <= slept <= 200
        mock_sleep.assert_awaited_once()
        assert mock_sleep.await_args.args[0] == slept / 1000.0

    def test_batch_pause(self):
        delay = PolitenessDelay(min_ms=10, max_ms=10, batch_size=5, batch_min_ms=1000, batch_max_ms=1000)
        with patch("event_ingest.ingestion.resilience.asyncio.sleep", new_callable=AsyncMock):
            assert asyncio.run(delay.wait(completed=5)) == 1010
            assert asyncio.run(delay.wait(completed=4)) == 10
            assert asyncio.run(delay.wait(completed=0)) == 10

    def test_zero_delay_does_not_sleep(self):
        with patch("event_ingest.ingestion.resilience.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            assert asyncio.run(PolitenessDelay(min_ms=0, max_ms=0).wait()) == 0
            asyncio.run(sleep_ms(0))
        mock_sleep.assert_not_awaited()

    def test_sleep_ms(self):
        with patch("event_ingest.ingestion.resilience.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            asyncio.run(sleep_ms(250))
        mock_sleep.assert_awaited_once_with(0.25)
