"""
Unit tests for the api_adapter module.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from event_ingest.ingestion.adapters.api_adapter import APIAdapter
from event_ingest.ingestion.adapters.base_adapter import AdapterConfig, AdapterStats, SourceType

# =============================================================================
# FIXTURES
# =============================================================================


class FeedAdapter(APIAdapter):
    SOURCE_ID = "feed"
    BASE_URL = "https://api.example.com"

    def _validate_config(self) -> None:
        pass

    async def _collect(self, options, stats):
        return []


def scripted_client(responses):
    """Client that replays a list of responses (or exceptions) in order."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        item = responses[min(len(calls), len(responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client, calls


@pytest.fixture
def mock_sleep():
    with patch("event_ingest.ingestion.adapters.api_adapter.asyncio.sleep", new_callable=AsyncMock) as mocked:
        yield mocked


def make_adapter(client, max_retries: int = 3) -> FeedAdapter:
    config = AdapterConfig(source_id="feed", source_type=SourceType.API, max_retries=max_retries)
    return FeedAdapter(config, client=client)


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestGetJson:
    """Tests for APIAdapter.get_json."""

    def test_success(self, mock_sleep):
        """Should return the decoded object and pass params through."""
        client, calls = scripted_client([httpx.Response(200, json={"events": [1, 2]})])
        stats = AdapterStats(source="feed")

        data = asyncio.run(make_adapter(client).get_json("https://api.example.com/e", {"page": 0}, stats))

        assert data == {"events": [1, 2]}
        assert calls[0].url.params["page"] == "0"
        assert stats.errors == 0
        mock_sleep.assert_awaited_once_with(0.25)

    def test_retries_transient_status(self, mock_sleep):
        """Should retry a 503 and succeed on the next attempt."""
        client, calls = scripted_client([httpx.Response(503), httpx.Response(200, json={"ok": True})])
        stats = AdapterStats(source="feed")

        data = asyncio.run(make_adapter(client).get_json("https://api.example.com/e", None, stats))

        assert data == {"ok": True}
        assert len(calls) == 2
        assert stats.errors == 0
        # two rate-limit pauses plus one backoff
        assert mock_sleep.await_count == 3

    def test_no_retry_on_client_error(self, mock_sleep):
        """Should give up immediately on a 404."""
        client, calls = scripted_client([httpx.Response(404)])
        stats = AdapterStats(source="feed")

        assert asyncio.run(make_adapter(client).get_json("https://api.example.com/e", None, stats)) is None
        assert len(calls) == 1
        assert stats.errors == 1
        assert "HTTPStatusError" in stats.error_messages[0]

    def test_transport_errors_exhaust_retries(self, mock_sleep):
        """Should stop after max_retries retries and record one error."""
        client, calls = scripted_client([httpx.ConnectError("refused")])
        stats = AdapterStats(source="feed")

        result = asyncio.run(make_adapter(client, max_retries=2).get_json("https://api.example.com/e", None, stats))

        assert result is None
        assert len(calls) == 3
        assert stats.errors == 1

    def test_invalid_json_not_retried(self, mock_sleep):
        client, calls = scripted_client([httpx.Response(200, text="<html>oops</html>")])
        stats = AdapterStats(source="feed")

        assert asyncio.run(make_adapter(client).get_json("https://api.example.com/e", None, stats)) is None
        assert len(calls) == 1
        assert stats.errors == 1

    def test_non_object_payload(self, mock_sleep):
        client, _ = scripted_client([httpx.Response(200, json=[1, 2, 3])])
        stats = AdapterStats(source="feed")

        assert asyncio.run(make_adapter(client).get_json("https://api.example.com/e", None, stats)) is None
        assert "Unexpected JSON payload" in stats.error_messages[0]


class TestAPIAdapter:
    def test_source_type(self):
        assert FeedAdapter().source_type == SourceType.API

    def test_retry_policy_from_config(self):
        adapter = make_adapter(httpx.AsyncClient(), max_retries=5)
        assert adapter.retry_policy.max_retries == 5
