"""
Unit tests for the scraper_adapter module.
"""

import asyncio

import httpx
import pytest

from event_ingest.ingestion.adapters.base_adapter import AdapterConfig, AdapterStats, SourceType
from event_ingest.ingestion.adapters.scraper_adapter import BrowserScraperAdapter, ScraperAdapter
from event_ingest.ingestion.browser.challenge import HeuristicChallengeSolver, NoopChallengeSolver
from event_ingest.ingestion.browser.session import BrowserSessionOptions, PlaywrightDriver
from event_ingest.ingestion.compliance import ComplianceGate
from event_ingest.ingestion.errors import AdapterConfigError


class SiteScraper(ScraperAdapter):
    SOURCE_ID = "site"
    BASE_URL = "https://site.test"

    async def _collect(self, options, stats):
        return []


class RenderedScraper(BrowserScraperAdapter):
    SOURCE_ID = "rendered"
    BASE_URL = "https://rendered.test"

    async def _collect(self, options, stats):
        return []


class TestScraperAdapter:
    """Tests for ScraperAdapter."""

    def test_requires_base_url(self):
        class NoUrl(SiteScraper):
            BASE_URL = ""

        with pytest.raises(AdapterConfigError, match="requires base_url"):
            NoUrl(AdapterConfig(source_id="nourl", source_type=SourceType.SCRAPER))

    def test_absolute(self):
        adapter = SiteScraper()
        assert adapter.absolute("/events/1") == "https://site.test/events/1"
        assert adapter.absolute("https://other.test/x") == "https://other.test/x"
        assert adapter.absolute("") == "https://site.test"

    def test_fetch_html(self, html_client, robots_allow_all):
        client = html_client({"https://site.test/events": "<h1>Events</h1>"})
        adapter = SiteScraper(client=client, compliance=ComplianceGate(client=robots_allow_all))
        stats = AdapterStats(source="site")

        html = asyncio.run(adapter.fetch_html("https://site.test/events", stats))

        assert html == "<h1>Events</h1>"
        assert stats.errors == 0

    def test_http_error_status_recorded(self, html_client, robots_allow_all):
        client = html_client({}, status={"https://site.test/gone": 500})
        adapter = SiteScraper(client=client, compliance=ComplianceGate(client=robots_allow_all))
        stats = AdapterStats(source="site")

        assert asyncio.run(adapter.fetch_html("https://site.test/gone", stats)) is None
        assert stats.errors == 1
        assert "HTTP 500" in stats.error_messages[0]

    def test_transport_error_recorded(self, robots_allow_all):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        adapter = SiteScraper(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            compliance=ComplianceGate(client=robots_allow_all),
        )
        stats = AdapterStats(source="site")

        assert asyncio.run(adapter.fetch_html("https://site.test/slow", stats)) is None
        assert stats.error_messages == ["Fetch failed for https://site.test/slow: ReadTimeout"]

    def test_disallowed_page_skipped_without_fetch(self, html_client):
        pages = {"https://site.test/robots.txt": "User-agent: *\nDisallow: /members"}
        client = html_client(pages)
        adapter = SiteScraper(client=client, compliance=ComplianceGate(client=client))
        stats = AdapterStats(source="site")

        assert asyncio.run(adapter.fetch_html("https://site.test/members/1", stats)) is None
        assert stats.skipped == 1
        assert stats.errors == 0
        assert client.requested == ["https://site.test/robots.txt"]

    def test_compliance_check_can_be_bypassed(self, html_client):
        pages = {
            "https://site.test/robots.txt": "User-agent: *\nDisallow: /members",
            "https://site.test/members/1": "ok",
        }
        client = html_client(pages)
        adapter = SiteScraper(client=client, compliance=ComplianceGate(client=client))
        stats = AdapterStats(source="site")

        assert asyncio.run(adapter.fetch_html("https://site.test/members/1", stats, check_compliance=False)) == "ok"


class TestBrowserScraperAdapter:
    """Tests for BrowserScraperAdapter defaults."""

    def test_defaults(self):
        adapter = RenderedScraper()
        assert adapter.source_type == SourceType.BROWSER
        assert isinstance(adapter.driver, PlaywrightDriver)
        assert isinstance(adapter.solver, NoopChallengeSolver)
        assert adapter.session_options.headless is True

    def test_injected_driver_and_options(self):
        driver = object()
        options = BrowserSessionOptions(headless=False)
        adapter = RenderedScraper(driver=driver, session_options=options)
        assert adapter.driver is driver
        assert adapter.session_options is options

    def test_solver_from_config(self):
        config = AdapterConfig(
            source_id="rendered",
            source_type=SourceType.BROWSER,
            base_url="https://rendered.test",
            custom_config={"challenge_solver": "heuristic"},
        )
        adapter = RenderedScraper(config)
        assert isinstance(adapter.solver, HeuristicChallengeSolver)

    def test_injected_solver_wins_over_config(self):
        solver = NoopChallengeSolver()
        config = AdapterConfig(
            source_id="rendered",
            source_type=SourceType.BROWSER,
            base_url="https://rendered.test",
            custom_config={"challenge_solver": "heuristic"},
        )
        assert RenderedScraper(config, solver=solver).solver is solver

    def test_unknown_solver_name(self):
        config = AdapterConfig(
            source_id="rendered",
            source_type=SourceType.BROWSER,
            base_url="https://rendered.test",
            custom_config={"challenge_solver": "oracle"},
        )
        with pytest.raises(AdapterConfigError, match="challenge_solver 'oracle'"):
            RenderedScraper(config)
