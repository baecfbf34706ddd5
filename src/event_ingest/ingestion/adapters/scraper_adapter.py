"""
Scraper Source Adapters.

Bases for sources that are crawled rather than queried:
- ScraperAdapter: plain HTML over httpx, gated by robots.txt
- BrowserScraperAdapter: client-rendered pages through a BrowserDriver
"""

from __future__ import annotations

import httpx

from event_ingest.ingestion.browser.challenge import CHALLENGE_SOLVERS, ChallengeSolver
from event_ingest.ingestion.browser.session import (
    BrowserDriver,
    BrowserSessionOptions,
    PlaywrightDriver,
)
from event_ingest.ingestion.compliance import ComplianceGate
from event_ingest.ingestion.errors import AdapterConfigError
from event_ingest.ingestion.normalization.text import absolute_url

from .base_adapter import AdapterConfig, AdapterStats, BaseSourceAdapter, SourceType


class ScraperAdapter(BaseSourceAdapter):
    """
    Adapter for plain-HTML sources.

    Every page fetch goes through the compliance gate first. Failed fetches
    are counted as errors and return None so the item loop can move on.
    """

    SOURCE_TYPE = SourceType.SCRAPER

    def _validate_config(self) -> None:
        """Validate scraper configuration."""
        if not self.config.base_url:
            raise AdapterConfigError(self.source_id or "scraper", "Scraper adapter requires base_url")

    def absolute(self, href: str) -> str:
        """Resolve a site-relative href against base_url."""
        return absolute_url(href, self.config.base_url) or self.config.base_url

    async def fetch_html(
        self,
        url: str,
        stats: AdapterStats,
        check_compliance: bool = True,
    ) -> str | None:
        """
        GET a page as text.

        Args:
            url: Absolute page URL
            stats: Counters (disallow -> skipped, failure -> errors)
            check_compliance: Consult robots.txt before fetching

        Returns:
            Page HTML, or None when disallowed or failed
        """
        if check_compliance and not await self._is_allowed(url, stats):
            return None

        try:
            response = await self._get_client().get(url, timeout=self.config.request_timeout)
        except httpx.HTTPError as e:
            stats.record_error(f"Fetch failed for {url}: {type(e).__name__}")
            self.logger.warning(f"Fetch failed for {url}: {type(e).__name__}: {e}")
            return None

        if not response.is_success:
            stats.record_error(f"Fetch failed for {url}: HTTP {response.status_code}")
            self.logger.warning(f"Fetch failed for {url}: HTTP {response.status_code}")
            return None

        return response.text


class BrowserScraperAdapter(ScraperAdapter):
    """
    Adapter for client-rendered sources.

    The browser driver and challenge solver are injectable. By default a
    Playwright driver with the stealth fingerprint is used, and the solver is
    picked by the ``challenge_solver`` source key ("noop" unless set).
    """

    SOURCE_TYPE = SourceType.BROWSER

    def __init__(
        self,
        config: AdapterConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        compliance: ComplianceGate | None = None,
        driver: BrowserDriver | None = None,
        solver: ChallengeSolver | None = None,
        session_options: BrowserSessionOptions | None = None,
    ):
        super().__init__(config, client=client, compliance=compliance)
        self.session_options = session_options or BrowserSessionOptions()
        self.driver = driver or PlaywrightDriver(self.session_options)
        self.solver = solver or self._configured_solver()

    def _configured_solver(self) -> ChallengeSolver:
        name = self.config.custom_config.get("challenge_solver", "noop")
        solver_cls = CHALLENGE_SOLVERS.get(name)
        if solver_cls is None:
            raise AdapterConfigError(
                self.source_id or "browser",
                f"Unknown challenge_solver '{name}', expected one of {sorted(CHALLENGE_SOLVERS)}",
            )
        return solver_cls()
