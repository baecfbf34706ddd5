"""
Base Source Adapter.

Abstract base class defining the interface for all source adapters.
Implements the Strategy pattern for different data fetching strategies
(structured API feeds, plain HTML scraping, browser-rendered pages).
"""

from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

import httpx
from pydantic import ValidationError

from event_ingest.ingestion.compliance import ComplianceGate
from event_ingest.ingestion.resilience import PolitenessDelay
from event_ingest.monitoring.logging import with_context
from event_ingest.schemas.event import CanonicalEvent

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

MAX_ERROR_MESSAGES = 50

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(key: str) -> str:
    """maxItems -> max_items; snake_case keys pass through."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


class SourceType(str, Enum):
    """Type of data source."""

    API = "api"
    SCRAPER = "scraper"
    BROWSER = "browser"


# ============================================================================
# OPTIONS / STATS / RESULTS
# ============================================================================


@dataclass
class AdapterOptions:
    """
    Per-invocation adapter options.

    Recognized fields bound crawl volume, toggle the detail phase, set
    politeness pacing and restrict listing categories. Anything else lands
    in ``extra`` for the source to interpret.
    """

    max_items: int | None = None
    fetch_detail_pages: bool = True
    detail_fetch_delay_ms: int = 1000
    category_filter: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AdapterOptions:
        """Build options from a dict using snake_case or camelCase keys."""
        return cls().merged_with(data)

    def merged_with(self, overrides: AdapterOptions | dict[str, Any] | None) -> AdapterOptions:
        """
        Return a copy with caller-provided values applied on top.

        Args:
            overrides: Either a full AdapterOptions (replaces recognized fields,
                merges extra) or a dict where only the present keys override.

        Returns:
            New AdapterOptions
        """
        if overrides is None:
            return AdapterOptions(**{**asdict(self), "extra": dict(self.extra)})

        if isinstance(overrides, AdapterOptions):
            merged = asdict(overrides)
            merged["extra"] = {**self.extra, **overrides.extra}
            return AdapterOptions(**merged)

        known = {f.name for f in fields(self)} - {"extra"}
        values = asdict(self)
        extra = dict(self.extra)
        for raw_key, value in overrides.items():
            key = to_snake(str(raw_key))
            if key == "extra" and isinstance(value, dict):
                extra.update({to_snake(k): v for k, v in value.items()})
            elif key in known:
                values[key] = value
            else:
                extra[key] = value

        values["extra"] = extra
        if values["category_filter"] is None:
            values["category_filter"] = []
        elif isinstance(values["category_filter"], str):
            values["category_filter"] = [values["category_filter"]]
        else:
            values["category_filter"] = list(values["category_filter"])
        return AdapterOptions(**values)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a source-specific option."""
        return self.extra.get(key, default)


@dataclass
class AdapterStats:
    """Per-adapter counters reported to the orchestrator."""

    source: str
    fetched: int = 0
    normalised: int = 0
    errors: int = 0
    skipped: int = 0
    fallbacks: int = 0
    duration_ms: float = 0.0
    error_messages: list[str] = field(default_factory=list)

    def record_error(self, message: str) -> None:
        self.errors += 1
        if len(self.error_messages) < MAX_ERROR_MESSAGES:
            self.error_messages.append(message)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FetchResult:
    """
    Result of one adapter invocation.

    Provides a unified result format for API, scraper and browser sources.
    """

    source: str
    events: list[CanonicalEvent] = field(default_factory=list)
    stats: AdapterStats | None = None
    fetch_started_at: datetime | None = None
    fetch_ended_at: datetime | None = None

    def __post_init__(self):
        if self.stats is None:
            self.stats = AdapterStats(source=self.source)

    @property
    def success(self) -> bool:
        return self.stats.errors == 0 or bool(self.events)

    @property
    def duration_seconds(self) -> float:
        """Calculate fetch duration."""
        if self.fetch_started_at and self.fetch_ended_at:
            return (self.fetch_ended_at - self.fetch_started_at).total_seconds()
        return 0.0


@dataclass
class AdapterConfig:
    """
    Static configuration for a source adapter.

    Loaded from the ``sources`` section of ingestion.yaml.
    """

    source_id: str
    source_type: SourceType
    base_url: str = ""
    request_timeout: float = 15.0
    max_retries: int = 3
    headers: dict[str, str] = field(default_factory=dict)
    default_options: dict[str, Any] = field(default_factory=dict)
    custom_config: dict[str, Any] = field(default_factory=dict)


# ============================================================================
# BASE ADAPTER
# ============================================================================


class BaseSourceAdapter(ABC):
    """
    Abstract base class for source adapters.

    ``fetch`` is the public entry point: it resolves options, times the run
    and hands a fresh AdapterStats to ``_collect``. Item-level failures are
    counted in the stats; anything that escapes ``_collect`` is an
    adapter-level failure for the orchestrator to isolate.

    Subclasses must implement:
        - _collect(): Discover, extract and normalize events
        - _validate_config(): Validate adapter-specific configuration
    """

    SOURCE_ID: ClassVar[str] = ""
    SOURCE_TYPE: ClassVar[SourceType] = SourceType.SCRAPER
    BASE_URL: ClassVar[str] = ""
    DEFAULT_OPTIONS: ClassVar[dict[str, Any]] = {}

    def __init__(
        self,
        config: AdapterConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        compliance: ComplianceGate | None = None,
    ):
        """
        Initialize the adapter.

        Args:
            config: AdapterConfig; defaults are built from the class attributes
            client: Shared async HTTP client (created lazily when omitted)
            compliance: Shared robots.txt gate (created lazily when omitted)
        """
        self.config = config or AdapterConfig(
            source_id=self.SOURCE_ID,
            source_type=self.SOURCE_TYPE,
            base_url=self.BASE_URL,
        )
        if not self.config.base_url:
            self.config.base_url = self.BASE_URL
        self.logger = with_context(
            logging.getLogger(f"adapter.{self.config.source_id}"),
            source_id=self.config.source_id,
        )

        self._client = client
        self._owns_client = client is None
        self._compliance = compliance
        self._owns_compliance = compliance is None
        self._validate_config()

    @property
    def source_type(self) -> SourceType:
        return self.config.source_type

    @property
    def source_id(self) -> str:
        return self.config.source_id

    def default_options(self) -> AdapterOptions:
        """Class defaults overlaid with config defaults from YAML."""
        return AdapterOptions.from_dict(self.DEFAULT_OPTIONS).merged_with(self.config.default_options)

    def resolve_options(self, options: AdapterOptions | dict[str, Any] | None = None) -> AdapterOptions:
        return self.default_options().merged_with(options)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def fetch(self, options: AdapterOptions | dict[str, Any] | None = None) -> FetchResult:
        """
        Fetch and normalize events from the source.

        Args:
            options: Caller overrides on top of the adapter defaults

        Returns:
            FetchResult with canonical events and per-adapter stats
        """
        opts = self.resolve_options(options)
        stats = AdapterStats(source=self.source_id)
        started = datetime.now(UTC)
        t0 = time.perf_counter()

        self.logger.info(
            f"Starting fetch (max_items={opts.max_items}, "
            f"detail_pages={'on' if opts.fetch_detail_pages else 'off'})"
        )
        try:
            events = await self._collect(opts, stats)
        finally:
            stats.duration_ms = round((time.perf_counter() - t0) * 1000, 2)

        if opts.max_items is not None:
            events = events[: opts.max_items]
        stats.normalised = len(events)

        self.logger.info(
            f"Finished: {stats.normalised} events, {stats.errors} errors, "
            f"{stats.skipped} skipped, {stats.fallbacks} fallbacks in {stats.duration_ms:.0f}ms"
        )
        return FetchResult(
            source=self.source_id,
            events=events,
            stats=stats,
            fetch_started_at=started,
            fetch_ended_at=datetime.now(UTC),
        )

    @abstractmethod
    async def _collect(self, options: AdapterOptions, stats: AdapterStats) -> list[CanonicalEvent]:
        """
        Discover, extract and normalize events.

        Args:
            options: Resolved options
            stats: Counters to update (fetched, errors, skipped, fallbacks)

        Returns:
            Canonical events
        """
        pass

    @abstractmethod
    def _validate_config(self) -> None:
        """
        Validate adapter-specific configuration.

        Raises:
            AdapterConfigError: If configuration is invalid
        """
        pass

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None:
            headers = {
                "User-Agent": DEFAULT_USER_AGENT,
                "Accept-Language": "en-AU,en;q=0.9",
                **self.config.headers,
            }
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=httpx.Timeout(self.config.request_timeout),
                follow_redirects=True,
            )
        return self._client

    def _get_compliance(self) -> ComplianceGate:
        if self._compliance is None:
            self._compliance = ComplianceGate()
        return self._compliance

    async def _is_allowed(self, url: str, stats: AdapterStats) -> bool:
        """Compliance check; a disallow is a silent skip, not an error."""
        allowed = await self._get_compliance().is_allowed(url)
        if not allowed:
            stats.skipped += 1
            self.logger.info(f"Skipping {url}: disallowed by robots.txt")
        return allowed

    async def _polite_delay(self, delay_ms: int, completed: int = 0) -> None:
        """Jittered pause of delay_ms to 1.25 x delay_ms."""
        if delay_ms <= 0:
            return
        await PolitenessDelay(min_ms=delay_ms, max_ms=int(delay_ms * 1.25)).wait(completed)

    def _build_event(self, stats: AdapterStats, **fields: Any) -> CanonicalEvent | None:
        """
        Validate a normalized record.

        Returns:
            CanonicalEvent, or None (counted as an error) if validation fails
        """
        try:
            return CanonicalEvent(source=self.source_id, **fields)
        except ValidationError as e:
            title = fields.get("title") or "<untitled>"
            stats.record_error(f"Invalid event '{title}': {e.error_count()} validation errors")
            self.logger.warning(f"Dropping invalid event '{title}': {e.errors()[0]['msg']}")
            return None

    async def close(self) -> None:
        """Release the HTTP client and compliance gate if this adapter created them."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._owns_compliance and self._compliance is not None:
            await self._compliance.aclose()
            self._compliance = None

    async def __aenter__(self) -> BaseSourceAdapter:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
