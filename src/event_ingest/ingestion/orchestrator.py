"""
Ingestion Orchestrator.

Runs the selected source adapters (in parallel or one at a time), isolates
per-adapter failures, and aggregates their events and stats. A full
ingestion run composes adapter execution, deduplication and the catalog
writer.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from event_ingest.configs.config import Config, load_yaml_config
from event_ingest.configs.settings import get_settings
from event_ingest.ingestion.adapters.base_adapter import (
    AdapterOptions,
    AdapterStats,
    BaseSourceAdapter,
    FetchResult,
)
from event_ingest.ingestion.adapters.scraper_adapter import BrowserScraperAdapter
from event_ingest.ingestion.browser.session import BrowserSessionOptions
from event_ingest.ingestion.compliance import ComplianceGate
from event_ingest.ingestion.deduplication import (
    DedupThresholds,
    EventDeduplicator,
    FuzzyMatchDeduplicator,
    get_deduplicator,
)
from event_ingest.ingestion.errors import SourceNotFoundError
from event_ingest.ingestion.factory import create_adapter, get_adapter_class
from event_ingest.ingestion.persist import CatalogWriter, UpsertStats
from event_ingest.schemas.event import CanonicalEvent, MergedEvent

logger = logging.getLogger(__name__)

DEFAULT_SOURCES = ("ticketmaster", "marriner", "whatson", "feverup")


class RunMode(str, Enum):
    """How adapters are scheduled within one run."""

    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


@dataclass
class IngestionResult:
    """Aggregated output of one orchestrator run (before deduplication)."""

    events: list[CanonicalEvent] = field(default_factory=list)
    stats: dict[str, AdapterStats] = field(default_factory=dict)
    mode: RunMode = RunMode.PARALLEL
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ended_at: datetime | None = None

    @property
    def failed_sources(self) -> list[str]:
        """Sources that reported errors and produced nothing."""
        return [name for name, s in self.stats.items() if s.errors and not s.normalised]

    @property
    def duration_seconds(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "events": [e.model_dump(mode="json") for e in self.events],
            "stats": {name: s.to_dict() for name, s in self.stats.items()},
        }


class IngestionOrchestrator:
    """
    Coordinates all source adapters.

    Responsibilities:
    - Register adapter instances (or build them from source config on demand)
    - Run adapters with settle-all failure isolation
    - Track execution history and aggregate stats
    - Compose run -> deduplicate -> catalog writer
    """

    def __init__(
        self,
        deduplicator: EventDeduplicator | None = None,
        writer: CatalogWriter | None = None,
        source_configs: dict[str, dict[str, Any]] | None = None,
        default_sources: Iterable[str] = DEFAULT_SOURCES,
        default_mode: RunMode = RunMode.PARALLEL,
        compliance: ComplianceGate | None = None,
        max_history: int = 100,
    ):
        """
        Initialize the orchestrator.

        Args:
            deduplicator: Dedup strategy for full runs (fuzzy by default)
            writer: Catalog writer for full runs (None skips persistence)
            source_configs: ``sources`` blocks from ingestion.yaml, by name
            default_sources: Sources run when none are requested
            default_mode: Mode used when none is requested
            compliance: Shared robots.txt gate for every adapter built here
            max_history: Runs kept in execution_history (oldest dropped first)
        """
        settings = get_settings()
        self.logger = logging.getLogger("orchestrator")
        self.adapters: dict[str, BaseSourceAdapter] = {}
        self.source_configs = dict(source_configs or {})
        self.default_sources = list(default_sources)
        self.default_mode = RunMode(default_mode)
        self.execution_history: deque[IngestionResult] = deque(maxlen=max_history)
        self.deduplicator = deduplicator or FuzzyMatchDeduplicator()
        self.writer = writer
        self.catalog: list[MergedEvent] = []

        self._owns_compliance = compliance is None
        self.compliance = compliance or ComplianceGate(
            ttl_seconds=settings.robots_cache_ttl_seconds,
            timeout_seconds=settings.ROBOTS_TIMEOUT_S,
        )

    # ========================================================================
    # ADAPTER MANAGEMENT
    # ========================================================================

    def register_adapter(self, source_name: str, adapter: BaseSourceAdapter) -> None:
        """
        Register an adapter instance.

        Args:
            source_name: Unique identifier for the source
            adapter: Configured adapter
        """
        self.adapters[source_name] = adapter
        self.logger.info(f"Registered adapter: {source_name} (type: {adapter.source_type.value})")

    def get_adapter(self, source_name: str) -> BaseSourceAdapter | None:
        """Get a registered adapter by name."""
        return self.adapters.get(source_name)

    def list_adapters(self) -> list[dict[str, str]]:
        """List all registered adapters with their types."""
        return [{"name": name, "type": a.source_type.value} for name, a in self.adapters.items()]

    def _resolve_adapter(self, source_name: str) -> BaseSourceAdapter:
        """
        Return the registered adapter, building it from config on first use.

        Raises:
            SourceNotFoundError: If no adapter class is registered for the name
        """
        adapter = self.get_adapter(source_name)
        if adapter is not None:
            return adapter

        settings = get_settings()
        cls = get_adapter_class(source_name)
        source_config = {"request_timeout": settings.REQUEST_TIMEOUT_S, **(self.source_configs.get(source_name) or {})}

        kwargs: dict[str, Any] = {"compliance": self.compliance}
        if issubclass(cls, BrowserScraperAdapter):
            kwargs["session_options"] = BrowserSessionOptions(headless=settings.BROWSER_HEADLESS)

        adapter = create_adapter(source_name, source_config, **kwargs)
        self.register_adapter(source_name, adapter)
        return adapter

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _failure(self, source_name: str, message: str, t0: float, started: datetime) -> FetchResult:
        stats = AdapterStats(source=source_name)
        stats.record_error(message)
        stats.duration_ms = round((time.perf_counter() - t0) * 1000, 2)
        return FetchResult(
            source=source_name,
            stats=stats,
            fetch_started_at=started,
            fetch_ended_at=datetime.now(UTC),
        )

    async def _timed_fetch(
        self,
        source_name: str,
        options: AdapterOptions | dict[str, Any] | None = None,
    ) -> FetchResult:
        """Run one adapter; any exception becomes a per-source failure result."""
        t0 = time.perf_counter()
        started = datetime.now(UTC)
        try:
            adapter = self._resolve_adapter(source_name)
            self.logger.info(f"Executing adapter: {source_name}")
            return await adapter.fetch(options)
        except SourceNotFoundError as e:
            self.logger.error(f"Unknown source requested: {source_name}")
            return self._failure(source_name, str(e), t0, started)
        except Exception as e:
            self.logger.error(f"Adapter execution failed: {source_name}", exc_info=True)
            return self._failure(source_name, f"{type(e).__name__}: {e}", t0, started)

    async def run(
        self,
        sources: Iterable[str] | None = None,
        per_source_options: dict[str, AdapterOptions | dict[str, Any]] | None = None,
        mode: RunMode | str | None = None,
    ) -> IngestionResult:
        """
        Run adapters and aggregate their output.

        No deduplication happens here; see ``run_full_ingestion``.

        Args:
            sources: Source names (default: the configured default sources)
            per_source_options: Option overrides keyed by source name
            mode: parallel or sequential (default: the configured mode)

        Returns:
            IngestionResult with concatenated events and per-source stats
        """
        names = list(dict.fromkeys(sources if sources is not None else self.default_sources))
        run_mode = RunMode(mode) if mode is not None else self.default_mode
        per_source_options = per_source_options or {}
        result = IngestionResult(mode=run_mode)

        self.logger.info(f"Starting {run_mode.value} run: {', '.join(names) or '(no sources)'}")
        t0 = time.perf_counter()
        started = datetime.now(UTC)

        if run_mode is RunMode.PARALLEL:
            outcomes = await asyncio.gather(
                *(self._timed_fetch(name, per_source_options.get(name)) for name in names),
                return_exceptions=True,
            )
        else:
            outcomes = []
            for name in names:
                outcomes.append(await self._timed_fetch(name, per_source_options.get(name)))

        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                # Only non-Exception errors (e.g. cancellation) get past _timed_fetch
                self.logger.error(f"Adapter task aborted: {name}: {outcome!r}")
                outcome = self._failure(name, repr(outcome), t0, started)
            result.events.extend(outcome.events)
            result.stats[name] = outcome.stats

        result.ended_at = datetime.now(UTC)
        self.execution_history.append(result)

        failed = result.failed_sources
        self.logger.info(
            f"Run finished: {len(result.events)} events from {len(names) - len(failed)}/{len(names)} "
            f"sources in {result.duration_seconds:.1f}s"
            + (f" (failed: {', '.join(failed)})" if failed else "")
        )
        return result

    # ========================================================================
    # HISTORY & STATS
    # ========================================================================

    def get_execution_history(self, limit: int = 10) -> list[IngestionResult]:
        """Most recent runs, oldest first."""
        return list(self.execution_history)[-limit:]

    def get_execution_stats(self, source_name: str | None = None) -> dict[str, Any]:
        """Aggregate statistics over adapter executions, optionally for one source."""
        executions = [
            stats
            for run in self.execution_history
            for name, stats in run.stats.items()
            if source_name is None or name == source_name
        ]
        if not executions:
            return {"total_executions": 0}

        successful = sum(1 for s in executions if s.errors == 0 or s.normalised > 0)
        total_events = sum(s.normalised for s in executions)
        return {
            "total_executions": len(executions),
            "successful_executions": successful,
            "success_rate": successful / len(executions) * 100,
            "total_events": total_events,
            "total_errors": sum(s.errors for s in executions),
            "total_fallbacks": sum(s.fallbacks for s in executions),
            "average_events_per_run": total_events / len(executions),
        }

    # ========================================================================
    # END-TO-END EXECUTION & PERSISTENCE
    # ========================================================================

    async def run_full_ingestion(
        self,
        sources: Iterable[str] | None = None,
        per_source_options: dict[str, AdapterOptions | dict[str, Any]] | None = None,
        mode: RunMode | str | None = None,
    ) -> dict[str, Any]:
        """
        Run adapters, deduplicate, and persist.

        Returns:
            Dict containing stats about the ingestion run

        Raises:
            CandidateValidationError: If an adapter emitted a malformed candidate
        """
        self.logger.info("Starting full ingestion run...")
        start_time = datetime.now(UTC)

        result = await self.run(sources, per_source_options, mode)

        self.catalog = self.deduplicator.deduplicate(result.events)
        self.logger.info(
            f"Deduplication complete: {len(self.catalog)} unique events from {len(result.events)} raw results."
        )

        upsert_stats = UpsertStats()
        if self.writer is None:
            self.logger.info("No catalog writer configured, skipping persistence")
        elif self.catalog:
            try:
                upsert_stats = await asyncio.to_thread(self.writer.upsert_many, self.catalog)
            except Exception as e:
                self.logger.error(f"Critical error during persistence: {e}", exc_info=True)
                upsert_stats.failed = len(self.catalog)
        else:
            self.logger.warning("No unique events found to persist.")

        duration = (datetime.now(UTC) - start_time).total_seconds()
        return {
            "timestamp": start_time.isoformat(),
            "duration_seconds": duration,
            "mode": result.mode.value,
            "total_raw_fetched": len(result.events),
            "total_unique_found": len(self.catalog),
            "merged_clusters": sum(1 for e in self.catalog if e.alternate_sources),
            "persisted": upsert_stats.to_dict(),
            "sources_executed": list(result.stats),
            "failed_sources": result.failed_sources,
            "stats": {name: s.to_dict() for name, s in result.stats.items()},
        }

    async def close(self) -> None:
        """Release adapters and the shared compliance gate."""
        for adapter in self.adapters.values():
            await adapter.close()
        if self._owns_compliance:
            await self.compliance.aclose()


def load_orchestrator_from_config(
    config_path: str | Path | None = None,
    writer: CatalogWriter | None = None,
) -> IngestionOrchestrator:
    """
    Create an orchestrator from YAML config.

    Adapters are built lazily from the ``sources`` blocks when first run.
    Disabled sources are left out of the default selection but can still be
    requested by name.

    Args:
        config_path: Path to ingestion.yaml (default: the packaged config)
        writer: Catalog writer for full runs

    Returns:
        Configured IngestionOrchestrator
    """
    config = load_yaml_config(config_path) if config_path else Config.load_ingestion_config()

    dedup_config = dict(config.get("dedup") or {})
    strategy = dedup_config.pop("strategy", "fuzzy")
    deduplicator = get_deduplicator(strategy, DedupThresholds.from_dict(dedup_config))

    source_configs = config.get("sources") or {}
    enabled = [name for name, block in source_configs.items() if (block or {}).get("enabled", True)]

    run_config = config.get("run") or {}
    requested = run_config.get("sources") or enabled
    default_sources = []
    for name in requested:
        if name in source_configs and name not in enabled:
            logger.warning(f"Source '{name}' is disabled, leaving it out of the default run")
            continue
        default_sources.append(name)

    orchestrator = IngestionOrchestrator(
        deduplicator=deduplicator,
        writer=writer,
        source_configs=source_configs,
        default_sources=default_sources,
        default_mode=RunMode(run_config.get("mode", RunMode.PARALLEL.value)),
    )
    logger.info(
        f"Loaded orchestrator: default sources {default_sources}, mode {orchestrator.default_mode.value}, "
        f"dedup {strategy}"
    )
    return orchestrator
