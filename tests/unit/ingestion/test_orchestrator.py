"""
Unit tests for the orchestrator module.

Tests for IngestionOrchestrator adapter management, execution, failure
isolation, history, full runs and config loading.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from event_ingest.configs.settings import get_settings
from event_ingest.ingestion.adapters.base_adapter import BaseSourceAdapter, SourceType
from event_ingest.ingestion.compliance import ComplianceGate
from event_ingest.ingestion.deduplication import ExactMatchDeduplicator, FuzzyMatchDeduplicator
from event_ingest.ingestion.errors import CandidateValidationError
from event_ingest.ingestion.orchestrator import (
    DEFAULT_SOURCES,
    IngestionOrchestrator,
    RunMode,
    load_orchestrator_from_config,
)
from event_ingest.ingestion.persist import CatalogWriter, InMemoryCatalogWriter
from event_ingest.ingestion.sources import MarrinerAdapter, TicketmasterAdapter

# =============================================================================
# TEST ADAPTERS
# =============================================================================


class StaticAdapter(BaseSourceAdapter):
    """Returns a fixed list of events and records the options it was given."""

    SOURCE_TYPE = SourceType.API

    def __init__(self, source_id, events=(), calls=None):
        self.SOURCE_ID = source_id
        super().__init__()
        self.events = list(events)
        self.calls = calls if calls is not None else []
        self.seen_options = []

    def _validate_config(self):
        pass

    async def _collect(self, options, stats):
        self.calls.append(self.source_id)
        self.seen_options.append(options)
        stats.fetched = len(self.events)
        return list(self.events)


class ExplodingAdapter(StaticAdapter):
    """Raises from inside the adapter."""

    async def _collect(self, options, stats):
        self.calls.append(self.source_id)
        raise RuntimeError("boom")


class RunAborted(BaseException):
    """Not an Exception, so it gets past per-adapter isolation."""


class AbortingAdapter(StaticAdapter):
    """Spends a little time, then raises a non-Exception error."""

    async def _collect(self, options, stats):
        await asyncio.sleep(0.02)
        raise RunAborted("stop")


class FailingWriter(CatalogWriter):
    def upsert(self, source, source_id, event):
        raise AssertionError("not used")

    def upsert_many(self, events):
        raise OSError("disk full")


@pytest.fixture
def orchestrator(robots_allow_all):
    """Orchestrator with an offline compliance gate and an in-memory catalog."""
    return IngestionOrchestrator(
        writer=InMemoryCatalogWriter(),
        compliance=ComplianceGate(client=robots_allow_all),
    )


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestAdapterManagement:
    """Tests for register_adapter, get_adapter and list_adapters."""

    def test_register_and_get(self, orchestrator):
        adapter = StaticAdapter("alpha")
        orchestrator.register_adapter("alpha", adapter)

        assert orchestrator.get_adapter("alpha") is adapter
        assert orchestrator.get_adapter("beta") is None
        assert orchestrator.list_adapters() == [{"name": "alpha", "type": "api"}]

    def test_defaults(self, orchestrator):
        assert orchestrator.default_sources == list(DEFAULT_SOURCES)
        assert orchestrator.default_mode is RunMode.PARALLEL
        assert isinstance(orchestrator.deduplicator, FuzzyMatchDeduplicator)

    def test_resolve_builds_from_config(self, orchestrator):
        """Should build a registered source on first use, sharing the gate."""
        orchestrator.source_configs = {"ticketmaster": {"options": {"max_items": 3}}}

        adapter = orchestrator._resolve_adapter("ticketmaster")

        assert isinstance(adapter, TicketmasterAdapter)
        assert adapter._get_compliance() is orchestrator.compliance
        assert adapter.config.request_timeout == get_settings().REQUEST_TIMEOUT_S
        assert adapter.resolve_options().max_items == 3
        assert orchestrator._resolve_adapter("ticketmaster") is adapter

    def test_resolve_config_timeout_wins(self, orchestrator):
        orchestrator.source_configs = {"ticketmaster": {"request_timeout": 42}}

        adapter = orchestrator._resolve_adapter("ticketmaster")

        assert adapter.config.request_timeout == 42

    def test_resolve_browser_adapter_gets_session_options(self, orchestrator):
        adapter = orchestrator._resolve_adapter("marriner")

        assert isinstance(adapter, MarrinerAdapter)
        assert adapter.session_options.headless == get_settings().BROWSER_HEADLESS


class TestRun:
    """Tests for IngestionOrchestrator.run."""

    def test_parallel_aggregates(self, orchestrator, sample_events):
        orchestrator.register_adapter("a", StaticAdapter("a", sample_events[:2]))
        orchestrator.register_adapter("b", StaticAdapter("b", sample_events[2:]))

        result = asyncio.run(orchestrator.run(["a", "b"]))

        assert result.mode is RunMode.PARALLEL
        assert len(result.events) == 3
        assert set(result.stats) == {"a", "b"}
        assert result.stats["a"].normalised == 2
        assert result.failed_sources == []
        assert result.ended_at is not None

    def test_failure_isolated_parallel(self, orchestrator, sample_events):
        """Should keep the other adapters' events when one raises."""
        orchestrator.register_adapter("good", StaticAdapter("good", sample_events))
        orchestrator.register_adapter("bad", ExplodingAdapter("bad"))

        result = asyncio.run(orchestrator.run(["bad", "good"]))

        assert len(result.events) == 3
        assert result.failed_sources == ["bad"]
        assert result.stats["bad"].errors == 1
        assert result.stats["bad"].error_messages == ["RuntimeError: boom"]

    def test_failure_isolated_sequential(self, orchestrator, sample_events):
        calls = []
        orchestrator.register_adapter("first", ExplodingAdapter("first", calls=calls))
        orchestrator.register_adapter("second", StaticAdapter("second", sample_events, calls=calls))

        result = asyncio.run(orchestrator.run(["first", "second"], mode="sequential"))

        assert calls == ["first", "second"]
        assert result.mode is RunMode.SEQUENTIAL
        assert len(result.events) == 3
        assert result.failed_sources == ["first"]

    def test_unknown_source_is_failure(self, orchestrator, sample_events):
        orchestrator.register_adapter("a", StaticAdapter("a", sample_events))

        result = asyncio.run(orchestrator.run(["a", "eventbrite"]))

        assert len(result.events) == 3
        assert result.failed_sources == ["eventbrite"]
        assert result.stats["eventbrite"].error_messages == ["Source 'eventbrite' not found"]

    def test_duplicate_names_run_once(self, orchestrator, sample_events):
        calls = []
        orchestrator.register_adapter("a", StaticAdapter("a", sample_events, calls=calls))

        result = asyncio.run(orchestrator.run(["a", "a"], mode=RunMode.SEQUENTIAL))

        assert calls == ["a"]
        assert len(result.events) == 3

    def test_per_source_options(self, orchestrator):
        a = StaticAdapter("a")
        b = StaticAdapter("b")
        orchestrator.register_adapter("a", a)
        orchestrator.register_adapter("b", b)

        asyncio.run(orchestrator.run(["a", "b"], per_source_options={"a": {"maxItems": 1}}))

        assert a.seen_options[0].max_items == 1
        assert b.seen_options[0].max_items is None

    def test_default_sources(self, robots_allow_all, sample_events):
        orch = IngestionOrchestrator(
            default_sources=["a"],
            default_mode="sequential",
            compliance=ComplianceGate(client=robots_allow_all),
        )
        orch.register_adapter("a", StaticAdapter("a", sample_events))

        result = asyncio.run(orch.run())

        assert list(result.stats) == ["a"]
        assert result.mode is RunMode.SEQUENTIAL

    def test_empty_source_list(self, orchestrator):
        result = asyncio.run(orchestrator.run([]))

        assert result.events == []
        assert result.stats == {}

    def test_aborted_task_keeps_duration(self, orchestrator, sample_events):
        """A task aborted by a non-Exception error is timed from the run start."""
        orchestrator.register_adapter("good", StaticAdapter("good", sample_events))
        orchestrator.register_adapter("aborted", AbortingAdapter("aborted"))

        result = asyncio.run(orchestrator.run(["good", "aborted"]))

        assert len(result.events) == 3
        assert result.failed_sources == ["aborted"]
        assert result.stats["aborted"].error_messages == ["RunAborted('stop')"]
        assert result.stats["aborted"].duration_ms >= 10


class TestHistoryAndStats:
    """Tests for execution history and aggregated stats."""

    def test_no_history(self, orchestrator):
        assert orchestrator.get_execution_stats() == {"total_executions": 0}
        assert orchestrator.get_execution_history() == []

    def test_stats_over_runs(self, orchestrator, sample_events):
        orchestrator.register_adapter("good", StaticAdapter("good", sample_events))
        orchestrator.register_adapter("bad", ExplodingAdapter("bad"))

        asyncio.run(orchestrator.run(["good", "bad"]))
        asyncio.run(orchestrator.run(["good"]))

        assert len(orchestrator.get_execution_history()) == 2
        assert len(orchestrator.get_execution_history(limit=1)) == 1

        stats = orchestrator.get_execution_stats()
        assert stats["total_executions"] == 3
        assert stats["successful_executions"] == 2
        assert stats["total_events"] == 6
        assert stats["total_errors"] == 1
        assert stats["average_events_per_run"] == 2

        good = orchestrator.get_execution_stats("good")
        assert good["total_executions"] == 2
        assert good["success_rate"] == 100

    def test_history_is_bounded(self, robots_allow_all, sample_events):
        orch = IngestionOrchestrator(compliance=ComplianceGate(client=robots_allow_all), max_history=2)
        orch.register_adapter("a", StaticAdapter("a", sample_events[:1]))

        runs = [asyncio.run(orch.run(["a"])) for _ in range(3)]

        assert orch.get_execution_history() == runs[1:]
        assert orch.get_execution_history(limit=1) == runs[2:]
        assert orch.get_execution_stats()["total_executions"] == 2

    def test_result_to_dict(self, orchestrator, sample_events):
        orchestrator.register_adapter("a", StaticAdapter("a", sample_events[:1]))

        data = asyncio.run(orchestrator.run(["a"])).to_dict()

        assert data["mode"] == "parallel"
        assert data["events"][0]["title"] == "Hamlet"
        assert data["stats"]["a"]["normalised"] == 1


class TestRunFullIngestion:
    """Tests for run -> deduplicate -> persist."""

    def test_merges_and_persists(self, orchestrator, duplicate_events, sample_events):
        orchestrator.register_adapter("ticketmaster", StaticAdapter("ticketmaster", duplicate_events[:1]))
        orchestrator.register_adapter("marriner", StaticAdapter("marriner", duplicate_events[1:] + sample_events[:1]))

        summary = asyncio.run(orchestrator.run_full_ingestion(["ticketmaster", "marriner"]))

        assert summary["total_raw_fetched"] == 3
        assert summary["total_unique_found"] == 2
        assert summary["merged_clusters"] == 1
        assert summary["persisted"] == {"inserted": 2, "updated": 0, "failed": 0}
        assert summary["sources_executed"] == ["ticketmaster", "marriner"]
        assert summary["failed_sources"] == []
        assert summary["mode"] == "parallel"
        assert len(orchestrator.writer) == 2
        assert len(orchestrator.catalog) == 2

    def test_rerun_updates(self, orchestrator, sample_events):
        orchestrator.register_adapter("a", StaticAdapter("a", sample_events))

        asyncio.run(orchestrator.run_full_ingestion(["a"]))
        summary = asyncio.run(orchestrator.run_full_ingestion(["a"]))

        assert summary["persisted"] == {"inserted": 0, "updated": 3, "failed": 0}

    def test_without_writer(self, robots_allow_all, sample_events, caplog):
        orch = IngestionOrchestrator(compliance=ComplianceGate(client=robots_allow_all))
        orch.register_adapter("a", StaticAdapter("a", sample_events))

        with caplog.at_level("INFO", logger="orchestrator"):
            summary = asyncio.run(orch.run_full_ingestion(["a"]))

        assert summary["total_unique_found"] == 3
        assert summary["persisted"] == {"inserted": 0, "updated": 0, "failed": 0}
        assert "No catalog writer configured" in caplog.text

    def test_writer_failure_counted(self, robots_allow_all, sample_events):
        """Should report every record as failed instead of raising."""
        orch = IngestionOrchestrator(writer=FailingWriter(), compliance=ComplianceGate(client=robots_allow_all))
        orch.register_adapter("a", StaticAdapter("a", sample_events))

        summary = asyncio.run(orch.run_full_ingestion(["a"]))

        assert summary["persisted"]["failed"] == 3
        assert summary["total_unique_found"] == 3

    def test_malformed_candidates_abort(self, orchestrator, sample_events):
        """Should propagate a repeated (source, source_id) from the adapter output."""
        orchestrator.register_adapter("a", StaticAdapter("a", sample_events[:1] * 2))

        with pytest.raises(CandidateValidationError):
            asyncio.run(orchestrator.run_full_ingestion(["a"]))
        assert len(orchestrator.writer) == 0

    def test_all_sources_failed(self, orchestrator):
        orchestrator.register_adapter("bad", ExplodingAdapter("bad"))

        summary = asyncio.run(orchestrator.run_full_ingestion(["bad"]))

        assert summary["failed_sources"] == ["bad"]
        assert summary["total_unique_found"] == 0
        assert summary["stats"]["bad"]["errors"] == 1

    def test_exact_strategy(self, robots_allow_all, duplicate_events):
        orch = IngestionOrchestrator(
            deduplicator=ExactMatchDeduplicator(),
            compliance=ComplianceGate(client=robots_allow_all),
        )
        orch.register_adapter("a", StaticAdapter("a", duplicate_events))

        summary = asyncio.run(orch.run_full_ingestion(["a"]))

        assert summary["total_unique_found"] == 2


class TestClose:
    """Tests for releasing adapters and the compliance gate."""

    def test_closes_adapters_not_injected_gate(self, orchestrator):
        adapter = StaticAdapter("a")
        adapter.close = AsyncMock()
        orchestrator.register_adapter("a", adapter)
        orchestrator.compliance.aclose = AsyncMock()

        asyncio.run(orchestrator.close())

        adapter.close.assert_awaited_once()
        orchestrator.compliance.aclose.assert_not_awaited()

    def test_closes_owned_gate(self):
        orch = IngestionOrchestrator()
        orch.compliance.aclose = AsyncMock()

        asyncio.run(orch.close())

        orch.compliance.aclose.assert_awaited_once()


class TestLoadOrchestratorFromConfig:
    """Tests for load_orchestrator_from_config."""

    def test_packaged_config(self):
        orch = load_orchestrator_from_config()

        assert orch.default_sources == ["ticketmaster", "marriner", "whatson", "feverup"]
        assert orch.default_mode is RunMode.PARALLEL
        assert isinstance(orch.deduplicator, FuzzyMatchDeduplicator)
        assert "artscentre" in orch.source_configs

    def test_custom_yaml(self, tmp_path):
        path = tmp_path / "ingestion.yaml"
        path.write_text(
            "run:\n"
            "  mode: sequential\n"
            "  sources: [whatson, artscentre]\n"
            "dedup:\n"
            "  strategy: fuzzy\n"
            "  overall_match: 0.9\n"
            "  min_title_similarity: 0.75\n"
            "sources:\n"
            "  whatson:\n"
            "    options: {max_items: 3}\n"
            "  artscentre:\n"
            "    enabled: false\n",
            encoding="utf-8",
        )
        writer = InMemoryCatalogWriter()

        orch = load_orchestrator_from_config(path, writer=writer)

        assert orch.default_sources == ["whatson"]
        assert orch.default_mode is RunMode.SEQUENTIAL
        assert orch.writer is writer
        assert orch.deduplicator.thresholds.overall_match == 0.9
        assert orch.deduplicator.thresholds.min_title_similarity == 0.75
        assert orch.source_configs["whatson"] == {"options": {"max_items": 3}}

    def test_enabled_sources_are_default(self, tmp_path):
        path = tmp_path / "ingestion.yaml"
        path.write_text(
            "dedup:\n  strategy: exact\nsources:\n  feverup: {}\n  marriner:\n    enabled: false\n  whatson:\n",
            encoding="utf-8",
        )

        orch = load_orchestrator_from_config(path)

        assert orch.default_sources == ["feverup", "whatson"]
        assert isinstance(orch.deduplicator, ExactMatchDeduplicator)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_orchestrator_from_config(tmp_path / "missing.yaml")
