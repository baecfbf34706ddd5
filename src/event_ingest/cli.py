#!/usr/bin/env python3
"""Command-line interface for the event ingestion pipeline.

Commands:
  - event-ingest run      : Fetch, deduplicate and write the catalog
  - event-ingest sources  : List registered and configured sources

Typical usage:
  event-ingest run --sources whatson feverup --mode sequential --output data/catalog.jsonl
  event-ingest run --csv data/catalog.csv --json-logs
  event-ingest sources
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import yaml

from event_ingest.ingestion.errors import CandidateValidationError, IngestionError


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="event-ingest", description="Event ingestion pipeline CLI")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    sub = p.add_subparsers(dest="cmd")

    # run
    pr = sub.add_parser("run", help="Run a full ingestion")
    pr.add_argument("--sources", "-s", nargs="*", default=None, help="Sources to run (default: from config)")
    pr.add_argument(
        "--mode",
        "-m",
        choices=["parallel", "sequential"],
        default=None,
        help="Adapter scheduling (default: from config)",
    )
    pr.add_argument("--config", "-c", default=None, help="Path to ingestion YAML")
    pr.add_argument("--output", "-o", default=None, help="Catalog JSON Lines output path")
    pr.add_argument("--csv", default=None, help="Also export the catalog as CSV")
    pr.add_argument("--max-items", type=int, default=None, help="Override max items for every source")
    pr.add_argument("--no-details", action="store_true", help="Skip detail page fetches")
    pr.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL setting)")
    pr.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    pr.add_argument("--log-file", default=None, help="Also write logs to this file")

    # sources
    ps = sub.add_parser("sources", help="List available sources")
    ps.add_argument("--config", "-c", default=None, help="Path to ingestion YAML")

    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI with the given arguments."""
    try:
        return _main_impl(argv)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in config: {e}", file=sys.stderr)
        return 1
    except CandidateValidationError as e:
        print(f"Error: Deduplication aborted: {e}", file=sys.stderr)
        return 1
    except IngestionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _main_impl(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.version:
        from event_ingest import __version__

        print(f"event-ingest version {__version__}")
        return 0

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    if args.cmd == "sources":
        return _list_sources(args.config)

    if args.cmd == "run":
        return _run(args)

    return 1


def _list_sources(config_path: str | None) -> int:
    from event_ingest.configs.config import Config, load_yaml_config
    from event_ingest.ingestion.factory import available_sources, get_adapter_class

    config = load_yaml_config(config_path) if config_path else Config.load_ingestion_config()
    configured = config.get("sources") or {}
    defaults = set((config.get("run") or {}).get("sources") or [])

    print(f"{'SOURCE':<15} {'TYPE':<10} {'ENABLED':<8} {'DEFAULT'}")
    print("-" * 45)
    for name in sorted(set(available_sources()) | set(configured)):
        block = configured.get(name) or {}
        try:
            source_type = block.get("type") or get_adapter_class(name).SOURCE_TYPE.value
        except IngestionError:
            source_type = "unknown"
        enabled = "yes" if block.get("enabled", True) else "no"
        print(f"{name:<15} {source_type:<10} {enabled:<8} {'yes' if name in defaults else ''}")
    return 0


def _per_source_options(args: argparse.Namespace, names: list[str]) -> dict[str, dict[str, Any]] | None:
    overrides: dict[str, Any] = {}
    if args.max_items is not None:
        overrides["max_items"] = args.max_items
    if args.no_details:
        overrides["fetch_detail_pages"] = False
    if not overrides:
        return None
    return {name: dict(overrides) for name in names}


def _run(args: argparse.Namespace) -> int:
    from event_ingest.configs.settings import get_settings
    from event_ingest.ingestion.orchestrator import load_orchestrator_from_config
    from event_ingest.ingestion.persist import JsonLinesCatalogWriter, write_csv
    from event_ingest.monitoring.logging import LoggingOptions, setup_logging

    settings = get_settings()
    setup_logging(
        LoggingOptions(
            level=args.log_level or settings.LOG_LEVEL,
            json_logs=args.json_logs or settings.LOG_JSON,
            log_file=Path(args.log_file) if args.log_file else None,
        )
    )

    output = Path(args.output) if args.output else settings.CATALOG_OUTPUT_PATH
    orchestrator = load_orchestrator_from_config(
        args.config or settings.INGESTION_CONFIG_PATH,
        writer=JsonLinesCatalogWriter(output),
    )
    names = args.sources if args.sources else orchestrator.default_sources

    async def _execute() -> dict[str, Any]:
        try:
            return await orchestrator.run_full_ingestion(
                sources=names,
                per_source_options=_per_source_options(args, names),
                mode=args.mode,
            )
        finally:
            await orchestrator.close()

    summary = asyncio.run(_execute())
    summary["output"] = str(output)

    if args.csv:
        summary["csv"] = str(write_csv(orchestrator.catalog, args.csv))

    print(json.dumps(summary, indent=2, ensure_ascii=False, default=str))

    failed = summary["failed_sources"]
    if names and len(failed) == len(names):
        print("Error: every source failed", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
