"""Logging for ingestion runs.

Package loggers (``event_ingest``, ``adapter.<source>``, ``orchestrator``)
write to stderr as text or JSON lines, optionally teeing into a run log file.
Adapters tag their records with ``source_id`` (and ``phase`` where useful)
through ``with_context``.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

ROOT_LOGGER_NAMES = ("event_ingest", "adapter", "orchestrator")

CONTEXT_FIELDS = ("source_id", "phase")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s%(context)s %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if getattr(record, key, None)}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, context fields inlined."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_record_context(record),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """``2025-06-01 19:30:00 INFO adapter.whatson [source=whatson] message``"""

    def __init__(self):
        super().__init__(TEXT_FORMAT, datefmt=TEXT_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        context = _record_context(record)
        labels = {"source_id": "source"}
        record.context = (
            " [" + " ".join(f"{labels.get(k, k)}={v}" for k, v in context.items()) + "]" if context else ""
        )
        return super().format(record)


@dataclass(frozen=True)
class LoggingOptions:
    """Log level, output format and optional run log file."""

    level: str = "INFO"
    json_logs: bool = False
    log_file: Path | None = None


def _build_handlers(options: LoggingOptions) -> list[logging.Handler]:
    formatter: logging.Formatter = JsonFormatter() if options.json_logs else TextFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if options.log_file is not None:
        log_path = Path(options.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(options: LoggingOptions | None = None) -> list[logging.Logger]:
    """
    Install handlers on the package loggers.

    Calling it again replaces the handlers from the previous call.

    Returns:
        The configured package loggers
    """
    options = options or LoggingOptions()
    level = logging.getLevelName(options.level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    handlers = _build_handlers(options)

    loggers = []
    for name in ROOT_LOGGER_NAMES:
        logger = logging.getLogger(name)
        for old in list(logger.handlers):
            logger.removeHandler(old)
        for handler in handlers:
            logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False
        loggers.append(logger)
    return loggers


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter whose fixed context can be extended per call via ``extra``."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def with_context(logger: logging.Logger, *, source_id: str | None = None, phase: str | None = None) -> ContextAdapter:
    """Wrap a logger so every record carries the given source and phase."""
    fields = {"source_id": source_id, "phase": phase}
    return ContextAdapter(logger, {k: v for k, v in fields.items() if v})
