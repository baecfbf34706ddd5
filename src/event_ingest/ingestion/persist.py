"""
Catalog Writer.

Receives the merged catalog at the end of a full ingestion run. Writers
expose an idempotent upsert keyed by (source, source_id); the pipeline
makes no assumption about how a writer stores records.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from event_ingest.schemas.event import CanonicalEvent, MergedEvent

logger = logging.getLogger(__name__)

CatalogKey = tuple[str, str]


@dataclass
class UpsertStats:
    """Outcome of a batch upsert."""

    inserted: int = 0
    updated: int = 0
    failed: int = 0

    @property
    def written(self) -> int:
        return self.inserted + self.updated

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class CatalogWriter(ABC):
    """
    Abstract catalog store.

    Subclasses implement ``upsert``; ``upsert_many`` isolates failures per
    event so one bad record does not lose the rest of the batch.
    """

    @abstractmethod
    def upsert(self, source: str, source_id: str, event: CanonicalEvent) -> bool:
        """
        Insert or replace one record.

        Returns:
            True if the key was new, False if an existing record was replaced
        """
        pass

    def flush(self) -> None:
        """Persist buffered writes (no-op for unbuffered stores)."""

    def upsert_many(self, events: Iterable[CanonicalEvent]) -> UpsertStats:
        """
        Upsert a batch of events, then flush.

        Returns:
            UpsertStats with inserted / updated / failed counts
        """
        stats = UpsertStats()
        for event in events:
            try:
                inserted = self.upsert(event.source, event.source_id, event)
            except Exception as e:
                stats.failed += 1
                logger.error(f"Failed to persist event '{event.title}': {e}")
                continue

            if inserted:
                stats.inserted += 1
            else:
                stats.updated += 1

        self.flush()
        logger.info(
            f"Catalog upsert: {stats.inserted} inserted, {stats.updated} updated, {stats.failed} failed"
        )
        return stats


class InMemoryCatalogWriter(CatalogWriter):
    """Dict-backed writer, mostly for tests and dry runs."""

    def __init__(self):
        self.records: dict[CatalogKey, CanonicalEvent] = {}

    def upsert(self, source: str, source_id: str, event: CanonicalEvent) -> bool:
        key = (source, source_id)
        inserted = key not in self.records
        self.records[key] = event
        return inserted

    def get(self, source: str, source_id: str) -> CanonicalEvent | None:
        return self.records.get((source, source_id))

    def __len__(self) -> int:
        return len(self.records)


class JsonLinesCatalogWriter(CatalogWriter):
    """
    Keyed snapshot in a JSON Lines file.

    Existing lines are loaded on construction; ``flush`` rewrites the whole
    file so a key appears exactly once, in first-insertion order.
    """

    def __init__(self, path: str | Path, encoding: str = "utf-8"):
        self.path = Path(path)
        self.encoding = encoding
        self._rows: dict[CatalogKey, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        with self.path.open("r", encoding=self.encoding) as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    row = json.loads(line)
                    key = (row["source"], row["source_id"])
                except (json.JSONDecodeError, KeyError, TypeError) as e:
                    logger.warning(f"Skipping unreadable catalog line {line_no} in {self.path}: {e}")
                    continue
                self._rows[key] = row
        logger.debug(f"Loaded {len(self._rows)} catalog records from {self.path}")

    def upsert(self, source: str, source_id: str, event: CanonicalEvent) -> bool:
        key = (source, source_id)
        inserted = key not in self._rows
        row = event.model_dump(mode="json")
        row["source"], row["source_id"] = source, source_id
        self._rows[key] = row
        return inserted

    def flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding=self.encoding) as f:
            for row in self._rows.values():
                f.write(json.dumps(row, ensure_ascii=False) + "\n")

    def records(self) -> list[MergedEvent]:
        """Stored rows decoded back into MergedEvent."""
        return [MergedEvent.model_validate(row) for row in self._rows.values()]

    def __len__(self) -> int:
        return len(self._rows)


# ============================================================================
# TABULAR EXPORT
# ============================================================================


def event_to_row(event: CanonicalEvent) -> dict[str, Any]:
    """Flatten one event (venue and alternates inlined) into a flat row."""
    alternates = getattr(event, "alternate_sources", [])
    return {
        "source": event.source,
        "source_id": event.source_id,
        "title": event.title,
        "category": event.category.value,
        "subcategories": ", ".join(sorted(event.subcategories)),
        "start_date": event.start_date.isoformat(),
        "end_date": event.end_date.isoformat() if event.end_date else None,
        "venue_name": event.venue.name,
        "venue_address": event.venue.address,
        "venue_suburb": event.venue.suburb,
        "price_min": event.price_min,
        "price_max": event.price_max,
        "is_free": event.is_free,
        "booking_url": event.booking_url,
        "image_url": event.image_url,
        "scrape_mode": event.scrape_mode.value,
        "is_fallback": event.is_fallback,
        "alternate_count": len(alternates),
        "alternate_sources": "; ".join(f"{a.source}:{a.booking_url}" for a in alternates),
        "description": event.description,
    }


def events_to_dataframe(events: Iterable[CanonicalEvent]):
    """
    Convert events to a pandas DataFrame, one row per catalog record.
    """
    import pandas as pd

    return pd.DataFrame([event_to_row(e) for e in events])


def write_csv(events: Iterable[CanonicalEvent], path: str | Path, *, encoding: str = "utf-8") -> Path:
    """Export events as CSV through pandas."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = events_to_dataframe(events)
    df.to_csv(path, index=False, encoding=encoding)
    logger.info(f"Wrote {len(df)} rows to {path}")
    return path
