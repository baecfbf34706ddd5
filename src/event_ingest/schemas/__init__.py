from event_ingest.schemas.event import (
    AlternateSource,
    CanonicalEvent,
    MergedEvent,
    ScrapeMode,
    Venue,
)
from event_ingest.schemas.taxonomy import Category

__all__ = [
    "AlternateSource",
    "CanonicalEvent",
    "Category",
    "MergedEvent",
    "ScrapeMode",
    "Venue",
]
