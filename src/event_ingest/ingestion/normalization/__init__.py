"""
Normalization helpers for raw source data.

This package provides:
- Taxonomy mapping: per-source rules into the closed category space
- Structured data: JSON-LD extraction and typed decoding
- Dates and text: date-range parsing, slugs, suburbs, prices
"""

from .taxonomy_mapper import (
    FALLBACK,
    Classification,
    classify,
    classify_arts,
    classify_family,
    classify_music,
    classify_music_by_genre,
    classify_sports,
    classify_theatre,
    map_artscentre_url,
    map_feverup_category,
    map_marriner_category,
    map_ticketmaster_category,
    map_whatson_category,
)

__all__ = [
    "FALLBACK",
    "Classification",
    "classify",
    # Category classifiers
    "classify_arts",
    "classify_family",
    "classify_music",
    "classify_music_by_genre",
    "classify_sports",
    "classify_theatre",
    # Source mappers
    "map_artscentre_url",
    "map_feverup_category",
    "map_marriner_category",
    "map_ticketmaster_category",
    "map_whatson_category",
]
