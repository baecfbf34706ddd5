"""
Source adapter bases.

- BaseSourceAdapter: fetch() template, options, stats, shared helpers
- APIAdapter: structured JSON feeds
- ScraperAdapter / BrowserScraperAdapter: crawled HTML and rendered pages
"""

from .api_adapter import APIAdapter
from .base_adapter import (
    AdapterConfig,
    AdapterOptions,
    AdapterStats,
    BaseSourceAdapter,
    FetchResult,
    SourceType,
)
from .scraper_adapter import BrowserScraperAdapter, ScraperAdapter

__all__ = [
    "APIAdapter",
    "AdapterConfig",
    "AdapterOptions",
    "AdapterStats",
    "BaseSourceAdapter",
    "BrowserScraperAdapter",
    "FetchResult",
    "ScraperAdapter",
    "SourceType",
]
