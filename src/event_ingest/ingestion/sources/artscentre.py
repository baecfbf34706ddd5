"""
Arts Centre Melbourne Source.

The sitemap is the listing: every /whats-on/ URL gives a slug, a year and a
category guess. Event pages render client-side behind bot protection, so
they are visited in a stealth browser session at a slow pace. When a page
cannot be read (challenge, missing title, extraction error) a fallback
record is built from the sitemap entry alone.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from event_ingest.ingestion.adapters.base_adapter import AdapterOptions, AdapterStats
from event_ingest.ingestion.adapters.scraper_adapter import BrowserScraperAdapter
from event_ingest.ingestion.browser.challenge import detect_challenge
from event_ingest.ingestion.browser.session import BrowserSession
from event_ingest.ingestion.factory import register_adapter
from event_ingest.ingestion.normalization.dates import (
    estimate_date_from_year,
    local_today,
    parse_day_month,
    parse_iso_datetime,
)
from event_ingest.ingestion.normalization.structured_data import find_event, make_soup, meta_content
from event_ingest.ingestion.normalization.taxonomy_mapper import Classification, map_artscentre_url
from event_ingest.ingestion.normalization.text import (
    absolute_url,
    collapse_whitespace,
    dollar_amounts,
    slug_to_title,
)
from event_ingest.ingestion.resilience import PolitenessDelay
from event_ingest.schemas.event import CanonicalEvent, ScrapeMode, Venue, ensure_aware

SITEMAP_PATH = "/sitemap.xml"
WHATS_ON_MARKER = "/whats-on/"
READY_SELECTOR = 'h1, [class*="event"]'
MAX_DOM_PRICE = 1000

VENUE_NAME = "Arts Centre Melbourne"
VENUE_ADDRESS = "100 St Kilda Road"

_URL_YEAR = re.compile(r"/(20\d{2})")


@dataclass
class SitemapEntry:
    """One /whats-on/ URL from the sitemap."""

    url: str
    lastmod: str
    year: int
    slug: str
    classification: Classification


@dataclass
class PageData:
    """Fields read from a rendered event page."""

    title: str | None = None
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    venue: str | None = None
    price_min: float | None = None
    price_max: float | None = None
    image: str | None = None


# ============================================================================
# PARSING
# ============================================================================


def parse_sitemap(xml: str, current_year: int | None = None) -> list[SitemapEntry]:
    """
    Collect upcoming /whats-on/ entries from a sitemap document.

    Entries from past years are dropped; the rest are sorted by year.
    """
    current_year = current_year or local_today().year
    soup = make_soup(xml)
    entries = []
    for node in soup.find_all("url"):
        loc = node.find("loc")
        url = loc.get_text().strip() if loc is not None else ""
        if WHATS_ON_MARKER not in url:
            continue

        match = _URL_YEAR.search(url)
        year = int(match.group(1)) if match else current_year
        if year < current_year:
            continue

        slug = [part for part in url.split("/") if part][-1]
        lastmod = node.find("lastmod")
        entries.append(
            SitemapEntry(
                url=url,
                lastmod=lastmod.get_text().strip() if lastmod is not None else "",
                year=year,
                slug=slug,
                classification=map_artscentre_url(url, slug_to_title(slug)),
            )
        )

    entries.sort(key=lambda e: e.year)
    return entries


def _parse_date_value(value: str | None) -> datetime | None:
    parsed = parse_iso_datetime(value)
    if parsed is None and value:
        parsed = parse_day_month(value)
    return ensure_aware(parsed) if parsed is not None else None


def extract_page_data(html: str) -> PageData:
    """JSON-LD event first, then DOM heuristics."""
    soup = make_soup(html)

    ld = find_event(soup, accept_start_date=True)
    if ld is not None:
        low, high = ld.price_range
        return PageData(
            title=ld.name,
            description=ld.description,
            start_date=_parse_date_value(ld.start_date),
            end_date=_parse_date_value(ld.end_date),
            venue=ld.location.name if ld.location else None,
            price_min=low,
            price_max=high,
            image=ld.image_url,
        )

    h1 = soup.select_one("h1")
    desc_el = soup.select_one('[class*="description"]')
    description = collapse_whitespace(desc_el.get_text()) if desc_el is not None else ""

    date_values = []
    for el in soup.select('time, [datetime], [class*="date"]'):
        value = el.get("datetime") or el.get_text().strip()
        if value and len(value) > 4:
            date_values.append(value)

    body = soup.body or soup
    prices = [p for p in dollar_amounts(body.get_text(" ")) if 0 < p < MAX_DOM_PRICE]
    venue_el = soup.select_one('[class*="venue"]')

    return PageData(
        title=h1.get_text().strip() if h1 is not None else None,
        description=description or meta_content(soup, prop="og:description"),
        start_date=_parse_date_value(date_values[0]) if date_values else None,
        end_date=_parse_date_value(date_values[-1]) if len(date_values) > 1 else None,
        venue=venue_el.get_text().strip() if venue_el is not None else None,
        price_min=min(prices) if prices else None,
        price_max=max(prices) if prices else None,
        image=meta_content(soup, prop="og:image"),
    )


# ============================================================================
# ADAPTER
# ============================================================================


@register_adapter("artscentre")
class ArtsCentreAdapter(BrowserScraperAdapter):
    """
    Arts Centre Melbourne adapter.

    Options (extra):
        min_delay_ms / max_delay_ms: Pause between pages (default 4-8 s)
        batch_size / batch_delay_ms: Extra pause every N pages (default 15-20 s every 5)
    """

    SOURCE_ID = "artscentre"
    BASE_URL = "https://www.artscentremelbourne.com.au"
    DEFAULT_OPTIONS = {
        "min_delay_ms": 4000,
        "max_delay_ms": 8000,
        "batch_size": 5,
        "batch_delay_ms": 15000,
    }

    @property
    def sitemap_url(self) -> str:
        return self.config.base_url.rstrip("/") + SITEMAP_PATH

    def page_delay(self, options: AdapterOptions) -> PolitenessDelay:
        batch_ms = int(options.get("batch_delay_ms", 15000))
        return PolitenessDelay(
            min_ms=int(options.get("min_delay_ms", 4000)),
            max_ms=int(options.get("max_delay_ms", 8000)),
            batch_size=int(options.get("batch_size", 5)),
            batch_min_ms=batch_ms,
            batch_max_ms=batch_ms + 5000,
        )

    def build_fallback(self, entry: SitemapEntry, mode: ScrapeMode, stats: AdapterStats) -> CanonicalEvent | None:
        """Degraded record from the sitemap entry alone."""
        category, subcategory = entry.classification
        stats.fallbacks += 1
        return self._build_event(
            stats,
            title=slug_to_title(entry.slug),
            description=f"{subcategory} at {VENUE_NAME}",
            category=category,
            subcategories={subcategory} if subcategory else set(),
            start_date=estimate_date_from_year(entry.year),
            venue=Venue(name=VENUE_NAME, address=VENUE_ADDRESS, suburb="Melbourne"),
            is_free=False,
            booking_url=entry.url,
            source_id=entry.slug,
            scrape_mode=mode,
            is_fallback=True,
        )

    def to_event(self, entry: SitemapEntry, data: PageData, stats: AdapterStats) -> CanonicalEvent | None:
        category, subcategory = entry.classification
        start = data.start_date or estimate_date_from_year(entry.year)
        end = data.end_date
        if end is not None and end < ensure_aware(start):
            end = None

        return self._build_event(
            stats,
            title=data.title,
            description=data.description or f"{subcategory} at {VENUE_NAME}",
            category=category,
            subcategories={subcategory} if subcategory else set(),
            start_date=start,
            end_date=end,
            venue=Venue(name=data.venue or VENUE_NAME, address=VENUE_ADDRESS, suburb="Melbourne"),
            price_min=data.price_min,
            price_max=data.price_max,
            is_free=data.price_min == 0,
            booking_url=entry.url,
            image_url=absolute_url(data.image, self.config.base_url),
            source_id=entry.slug,
            scrape_mode=ScrapeMode.FULL,
        )

    async def scrape_page(self, session: BrowserSession, entry: SitemapEntry, stats: AdapterStats) -> CanonicalEvent | None:
        """Visit one event page, clearing or reporting a bot challenge."""
        await session.goto(entry.url)

        if await detect_challenge(session.page):
            solved = await self.solver.attempt_challenge(session.page)
            if not solved:
                self.logger.info(f"Challenge not cleared on {entry.url}, using fallback")
                return self.build_fallback(entry, ScrapeMode.CAPTCHA_BLOCKED, stats)

        await session.wait_for_selector(READY_SELECTOR)
        data = extract_page_data(await session.content())
        if not data.title:
            return self.build_fallback(entry, ScrapeMode.SITEMAP_FALLBACK, stats)
        return self.to_event(entry, data, stats)

    async def _collect(self, options: AdapterOptions, stats: AdapterStats) -> list[CanonicalEvent]:
        if not await self._is_allowed(self.sitemap_url, stats):
            return []

        delay = self.page_delay(options)
        events: list[CanonicalEvent] = []

        async with self.driver.session() as session:
            entries = parse_sitemap(await session.goto(self.sitemap_url))
            self.logger.info(f"Found {len(entries)} upcoming events in sitemap")
            if options.max_items is not None:
                entries = entries[: options.max_items]
            stats.fetched = len(entries)

            for index, entry in enumerate(entries):
                if not await self._is_allowed(entry.url, stats):
                    continue

                try:
                    event = await self.scrape_page(session, entry, stats)
                except Exception as e:
                    self.logger.warning(
                        f"Extraction failed for {entry.url}: {type(e).__name__}: {e}", extra={"phase": "detail"}
                    )
                    event = self.build_fallback(entry, ScrapeMode.SITEMAP_FALLBACK, stats)

                if event is not None:
                    events.append(event)
                    self.logger.info(
                        f"[{index + 1}/{len(entries)}] [{event.scrape_mode.value}] {event.title}"
                    )

                if index < len(entries) - 1:
                    await delay.wait(completed=index + 1)

        return events
