"""
FeverUp Source.

Scraper source for FeverUp Melbourne. Both the listing and the event pages
embed JSON-LD, which is decoded strictly; event pages without it fall back
to Open Graph tags and visible text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from bs4 import BeautifulSoup

from event_ingest.ingestion.adapters.base_adapter import AdapterOptions, AdapterStats
from event_ingest.ingestion.adapters.scraper_adapter import ScraperAdapter
from event_ingest.ingestion.factory import register_adapter
from event_ingest.ingestion.normalization.dates import parse_short_range
from event_ingest.ingestion.normalization.structured_data import (
    LdEvent,
    find_event,
    item_list_urls,
    make_soup,
    meta_content,
)
from event_ingest.ingestion.normalization.taxonomy_mapper import map_feverup_category
from event_ingest.ingestion.normalization.text import (
    absolute_url,
    dollar_amounts,
    extract_suburb,
    strip_html,
)
from event_ingest.schemas.event import CanonicalEvent, Venue

LISTING_PATH = "/en/melbourne/things-to-do"
EVENT_PATH_MARKER = "/m/"
DESCRIPTION_MAX_LENGTH = 500

_SOURCE_ID = re.compile(r"/m/(\d+)")


@dataclass
class FeverUpDetail:
    """Raw fields read from one event page."""

    url: str
    title: str
    description: str = ""
    image_url: str | None = None
    price_min: float | None = None
    price_max: float | None = None
    venue: str | None = None
    address: str | None = None
    suburb: str | None = None
    rating: float | None = None
    rating_count: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    @property
    def is_gift_card(self) -> bool:
        title = self.title.lower()
        return "gift card" in title or "giftcard" in title

    @property
    def rating_summary(self) -> str | None:
        if not self.rating:
            return None
        return f"Rating: {self.rating}/5 ({self.rating_count} reviews)"


def extract_source_id(url: str) -> str:
    """Numeric id from a /m/<digits> URL, else the URL itself."""
    match = _SOURCE_ID.search(url)
    return match.group(1) if match else url


def parse_listing_urls(html: str, base_url: str) -> list[str]:
    """
    Event URLs from the listing page.

    JSON-LD ItemList entries are preferred; anchors pointing at /m/ pages
    are used when the page has none. Order is kept, duplicates dropped.
    """
    soup = make_soup(html)
    urls = item_list_urls(soup, must_contain=EVENT_PATH_MARKER)
    if not urls:
        urls = [a.get("href") for a in soup.select(f'a[href*="{EVENT_PATH_MARKER}"]')]

    unique: list[str] = []
    for href in urls:
        url = absolute_url(href, base_url)
        if url and url not in unique:
            unique.append(url)
    return unique


def _detail_from_json_ld(url: str, ld: LdEvent) -> FeverUpDetail:
    prices = ld.offer_prices
    detail = FeverUpDetail(
        url=url,
        title=ld.name.strip(),
        description=strip_html(ld.description, DESCRIPTION_MAX_LENGTH),
        image_url=ld.image_url,
        price_min=min(prices) if prices else None,
        price_max=max(prices) if len(prices) > 1 else None,
    )

    place = ld.area_served
    if place is not None:
        detail.venue = place.name or "Venue TBA"
        detail.address = place.locality or "Melbourne"
        detail.suburb = extract_suburb(detail.address)

    if ld.aggregate_rating is not None:
        detail.rating = ld.aggregate_rating.rating_value
        detail.rating_count = ld.aggregate_rating.rating_count
    return detail


def _detail_from_dom(url: str, soup: BeautifulSoup) -> FeverUpDetail | None:
    h1 = soup.select_one("h1")
    title = h1.get_text().strip() if h1 is not None else ""
    if not title:
        return None

    prices = [p for p in dollar_amounts(soup.get_text(" ")) if p > 0]
    return FeverUpDetail(
        url=url,
        title=title,
        description=strip_html(meta_content(soup, prop="og:description"), DESCRIPTION_MAX_LENGTH),
        image_url=meta_content(soup, prop="og:image"),
        price_min=min(prices) if prices else None,
        price_max=max(prices) if len(prices) > 1 else None,
    )


def parse_event_page(html: str, url: str) -> FeverUpDetail | None:
    """
    Decode an event page.

    Returns:
        FeverUpDetail, or None when neither JSON-LD nor a heading is found
    """
    soup = make_soup(html)
    ld = find_event(soup, types=frozenset({"Product", "Event"}))
    detail = _detail_from_json_ld(url, ld) if ld is not None else _detail_from_dom(url, soup)
    if detail is None:
        return None

    date_el = soup.select_one('[class*="date"]')
    if date_el is not None:
        detail.start_date, detail.end_date = parse_short_range(date_el.get_text().strip())
    return detail


# ============================================================================
# ADAPTER
# ============================================================================


@register_adapter("feverup")
class FeverUpAdapter(ScraperAdapter):
    """FeverUp Melbourne adapter."""

    SOURCE_ID = "feverup"
    BASE_URL = "https://feverup.com"
    DEFAULT_OPTIONS = {
        "max_items": 50,
        "fetch_detail_pages": True,
        "detail_fetch_delay_ms": 1500,
    }

    @property
    def listing_url(self) -> str:
        return self.config.base_url.rstrip("/") + LISTING_PATH

    def to_event(self, detail: FeverUpDetail, stats: AdapterStats) -> CanonicalEvent | None:
        category, subcategory = map_feverup_category(detail.title, detail.description)
        return self._build_event(
            stats,
            title=detail.title,
            description=detail.description or "No description available",
            category=category,
            subcategories={subcategory} if subcategory else set(),
            start_date=detail.start_date,
            end_date=detail.end_date,
            venue=Venue(
                name=detail.venue or "Venue TBA",
                address=detail.address or "Melbourne VIC",
                suburb=detail.suburb or "Melbourne",
            ),
            price_min=detail.price_min,
            price_max=detail.price_max,
            price_details=detail.rating_summary,
            is_free=detail.price_min == 0,
            booking_url=detail.url,
            image_url=detail.image_url,
            source_id=extract_source_id(detail.url),
        )

    async def _collect(self, options: AdapterOptions, stats: AdapterStats) -> list[CanonicalEvent]:
        if not await self._is_allowed(self.listing_url, stats):
            self.logger.info("Scraping disallowed by robots.txt")
            return []

        html = await self.fetch_html(self.listing_url, stats, check_compliance=False)
        if html is None:
            return []

        urls = parse_listing_urls(html, self.config.base_url)
        stats.fetched = len(urls)
        self.logger.info(f"Found {len(urls)} event URLs")
        if not options.fetch_detail_pages:
            # Listing entries carry no dates, so nothing can be emitted without details
            return []

        limit = options.max_items
        events: list[CanonicalEvent] = []
        for url in urls:
            if limit is not None and len(events) >= limit:
                break

            page = await self.fetch_html(url, stats)
            if page is None:
                continue

            detail = parse_event_page(page, url)
            if detail is None:
                stats.record_error(f"No event data on {url}")
            elif detail.is_gift_card:
                stats.skipped += 1
                self.logger.info(f"Skipping gift card: {detail.title}", extra={"phase": "detail"})
            elif detail.start_date is None:
                stats.skipped += 1
                self.logger.info(f"Skipping '{detail.title}': no dates found")
            else:
                event = self.to_event(detail, stats)
                if event is not None:
                    events.append(event)
                    self.logger.debug(f"Processed {len(events)}: {event.title}")

            await self._polite_delay(options.detail_fetch_delay_ms)

        return events
