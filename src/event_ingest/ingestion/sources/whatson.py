"""
What's On Melbourne Source.

Scraper source for the City of Melbourne listings site. Category tag pages
are paginated listings; each listing card already carries title, dates,
image and tags, and the detail page adds description, venue, prices and
accessibility information.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from bs4 import BeautifulSoup, Tag

from event_ingest.ingestion.adapters.base_adapter import AdapterOptions, AdapterStats
from event_ingest.ingestion.adapters.scraper_adapter import ScraperAdapter
from event_ingest.ingestion.factory import register_adapter
from event_ingest.ingestion.normalization.dates import parse_iso_datetime
from event_ingest.ingestion.normalization.structured_data import make_soup, meta_content
from event_ingest.ingestion.normalization.taxonomy_mapper import map_whatson_category
from event_ingest.ingestion.normalization.text import (
    absolute_url,
    collapse_whitespace,
    extract_prices,
    extract_suburb,
    slugify,
)
from event_ingest.ingestion.resilience import PolitenessDelay, sleep_ms
from event_ingest.schemas.event import CanonicalEvent, Venue, ensure_aware

MAX_CONSECUTIVE_FAILURES = 3
FAILURE_BACKOFF_MS = 5000
CATEGORY_DELAY_MS = 2000
PAGE_DELAY = PolitenessDelay(min_ms=2000, max_ms=3000)


@dataclass
class ListingItem:
    """One event card from a tag listing page."""

    url: str
    title: str
    summary: str = ""
    start_date: datetime | None = None
    end_date: datetime | None = None
    image_url: str | None = None
    is_free: bool = False
    tags: list[str] = field(default_factory=list)


@dataclass
class DetailInfo:
    """Fields only available on the event page."""

    description: str | None = None
    venue: str | None = None
    address: str | None = None
    price_min: float | None = None
    price_max: float | None = None
    price_details: str | None = None
    is_free: bool | None = None
    accessibility: list[str] = field(default_factory=list)


# ============================================================================
# PARSING
# ============================================================================


def _text(node: Tag | None) -> str:
    return node.get_text().strip() if node is not None else ""


def parse_listing_dates(card: Tag) -> tuple[datetime | None, datetime | None]:
    """Earliest and latest <time datetime> on a card; end only when there are several."""
    dates = []
    for el in card.select("time[datetime]"):
        parsed = parse_iso_datetime(el.get("datetime"))
        if parsed is not None:
            dates.append(ensure_aware(parsed))
    if not dates:
        return None, None
    dates.sort()
    return dates[0], dates[-1] if len(dates) > 1 else None


def parse_listing_item(card: Tag, base_url: str) -> ListingItem | None:
    """Decode a .page-preview card; None for cards that are not event links."""
    link = card.select_one("a.main-link")
    href = link.get("href") if link is not None else None
    if not href or "/things-to-do/" not in href:
        return None

    title = _text(card.select_one("h2.title"))
    if not title:
        return None

    start, end = parse_listing_dates(card)
    img = card.select_one(".page_image")
    tags = [t.get_text().strip().lower() for t in card.select(".tag-list a")]
    tags = [t for t in tags if t]

    return ListingItem(
        url=absolute_url(href, base_url),
        title=title,
        summary=_text(card.select_one("p.summary")),
        start_date=start,
        end_date=end,
        image_url=absolute_url(img.get("src") if img is not None else None, base_url),
        is_free="free" in tags,
        tags=tags,
    )


def parse_listing_page(html: str, base_url: str) -> tuple[list[ListingItem], bool]:
    """
    Decode a tag listing page.

    Returns:
        (event cards in page order, whether a next-page link is present)
    """
    soup = make_soup(html)
    items = []
    for card in soup.select(".page-preview"):
        listing_type = card.get("data-listing-type") or ""
        if "event" not in listing_type:
            continue
        item = parse_listing_item(card, base_url)
        if item is not None:
            items.append(item)

    has_next = bool(soup.select('.pagination a[rel="next"]') or soup.select(".pagination .next a"))
    return items, has_next


def _location_lines(soup: BeautifulSoup) -> list[str]:
    text = "\n".join(p.get_text() for p in soup.select(".location.details-widget p"))
    return [line.strip() for line in text.strip().split("\n") if line.strip()]


def parse_detail_page(html: str) -> DetailInfo:
    """Decode an event page into the fields the listing card lacks."""
    soup = make_soup(html)

    body = soup.select_one(".listing-description .contents")
    description = (
        meta_content(soup, name="description")
        or meta_content(soup, prop="og:description")
        or (_text(body)[:500] or None)
    )

    lines = _location_lines(soup)
    if lines:
        venue = lines[0]
    else:
        venue_text = _text(soup.select_one('[class*="venue"]'))
        venue = venue_text.split("\n")[0].strip() or None
    address = ", ".join(lines[1:]) or None

    detail = DetailInfo(
        description=description,
        venue=venue,
        address=address,
        accessibility=[
            collapse_whitespace(el.get_text()) for el in soup.select(".accessibility-feature__link")
        ],
    )

    prices = extract_prices(_text(soup.select_one(".price-and-bookings")))
    if prices.is_free:
        detail.price_min, detail.price_max, detail.is_free = 0.0, 0.0, True
    elif prices.found:
        detail.price_min, detail.price_max = prices.price_min, prices.price_max
        cells = [el.get_text().strip() for el in soup.select(".price-table tr td")]
        detail.price_details = "; ".join(cells) if cells else None

    return detail


# ============================================================================
# ADAPTER
# ============================================================================


@register_adapter("whatson")
class WhatsOnAdapter(ScraperAdapter):
    """
    What's On Melbourne adapter.

    Options (extra):
        max_pages: Listing pages per category (default 5)
        max_events_per_category: Cap per category tag (default max_items)
    """

    SOURCE_ID = "whatson"
    BASE_URL = "https://whatson.melbourne.vic.gov.au"
    DEFAULT_OPTIONS = {
        "category_filter": ["theatre", "music"],
        "max_pages": 5,
        "fetch_detail_pages": True,
        "detail_fetch_delay_ms": 1000,
    }

    def listing_url(self, category: str, page: int) -> str:
        suffix = f"/page-{page}" if page > 1 else ""
        return f"{self.config.base_url.rstrip('/')}/tags/{category}{suffix}"

    async def collect_listings(self, category: str, max_pages: int, stats: AdapterStats) -> list[ListingItem]:
        """
        Walk the paginated tag listing.

        Stops after MAX_CONSECUTIVE_FAILURES failed pages, a page with no new
        events, or a missing next-page link past page 1.
        """
        items: list[ListingItem] = []
        seen_urls: set[str] = set()
        failures = 0

        for page in range(1, max_pages + 1):
            if page > 1:
                await PAGE_DELAY.wait()

            url = self.listing_url(category, page)
            if not await self._is_allowed(url, stats):
                break

            html = await self.fetch_html(url, stats, check_compliance=False)
            if html is None:
                failures += 1
                if failures >= MAX_CONSECUTIVE_FAILURES:
                    self.logger.warning(f"Too many failures, stopping category: {category}")
                    break
                await sleep_ms(FAILURE_BACKOFF_MS)
                continue
            failures = 0

            page_items, has_next = parse_listing_page(html, self.config.base_url)
            new_items = [item for item in page_items if item.url not in seen_urls]
            for item in new_items:
                seen_urls.add(item.url)
            items.extend(new_items)
            self.logger.info(
                f"{category} page {page}: +{len(new_items)} events ({len(items)} total)", extra={"phase": "listing"}
            )

            if not new_items:
                self.logger.info(f"No new events on page {page}, stopping")
                break
            if not has_next and page > 1:
                self.logger.info("No more pages available")
                break

        return items

    async def fetch_details(self, item: ListingItem, stats: AdapterStats) -> DetailInfo | None:
        html = await self.fetch_html(item.url, stats)
        if html is None:
            return None
        return parse_detail_page(html)

    def to_event(
        self,
        item: ListingItem,
        detail: DetailInfo | None,
        category_tag: str,
        stats: AdapterStats,
    ) -> CanonicalEvent | None:
        """Merge listing and detail data into a canonical event."""
        detail = detail or DetailInfo()
        category, subcategory = map_whatson_category(category_tag, item.title)
        address = detail.address or "Melbourne VIC"
        is_free = detail.is_free if detail.is_free is not None else item.is_free

        return self._build_event(
            stats,
            title=item.title,
            description=detail.description or item.summary or "No description available",
            category=category,
            subcategories={subcategory} if subcategory else set(),
            start_date=item.start_date,
            end_date=item.end_date,
            venue=Venue(
                name=detail.venue or "Venue TBA",
                address=address,
                suburb=extract_suburb(address),
            ),
            price_min=detail.price_min,
            price_max=detail.price_max,
            price_details=detail.price_details,
            is_free=is_free,
            booking_url=item.url,
            image_url=item.image_url,
            accessibility=detail.accessibility,
            source_id=slugify(item.title),
        )

    async def _collect(self, options: AdapterOptions, stats: AdapterStats) -> list[CanonicalEvent]:
        max_pages = int(options.get("max_pages", 5))
        per_category = options.get("max_events_per_category", options.max_items)
        events: list[CanonicalEvent] = []
        seen_titles: set[str] = set()

        for index, category in enumerate(options.category_filter):
            if index > 0:
                await sleep_ms(CATEGORY_DELAY_MS)

            listings = await self.collect_listings(category, max_pages, stats)
            stats.fetched += len(listings)
            self.logger.info(f"Found {len(listings)} events in '{category}' listings")

            processed = 0
            for item in listings:
                if per_category is not None and processed >= per_category:
                    break

                title_key = slugify(item.title)
                if title_key in seen_titles:
                    self.logger.debug(f"Skipping duplicate: {item.title}")
                    continue

                if item.start_date is None:
                    stats.skipped += 1
                    self.logger.info(f"Skipping '{item.title}': no start date")
                    continue

                detail = None
                if options.fetch_detail_pages:
                    detail = await self.fetch_details(item, stats)
                    await self._polite_delay(options.detail_fetch_delay_ms)

                event = self.to_event(item, detail, category, stats)
                if event is not None:
                    events.append(event)
                    seen_titles.add(title_key)
                    processed += 1

        return events
