"""
Marriner Group Source.

The shows page loads more cards as it is scrolled, so listing discovery
runs in a browser session. Show pages themselves are static and are
fetched over plain HTTP.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from event_ingest.ingestion.adapters.base_adapter import AdapterOptions, AdapterStats
from event_ingest.ingestion.adapters.scraper_adapter import BrowserScraperAdapter
from event_ingest.ingestion.browser.session import BrowserSession
from event_ingest.ingestion.factory import register_adapter
from event_ingest.ingestion.normalization.dates import parse_date_range_text
from event_ingest.ingestion.normalization.structured_data import make_soup, meta_content
from event_ingest.ingestion.normalization.taxonomy_mapper import map_marriner_category
from event_ingest.ingestion.normalization.text import absolute_url, slugify
from event_ingest.ingestion.resilience import sleep_ms
from event_ingest.schemas.event import CanonicalEvent, Venue

SHOWS_PATH = "/shows"
SHOW_LINK_SELECTOR = 'a[href*="/shows/"]'

VENUE_ADDRESSES: dict[str, str] = {
    "Princess Theatre": "163 Spring St, Melbourne VIC 3000",
    "Regent Theatre": "191 Collins St, Melbourne VIC 3000",
    "Comedy Theatre": "240 Exhibition St, Melbourne VIC 3000",
    "Forum Melbourne": "154 Flinders St, Melbourne VIC 3000",
}
KNOWN_VENUES = ("Princess Theatre", "Comedy Theatre", "Regent Theatre", "Forum Melbourne")
DEFAULT_VENUE = "Marriner Venue"
DEFAULT_ADDRESS = "Melbourne CBD"

# Scroll loop limits
MAX_NO_CHANGE = 4
MAX_SCROLL_ATTEMPTS = 20
SCROLL_FRACTION = 0.8
SCROLL_PAUSE_MS = 2000
DESCRIPTION_MAX_LENGTH = 1500

_VENUE_IN_TEXT = re.compile(r"at\s+(?:the\s+)?(.+?),?\s*Melbourne", re.IGNORECASE)
_SLUG_DATE_SUFFIXES = (
    re.compile(r"-\d{2,4}$"),
    re.compile(r"-on-\d+.*$"),
    re.compile(r"-\d{1,2}-(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec).*$", re.IGNORECASE),
)


@dataclass
class RawShow:
    url: str
    title: str
    date_text: str
    venue: str
    description: str = ""
    image_url: str | None = None


# ============================================================================
# PARSING
# ============================================================================


def extract_show_slug(url: str) -> str:
    """
    Last path segment with date suffixes removed.

    >>> extract_show_slug("https://marrinergroup.com.au/shows/hamlet-12-apr-2025")
    'hamlet'
    """
    segment = urlparse(url).path.rstrip("/").split("/")[-1]
    for pattern in _SLUG_DATE_SUFFIXES:
        segment = pattern.sub("", segment)
    return segment


def deduplicate_by_slug(urls: list[str]) -> list[str]:
    """Keep the first URL per show slug, in order."""
    seen: dict[str, str] = {}
    for url in urls:
        slug = extract_show_slug(url)
        if slug and slug not in seen:
            seen[slug] = url
    return list(seen.values())


def _known_venue_in(text: str) -> str | None:
    lowered = text.lower()
    for venue in KNOWN_VENUES:
        if venue.lower() in lowered:
            return venue
    return None


def extract_venue(subtitle: str, title: str) -> str:
    """Venue from the "at the X, Melbourne" subtitle, known venue names, or the title."""
    match = _VENUE_IN_TEXT.search(subtitle or "")
    if match:
        return match.group(1).strip()
    return _known_venue_in(subtitle or "") or _known_venue_in(title) or DEFAULT_VENUE


def extract_image(soup, base_url: str) -> str | None:
    """og:image, else the first image that is not a logo or icon."""
    src = meta_content(soup, prop="og:image")
    if not src:
        for img in soup.select("img"):
            candidate = img.get("src") or ""
            alt = (img.get("alt") or "").lower()
            if candidate and "logo" not in candidate and "icon" not in candidate and "logo" not in alt:
                src = candidate
                break
    return absolute_url(src, base_url)


def parse_show_page(html: str, url: str, base_url: str) -> RawShow | None:
    """
    Decode a show page.

    Returns:
        RawShow, or None when the title or the dates block is missing
    """
    soup = make_soup(html)
    h1 = soup.select_one("h1")
    title = h1.get_text().strip() if h1 is not None else ""
    if not title:
        return None

    dates = soup.select_one(".dates")
    date_text = dates.get_text().strip() if dates is not None else ""
    if not date_text:
        return None

    h2 = soup.select_one("h2")
    paragraphs = [p.get_text().strip() for p in soup.select(".description p")]
    description = "\n\n".join(p for p in paragraphs if p and not p.startswith("---"))

    return RawShow(
        url=url,
        title=title,
        date_text=date_text,
        venue=extract_venue(h2.get_text().strip() if h2 is not None else "", title),
        description=description[:DESCRIPTION_MAX_LENGTH],
        image_url=extract_image(soup, base_url),
    )


# ============================================================================
# ADAPTER
# ============================================================================


@register_adapter("marriner")
class MarrinerAdapter(BrowserScraperAdapter):
    """
    Marriner Group theatres adapter.

    Options (extra):
        max_detail_fetches: Cap on show pages fetched (default all collected)
    """

    SOURCE_ID = "marriner"
    BASE_URL = "https://marrinergroup.com.au"
    DEFAULT_OPTIONS = {
        "max_items": 50,
        "fetch_detail_pages": True,
        "detail_fetch_delay_ms": 800,
    }

    @property
    def shows_url(self) -> str:
        return self.config.base_url.rstrip("/") + SHOWS_PATH

    async def scroll_for_show_urls(self, session: BrowserSession, max_shows: int) -> list[str]:
        """
        Scroll the shows page, collecting show links.

        Stops after MAX_NO_CHANGE passes without new links, MAX_SCROLL_ATTEMPTS
        scrolls, or 2 x max_shows links.
        """
        await session.goto(self.shows_url)
        await sleep_ms(SCROLL_PAUSE_MS)

        root = self.shows_url.rstrip("/")
        urls: dict[str, None] = {}
        no_change = 0
        attempts = 0

        while no_change < MAX_NO_CHANGE and attempts < MAX_SCROLL_ATTEMPTS and len(urls) < max_shows * 2:
            before = len(urls)
            for href in await session.hrefs(SHOW_LINK_SELECTOR):
                if "/shows/" in href and href.rstrip("/") != root:
                    urls.setdefault(href, None)

            no_change = no_change + 1 if len(urls) == before else 0
            attempts += 1
            self.logger.debug(f"Scroll {attempts}: {len(urls)} URLs found")

            await session.scroll_viewport(SCROLL_FRACTION)
            await sleep_ms(SCROLL_PAUSE_MS)

        unique = deduplicate_by_slug(list(urls))
        result = unique[:max_shows]
        self.logger.info(
            f"Collected {len(urls)} URLs, {len(unique)} unique shows, taking {len(result)}"
        )
        return result

    def to_event(self, show: RawShow, stats: AdapterStats) -> CanonicalEvent | None:
        start, end = parse_date_range_text(show.date_text)
        if start is None:
            stats.skipped += 1
            self.logger.info(f"Skipping '{show.title}': unparsable dates '{show.date_text}'")
            return None

        category, subcategory = map_marriner_category(show.title, show.venue)
        return self._build_event(
            stats,
            title=show.title,
            description=show.description or show.title,
            category=category,
            subcategories={subcategory} if subcategory else set(),
            start_date=start,
            end_date=end,
            venue=Venue(
                name=show.venue,
                address=VENUE_ADDRESSES.get(show.venue, DEFAULT_ADDRESS),
                suburb="Melbourne",
            ),
            is_free=False,
            booking_url=show.url,
            image_url=show.image_url,
            source_id=extract_show_slug(show.url) or slugify(show.title),
        )

    async def _collect(self, options: AdapterOptions, stats: AdapterStats) -> list[CanonicalEvent]:
        if not await self._is_allowed(self.shows_url, stats):
            return []

        max_shows = options.max_items or 50
        async with self.driver.session() as session:
            urls = await self.scroll_for_show_urls(session, max_shows)
        stats.fetched = len(urls)

        if not options.fetch_detail_pages:
            return []

        fetch_limit = options.get("max_detail_fetches") or len(urls)
        events: list[CanonicalEvent] = []
        for url in urls[:fetch_limit]:
            html = await self.fetch_html(url, stats)
            if html is not None:
                show = parse_show_page(html, url, self.config.base_url)
                if show is None:
                    stats.record_error(f"Missing title or dates on {url}")
                else:
                    event = self.to_event(show, stats)
                    if event is not None:
                        events.append(event)
            await self._polite_delay(options.detail_fetch_delay_ms)

        return events
