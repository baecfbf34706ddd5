"""
Ticketmaster Source.

API-based source reading the Ticketmaster Discovery API v2 for Melbourne.
Payloads are decoded into typed models before normalization.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from event_ingest.configs.settings import get_settings
from event_ingest.ingestion.adapters.api_adapter import APIAdapter
from event_ingest.ingestion.adapters.base_adapter import AdapterOptions, AdapterStats
from event_ingest.ingestion.errors import AdapterConfigError
from event_ingest.ingestion.factory import register_adapter
from event_ingest.ingestion.normalization.dates import combine_local_date_time
from event_ingest.ingestion.normalization.taxonomy_mapper import map_ticketmaster_category
from event_ingest.schemas.event import CanonicalEvent, Venue

EVENTS_PATH = "/discovery/v2/events.json"
BOOKING_URL_TEMPLATE = "https://www.ticketmaster.com.au/event/{event_id}"
MAX_PAGE_SIZE = 200


# ============================================================================
# PAYLOAD MODELS
# ============================================================================


class _TmModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class TmNamed(_TmModel):
    name: str | None = None


class TmClassification(_TmModel):
    segment: TmNamed | None = None
    genre: TmNamed | None = None
    sub_genre: TmNamed | None = None


class TmDate(_TmModel):
    local_date: str | None = None
    local_time: str | None = None


class TmDates(_TmModel):
    start: TmDate
    end: TmDate | None = None


class TmPriceRange(_TmModel):
    min: float | None = None
    max: float | None = None
    currency: str | None = None


class TmImage(_TmModel):
    url: str
    width: int = 0
    height: int = 0


class TmAddress(_TmModel):
    line1: str | None = None


class TmVenue(_TmModel):
    name: str | None = None
    address: TmAddress | None = None
    city: TmNamed | None = None


class TmEventEmbedded(_TmModel):
    venues: list[TmVenue] = Field(default_factory=list)


class TmEvent(_TmModel):
    """One event from the Discovery API."""

    id: str
    name: str
    description: str | None = None
    info: str | None = None
    url: str | None = None
    dates: TmDates
    classifications: list[TmClassification] = Field(default_factory=list)
    price_ranges: list[TmPriceRange] = Field(default_factory=list)
    images: list[TmImage] = Field(default_factory=list)
    embedded: TmEventEmbedded | None = Field(default=None, alias="_embedded")


class TmPage(_TmModel):
    size: int = 0
    total_elements: int = 0
    total_pages: int = 0
    number: int = 0


class TmSearchEmbedded(_TmModel):
    events: list[dict[str, Any]] = Field(default_factory=list)


class TmSearchResponse(_TmModel):
    """
    Envelope of an events.json response.

    Events stay raw here so one bad event does not sink the whole page.
    """

    embedded: TmSearchEmbedded | None = Field(default=None, alias="_embedded")
    page: TmPage = Field(default_factory=TmPage)

    @property
    def events(self) -> list[dict[str, Any]]:
        return self.embedded.events if self.embedded else []


# ============================================================================
# NORMALIZATION
# ============================================================================


def extract_price_info(price_ranges: list[TmPriceRange]) -> tuple[float | None, float | None, bool]:
    """
    Collapse price ranges into (price_min, price_max, is_free).

    Bounds are rounded and only kept when positive; a zero minimum (or a
    zero maximum with no minimum) marks the event free.
    """
    mins = [p.min for p in price_ranges if p.min is not None]
    maxs = [p.max for p in price_ranges if p.max is not None]

    price_min = min(mins) if mins else None
    price_max = max(maxs) if maxs else None
    is_free = price_min == 0 or (price_min is None and price_max == 0)

    return (
        float(round(price_min)) if price_min else None,
        float(round(price_max)) if price_max else None,
        is_free,
    )


def normalise_ticketmaster_event(event: TmEvent) -> dict[str, Any]:
    """
    Map a decoded Ticketmaster event to CanonicalEvent fields.

    Raises:
        ValueError: If the start date cannot be parsed
    """
    classification = event.classifications[0] if event.classifications else TmClassification()
    segment = classification.segment.name if classification.segment else None
    genre = classification.genre.name if classification.genre else None
    sub_genre = classification.sub_genre.name if classification.sub_genre else None
    category, subcategory = map_ticketmaster_category(segment, genre, sub_genre, event.name)

    start = combine_local_date_time(event.dates.start.local_date, event.dates.start.local_time)
    if start is None:
        raise ValueError(f"Invalid date: {event.dates.start.local_date}")

    end = None
    end_info = event.dates.end
    if end_info and end_info.local_date and end_info.local_date != event.dates.start.local_date:
        end = combine_local_date_time(end_info.local_date, end_info.local_time)

    venue = event.embedded.venues[0] if event.embedded and event.embedded.venues else TmVenue()
    price_min, price_max, is_free = extract_price_info(event.price_ranges)
    widest = max(event.images, key=lambda img: img.width) if event.images else None

    return {
        "title": event.name,
        "description": event.description or "No description available",
        "category": category,
        "subcategories": {subcategory} if subcategory else set(),
        "start_date": start,
        "end_date": end,
        "venue": Venue(
            name=venue.name or "Venue TBA",
            address=(venue.address.line1 if venue.address else None) or "TBA",
            suburb=(venue.city.name if venue.city else None) or "Melbourne",
        ),
        "price_min": price_min,
        "price_max": price_max,
        "is_free": is_free,
        "booking_url": event.url or BOOKING_URL_TEMPLATE.format(event_id=event.id),
        "image_url": widest.url if widest else None,
        "source_id": event.id,
    }


# ============================================================================
# ADAPTER
# ============================================================================


@register_adapter("ticketmaster")
class TicketmasterAdapter(APIAdapter):
    """
    Discovery API v2 adapter.

    Options (extra):
        city: City filter (default Melbourne)
        country_code: Country filter (default AU)
        max_pages: Page cap (default 5)
    """

    SOURCE_ID = "ticketmaster"
    BASE_URL = "https://app.ticketmaster.com"
    DEFAULT_OPTIONS = {
        "max_items": 200,
        "city": "Melbourne",
        "country_code": "AU",
        "max_pages": 5,
    }

    def _validate_config(self) -> None:
        if not self.config.base_url:
            raise AdapterConfigError(self.source_id, "Ticketmaster adapter requires base_url")

    def _api_key(self) -> str | None:
        return self.config.custom_config.get("api_key") or get_settings().get_ticketmaster_api_key()

    def _build_params(self, options: AdapterOptions, page: int, api_key: str) -> dict[str, Any]:
        return {
            "apikey": api_key,
            "city": options.get("city", "Melbourne"),
            "countryCode": options.get("country_code", "AU"),
            "size": min(MAX_PAGE_SIZE, options.max_items or MAX_PAGE_SIZE),
            "page": page,
            "sort": "date,asc",
        }

    async def _collect(self, options: AdapterOptions, stats: AdapterStats) -> list[CanonicalEvent]:
        api_key = self._api_key()
        if not api_key:
            raise AdapterConfigError(self.source_id, "TICKETMASTER_API_KEY is not configured")

        url = self.config.base_url.rstrip("/") + EVENTS_PATH
        max_pages = int(options.get("max_pages", 5))
        events: list[CanonicalEvent] = []
        page = 0

        while page < max_pages:
            self.logger.info(f"Fetching page {page + 1}/{max_pages}...")
            payload = await self.get_json(url, self._build_params(options, page, api_key), stats)
            if payload is None:
                break

            try:
                response = TmSearchResponse.model_validate(payload)
            except ValidationError as e:
                stats.record_error(f"Malformed events page {page}: {e.error_count()} errors")
                break

            raw_events = response.events
            stats.fetched += len(raw_events)
            for raw in raw_events:
                event = self._normalise(raw, stats)
                if event is not None:
                    events.append(event)

            if not raw_events or page + 1 >= response.page.total_pages:
                break
            if options.max_items is not None and len(events) >= options.max_items:
                break
            page += 1

        self.logger.info(f"Pagination complete: {stats.fetched} events across {page + 1} pages")
        return events

    def _normalise(self, raw: dict[str, Any], stats: AdapterStats) -> CanonicalEvent | None:
        try:
            fields = normalise_ticketmaster_event(TmEvent.model_validate(raw))
        except (ValidationError, ValueError) as e:
            stats.record_error(f"Failed to normalise event {raw.get('id', '?')}: {type(e).__name__}")
            self.logger.warning(f"Skipping event {raw.get('id', '?')}: {e}")
            return None
        return self._build_event(stats, **fields)
