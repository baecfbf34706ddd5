# src/event_ingest/schemas/event.py
"""
Canonical Event Schema for the event ingestion pipeline.

Every source adapter normalizes its raw listings into CanonicalEvent records.
The deduplication engine folds same-event clusters into MergedEvent records,
which carry the absorbed listings as alternate sources ("also available on").
"""

from datetime import UTC, datetime
from enum import Enum
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from event_ingest.schemas.taxonomy import Category, validate_subcategory_for_category

LOCAL_TIMEZONE = ZoneInfo("Australia/Melbourne")

PLACEHOLDER_ADDRESS_TOKEN = "TBA"
PLACEHOLDER_DESCRIPTION_TOKEN = "No description"


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Attach the local timezone to naive datetimes."""
    if value.tzinfo is None:
        return value.replace(tzinfo=LOCAL_TIMEZONE)
    return value


class ScrapeMode(str, Enum):
    """How a record was produced by its adapter."""

    FULL = "full"
    CAPTCHA_BLOCKED = "captcha-blocked"
    SITEMAP_FALLBACK = "sitemap-fallback"


# ============================================================================
# VENUE
# ============================================================================


class Venue(BaseModel):
    """Where the event takes place."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = "Venue TBA"
    address: str = PLACEHOLDER_ADDRESS_TOKEN
    suburb: str = "Melbourne"

    @property
    def has_placeholder_address(self) -> bool:
        return not self.address or PLACEHOLDER_ADDRESS_TOKEN in self.address


# ============================================================================
# CANONICAL EVENT
# ============================================================================


class CanonicalEvent(BaseModel):
    """
    A single normalized listing produced by one source adapter.

    (source, source_id) identifies a candidate before deduplication.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    description: str = ""
    category: Category = Category.OTHER
    subcategories: set[str] = Field(default_factory=set)

    start_date: datetime
    end_date: datetime | None = None

    venue: Venue = Field(default_factory=Venue)

    price_min: float | None = Field(default=None, ge=0)
    price_max: float | None = Field(default=None, ge=0)
    price_details: str | None = None
    is_free: bool = False

    booking_url: str = Field(..., min_length=1)
    image_url: str | None = None
    accessibility: list[str] = Field(default_factory=list)

    source: str = Field(..., min_length=1)
    source_id: str = Field(..., min_length=1)

    scrape_mode: ScrapeMode = ScrapeMode.FULL
    is_fallback: bool = False

    scraped_at: datetime = Field(default_factory=_utc_now)
    last_updated: datetime = Field(default_factory=_utc_now)

    @field_validator("start_date", "end_date", "scraped_at", "last_updated")
    @classmethod
    def attach_timezone(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return None
        return ensure_aware(v)

    @field_validator("image_url")
    @classmethod
    def empty_image_is_none(cls, v: str | None) -> str | None:
        return v or None

    @model_validator(mode="after")
    def validate_event(self) -> "CanonicalEvent":
        """Check date ordering and subcategory membership."""
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError(
                f"end_date {self.end_date.isoformat()} is before "
                f"start_date {self.start_date.isoformat()}"
            )
        for subcategory in self.subcategories:
            validate_subcategory_for_category(self.category, subcategory)
        return self

    @property
    def key(self) -> tuple[str, str]:
        """Unique (source, source_id) key."""
        return (self.source, self.source_id)

    @property
    def subcategory(self) -> str | None:
        """First subcategory in sorted order, if any."""
        return min(self.subcategories) if self.subcategories else None


class AlternateSource(BaseModel):
    """A listing absorbed into a merged record."""

    source: str
    source_id: str
    booking_url: str


class MergedEvent(CanonicalEvent):
    """
    Deduplicated catalog record.

    Holds the primary listing's identity plus every absorbed alternate.
    """

    alternate_sources: list[AlternateSource] = Field(default_factory=list)

    @classmethod
    def from_event(cls, event: CanonicalEvent) -> "MergedEvent":
        """Wrap a canonical event; merged events are returned unchanged."""
        if isinstance(event, MergedEvent):
            return event
        return cls(**event.model_dump())
