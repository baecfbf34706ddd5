"""
Embedded structured data (JSON-LD) extraction.

Pages are parsed with BeautifulSoup; every ``application/ld+json`` block is
decoded and, when it looks like an event or product, validated into typed
pydantic models. A block that fails validation decodes to None so callers
fall back to DOM heuristics instead of probing loose dicts.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

EVENT_TYPES = frozenset({"Event", "Product", "TheaterEvent", "MusicEvent", "ComedyEvent"})


def make_soup(html: str | None) -> BeautifulSoup:
    """Parse HTML with the stdlib-backed parser."""
    return BeautifulSoup(html or "", "html.parser")


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace("$", "").replace(",", "").strip())
    except ValueError:
        return None


# =============================================================================
# MODELS
# =============================================================================


class _LdModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class LdImage(_LdModel):
    url: str | None = None
    content_url: str | None = None


class LdAddress(_LdModel):
    street_address: str | None = None
    address_locality: str | None = None


class LdPlace(_LdModel):
    name: str | None = None
    address: LdAddress | str | None = None

    @property
    def locality(self) -> str | None:
        if isinstance(self.address, LdAddress):
            return self.address.address_locality
        return self.address


class LdOffer(_LdModel):
    price: float | None = None
    low_price: float | None = None
    high_price: float | None = None
    area_served: LdPlace | None = None

    @field_validator("price", "low_price", "high_price", mode="before")
    @classmethod
    def numeric_or_none(cls, v: Any) -> float | None:
        return _to_float(v)


class LdRating(_LdModel):
    rating_value: float | None = None
    rating_count: int | None = None


class LdEvent(_LdModel):
    """An Event or Product JSON-LD block."""

    type: str | list[str] = Field(alias="@type")
    name: str = Field(min_length=1)
    description: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    image: LdImage | str | list[LdImage | str] | None = None
    images: list[LdImage | str] = Field(default_factory=list)
    offers: list[LdOffer] = Field(default_factory=list)
    location: LdPlace | None = None
    aggregate_rating: LdRating | None = None

    @field_validator("offers", mode="before")
    @classmethod
    def offers_as_list(cls, v: Any) -> list[Any]:
        if v is None:
            return []
        if isinstance(v, dict):
            return [v]
        return v

    @property
    def image_url(self) -> str | None:
        """Best image: image.contentUrl, then images[0], then image.url or a plain string."""
        if isinstance(self.image, LdImage) and self.image.content_url:
            return self.image.content_url
        if self.images:
            first = self.images[0]
            return first if isinstance(first, str) else (first.url or first.content_url)
        if isinstance(self.image, str):
            return self.image
        if isinstance(self.image, LdImage):
            return self.image.url
        if isinstance(self.image, list) and self.image:
            first = self.image[0]
            return first if isinstance(first, str) else (first.url or first.content_url)
        return None

    @property
    def offer_prices(self) -> list[float]:
        """Positive single-offer prices."""
        return [o.price for o in self.offers if o.price is not None and o.price > 0]

    @property
    def price_range(self) -> tuple[float | None, float | None]:
        """(lowPrice, highPrice) from the first aggregate offer carrying them."""
        for offer in self.offers:
            if offer.low_price is not None or offer.high_price is not None:
                return offer.low_price, offer.high_price
        return None, None

    @property
    def area_served(self) -> LdPlace | None:
        return self.offers[0].area_served if self.offers else None


# =============================================================================
# EXTRACTION
# =============================================================================


def iter_json_ld(soup: BeautifulSoup) -> Iterator[dict[str, Any]]:
    """Yield every JSON-LD object on the page, flattening lists and @graph."""
    for script in soup.select('script[type="application/ld+json"]'):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block")
            continue

        stack = data if isinstance(data, list) else [data]
        for item in stack:
            if not isinstance(item, dict):
                continue
            graph = item.get("@graph")
            if isinstance(graph, list):
                yield from (g for g in graph if isinstance(g, dict))
            else:
                yield item


def _type_names(item: dict[str, Any]) -> set[str]:
    value = item.get("@type")
    if isinstance(value, list):
        return {str(v) for v in value}
    return {str(value)} if value else set()


def decode_event(item: dict[str, Any]) -> LdEvent | None:
    """Strictly decode one JSON-LD object; None when it does not validate."""
    try:
        return LdEvent.model_validate(item)
    except ValidationError as e:
        logger.debug(f"JSON-LD block failed validation: {e.error_count()} errors")
        return None


def find_event(
    soup: BeautifulSoup,
    types: frozenset[str] = EVENT_TYPES,
    accept_start_date: bool = False,
) -> LdEvent | None:
    """
    Return the last decodable Event/Product block on the page.

    Args:
        soup: Parsed page
        types: Accepted @type values
        accept_start_date: Also accept blocks of any type that carry a startDate

    Returns:
        Decoded LdEvent, or None when no block validates
    """
    found = None
    for item in iter_json_ld(soup):
        if not (_type_names(item) & types or (accept_start_date and item.get("startDate"))):
            continue
        if "@type" not in item:
            item = {**item, "@type": "Event"}
        decoded = decode_event(item)
        if decoded is not None:
            found = decoded
    return found


def item_list_urls(soup: BeautifulSoup, must_contain: str | None = None) -> list[str]:
    """URLs listed in ItemList blocks, in page order."""
    urls: list[str] = []
    for item in iter_json_ld(soup):
        if "ItemList" not in _type_names(item):
            continue
        for element in item.get("itemListElement") or []:
            if not isinstance(element, dict):
                continue
            url = element.get("url")
            if not url and isinstance(element.get("item"), dict):
                url = element["item"].get("url")
            if isinstance(url, str) and (must_contain is None or must_contain in url):
                urls.append(url)
    return urls


def meta_content(soup: BeautifulSoup, *, name: str | None = None, prop: str | None = None) -> str | None:
    """Content of a <meta name=...> or <meta property=...> tag, stripped."""
    attrs = {"name": name} if name else {"property": prop}
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = (tag.get("content") or "").strip()
    return content or None
