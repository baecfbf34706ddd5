"""Text helpers shared by the source adapters.

Slugs, whitespace and HTML cleanup, suburb lookup and price extraction.
None of these functions raise on odd input; they return empty values instead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

MELBOURNE_SUBURBS: tuple[str, ...] = (
    "Carlton",
    "Fitzroy",
    "Collingwood",
    "Richmond",
    "Southbank",
    "St Kilda",
    "South Yarra",
    "Docklands",
    "Melbourne",
)

DEFAULT_SUBURB = "Melbourne"

# Abbreviations that appear in Arts Centre URL slugs
SLUG_ABBREVIATIONS: dict[str, str] = {
    "mso": "MSO",
    "aco": "ACO",
    "mtc": "MTC",
    "vo": "Victorian Opera",
    "tab": "The Australian Ballet",
    "oa": "Opera Australia",
}

_WS = re.compile(r"\s+")
_TAG = re.compile(r"<[^>]*>")
_NON_SLUG = re.compile(r"[^a-z0-9]+")
_DOLLAR_AMOUNT = re.compile(r"\$\s*(\d+(?:,\d{3})*(?:\.\d+)?)")
_FROM_TO = re.compile(
    r"From\s*\$(\d+(?:\.\d+)?)\s*to\s*\$(\d+(?:\.\d+)?)", re.IGNORECASE
)
_FREE = re.compile(r"\bfree\b", re.IGNORECASE)


def collapse_whitespace(text: str | None) -> str:
    """Collapse runs of whitespace into single spaces and strip."""
    return _WS.sub(" ", (text or "").strip())


def strip_html(text: str | None, max_length: int | None = None) -> str:
    """Remove tags, normalise whitespace and optionally truncate."""
    cleaned = collapse_whitespace(_TAG.sub("", text or ""))
    if max_length is not None:
        cleaned = cleaned[:max_length].rstrip()
    return cleaned


def slugify(text: str) -> str:
    """
    Build a URL-style slug.

    >>> slugify("Hamlet: The Musical!")
    'hamlet-the-musical'
    """
    return _NON_SLUG.sub("-", (text or "").lower()).strip("-")


def slug_to_title(slug: str) -> str:
    """Turn a URL slug back into a readable title, expanding known abbreviations."""
    words = []
    for word in (slug or "").split("-"):
        if not word:
            continue
        words.append(SLUG_ABBREVIATIONS.get(word.lower(), word.capitalize()))
    return " ".join(words)


def extract_suburb(text: str | None, default: str = DEFAULT_SUBURB) -> str:
    """Return the first known Melbourne suburb mentioned in text."""
    if not text:
        return default
    for suburb in MELBOURNE_SUBURBS:
        if suburb in text:
            return suburb
    return default


def absolute_url(href: str | None, base_url: str) -> str | None:
    """Resolve site-relative hrefs against a base URL."""
    if not href:
        return None
    href = href.strip()
    if href.startswith("http://") or href.startswith("https://"):
        return href
    if href.startswith("//"):
        return "https:" + href
    return base_url.rstrip("/") + "/" + href.lstrip("/")


# ---------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------


@dataclass
class PriceInfo:
    """Price bounds decoded from free text."""

    price_min: float | None = None
    price_max: float | None = None
    is_free: bool = False

    @property
    def found(self) -> bool:
        return self.is_free or self.price_min is not None


def dollar_amounts(text: str | None) -> list[float]:
    """All dollar amounts in text, in order of appearance."""
    amounts = []
    for raw in _DOLLAR_AMOUNT.findall(text or ""):
        try:
            amounts.append(float(raw.replace(",", "")))
        except ValueError:
            continue
    return amounts


def extract_prices(text: str | None, upper_bound: float | None = None) -> PriceInfo:
    """
    Decode a price widget.

    Order of checks:
    1. the word "free" marks the event free (0/0)
    2. "From $X to $Y" gives an explicit range
    3. otherwise positive dollar amounts give min, and max when there is more than one

    Args:
        text: Raw widget text
        upper_bound: Amounts at or above this are ignored (filters out totals and phone numbers)

    Returns:
        PriceInfo (empty when nothing matched)
    """
    if not text:
        return PriceInfo()

    if _FREE.search(text):
        return PriceInfo(price_min=0.0, price_max=0.0, is_free=True)

    match = _FROM_TO.search(text)
    if match:
        return PriceInfo(price_min=float(match.group(1)), price_max=float(match.group(2)))

    prices = [p for p in dollar_amounts(text) if p > 0]
    if upper_bound is not None:
        prices = [p for p in prices if p < upper_bound]
    if not prices:
        return PriceInfo()

    return PriceInfo(
        price_min=min(prices),
        price_max=max(prices) if len(prices) > 1 else None,
    )
