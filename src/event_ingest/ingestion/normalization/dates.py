"""
Date parsing helpers for scraped listings.

All results are naive local datetimes; CanonicalEvent attaches the
Australia/Melbourne timezone on validation. Every function accepts an
optional ``today`` so year inference is deterministic under test.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time

from event_ingest.schemas.event import LOCAL_TIMEZONE

DEFAULT_EVENT_TIME = time(12, 0)

_DAY_MONTH_YEAR_FORMATS = ("%d %B %Y", "%d %b %Y", "%B %d %Y", "%b %d %Y")
_MONTH_YEAR_FORMATS = ("%B %Y", "%b %Y")

_YEAR = re.compile(r"\b(\d{4})\b")
_RANGE_SPLIT = re.compile(r"\s*[—–\-]\s*")
_SHORT_RANGE = re.compile(r"(\d{1,2})\s+([A-Za-z]{3})[a-z]*\s*-\s*(\d{1,2})\s+([A-Za-z]{3})")
_MONTH_YEAR = re.compile(r"([A-Za-z]{3,})\s+(\d{4})")
_WEEKDAY = re.compile(
    r"\b(mon|tue|tues|wed|thu|thur|thurs|fri|sat|sun)[a-z]*,?\s+", re.IGNORECASE
)


def local_today() -> date:
    """Today's date in Melbourne."""
    return datetime.now(LOCAL_TIMEZONE).date()


def _clean(text: str) -> str:
    text = _WEEKDAY.sub("", text or "")
    text = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", text)
    return " ".join(text.replace(",", " ").split())


def _strptime_any(text: str, formats: tuple[str, ...]) -> datetime | None:
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_day_month(
    text: str,
    today: date | None = None,
    year: int | None = None,
) -> datetime | None:
    """
    Parse "12 April", "12 Apr 2025" or "April 12 2025".

    When the text has no year, the given year is used; otherwise the current
    year is tried first and the date rolls into next year if it already passed.

    Returns:
        Naive datetime at midnight, or None if unparsable
    """
    cleaned = _clean(text)
    if not cleaned:
        return None

    parsed = _strptime_any(cleaned, _DAY_MONTH_YEAR_FORMATS)
    if parsed is not None:
        return parsed

    if _YEAR.search(cleaned):
        return None

    today = today or local_today()
    candidate_year = year if year is not None else today.year
    parsed = _strptime_any(f"{cleaned} {candidate_year}", _DAY_MONTH_YEAR_FORMATS)
    if parsed is None:
        return None
    if year is None and parsed.date() < today:
        parsed = parsed.replace(year=candidate_year + 1)
    return parsed


def parse_date_range_text(
    text: str | None,
    today: date | None = None,
) -> tuple[datetime | None, datetime | None]:
    """
    Parse a theatre-style date range.

    Handles:
    - "12 & 13 April 2025" (day list sharing month and year)
    - "5 May - 15 June 2025" (range split on hyphen, en dash or em dash)
    - "15 June 2025" single dates

    A start without a year borrows the end's year; if that puts it after
    the end, the previous year is used.

    Returns:
        (start, end); start is None when unparsable, end may be None
    """
    if not text or text.strip().upper() == "TBA":
        return None, None

    text = text.strip()

    if "&" in text:
        first, _, rest = (part.strip() for part in text.partition("&"))
        tokens = rest.split()
        if first.isdigit() and len(tokens) >= 2:
            tail = " ".join(tokens[1:])
            start = parse_day_month(f"{first} {tail}", today)
            end = parse_day_month(f"{tokens[0]} {tail}", today)
            return start, end

    parts = [p for p in _RANGE_SPLIT.split(text) if p]
    if not parts:
        return None, None

    end = parse_day_month(parts[1], today) if len(parts) > 1 else None

    start_year = None
    if end is not None and not _YEAR.search(parts[0]):
        start_year = end.year
    start = parse_day_month(parts[0], today, year=start_year)
    if start is not None and end is not None and start > end and start_year is not None:
        start = start.replace(year=start_year - 1)

    return start, end


def parse_short_range(
    text: str | None,
    today: date | None = None,
) -> tuple[datetime | None, datetime | None]:
    """
    Parse "09 Dec - 01 Feb" (current year) or "Oct 2025" (first of month).

    Returns:
        (start, end); both None when nothing matched
    """
    if not text or text.strip() == "Not found":
        return None, None

    year = (today or local_today()).year

    match = _SHORT_RANGE.search(text)
    if match:
        start_day, start_month, end_day, end_month = match.groups()
        start = _strptime_any(f"{start_day} {start_month.title()} {year}", ("%d %b %Y",))
        end = _strptime_any(f"{end_day} {end_month.title()} {year}", ("%d %b %Y",))
        if start is not None and end is not None and end < start:
            end = end.replace(year=year + 1)
        return start, end

    match = _MONTH_YEAR.search(text)
    if match:
        month, yr = match.groups()
        start = _strptime_any(f"{month.title()} {yr}", _MONTH_YEAR_FORMATS)
        return start, None

    return None, None


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 datetime or date string; None when invalid."""
    if not value:
        return None
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def combine_local_date_time(
    local_date: str | None,
    local_time: str | None = None,
) -> datetime | None:
    """
    Combine a "YYYY-MM-DD" date with an optional "HH:MM[:SS]" time.

    Missing times default to midday.
    """
    if not local_date:
        return None
    try:
        day = date.fromisoformat(local_date.strip())
    except ValueError:
        return None

    at = DEFAULT_EVENT_TIME
    if local_time:
        try:
            at = time.fromisoformat(local_time.strip())
        except ValueError:
            at = DEFAULT_EVENT_TIME
    return datetime.combine(day, at)


def estimate_date_from_year(year: int) -> datetime:
    """Mid-year placeholder used for records that only expose a year."""
    return datetime(year, 6, 15)
