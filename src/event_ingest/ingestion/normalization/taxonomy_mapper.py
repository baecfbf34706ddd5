"""
Rule-based taxonomy mapping.

Maps source-specific signals (Ticketmaster segment/genre, What's On tags,
titles, Arts Centre URL paths) onto the closed category/subcategory space.

Rules are evaluated in order and the first match wins; every rule table
ends in a total fallback, so none of these functions raise.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, NamedTuple

from event_ingest.schemas.taxonomy import SHAKESPEARE_PLAYS, Category, get_default_subcategory

logger = logging.getLogger(__name__)


class Classification(NamedTuple):
    """A (category, subcategory) pair inside the closed taxonomy."""

    category: Category
    subcategory: str


FALLBACK = Classification(Category.OTHER, "Community Events")


def _first_match(
    text: str,
    rules: tuple[tuple[tuple[str, ...], str], ...],
    category: Category,
) -> Classification:
    """Return the subcategory of the first rule with a keyword contained in text."""
    for keywords, subcategory in rules:
        if any(kw in text for kw in keywords):
            return Classification(category, subcategory)
    return Classification(category, get_default_subcategory(category))


# =============================================================================
# KEYWORD RULES
# =============================================================================

MUSIC_TITLE_RULES = (
    (("classical", "orchestra", "symphony"), "Classical & Orchestra"),
    (("jazz", "blues"), "Jazz & Blues"),
    (("rock", "alternative", "indie"), "Rock & Alternative"),
    (("pop", "electronic", "edm"), "Pop & Electronic"),
    (("hip hop", "rap", "r&b", "rnb"), "Hip Hop & R&B"),
    (("country", "folk"), "Country & Folk"),
    (("metal", "punk"), "Metal & Punk"),
    (("world music", "ethnic"), "World Music"),
)

FAMILY_TITLE_RULES = (
    (("kids", "children"), "Kids Shows"),
    (("circus", "magic"), "Circus & Magic"),
    (("education",), "Educational"),
)

ARTS_TITLE_RULES = (
    (("film", "cinema", "movie"), "Film & Cinema"),
    (("exhibition", "gallery"), "Art Exhibitions"),
    (("book", "author", "poetry"), "Literary Events"),
    (("market", "fair"), "Markets & Fairs"),
)

# Exact Ticketmaster genre names
MUSIC_GENRES: dict[str, str] = {
    "Rock": "Rock & Alternative",
    "Alternative": "Rock & Alternative",
    "Pop": "Pop & Electronic",
    "Electronic": "Pop & Electronic",
    "Jazz": "Jazz & Blues",
    "Blues": "Jazz & Blues",
    "Classical": "Classical & Orchestra",
    "Orchestra": "Classical & Orchestra",
    "Symphony": "Classical & Orchestra",
    "Hip-Hop/Rap": "Hip Hop & R&B",
    "R&B": "Hip Hop & R&B",
    "Hip Hop": "Hip Hop & R&B",
    "Country": "Country & Folk",
    "Folk": "Country & Folk",
    "Metal": "Metal & Punk",
    "Punk": "Metal & Punk",
    "World": "World Music",
}

SPORTS_GENRES: dict[str, str] = {
    "Football": "AFL",
    "AFL": "AFL",
    "Cricket": "Cricket",
    "Soccer": "Soccer",
    "Basketball": "Basketball",
    "Tennis": "Tennis",
    "Rugby": "Rugby",
    "Motor Sports": "Motorsports",
    "Racing": "Motorsports",
}

FEVERUP_CATEGORY_PATTERNS: tuple[tuple[Category, re.Pattern[str]], ...] = (
    (Category.MUSIC, re.compile(r"\b(concert|music|symphony|orchestra|jazz|rock|pop|band)\b")),
    (Category.THEATRE, re.compile(r"\b(theatre|musical|play|opera|ballet|performance|show)\b")),
    (Category.ARTS, re.compile(r"\b(exhibition|gallery|art|museum|immersive|experience)\b")),
    (Category.FAMILY, re.compile(r"\b(family|kids|children|interactive|workshop)\b")),
    (Category.SPORTS, re.compile(r"\b(sport|game|match|race|tournament)\b")),
)

# Arts Centre URL path keyword -> classification. Order matters: first hit wins.
ARTSCENTRE_URL_RULES: tuple[tuple[str, Classification | None], ...] = (
    ("classical-music", Classification(Category.MUSIC, "Classical & Orchestra")),
    ("contemporary-music", Classification(Category.MUSIC, "Pop & Electronic")),
    ("opera", Classification(Category.THEATRE, "Opera")),
    ("comedy", Classification(Category.THEATRE, "Comedy Shows")),
    ("circus-and-magic", Classification(Category.FAMILY, "Circus & Magic")),
    ("musicals", Classification(Category.THEATRE, "Musicals")),
    ("musical", Classification(Category.THEATRE, "Musicals")),
    ("dance", Classification(Category.THEATRE, "Ballet & Dance")),
    ("theatre", None),  # title decides
    ("kids-and-families", Classification(Category.FAMILY, "Kids Shows")),
    ("exhibitions", Classification(Category.ARTS, "Art Exhibitions")),
    ("talks-and-ideas", Classification(Category.ARTS, "Literary Events")),
    ("festivals-and-series", Classification(Category.ARTS, "Cultural Festivals")),
    ("seasons", Classification(Category.ARTS, "Cultural Festivals")),
    ("schools-and-teachers", Classification(Category.FAMILY, "Educational")),
    ("ampa", Classification(Category.ARTS, "Cultural Festivals")),
)


# =============================================================================
# PER-CATEGORY CLASSIFIERS
# =============================================================================


def classify_theatre(title: str, venue: str | None = None) -> Classification:
    """
    Classify a theatre event from its title, with the venue as a hint.

    Args:
        title: Event title (any case)
        venue: Venue name; a venue containing "Comedy" implies Comedy Shows

    Returns:
        Classification within theatre (Drama when nothing matches)
    """
    t = (title or "").lower()
    if "musical" in t:
        return Classification(Category.THEATRE, "Musicals")
    if "opera" in t:
        return Classification(Category.THEATRE, "Opera")
    if "ballet" in t or "nutcracker" in t or "dance" in t:
        return Classification(Category.THEATRE, "Ballet & Dance")
    if "comedy" in t or (venue and "Comedy" in venue):
        return Classification(Category.THEATRE, "Comedy Shows")
    if "cabaret" in t:
        return Classification(Category.THEATRE, "Cabaret")
    if "shakespeare" in t or any(play in t for play in SHAKESPEARE_PLAYS):
        return Classification(Category.THEATRE, "Shakespeare")
    if "experimental" in t:
        return Classification(Category.THEATRE, "Experimental")
    return Classification(Category.THEATRE, "Drama")


def classify_music(title: str) -> Classification:
    return _first_match((title or "").lower(), MUSIC_TITLE_RULES, Category.MUSIC)


def classify_music_by_genre(genre: str | None) -> Classification:
    return Classification(Category.MUSIC, MUSIC_GENRES.get(genre or "", "Pop & Electronic"))


def classify_sports(genre: str | None) -> Classification:
    return Classification(Category.SPORTS, SPORTS_GENRES.get(genre or "", "Other Sports"))


def classify_family(title: str) -> Classification:
    return _first_match((title or "").lower(), FAMILY_TITLE_RULES, Category.FAMILY)


def classify_arts(title: str) -> Classification:
    return _first_match((title or "").lower(), ARTS_TITLE_RULES, Category.ARTS)


def classify_in_category(category: Category, title: str, venue: str | None = None) -> Classification:
    """Pick a subcategory for a known category using the keyword classifiers."""
    if category == Category.THEATRE:
        return classify_theatre(title, venue)
    if category == Category.MUSIC:
        return classify_music(title)
    if category == Category.FAMILY:
        return classify_family(title)
    if category == Category.ARTS:
        return classify_arts(title)
    if category == Category.SPORTS:
        return classify_sports(None)
    return FALLBACK


# =============================================================================
# PER-SOURCE MAPPERS
# =============================================================================


def map_whatson_category(tag: str | None, title: str) -> Classification:
    """Map a What's On Melbourne listing tag (theatre, music, festivals, ...)."""
    tag = (tag or "").strip().lower()
    if tag == "theatre":
        return classify_theatre(title)
    if tag == "music":
        return classify_music(title)
    if tag == "festivals":
        if "comedy" in (title or "").lower():
            return Classification(Category.ARTS, "Comedy Festival")
        return Classification(Category.ARTS, "Cultural Festivals")
    if tag == "family":
        return classify_family(title)
    if tag in ("arts", "art"):
        return classify_arts(title)
    return FALLBACK


def map_ticketmaster_category(
    segment: str | None,
    genre: str | None = None,
    sub_genre: str | None = None,
    title: str | None = None,
) -> Classification:
    """
    Map a Ticketmaster classification (segment, genre, subGenre).

    sub_genre is accepted for completeness; segment and genre decide.
    """
    t = (title or "").lower()
    if segment == "Music":
        return classify_music_by_genre(genre)
    if segment == "Sports":
        return classify_sports(genre)
    if segment == "Arts & Theatre":
        return classify_theatre(t)
    if segment == "Film":
        return Classification(Category.ARTS, "Film & Cinema")
    if segment == "Miscellaneous":
        if genre == "Family":
            return Classification(Category.FAMILY, "Family Entertainment")
        if "comedy festival" in t:
            return Classification(Category.ARTS, "Comedy Festival")
        return FALLBACK
    return FALLBACK


def map_marriner_category(title: str, venue: str | None = None) -> Classification:
    """Marriner runs theatres; music keywords win, otherwise theatre by title and venue."""
    t = (title or "").lower()
    if "concert" in t or "symphony" in t or "orchestra" in t:
        return Classification(Category.MUSIC, "Classical & Orchestra")
    if "jazz" in t or "blues" in t:
        return Classification(Category.MUSIC, "Jazz & Blues")
    if "rock" in t or "alternative" in t:
        return Classification(Category.MUSIC, "Rock & Alternative")
    if "pop" in t:
        return Classification(Category.MUSIC, "Pop & Electronic")
    return classify_theatre(t, venue)


def map_feverup_category(title: str, description: str | None = None) -> Classification:
    """Word-boundary keyword match over title and description, then subcategory by title."""
    text = f"{title or ''} {description or ''}".lower()
    for category, pattern in FEVERUP_CATEGORY_PATTERNS:
        if pattern.search(text):
            return classify_in_category(category, title or "")
    return FALLBACK


def map_artscentre_url(url: str, title: str | None = None) -> Classification:
    """Guess a classification from an Arts Centre URL path."""
    lowered = (url or "").lower()
    for keyword, classification in ARTSCENTRE_URL_RULES:
        if keyword in lowered:
            return classification or classify_theatre(title or "")
    return Classification(Category.ARTS, "Cultural Festivals")


# =============================================================================
# DISPATCH
# =============================================================================


def classify(source: str, signal: Mapping[str, Any] | None) -> Classification:
    """
    Classify a source signal.

    Args:
        source: Source identity (ticketmaster, whatson, marriner, feverup, artscentre)
        signal: Source-specific fields, e.g. {"segment": ..., "genre": ..., "title": ...}

    Returns:
        Classification; unknown sources and empty signals yield other/Community Events
    """
    if not signal:
        return FALLBACK

    title = signal.get("title") or ""
    if source == "ticketmaster":
        return map_ticketmaster_category(
            signal.get("segment"), signal.get("genre"), signal.get("sub_genre"), title
        )
    if source == "whatson":
        return map_whatson_category(signal.get("tag"), title)
    if source == "marriner":
        return map_marriner_category(title, signal.get("venue"))
    if source == "feverup":
        return map_feverup_category(title, signal.get("description"))
    if source == "artscentre":
        return map_artscentre_url(signal.get("url") or "", title)

    logger.debug(f"No taxonomy rules for source '{source}', using fallback")
    return FALLBACK
