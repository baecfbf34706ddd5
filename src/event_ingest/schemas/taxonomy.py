# src/event_ingest/schemas/taxonomy.py
"""
Canonical event taxonomy.

Provides the closed category space used across the catalog:
- Category enum (top level)
- Subcategory lists per category
- Default subcategory per category (used by fallback classification)
- Lookup and validation helpers
"""

from enum import Enum


class Category(str, Enum):
    """Top-level event categories. Closed set."""

    MUSIC = "music"
    THEATRE = "theatre"
    SPORTS = "sports"
    ARTS = "arts"
    FAMILY = "family"
    OTHER = "other"


# =============================================================================
# SUBCATEGORIES
# =============================================================================

CATEGORY_SUBCATEGORIES: dict[Category, tuple[str, ...]] = {
    Category.MUSIC: (
        "Rock & Alternative",
        "Pop & Electronic",
        "Hip Hop & R&B",
        "Jazz & Blues",
        "Classical & Orchestra",
        "Country & Folk",
        "Metal & Punk",
        "World Music",
    ),
    Category.THEATRE: (
        "Musicals",
        "Drama",
        "Comedy Shows",
        "Ballet & Dance",
        "Opera",
        "Cabaret",
        "Shakespeare",
        "Experimental",
    ),
    Category.SPORTS: (
        "AFL",
        "Cricket",
        "Soccer",
        "Basketball",
        "Tennis",
        "Rugby",
        "Motorsports",
        "Other Sports",
    ),
    Category.ARTS: (
        "Comedy Festival",
        "Film & Cinema",
        "Art Exhibitions",
        "Literary Events",
        "Cultural Festivals",
        "Markets & Fairs",
    ),
    Category.FAMILY: (
        "Kids Shows",
        "Family Entertainment",
        "Educational",
        "Circus & Magic",
    ),
    Category.OTHER: (
        "Workshops",
        "Networking",
        "Wellness",
        "Community Events",
    ),
}

DEFAULT_SUBCATEGORY: dict[Category, str] = {
    Category.MUSIC: "Pop & Electronic",
    Category.THEATRE: "Drama",
    Category.SPORTS: "Other Sports",
    Category.ARTS: "Cultural Festivals",
    Category.FAMILY: "Family Entertainment",
    Category.OTHER: "Community Events",
}

SHAKESPEARE_PLAYS: tuple[str, ...] = (
    "hamlet",
    "macbeth",
    "romeo and juliet",
    "othello",
    "king lear",
    "a midsummer night's dream",
    "midsummer night's dream",
    "the tempest",
    "twelfth night",
    "much ado about nothing",
    "as you like it",
    "the merchant of venice",
    "julius caesar",
    "the taming of the shrew",
    "richard iii",
    "henry v",
    "antony and cleopatra",
    "the winter's tale",
    "coriolanus",
    "titus andronicus",
)


def get_subcategories(category: Category | str) -> tuple[str, ...]:
    """
    Get the allowed subcategories for a category.

    Args:
        category: Category enum or its string value

    Returns:
        Tuple of subcategory labels (empty if the category is unknown)
    """
    try:
        return CATEGORY_SUBCATEGORIES[Category(category)]
    except ValueError:
        return ()


def get_default_subcategory(category: Category | str) -> str:
    """Return the fallback subcategory for a category."""
    return DEFAULT_SUBCATEGORY[Category(category)]


def is_valid_subcategory(category: Category | str, subcategory: str) -> bool:
    """Check whether a subcategory belongs to a category."""
    return subcategory in get_subcategories(category)


def validate_subcategory_for_category(category: Category | str, subcategory: str) -> str:
    """
    Validate that a subcategory belongs to the given category.

    Raises:
        ValueError: If the subcategory is not listed for the category
    """
    if not is_valid_subcategory(category, subcategory):
        allowed = ", ".join(get_subcategories(category))
        raise ValueError(
            f"Subcategory '{subcategory}' does not belong to category "
            f"'{Category(category).value}'. Allowed: {allowed}"
        )
    return subcategory
