"""
Unit tests for text helpers.
"""

from event_ingest.ingestion.normalization.text import (
    absolute_url,
    collapse_whitespace,
    dollar_amounts,
    extract_prices,
    extract_suburb,
    slug_to_title,
    slugify,
    strip_html,
)


class TestCleanup:
    def test_collapse_whitespace(self):
        assert collapse_whitespace("  a \n\t b  ") == "a b"
        assert collapse_whitespace(None) == ""

    def test_strip_html_truncates(self):
        assert strip_html("<p>Hello <b>world</b></p>") == "Hello world"
        assert strip_html("<p>abcdef</p>", max_length=3) == "abc"

    def test_slugify(self):
        assert slugify("Hamlet: The Musical!") == "hamlet-the-musical"
        assert slugify("") == ""

    def test_slug_to_title_expands_abbreviations(self):
        assert slug_to_title("mso-plays-mahler") == "MSO Plays Mahler"
        assert slug_to_title("tab-swan-lake") == "The Australian Ballet Swan Lake"


class TestExtractSuburb:
    def test_known_suburb(self):
        assert extract_suburb("Princes Park, Carlton North VIC") == "Carlton"

    def test_specific_suburb_before_melbourne(self):
        assert extract_suburb("South Yarra, Melbourne") == "South Yarra"

    def test_default(self):
        assert extract_suburb(None) == "Melbourne"
        assert extract_suburb("Geelong") == "Melbourne"


class TestAbsoluteUrl:
    def test_relative(self):
        assert absolute_url("/events/1", "https://site.test/") == "https://site.test/events/1"

    def test_absolute_and_protocol_relative(self):
        assert absolute_url("https://cdn.test/a.jpg", "https://site.test") == "https://cdn.test/a.jpg"
        assert absolute_url("//cdn.test/a.jpg", "https://site.test") == "https://cdn.test/a.jpg"

    def test_empty(self):
        assert absolute_url("", "https://site.test") is None


class TestPrices:
    def test_dollar_amounts(self):
        assert dollar_amounts("Tickets $35 or $1,200.50 for the box") == [35.0, 1200.5]

    def test_free(self):
        info = extract_prices("Free entry, bookings required")
        assert (info.price_min, info.price_max, info.is_free) == (0.0, 0.0, True)
        assert info.found

    def test_from_to(self):
        info = extract_prices("From $25 to $80")
        assert (info.price_min, info.price_max) == (25.0, 80.0)

    def test_single_price_has_no_max(self):
        info = extract_prices("Tickets $45")
        assert (info.price_min, info.price_max) == (45.0, None)

    def test_upper_bound(self):
        info = extract_prices("$35 - $1,200", upper_bound=1000)
        assert (info.price_min, info.price_max) == (35.0, None)

    def test_nothing(self):
        assert not extract_prices("").found
        assert not extract_prices("Call the box office").found
