"""
Shared pytest fixtures for the event ingestion test suite.

Provides factory fixtures for CanonicalEvent test objects and small
in-memory doubles for HTTP transports and browser sessions.
"""

import logging
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from event_ingest.ingestion.browser.session import BrowserDriver, BrowserSession
from event_ingest.monitoring.logging import ROOT_LOGGER_NAMES
from event_ingest.schemas.event import LOCAL_TIMEZONE, CanonicalEvent, Venue
from event_ingest.schemas.taxonomy import Category


@pytest.fixture
def create_event():
    """
    Return a function that creates CanonicalEvent objects with sensible defaults.

    All defaults can be overridden via keyword arguments; ``venue_name`` and
    ``address`` are shortcuts for the nested Venue.

    Example:
        event = create_event(title="Hamlet", source="marriner", venue_name="Princess Theatre")
    """
    counter = {"n": 0}

    def _create_event(
        title: str = "Test Event",
        source: str = "whatson",
        venue_name: str = "Test Venue",
        address: str = "1 Test St, Melbourne VIC 3000",
        start_date: datetime | None = None,
        **kwargs,
    ) -> CanonicalEvent:
        counter["n"] += 1
        if start_date is None:
            start_date = datetime(2025, 6, 1, 19, 30, tzinfo=LOCAL_TIMEZONE)

        defaults = {
            "title": title,
            "description": f"About {title}",
            "category": Category.THEATRE,
            "subcategories": {"Drama"},
            "start_date": start_date,
            "venue": Venue(name=venue_name, address=address, suburb="Melbourne"),
            "booking_url": f"https://{source}.example.com/events/{counter['n']}",
            "source": source,
            "source_id": f"{source}-{counter['n']}",
        }
        defaults.update(kwargs)
        return CanonicalEvent(**defaults)

    return _create_event


@pytest.fixture
def sample_events(create_event):
    """Three unrelated events from different sources."""
    return [
        create_event(title="Hamlet", source="marriner", venue_name="Princess Theatre"),
        create_event(
            title="Jazz Night",
            source="whatson",
            venue_name="Paris Cat",
            category=Category.MUSIC,
            subcategories={"Jazz & Blues"},
            start_date=datetime(2025, 7, 4, 20, 0, tzinfo=LOCAL_TIMEZONE),
        ),
        create_event(
            title="Immersive Van Gogh",
            source="feverup",
            venue_name="The Lume",
            category=Category.ARTS,
            subcategories={"Art Exhibitions"},
            start_date=datetime(2025, 8, 10, 10, 0, tzinfo=LOCAL_TIMEZONE),
        ),
    ]


@pytest.fixture
def duplicate_events(create_event):
    """The same Nutcracker season listed by two sources."""
    return [
        create_event(
            title="The Nutcracker",
            source="ticketmaster",
            source_id="tm-nut",
            venue_name="Regent Theatre",
            description="Ballet",
            category=Category.THEATRE,
            subcategories={"Ballet & Dance"},
            start_date=datetime(2025, 12, 10, 19, 0, tzinfo=LOCAL_TIMEZONE),
            end_date=datetime(2025, 12, 24, 22, 0, tzinfo=LOCAL_TIMEZONE),
            price_min=79.0,
            price_max=189.0,
        ),
        create_event(
            title="Nutcracker",
            source="marriner",
            source_id="nutcracker",
            venue_name="Regent Theatre Melbourne",
            description="A" * 80,
            category=Category.THEATRE,
            subcategories={"Ballet & Dance"},
            start_date=datetime(2025, 12, 12, 19, 0, tzinfo=LOCAL_TIMEZONE),
            image_url="https://marrinergroup.com.au/img/nutcracker.jpg",
        ),
    ]


@pytest.fixture
def robots_allow_all():
    """An httpx client whose robots.txt responses allow everything."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def html_client():
    """
    Return a function building an httpx.AsyncClient that serves fixed pages.

    Example:
        client = html_client({"https://x.test/a": "<h1>A</h1>"})
    Unknown URLs return 404; robots.txt is 404 (allow all) unless given.
    """

    def _html_client(pages: dict[str, str], status: dict[str, int] | None = None) -> httpx.AsyncClient:
        status = status or {}
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            requested.append(url)
            if url in status:
                return httpx.Response(status[url], text="")
            if url in pages:
                return httpx.Response(200, text=pages[url])
            return httpx.Response(404, text="not found")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client.requested = requested
        return client

    return _html_client


@pytest.fixture(autouse=True)
def reset_package_loggers():
    """Undo setup_logging so handlers and propagation do not leak between tests."""
    yield
    for name in ROOT_LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)


# =============================================================================
# BROWSER DOUBLES
# =============================================================================


class FakeElement:
    """Stand-in for a Playwright element handle."""

    def __init__(self, text: str = "", on_click=None):
        self.text = text
        self.filled = None
        self.clicked = False
        self.pressed: list[str] = []
        self._on_click = on_click

    async def inner_text(self) -> str:
        return self.text

    async def fill(self, value: str) -> None:
        self.filled = value

    async def click(self) -> None:
        self.clicked = True
        if self._on_click is not None:
            self._on_click()

    async def press(self, key: str) -> None:
        self.pressed.append(key)


class FakePage:
    """
    Stand-in for a Playwright page.

    ``pages`` maps URL to HTML served by goto(); ``elements`` maps exact
    selector strings to FakeElement; ``href_batches`` are returned by
    successive eval_on_selector_all() calls (the last one repeats).
    """

    def __init__(self, pages=None, elements=None, href_batches=None, fail_urls=()):
        self.pages = dict(pages or {})
        self.elements = dict(elements or {})
        self.href_batches = list(href_batches or [])
        self.fail_urls = set(fail_urls)
        self.html = ""
        self.visited: list[str] = []
        self.scrolls: list[float] = []
        self.href_calls = 0

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        if url in self.fail_urls:
            raise RuntimeError(f"navigation failed: {url}")
        self.html = self.pages.get(url, "")

    async def content(self) -> str:
        return self.html

    async def query_selector(self, selector):
        return self.elements.get(selector)

    async def wait_for_selector(self, selector, timeout=None):
        if not self.html:
            raise TimeoutError(selector)

    async def eval_on_selector_all(self, selector, script):
        if not self.href_batches:
            return []
        batch = self.href_batches[min(self.href_calls, len(self.href_batches) - 1)]
        self.href_calls += 1
        return list(batch)

    async def evaluate(self, script, arg=None):
        self.scrolls.append(arg)

    async def wait_for_load_state(self, state, timeout=None):
        pass


class FakeDriver(BrowserDriver):
    """BrowserDriver serving one FakePage and counting sessions."""

    def __init__(self, page: FakePage):
        self.page = page
        self.opened = 0
        self.closed = 0

    async def _open(self) -> BrowserSession:
        self.opened += 1

        async def _close() -> None:
            self.closed += 1

        return BrowserSession(self.page, on_close=_close)


@pytest.fixture
def fake_browser():
    """
    Browser doubles for session, challenge and source tests.

    Example:
        page = fake_browser.Page(pages={"https://x.test/": "<h1>X</h1>"})
        driver = fake_browser.Driver(page)
    """
    return SimpleNamespace(Page=FakePage, Element=FakeElement, Driver=FakeDriver)


@pytest.fixture
def no_sleep():
    """Patch asyncio.sleep so pacing and backoff return immediately."""
    with patch("asyncio.sleep", new_callable=AsyncMock) as mocked:
        yield mocked
