"""
robots.txt compliance gate.

Checks crawl targets against the site's published disallow rules before
each fetch. Parsed rules are cached per ``scheme://host`` for a TTL. The
gate fails open: a missing, non-2xx or unreachable robots.txt allows the
crawl.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_TIMEOUT_SECONDS = 5.0


@dataclass
class RobotsRules:
    """Disallow rules for the wildcard user agent of one host."""

    disallowed: list[str] = field(default_factory=list)
    fetched_at: float = 0.0

    def allows(self, path: str) -> bool:
        return not is_path_disallowed(path, self.disallowed)


def parse_robots_txt(content: str) -> list[str]:
    """
    Extract Disallow paths scoped to ``User-agent: *``.

    Empty values and a bare "/" are ignored.

    >>> parse_robots_txt("User-agent: *\\nDisallow: /admin\\n")
    ['/admin']
    """
    disallowed: list[str] = []
    relevant = False

    for line in (content or "").splitlines():
        stripped = line.strip()
        lowered = stripped.lower()

        if lowered.startswith("user-agent:"):
            agent = lowered.partition(":")[2].strip()
            relevant = agent == "*"
            continue

        if relevant and lowered.startswith("disallow:"):
            path = stripped.partition(":")[2].split("#", 1)[0].strip()
            if path and path != "/":
                disallowed.append(path)

    return disallowed


def is_path_disallowed(path: str, disallowed: list[str]) -> bool:
    """Prefix match; a trailing ``*`` is a prefix wildcard."""
    for rule in disallowed:
        prefix = rule[:-1] if rule.endswith("*") else rule
        if path.startswith(prefix):
            return True
    return False


class ComplianceGate:
    """
    Per-host robots.txt cache with fail-open semantics.

    The HTTP client and the clock are injectable so tests can run without
    the network and without waiting for the TTL.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._owns_client = client is None
        self.ttl_seconds = ttl_seconds
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._cache: dict[str, RobotsRules] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                follow_redirects=True,
            )
        return self._client

    def _cached(self, base_url: str) -> RobotsRules | None:
        rules = self._cache.get(base_url)
        if rules is None:
            return None
        if self._clock() - rules.fetched_at >= self.ttl_seconds:
            del self._cache[base_url]
            return None
        return rules

    async def _fetch_rules(self, base_url: str) -> RobotsRules | None:
        """Fetch and parse robots.txt; None when the host could not be reached."""
        robots_url = f"{base_url}/robots.txt"
        try:
            response = await self._get_client().get(robots_url, timeout=self.timeout_seconds)
        except httpx.HTTPError as e:
            logger.warning(f"Could not fetch {robots_url}: {type(e).__name__}: {e}")
            return None

        if not response.is_success:
            logger.debug(f"{robots_url} returned {response.status_code}, allowing crawl")
            return RobotsRules(disallowed=[], fetched_at=self._clock())

        disallowed = parse_robots_txt(response.text)
        logger.debug(f"{robots_url}: {len(disallowed)} disallow rules")
        return RobotsRules(disallowed=disallowed, fetched_at=self._clock())

    async def is_allowed(self, url: str) -> bool:
        """
        Check whether a URL may be crawled.

        Args:
            url: Absolute target URL

        Returns:
            False only when a cached or freshly fetched rule disallows the path
        """
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            logger.warning(f"Cannot check robots.txt for relative URL: {url}")
            return True

        base_url = f"{parts.scheme}://{parts.netloc}"
        path = parts.path or "/"

        rules = self._cached(base_url)
        if rules is None:
            rules = await self._fetch_rules(base_url)
            if rules is None:
                return True
            self._cache[base_url] = rules

        allowed = rules.allows(path)
        if not allowed:
            logger.info(f"robots.txt disallows {url}")
        return allowed

    def clear(self) -> None:
        self._cache.clear()

    async def aclose(self) -> None:
        """Close the HTTP client if the gate created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
