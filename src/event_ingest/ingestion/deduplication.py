"""
Module for event deduplication strategies.

The same show is often listed by several sources. Deduplication folds each
cluster of cross-source listings into one MergedEvent: the highest-priority
listing becomes the primary record, gaps are filled from the others, and the
others are kept as alternate sources.

Fuzzy matching works in four steps:
1. normalize titles and venue names
2. bucket candidates by leading title tokens
3. score bucket-mates from different sources (title, venue, date)
4. union-find over matches, then merge each cluster
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import ValidationError

from event_ingest.ingestion.errors import CandidateValidationError
from event_ingest.schemas.event import (
    PLACEHOLDER_ADDRESS_TOKEN,
    PLACEHOLDER_DESCRIPTION_TOKEN,
    AlternateSource,
    CanonicalEvent,
    MergedEvent,
)

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "at", "to", "for", "of", "in", "on",
        "live", "presents", "featuring", "feat", "ft", "show", "tour",
    }
)

VENUE_SUFFIXES = frozenset(
    {"theatre", "theater", "centre", "center", "arena", "stadium", "hall", "auditorium", "melbourne", "hotel"}
)

SOURCE_PRIORITY: dict[str, int] = {
    "ticketmaster": 5,
    "marriner": 4,
    "whatson": 3,
    "artscentre": 2,
    "feverup": 1,
}

BUCKET_KEY_TOKENS = 3

_PUNCTUATION = re.compile(r"[^\w\s]")
_WS = re.compile(r"\s+")


# ============================================================================
# CONFIGURATION
# ============================================================================


class DeduplicationStrategy(str, Enum):
    FUZZY = "fuzzy"
    EXACT = "exact"


@dataclass(frozen=True)
class DedupThresholds:
    """Weights and cut-offs for fuzzy matching."""

    title_weight: float = 0.50
    venue_weight: float = 0.30
    date_weight: float = 0.20
    overall_match: float = 0.80
    date_window_days: int = 7
    substring_score: float = 0.95
    min_title_similarity: float | None = None  # 0.75 is a sensible value when enabled

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DedupThresholds:
        """Build from the YAML ``dedup`` block, ignoring unknown keys (e.g. strategy)."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


@dataclass
class DuplicateMatch:
    """A scored candidate pair at or above the match threshold."""

    id_a: str
    id_b: str
    confidence: float
    component_scores: dict[str, float] = field(default_factory=dict)

    @property
    def reason(self) -> str:
        parts = " ".join(f"{k}:{v * 100:.0f}%" for k, v in self.component_scores.items())
        return f"Match {self.confidence * 100:.0f}% ({parts})"


# ============================================================================
# NORMALIZATION & SIMILARITY
# ============================================================================


def normalise(text: str | None) -> str:
    """Lowercase, punctuation to spaces, collapsed whitespace."""
    return _WS.sub(" ", _PUNCTUATION.sub(" ", (text or "").lower())).strip()


def normalise_title(title: str | None) -> str:
    """
    Normalized title without one-letter tokens and stop words.

    >>> normalise_title("The Nutcracker - Live!")
    'nutcracker'
    """
    return " ".join(w for w in normalise(title).split(" ") if len(w) > 1 and w not in STOP_WORDS)


def normalise_venue(venue: str | None) -> str:
    """Normalized venue name with trailing suffix tokens removed."""
    tokens = normalise(venue).split(" ")
    while tokens and tokens[-1] in VENUE_SUFFIXES:
        tokens.pop()
    return " ".join(tokens)


def title_bucket_keys(title: str | None) -> list[str]:
    """Bucket key (first 1-3 title tokens) plus the first-token key for longer keys."""
    words = normalise_title(title).split()[:BUCKET_KEY_TOKENS]
    if not words:
        return []
    key = " ".join(words)
    return [key, words[0]] if len(words) > 1 else [key]


def dice_coefficient(first: str, second: str) -> float:
    """
    Sørensen-Dice coefficient over character bigrams (whitespace ignored).

    >>> dice_coefficient("night", "nacht")
    0.25
    """
    first = _WS.sub("", first or "")
    second = _WS.sub("", second or "")
    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0

    bigrams = Counter(first[i : i + 2] for i in range(len(first) - 1))
    overlap = 0
    for i in range(len(second) - 1):
        bigram = second[i : i + 2]
        if bigrams[bigram] > 0:
            bigrams[bigram] -= 1
            overlap += 1
    return 2.0 * overlap / (len(first) + len(second) - 2)


def text_similarity(a: str, b: str, substring_score: float = 0.95) -> float:
    """1.0 identical, substring_score when one contains the other, else Dice."""
    if a == b:
        return 1.0
    if a in b or b in a:
        return substring_score
    return dice_coefficient(a, b)


def date_score(a: CanonicalEvent, b: CanonicalEvent, window_days: int = 7) -> float:
    """1.0 for overlapping runs, 0.8 within the window, 0.5 within twice the window, else 0."""
    start_a, end_a = a.start_date, a.end_date or a.start_date
    start_b, end_b = b.start_date, b.end_date or b.start_date

    if start_a <= end_b and start_b <= end_a:
        return 1.0

    gap = min(abs(start_a - start_b), abs(end_a - end_b))
    window = timedelta(days=window_days)
    if gap <= window:
        return 0.8
    if gap <= window * 2:
        return 0.5
    return 0.0


def candidate_id(event: CanonicalEvent) -> str:
    return f"{event.source}:{event.source_id}"


# ============================================================================
# CANDIDATE VALIDATION
# ============================================================================


def validate_candidates(candidates: Iterable[CanonicalEvent | dict[str, Any]]) -> list[CanonicalEvent]:
    """
    Check the adapter output contract before any matching.

    Dicts are decoded strictly (MergedEvent when they carry alternate sources).

    Raises:
        CandidateValidationError: On a malformed candidate or a repeated (source, source_id)
    """
    events: list[CanonicalEvent] = []
    seen: dict[tuple[str, str], int] = {}

    for index, candidate in enumerate(candidates):
        if isinstance(candidate, dict):
            model = MergedEvent if "alternate_sources" in candidate else CanonicalEvent
            try:
                candidate = model.model_validate(candidate)
            except ValidationError as e:
                raise CandidateValidationError(
                    f"failed validation ({e.error_count()} errors): {e.errors()[0]['msg']}", index
                ) from e
        elif not isinstance(candidate, CanonicalEvent):
            raise CandidateValidationError(f"unsupported type {type(candidate).__name__}", index)

        if not candidate.title.strip():
            raise CandidateValidationError("missing title", index)
        if candidate.start_date is None:
            raise CandidateValidationError("missing start date", index)

        if candidate.key in seen:
            raise CandidateValidationError(
                f"duplicate key {candidate.key} (first seen at #{seen[candidate.key]})", index
            )
        seen[candidate.key] = index
        events.append(candidate)

    return events


# ============================================================================
# MERGE
# ============================================================================


def completeness_score(event: CanonicalEvent) -> int:
    """Description > 50 chars +2, image +1, price +1, non-placeholder address +1."""
    score = 0
    if event.description and len(event.description) > 50:
        score += 2
    if event.image_url:
        score += 1
    if event.price_min is not None:
        score += 1
    if not event.venue.has_placeholder_address:
        score += 1
    return score


def select_primary(cluster: Sequence[CanonicalEvent]) -> CanonicalEvent:
    """Highest source priority, then completeness, then earliest in input order."""
    best = cluster[0]
    for event in cluster[1:]:
        best_rank = (SOURCE_PRIORITY.get(best.source, 0), completeness_score(best))
        rank = (SOURCE_PRIORITY.get(event.source, 0), completeness_score(event))
        if rank > best_rank:
            best = event
    return best


def _is_placeholder_description(text: str | None) -> bool:
    return not text or PLACEHOLDER_DESCRIPTION_TOKEN in text


def _is_placeholder_address(address: str | None) -> bool:
    return not address or PLACEHOLDER_ADDRESS_TOKEN in address


def _longer_description(current: str, other: str) -> str:
    if _is_placeholder_description(current):
        return other or current
    if _is_placeholder_description(other):
        return current
    return other if len(other) > len(current) else current


def merge_cluster(cluster: Sequence[CanonicalEvent], now: datetime | None = None) -> MergedEvent:
    """
    Fold a cluster of listings into one record.

    Singletons are returned unchanged (wrapped as MergedEvent); merged
    clusters get last_updated set to now.
    """
    primary = select_primary(cluster)
    if len(cluster) == 1:
        return MergedEvent.from_event(primary)

    others = [e for e in cluster if e is not primary]
    data = primary.model_dump()
    venue = dict(data["venue"])

    alternates: list[AlternateSource] = list(getattr(primary, "alternate_sources", []))
    for other in others:
        data["description"] = _longer_description(data["description"], other.description)
        if not data["image_url"]:
            data["image_url"] = other.image_url
        if data["price_min"] is None:
            data["price_min"] = other.price_min
        if data["price_max"] is None:
            data["price_max"] = other.price_max
        data["is_free"] = data["is_free"] or other.is_free
        if data["end_date"] is None and other.end_date is not None:
            # never end before the primary starts
            data["end_date"] = max(other.end_date, primary.start_date)

        if len(other.venue.name) > len(venue["name"]):
            venue["name"] = other.venue.name
        if _is_placeholder_address(venue["address"]) and not other.venue.has_placeholder_address:
            venue["address"] = other.venue.address
        if not venue["suburb"]:
            venue["suburb"] = other.venue.suburb

        alternates.append(
            AlternateSource(source=other.source, source_id=other.source_id, booking_url=other.booking_url)
        )
        alternates.extend(getattr(other, "alternate_sources", []))

    data["venue"] = venue
    data["alternate_sources"] = alternates
    data["last_updated"] = now or datetime.now(UTC)
    return MergedEvent.model_validate(data)


class _UnionFind:
    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a != root_b:
            # Lower index stays root so clusters keep input order
            self.parent[max(root_a, root_b)] = min(root_a, root_b)


# ============================================================================
# STRATEGIES
# ============================================================================


class EventDeduplicator(ABC):
    """
    Abstract base for deduplication strategies.

    Subclasses decide which candidate pairs match; clustering, primary
    selection and field merge are shared.
    """

    def deduplicate(self, candidates: Iterable[CanonicalEvent | dict[str, Any]]) -> list[MergedEvent]:
        """
        Deduplicate candidates into merged catalog records.

        Args:
            candidates: Adapter output (CanonicalEvent, MergedEvent or dicts)

        Returns:
            One MergedEvent per cluster, ordered by each cluster's first candidate

        Raises:
            CandidateValidationError: If any candidate breaks the adapter contract
        """
        events = validate_candidates(candidates)
        matches = self.find_pairs(events)

        uf = _UnionFind(len(events))
        for i, j in matches:
            uf.union(i, j)

        clusters: dict[int, list[CanonicalEvent]] = {}
        for index, event in enumerate(events):
            clusters.setdefault(uf.find(index), []).append(event)

        now = datetime.now(UTC)
        merged = [merge_cluster(cluster, now) for cluster in clusters.values()]
        merged_count = sum(1 for c in clusters.values() if len(c) > 1)
        logger.info(
            f"Deduplicated {len(events)} candidates into {len(merged)} events "
            f"({merged_count} clusters merged)"
        )
        return merged

    @abstractmethod
    def find_pairs(self, events: Sequence[CanonicalEvent]) -> list[tuple[int, int]]:
        """
        Return index pairs of matching candidates.
        """
        pass


class ExactMatchDeduplicator(EventDeduplicator):
    """
    Match by normalized title + venue + start date (exact), across sources.
    """

    def find_pairs(self, events: Sequence[CanonicalEvent]) -> list[tuple[int, int]]:
        groups: dict[tuple[str, str, datetime], list[int]] = {}
        for index, event in enumerate(events):
            key = (normalise_title(event.title), normalise_venue(event.venue.name), event.start_date)
            groups.setdefault(key, []).append(index)

        pairs = []
        for members in groups.values():
            for a_pos, i in enumerate(members):
                for j in members[a_pos + 1 :]:
                    if events[i].source != events[j].source:
                        pairs.append((i, j))
        return pairs


class FuzzyMatchDeduplicator(EventDeduplicator):
    """
    Fuzzy match for typos and title variations.

    Only candidates sharing a title bucket are compared, which keeps the
    pass close to linear for realistic catalogs.
    """

    def __init__(self, thresholds: DedupThresholds | None = None):
        self.thresholds = thresholds or DedupThresholds()

    def score(self, a: CanonicalEvent, b: CanonicalEvent) -> tuple[float, dict[str, float]]:
        """Weighted match score and its components."""
        t = self.thresholds
        components = {
            "title": text_similarity(normalise_title(a.title), normalise_title(b.title), t.substring_score),
            "venue": text_similarity(normalise_venue(a.venue.name), normalise_venue(b.venue.name), t.substring_score),
            "date": date_score(a, b, t.date_window_days),
        }
        total = (
            components["title"] * t.title_weight
            + components["venue"] * t.venue_weight
            + components["date"] * t.date_weight
        )
        return total, components

    def build_buckets(self, events: Sequence[CanonicalEvent]) -> dict[str, list[int]]:
        buckets: dict[str, list[int]] = {}
        for index, event in enumerate(events):
            for key in title_bucket_keys(event.title):
                members = buckets.setdefault(key, [])
                if index not in members:
                    members.append(index)
        return buckets

    def find_matches(self, events: Sequence[CanonicalEvent]) -> list[tuple[int, int, DuplicateMatch]]:
        """Score every cross-source bucket-mate pair once; keep those at or above the threshold."""
        t = self.thresholds
        compared: set[tuple[str, str]] = set()
        matches = []

        for members in self.build_buckets(events).values():
            if len(members) < 2:
                continue
            for a_pos, i in enumerate(members):
                for j in members[a_pos + 1 :]:
                    a, b = events[i], events[j]
                    if a.source == b.source:
                        continue

                    pair_key = tuple(sorted((candidate_id(a), candidate_id(b))))
                    if pair_key in compared:
                        continue
                    compared.add(pair_key)

                    total, components = self.score(a, b)
                    if t.min_title_similarity is not None and components["title"] < t.min_title_similarity:
                        continue
                    if total >= t.overall_match:
                        match = DuplicateMatch(
                            id_a=pair_key[0],
                            id_b=pair_key[1],
                            confidence=min(1.0, total),
                            component_scores=components,
                        )
                        logger.debug(f"{match.id_a} ~ {match.id_b}: {match.reason}")
                        matches.append((i, j, match))
        return matches

    def find_duplicates(self, candidates: Iterable[CanonicalEvent | dict[str, Any]]) -> list[DuplicateMatch]:
        """Matched pairs without merging."""
        return [m for _, _, m in self.find_matches(validate_candidates(candidates))]

    def find_pairs(self, events: Sequence[CanonicalEvent]) -> list[tuple[int, int]]:
        return [(i, j) for i, j, _ in self.find_matches(events)]


def get_deduplicator(
    strategy: DeduplicationStrategy | str = DeduplicationStrategy.FUZZY,
    thresholds: DedupThresholds | None = None,
) -> EventDeduplicator:
    """
    Build a deduplicator for a strategy name.

    Raises:
        ValueError: If the strategy is unknown
    """
    strategy = DeduplicationStrategy(strategy)
    if strategy is DeduplicationStrategy.EXACT:
        return ExactMatchDeduplicator()
    return FuzzyMatchDeduplicator(thresholds)


def deduplicate(
    candidates: Iterable[CanonicalEvent | dict[str, Any]],
    thresholds: DedupThresholds | None = None,
) -> list[MergedEvent]:
    """Fuzzy deduplication with the given (or default) thresholds."""
    return FuzzyMatchDeduplicator(thresholds).deduplicate(candidates)
