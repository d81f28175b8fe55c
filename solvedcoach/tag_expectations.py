"""
Tag expectation sources.

A tag expectation says how many problems of a tag a user of a given tier is
expected to have solved. Two strategies are available and chosen by the
caller at run time:

- StaticTagExpectations: a tier-proportional formula for every tag.
- TagExpectationMap / DynamicTagExpectations: per-tag values derived from the
  catalog's tag populations, falling back to the formula for unknown tags.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from .config import (
    FALLBACK_BASE_COUNT,
    FALLBACK_COUNT_PER_TIER,
    EXPECTATION_SHARE,
    EXPECTATION_MIN_COUNT,
    EXPECTATION_MAX_COUNT,
    EXPECTATION_DEFAULT_POPULATION,
    round_half_up,
)
from .errors import CatalogAPIError
from .schemas import TagRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TagExpectation:
    tag: str
    problem_count: int
    base_count: int
    tier_multiplier: float


def fallback_expected_count(tier: int) -> int:
    return round_half_up(FALLBACK_BASE_COUNT + tier * FALLBACK_COUNT_PER_TIER)


def expectation_from_population(tag: str, problem_count: float) -> TagExpectation:
    """Derive base count and tier multiplier from a tag's problem population."""
    base_count = min(
        EXPECTATION_MAX_COUNT,
        max(EXPECTATION_MIN_COUNT, round_half_up(problem_count * EXPECTATION_SHARE)),
    )
    if problem_count > 500:
        multiplier = 1.5
    elif problem_count > 200:
        multiplier = 1.3
    else:
        multiplier = 1.2
    return TagExpectation(
        tag=tag,
        problem_count=int(problem_count),
        base_count=base_count,
        tier_multiplier=multiplier,
    )


def build_expectations(tags: Iterable[TagRef]) -> Dict[str, TagExpectation]:
    """Build the tag -> expectation map from a catalog tag listing."""
    tags = list(tags)
    known = [t.problem_count for t in tags if t.problem_count]
    avg_count = sum(known) / len(tags) if known else EXPECTATION_DEFAULT_POPULATION

    return {
        t.key: expectation_from_population(t.key, t.problem_count or avg_count)
        for t in tags
    }


class TagExpectationSource(ABC):
    """Strategy interface consumed by the weakness scorer and generator."""

    @abstractmethod
    def get(self, tag: str) -> Optional[TagExpectation]:
        ...

    @abstractmethod
    def covers(self, tag: str) -> bool:
        """Whether the tag is part of the known tag population."""

    def expected_count(self, tag: str, tier: int) -> int:
        expectation = self.get(tag)
        if expectation is None:
            return fallback_expected_count(tier)
        tier_factor = 1 + (tier / 30) * (expectation.tier_multiplier - 1)
        return round_half_up(expectation.base_count * tier_factor)


class StaticTagExpectations(TagExpectationSource):
    """Formula-only source; every tag is covered."""

    def get(self, tag: str) -> Optional[TagExpectation]:
        return None

    def covers(self, tag: str) -> bool:
        return True


class TagExpectationMap(TagExpectationSource):
    """Source backed by an in-memory map."""

    def __init__(self, expectations: Dict[str, TagExpectation]):
        self._expectations = dict(expectations)

    def get(self, tag: str) -> Optional[TagExpectation]:
        return self._expectations.get(tag)

    def covers(self, tag: str) -> bool:
        return tag in self._expectations

    def __len__(self) -> int:
        return len(self._expectations)


class DynamicTagExpectations(TagExpectationSource):
    """
    Source loaded lazily from the catalog's tag listing.

    If loading fails the source degrades to the static formula and covers
    every tag, so scoring never aborts because of it.
    """

    def __init__(self, client):
        self._client = client
        self._loaded: Optional[TagExpectationSource] = None

    def _source(self) -> TagExpectationSource:
        if self._loaded is None:
            try:
                expectations = build_expectations(self._client.get_all_tags())
            except CatalogAPIError as e:
                logger.warning(f"Tag expectations unavailable, using fallback formula: {e.message}")
                self._loaded = StaticTagExpectations()
            else:
                if expectations:
                    self._loaded = TagExpectationMap(expectations)
                else:
                    logger.warning("Catalog returned no tags, using fallback formula")
                    self._loaded = StaticTagExpectations()
        return self._loaded

    @property
    def is_dynamic(self) -> bool:
        return isinstance(self._source(), TagExpectationMap)

    def get(self, tag: str) -> Optional[TagExpectation]:
        return self._source().get(tag)

    def covers(self, tag: str) -> bool:
        return self._source().covers(tag)
