"""
Test Configuration and Fixtures for solvedcoach.
"""

import pytest
import random
import sys
import os
from datetime import datetime

# Add repo root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from solvedcoach.catalog_client import ProblemCatalog
from solvedcoach.errors import CatalogAPIError
from solvedcoach.schemas import SearchResult, SolvedProblem, TagRef
from solvedcoach.throttle import no_delay

NOW = datetime(2026, 6, 1, 12, 0, 0)

TAG_CYCLE = ["dp", "greedy", "graphs", "math", "implementation", "string"]

SORT_KEYS = {
    "id": lambda p: p.problem_id,
    "level": lambda p: p.level,
    "solved": lambda p: p.accepted_user_count,
    "average_try": lambda p: p.average_tries,
    "random": lambda p: p.problem_id,
}


def make_problem(problem_id, level, tags=("dp",), accepted=1000, tries=2.0):
    return SolvedProblem(
        problem_id=problem_id,
        title=f"Problem {problem_id}",
        level=level,
        tags=[TagRef(key=t, display_name=t.upper(), problem_count=500) for t in tags],
        accepted_user_count=accepted,
        average_tries=tries,
    )


def make_problem_set(count=300, start_id=1000):
    """count distinct problems spread evenly over levels 1..30 and six tags."""
    problems = []
    for i in range(count):
        problems.append(make_problem(
            problem_id=start_id + i,
            level=1 + (i % 30),
            tags=(TAG_CYCLE[i % len(TAG_CYCLE)], TAG_CYCLE[(i + 1) % len(TAG_CYCLE)]),
            accepted=500 + (i * 37) % 40000,
            tries=1.0 + (i % 7) * 0.5,
        ))
    return problems


class FakeCatalog(ProblemCatalog):
    """In-memory catalog honouring tag/level filters, sort order and paging."""

    def __init__(self, problems=None, fail_when=None, page_size=50):
        self.problems = list(problems or [])
        self.fail_when = fail_when
        self.page_size = page_size
        self.calls = []

    def search(self, tags=None, level_min=None, level_max=None, page=1,
               sort="solved", direction="desc"):
        call = {
            "tags": list(tags) if tags else None,
            "level_min": level_min,
            "level_max": level_max,
            "page": page,
            "sort": sort,
            "direction": direction,
        }
        self.calls.append(call)
        if self.fail_when is not None and self.fail_when(call):
            raise CatalogAPIError("catalog unavailable", status_code=503)

        matches = [
            p for p in self.problems
            if (not tags or all(t in p.tag_keys for t in tags))
            and (level_min is None or p.level >= level_min)
            and (level_max is None or p.level <= level_max)
        ]
        matches.sort(key=lambda p: (SORT_KEYS[sort](p), p.problem_id), reverse=(direction == "desc"))
        start = (page - 1) * self.page_size
        return SearchResult(items=matches[start:start + self.page_size], count=len(matches))

    def fetch_by_ids(self, problem_ids):
        wanted = set(problem_ids)
        return [p for p in self.problems if p.problem_id in wanted]


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def problem_set():
    return make_problem_set()


@pytest.fixture
def catalog(problem_set):
    return FakeCatalog(problem_set)


@pytest.fixture
def empty_catalog():
    return FakeCatalog([])


@pytest.fixture
def throttle():
    return no_delay()


@pytest.fixture
def rng():
    return random.Random(42)


class FakeSolvedAc(FakeCatalog):
    """FakeCatalog plus the user endpoints a sync needs."""

    def __init__(self, problems, profile=None, solved_ids=(), fail_when=None):
        super().__init__(problems, fail_when=fail_when)
        self.profile = profile
        self.solved_ids = list(solved_ids)

    def get_user_profile(self, handle):
        return self.profile

    def get_user_solved_problem_ids(self, handle):
        return list(self.solved_ids)

    def get_all_tags(self):
        raise CatalogAPIError("tag listing unavailable")
