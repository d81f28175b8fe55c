"""
Unit Tests for Tag Expectation Sources.
"""

import pytest
from solvedcoach.errors import CatalogAPIError
from solvedcoach.schemas import TagRef
from solvedcoach.tag_expectations import (
    DynamicTagExpectations,
    StaticTagExpectations,
    TagExpectationMap,
    build_expectations,
    expectation_from_population,
    fallback_expected_count,
)


class StubTagClient:
    def __init__(self, tags=None, error=None):
        self.tags = tags or []
        self.error = error
        self.calls = 0

    def get_all_tags(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.tags


class TestExpectationFormulas:
    """Tests for population-derived expectations."""

    def test_large_tag(self):
        exp = expectation_from_population("dp", 1000)
        assert exp.base_count == 20
        assert exp.tier_multiplier == 1.5

    def test_medium_tag_hits_minimum(self):
        exp = expectation_from_population("trees", 300)
        assert exp.base_count == 10
        assert exp.tier_multiplier == 1.3

    def test_huge_tag_hits_maximum(self):
        assert expectation_from_population("math", 10000).base_count == 50

    def test_small_tag(self):
        assert expectation_from_population("flow", 150).tier_multiplier == 1.2

    def test_fallback_count(self):
        assert fallback_expected_count(0) == 15
        assert fallback_expected_count(1) == 17
        assert fallback_expected_count(10) == 30

    def test_missing_counts_use_mean(self):
        tags = [
            TagRef(key="dp", display_name="DP", problem_count=1000),
            TagRef(key="new", display_name="New"),
        ]
        expectations = build_expectations(tags)
        # mean over all tags: 1000 / 2 = 500 -> multiplier 1.3
        assert expectations["new"].problem_count == 500
        assert expectations["new"].tier_multiplier == 1.3


class TestSources:
    """Tests for the static, map and dynamic strategies."""

    def test_static_covers_everything(self):
        source = StaticTagExpectations()
        assert source.covers("anything")
        assert source.expected_count("dp", 10) == 30

    def test_map_scales_with_tier(self):
        source = TagExpectationMap(build_expectations([TagRef(key="dp", problem_count=1000)]))
        assert source.covers("dp")
        assert not source.covers("geometry")
        assert source.expected_count("dp", 0) == 20
        assert source.expected_count("dp", 30) == 30
        # unknown tag -> fallback formula
        assert source.expected_count("geometry", 10) == 30

    def test_dynamic_loads_once(self):
        client = StubTagClient([TagRef(key="dp", problem_count=1000)])
        source = DynamicTagExpectations(client)

        assert source.is_dynamic
        assert source.covers("dp")
        assert not source.covers("geometry")
        source.expected_count("dp", 5)
        assert client.calls == 1

    def test_dynamic_degrades_on_failure(self):
        client = StubTagClient(error=CatalogAPIError("down", status_code=503))
        source = DynamicTagExpectations(client)

        assert not source.is_dynamic
        assert source.covers("geometry")
        assert source.expected_count("geometry", 10) == 30

    def test_dynamic_degrades_on_empty_listing(self):
        source = DynamicTagExpectations(StubTagClient([]))
        assert not source.is_dynamic
        assert source.covers("dp")
