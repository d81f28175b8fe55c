"""
Unit Tests for the Recommendation Generator.
"""

import random
from collections import Counter
from datetime import timedelta

import pytest
from solvedcoach.recommender import (
    GenerationContext,
    build_recommendation_stats,
    calculate_user_avg_level,
    generate_challenge_recommendations,
    generate_foundation_recommendations,
    generate_recommendations,
    generate_review_recommendations,
    generate_steps,
    generate_weakness_recommendations,
)
from solvedcoach.schemas import Category, RecommendationItem
from solvedcoach.scoring import WeaknessDetails, WeaknessScore, calculate_weakness_scores, weighted_score
from solvedcoach.tag_analysis import TagAnalysis, analyze_user_tags
from solvedcoach.tag_expectations import TagExpectationMap, expectation_from_population
from solvedcoach.throttle import no_delay

from conftest import NOW, FakeCatalog, make_problem, make_problem_set

CAPS = {
    Category.WEAKNESS: 24,
    Category.CHALLENGE: 12,
    Category.REVIEW: 12,
    Category.FOUNDATION: 10,
}


class CountingThrottle:
    def __init__(self):
        self.waits = 0

    def wait(self):
        self.waits += 1


def _user_history(problem_set, count=24):
    """A user who solved a handful of low-level catalog problems long ago."""
    solved = [p for p in problem_set if p.level <= 8][:count]
    dates = {p.problem_id: NOW - timedelta(days=120 + i) for i, p in enumerate(solved)}
    analysis = analyze_user_tags(solved, dates, now=NOW)
    scores = calculate_weakness_scores(analysis, 10, now=NOW)
    return solved, scores


def _generate(catalog, solved, scores, tier=10, seed=7, **kwargs):
    return generate_recommendations(
        catalog,
        user_id=1,
        user_tier=tier,
        solved_problems=solved,
        weakness_scores=scores,
        throttle=kwargs.pop("throttle", CountingThrottle()),
        rng=random.Random(seed),
        now=NOW,
        **kwargs,
    )


class TestSteps:
    """Tests for the level staircase."""

    def test_steps_of_two(self):
        steps = generate_steps(3, 8)
        assert [s.level for s in steps] == [3, 5, 7]
        assert (steps[0].min, steps[0].max) == (2, 4)

    def test_fractional_start_floors(self):
        assert [s.level for s in generate_steps(4.7, 6)] == [4, 6]

    def test_clamped_bounds(self):
        steps = generate_steps(1, 30)
        assert steps[0].min == 1
        assert steps[-1].max <= 30

    def test_start_clamped_to_level_one(self):
        steps = generate_steps(-1, 3)
        assert [s.level for s in steps] == [1, 3]
        assert all(1 <= s.min <= s.max for s in steps)

    def test_empty_when_start_above_end(self):
        assert generate_steps(12, 10) == []


class TestGeneration:
    """Tests for the full generator against an in-memory catalog."""

    def test_unique_ids(self, catalog, problem_set):
        solved, scores = _user_history(problem_set)
        result = _generate(catalog, solved, scores)
        ids = [item.problem_id for item in result.items]
        assert len(ids) == len(set(ids))

    def test_excludes_solved(self, catalog, problem_set):
        solved, scores = _user_history(problem_set)
        result = _generate(catalog, solved, scores)
        solved_ids = {p.problem_id for p in solved}
        assert not solved_ids & {item.problem_id for item in result.items}

    def test_backfills_to_minimum(self, catalog, problem_set):
        """A sparse history with a 300-problem catalog yields at least 40 items."""
        solved, scores = _user_history(problem_set)
        result = _generate(catalog, solved, scores)
        assert len(result.items) >= 40

    def test_category_caps(self, catalog, problem_set):
        solved, scores = _user_history(problem_set)
        counts = Counter(item.category for item in _generate(catalog, solved, scores).items)
        for category, cap in CAPS.items():
            assert counts[category] <= cap

    def test_sorted_by_score(self, catalog, problem_set):
        solved, scores = _user_history(problem_set)
        result = _generate(catalog, solved, scores)
        values = [item.score for item in result.items]
        assert values == sorted(values, reverse=True)

    def test_weakness_items_carry_step_level(self, catalog, problem_set):
        solved, scores = _user_history(problem_set)
        result = _generate(catalog, solved, scores)
        weakness = [i for i in result.items if i.category == Category.WEAKNESS]
        assert weakness
        assert all(i.step_level is not None for i in weakness)
        assert all(0 < i.priority for i in weakness)

    def test_seeded_runs_are_reproducible(self, problem_set):
        solved, scores = _user_history(problem_set)
        first = _generate(FakeCatalog(problem_set), solved, scores, seed=3)
        second = _generate(FakeCatalog(problem_set), solved, scores, seed=3)
        assert [(i.problem_id, i.score) for i in first.items] == \
               [(i.problem_id, i.score) for i in second.items]

    def test_state_is_not_shared_between_calls(self, catalog, problem_set):
        """A second run on the same catalog sees fresh used-ID and tag-usage state."""
        solved, scores = _user_history(problem_set)
        first = _generate(catalog, solved, scores)
        second = _generate(catalog, solved, scores)
        assert {i.problem_id for i in first.items} == {i.problem_id for i in second.items}

    def test_every_search_is_paced(self, catalog, problem_set):
        solved, scores = _user_history(problem_set)
        throttle = CountingThrottle()
        _generate(catalog, solved, scores, throttle=throttle)
        assert throttle.waits == len(catalog.calls)
        assert throttle.waits > 0

    def test_criteria(self, catalog, problem_set):
        solved, scores = _user_history(problem_set)
        result = _generate(catalog, solved, scores)
        avg = calculate_user_avg_level(solved, 10)

        assert result.criteria.user_avg_level == avg
        assert result.criteria.level_min == max(1, avg - 5)
        assert result.criteria.level_max == min(30, avg + 5)
        assert result.criteria.weak_tags == [s.tag for s in scores[:10]]
        assert result.criteria.exclude_solved is True
        assert result.generated_at == NOW

    def test_stats_match_items(self, catalog, problem_set):
        solved, scores = _user_history(problem_set)
        result = _generate(catalog, solved, scores)
        assert result.stats.total_count == len(result.items)
        assert sum(result.stats.by_category.values()) == len(result.items)


class TestEdgeScenarios:
    """Empty histories and failing catalogs."""

    def test_empty_history_only_popular(self, catalog):
        result = _generate(catalog, [], [])
        assert len(result.items) >= 40
        assert {item.category for item in result.items} == {Category.POPULAR}
        assert result.criteria.user_avg_level == 8  # floor(10 * 0.8)

    def test_empty_history_empty_catalog(self, empty_catalog):
        result = _generate(empty_catalog, [], [])
        assert result.items == []
        assert result.stats.total_count == 0
        assert result.stats.avg_score == 0.0

    def test_tag_search_failures_do_not_abort(self, problem_set):
        """Every tag-scoped search fails; untagged categories still deliver."""
        catalog = FakeCatalog(problem_set, fail_when=lambda call: call["tags"] is not None)
        solved, scores = _user_history(problem_set)
        result = _generate(catalog, solved, scores)

        assert len(result.items) >= 40
        assert {item.category for item in result.items} == {Category.POPULAR}

    def test_total_outage_returns_empty(self, problem_set):
        catalog = FakeCatalog(problem_set, fail_when=lambda call: True)
        solved, scores = _user_history(problem_set)
        result = _generate(catalog, solved, scores)
        assert result.items == []

    def test_small_catalog_is_best_effort(self):
        catalog = FakeCatalog([make_problem(i, 8, tags=("dp",)) for i in range(1, 11)])
        result = _generate(catalog, [], [])
        assert len(result.items) == 10


class TestStats:
    """Tests for build_recommendation_stats."""

    def test_stats(self):
        items = [
            RecommendationItem(problem_id=1, score=0.8, category=Category.WEAKNESS,
                               priority=8, tags=["dp", "greedy"], level=5),
            RecommendationItem(problem_id=2, score=0.4, category=Category.POPULAR,
                               priority=4, tags=["greedy", "math"], level=6),
        ]
        stats = build_recommendation_stats(items)
        assert stats.total_count == 2
        assert stats.avg_score == pytest.approx(0.6)
        assert stats.by_category["weakness"] == 1
        assert stats.by_category["popular"] == 1
        assert stats.by_category["foundation"] == 0
        assert stats.tag_coverage == ["dp", "greedy", "math"]

    def test_avg_level_without_history(self):
        assert calculate_user_avg_level([], 0) == 0
        assert calculate_user_avg_level([], 15) == 12

    def test_avg_level_rounds_half_up(self):
        problems = [make_problem(1, 5), make_problem(2, 6)]
        assert calculate_user_avg_level(problems, 10) == 6


def _context(catalog, avg_level=10, solved_ids=(), seed=3):
    return GenerationContext(
        catalog=catalog,
        avg_level=avg_level,
        solved_ids=set(solved_ids),
        throttle=no_delay(),
        rng=random.Random(seed),
        now=NOW,
    )


def _weak(tag, total=0.6, coverage=0.5, recency=0.2, avg_level=0.0):
    return WeaknessScore(
        tag=tag,
        total_score=total,
        details=WeaknessDetails(coverage, 0.5, recency, 0.5, 0.5),
        analysis=TagAnalysis(tag=tag, avg_level=avg_level, last_solved_at=NOW - timedelta(days=60)),
    )


class TestWeaknessCategory:
    """Per-tag cap and level staircase of the weakness generator."""

    def test_per_tag_cap(self, catalog):
        ctx = _context(catalog)
        tags = ["dp", "greedy", "graphs", "math", "implementation"]

        items = generate_weakness_recommendations(ctx, [_weak(t) for t in tags])

        # ceil(24 / 5) per tag, 24 overall
        assert len(items) == 24
        assert max(ctx.usage(t) for t in tags) == 5
        assert all(ctx.usage(t) <= 5 for t in tags)

    def test_bands_stay_valid_for_unrated_history(self, catalog):
        ctx = _context(catalog, avg_level=1)

        generate_weakness_recommendations(ctx, [_weak("dp", avg_level=0.0)])

        assert catalog.calls
        for call in catalog.calls:
            assert 1 <= call["level_min"] <= call["level_max"] <= 30


class TestChallengeCategory:
    """Band, per-tag limit and discount of the challenge generator."""

    def test_band_limit_and_discount(self, catalog):
        ctx = _context(catalog, avg_level=10)

        items = generate_challenge_recommendations(ctx, [_weak("dp"), _weak("greedy")])

        assert [(c["tags"], c["level_min"], c["level_max"]) for c in catalog.calls] == [
            (["dp"], 13, 16),
            (["greedy"], 13, 16),
        ]
        assert ctx.usage("dp") == 3
        assert ctx.usage("greedy") <= 3
        for item in items:
            assert item.category == Category.CHALLENGE
            assert 13 <= item.level <= 16
            assert item.score == pytest.approx(0.9 * weighted_score(item.score_breakdown))

    def test_band_clamped_at_top(self, catalog):
        ctx = _context(catalog, avg_level=28)
        generate_challenge_recommendations(ctx, [_weak("dp")])
        assert (catalog.calls[0]["level_min"], catalog.calls[0]["level_max"]) == (30, 30)


class TestReviewCategory:
    """Tag selection and search order of the review generator."""

    def test_stale_tags_by_recency(self, catalog):
        ctx = _context(catalog, avg_level=10)
        scores = [
            _weak("bfs", recency=0.4),
            _weak("implementation", recency=0.55),
            _weak("graphs", recency=0.6),
            _weak("dp", recency=0.9),
            _weak("greedy", recency=0.7),
            _weak("string", recency=0.95),
            _weak("math", recency=0.8),
        ]

        items = generate_review_recommendations(ctx, scores)

        assert [c["tags"][0] for c in catalog.calls] == ["string", "dp", "math", "greedy", "graphs"]
        for call in catalog.calls:
            assert (call["sort"], call["direction"]) == ("id", "desc")
            assert (call["level_min"], call["level_max"]) == (8, 11)
        assert items
        assert all(i.category == Category.REVIEW for i in items)
        assert all(0.6 <= i.score <= 1.0 for i in items)

    def test_no_stale_tags(self, catalog):
        ctx = _context(catalog)
        assert generate_review_recommendations(ctx, [_weak("dp", recency=0.5)]) == []
        assert catalog.calls == []


class TestFoundationCategory:
    """Tag selection and level band of the foundation generator."""

    @staticmethod
    def _known(*tags):
        return TagExpectationMap({t: expectation_from_population(t, 1000) for t in tags})

    def test_covered_low_coverage_tags(self, catalog):
        ctx = _context(catalog)
        scores = [
            _weak("string", coverage=0.95),
            _weak("dp", coverage=0.9),
            _weak("greedy", coverage=0.5),
            _weak("graphs", coverage=0.7),
            _weak("math", coverage=0.8),
            _weak("implementation", coverage=0.65),
        ]
        known = self._known("dp", "greedy", "graphs", "math", "implementation")

        items = generate_foundation_recommendations(ctx, scores, user_tier=7, tag_expectations=known)

        assert [c["tags"] for c in catalog.calls] == [["dp"], ["graphs"], ["math"]]
        for call in catalog.calls:
            assert (call["level_min"], call["level_max"]) == (1, 7)
        assert len(items) <= 6
        assert all(ctx.usage(t) <= 2 for t in ("dp", "graphs", "math"))
        assert all(i.level <= 7 and i.category == Category.FOUNDATION for i in items)

    @pytest.mark.parametrize("tier,expected_max", [(0, 1), (25, 10)])
    def test_level_ceiling(self, catalog, tier, expected_max):
        ctx = _context(catalog)
        generate_foundation_recommendations(ctx, [_weak("dp", coverage=0.9)], user_tier=tier)
        assert catalog.calls[0]["level_max"] == expected_max
