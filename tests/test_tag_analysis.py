"""
Unit Tests for the Tag Analyzer.
"""

from datetime import timedelta

import pytest
from solvedcoach.tag_analysis import analyze_user_tags

from conftest import NOW, make_problem


@pytest.fixture
def history():
    problems = [
        make_problem(1, 5, tags=("dp", "greedy")),
        make_problem(2, 7, tags=("dp",)),
        make_problem(3, 7, tags=("dp",)),
        make_problem(4, 12, tags=("graphs",)),
    ]
    dates = {
        1: NOW - timedelta(days=10),
        2: NOW - timedelta(days=45),
        3: NOW - timedelta(days=200),
        4: NOW - timedelta(days=80),
    }
    return problems, dates


class TestAnalyzeUserTags:
    """Tests for per-tag aggregation."""

    def test_counts_every_tag_of_every_problem(self, history):
        problems, dates = history
        result = analyze_user_tags(problems, dates, now=NOW)

        assert set(result) == {"dp", "greedy", "graphs"}
        assert result["dp"].solved_count == 3
        assert result["greedy"].solved_count == 1
        assert result["graphs"].solved_count == 1

    def test_level_distribution_and_average(self, history):
        """avg_level is the count-weighted mean of the distribution."""
        problems, dates = history
        dp = analyze_user_tags(problems, dates, now=NOW)["dp"]

        assert dp.level_distribution == {5: 1, 7: 2}
        assert dp.avg_level == pytest.approx((5 + 7 + 7) / 3)
        assert dp.max_level == 7

    def test_last_solved_is_most_recent(self, history):
        problems, dates = history
        dp = analyze_user_tags(problems, dates, now=NOW)["dp"]
        assert dp.last_solved_at == NOW - timedelta(days=10)

    def test_recent_windows(self, history):
        problems, dates = history
        result = analyze_user_tags(problems, dates, now=NOW)

        dp = result["dp"].recent_counts
        assert (dp.days30, dp.days60, dp.days90) == (1, 2, 2)

        graphs = result["graphs"].recent_counts
        assert (graphs.days30, graphs.days60, graphs.days90) == (0, 0, 1)

    def test_missing_date_counts_as_now(self):
        result = analyze_user_tags([make_problem(9, 3, tags=("math",))], {}, now=NOW)
        math_tag = result["math"]
        assert math_tag.last_solved_at == NOW
        assert math_tag.recent_counts.days30 == 1

    def test_carries_tag_metadata(self, history):
        problems, dates = history
        dp = analyze_user_tags(problems, dates, now=NOW)["dp"]
        assert dp.display_name == "DP"
        assert dp.total_problems_in_tag == 500

    def test_empty_history(self):
        assert analyze_user_tags([], {}, now=NOW) == {}

    def test_deterministic(self, history):
        """Same input and same now give identical output."""
        problems, dates = history
        first = analyze_user_tags(problems, dates, now=NOW)
        second = analyze_user_tags(problems, dates, now=NOW)
        assert first == second
