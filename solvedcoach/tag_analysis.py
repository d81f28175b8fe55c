"""
Tag Analyzer.

Turns a user's solved problems and their solve dates into per-tag
statistics. Deterministic for a fixed "now"; nothing here talks to the
network or keeps state between calls.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, Mapping, Optional

from .schemas import SolvedProblem

RECENT_WINDOWS = (30, 60, 90)


@dataclass
class RecentCounts:
    days30: int = 0
    days60: int = 0
    days90: int = 0


@dataclass
class TagAnalysis:
    """Aggregate solve statistics for one tag of one user."""
    tag: str
    display_name: str = ""
    solved_count: int = 0
    avg_level: float = 0.0
    max_level: int = 0
    level_distribution: Dict[int, int] = field(default_factory=dict)
    total_problems_in_tag: int = 0
    last_solved_at: Optional[datetime] = None
    recent_counts: RecentCounts = field(default_factory=RecentCounts)


def analyze_user_tags(
    problems: Iterable[SolvedProblem],
    solved_dates: Mapping[int, datetime],
    now: Optional[datetime] = None,
) -> Dict[str, TagAnalysis]:
    """
    Build per-tag statistics from solved problems.

    Args:
        problems: Solved problems with their tags and levels
        solved_dates: problemId -> first solve time (naive UTC). Problems
            without a date count as solved "now".
        now: Reference time for the 30/60/90-day windows

    Returns:
        Dict of tag key -> TagAnalysis
    """
    now = now or datetime.utcnow()
    cutoffs = {days: now - timedelta(days=days) for days in RECENT_WINDOWS}
    tag_map: Dict[str, TagAnalysis] = {}
    distributions = defaultdict(lambda: defaultdict(int))

    for problem in problems:
        solved_at = solved_dates.get(problem.problem_id) or now

        for tag_ref in problem.tags:
            analysis = tag_map.get(tag_ref.key)
            if analysis is None:
                analysis = TagAnalysis(
                    tag=tag_ref.key,
                    display_name=tag_ref.display_name or tag_ref.key,
                    total_problems_in_tag=tag_ref.problem_count or 0,
                )
                tag_map[tag_ref.key] = analysis

            analysis.solved_count += 1
            distributions[tag_ref.key][problem.level] += 1

            if problem.level > analysis.max_level:
                analysis.max_level = problem.level

            if analysis.last_solved_at is None or solved_at > analysis.last_solved_at:
                analysis.last_solved_at = solved_at

            if solved_at >= cutoffs[30]:
                analysis.recent_counts.days30 += 1
            if solved_at >= cutoffs[60]:
                analysis.recent_counts.days60 += 1
            if solved_at >= cutoffs[90]:
                analysis.recent_counts.days90 += 1

    # avg_level is always derived from the final distribution
    for tag, analysis in tag_map.items():
        distribution = dict(sorted(distributions[tag].items()))
        analysis.level_distribution = distribution
        total = sum(distribution.values())
        analysis.avg_level = (
            sum(level * count for level, count in distribution.items()) / total
            if total > 0 else 0.0
        )

    return tag_map
