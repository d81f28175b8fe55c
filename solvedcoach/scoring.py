"""
Scoring Module for solvedcoach.

Provides the weakness scorer (how under-practised each tag is for a user)
and the candidate scoring used when ranking recommended problems.
All scoring functions are deterministic (same input -> same output).
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Mapping, Optional

from .config import (
    MAX_LEVEL,
    WEAKNESS_WEIGHTS,
    RECOMMENDATION_WEIGHTS,
    RECENCY_WINDOW_DAYS,
    LEVEL_GAP_SCALE,
    CEILING_HEADROOM,
    CONSISTENCY_BAND,
    CONSISTENCY_LOWER_FACTOR,
    INSUFFICIENT_DATA_SCORE,
)
from .schemas import ScoreBreakdown, SolvedProblem
from .tag_analysis import TagAnalysis
from .tag_expectations import StaticTagExpectations, TagExpectationSource


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass
class WeaknessDetails:
    coverage_score: float
    level_gap_score: float
    recency_score: float
    ceiling_score: float
    consistency_score: float


@dataclass
class WeaknessScore:
    """Weakness of one tag for one user. Higher total_score = weaker."""
    tag: str
    total_score: float
    details: WeaknessDetails
    analysis: TagAnalysis

    @property
    def display_name(self) -> str:
        return self.analysis.display_name or self.tag


# =============================================================================
# WEAKNESS SUB-SCORES
# =============================================================================

def calculate_coverage_score(solved_count: int, expected_count: int) -> float:
    """1 - solved/expected, floored at 0 once the expected count is reached."""
    expected_count = max(expected_count, 1)
    return 1.0 - min(solved_count / expected_count, 1.0)


def calculate_level_gap_score(expected_level: int, avg_level: float) -> float:
    return _clamp01((expected_level - avg_level) / LEVEL_GAP_SCALE)


def days_since(moment: Optional[datetime], now: datetime) -> Optional[int]:
    if moment is None:
        return None
    return max(0, math.floor((now - moment).total_seconds() / 86400))


def calculate_recency_score(last_solved_at: Optional[datetime], now: datetime) -> float:
    days = days_since(last_solved_at, now)
    if days is None:
        return 1.0
    return _clamp01(days / RECENCY_WINDOW_DAYS)


def calculate_ceiling_score(expected_level: int, max_level: int) -> float:
    expected_ceiling = min(expected_level + CEILING_HEADROOM, MAX_LEVEL)
    return _clamp01((expected_ceiling - max_level) / LEVEL_GAP_SCALE)


def calculate_consistency_score(distribution: Mapping[int, int], expected_level: int) -> float:
    """
    Penalize solve histories skewed towards levels well below expectation.

    Levels below expected-3 count as "lower"; the score is
    min(lower_ratio * 1.5, 1). Fewer than two distinct levels is not enough
    data and yields 0.5.
    """
    if len(distribution) <= 1:
        return INSUFFICIENT_DATA_SCORE

    lower = around = higher = 0
    for level, count in distribution.items():
        level = int(level)
        if level < expected_level - CONSISTENCY_BAND:
            lower += count
        elif level > expected_level + CONSISTENCY_BAND:
            higher += count
        else:
            around += count

    total = lower + around + higher
    if total == 0:
        return INSUFFICIENT_DATA_SCORE

    return min((lower / total) * CONSISTENCY_LOWER_FACTOR, 1.0)


def calculate_weakness_scores(
    tag_analysis: Mapping[str, TagAnalysis],
    user_tier: int,
    tag_expectations: Optional[TagExpectationSource] = None,
    now: Optional[datetime] = None,
) -> List[WeaknessScore]:
    """
    Score every analysed tag.

    Args:
        tag_analysis: Output of analyze_user_tags
        user_tier: The user's tier (0-31)
        tag_expectations: Expectation source; the static formula when None
        now: Reference time for recency

    Returns:
        WeaknessScores sorted weakest first (ties broken by tag key)
    """
    source = tag_expectations or StaticTagExpectations()
    now = now or datetime.utcnow()
    expected_level = min(user_tier, MAX_LEVEL)
    results = []

    for tag, analysis in tag_analysis.items():
        details = WeaknessDetails(
            coverage_score=calculate_coverage_score(
                analysis.solved_count, source.expected_count(tag, user_tier)
            ),
            level_gap_score=calculate_level_gap_score(expected_level, analysis.avg_level),
            recency_score=calculate_recency_score(analysis.last_solved_at, now),
            ceiling_score=calculate_ceiling_score(expected_level, analysis.max_level),
            consistency_score=calculate_consistency_score(
                analysis.level_distribution, expected_level
            ),
        )

        total = (
            WEAKNESS_WEIGHTS["coverage"] * details.coverage_score
            + WEAKNESS_WEIGHTS["level_gap"] * details.level_gap_score
            + WEAKNESS_WEIGHTS["recency"] * details.recency_score
            + WEAKNESS_WEIGHTS["ceiling"] * details.ceiling_score
            + WEAKNESS_WEIGHTS["consistency"] * details.consistency_score
        )

        results.append(WeaknessScore(
            tag=tag,
            total_score=_clamp01(total),
            details=details,
            analysis=analysis,
        ))

    return sorted(results, key=lambda s: (-s.total_score, s.tag))


# =============================================================================
# CANDIDATE SCORING
# =============================================================================

def calculate_level_fitness(level: int, avg_level: float, scale: float = 10) -> float:
    return max(0.0, 1 - abs(level - avg_level) / scale)


def calculate_step_progress(level: int, step_level: float) -> float:
    return max(0.0, 1 - abs(level - step_level) / 5)


def calculate_problem_quality(
    problem: SolvedProblem,
    popularity_scale: float = 10000,
    tries_scale: float = 5,
) -> float:
    """
    Popularity (70%) blended with ease of acceptance (30%).

    A problem with no recorded average tries counts as fully easy to accept.
    """
    popularity = min(problem.accepted_user_count / popularity_scale, 1.0)
    if problem.average_tries > 0:
        tries = max(0.0, 1 - problem.average_tries / tries_scale)
    else:
        tries = 1.0
    return popularity * 0.7 + tries * 0.3


def calculate_diversity(usage_count: int, scale: float = 5) -> float:
    return max(0.0, 1 - usage_count / scale)


def calculate_score_breakdown(
    problem: SolvedProblem,
    weakness: WeaknessScore,
    avg_level: float,
    step_level: float,
    tag_usage: Mapping[str, int],
) -> ScoreBreakdown:
    """Per-factor scores for a candidate driven by one weak tag."""
    return ScoreBreakdown(
        tag_weakness=weakness.total_score,
        level_fitness=calculate_level_fitness(problem.level, avg_level),
        step_progress=calculate_step_progress(problem.level, step_level),
        problem_quality=calculate_problem_quality(problem),
        diversity=calculate_diversity(tag_usage.get(weakness.tag, 0)),
    )


def weighted_score(breakdown: ScoreBreakdown) -> float:
    return (
        RECOMMENDATION_WEIGHTS["tag_weakness"] * breakdown.tag_weakness
        + RECOMMENDATION_WEIGHTS["level_fitness"] * breakdown.level_fitness
        + RECOMMENDATION_WEIGHTS["step_progress"] * breakdown.step_progress
        + RECOMMENDATION_WEIGHTS["problem_quality"] * breakdown.problem_quality
        + RECOMMENDATION_WEIGHTS["diversity"] * breakdown.diversity
    )
