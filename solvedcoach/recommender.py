"""
Recommendation Engine for solved.ac problems.

Turns a user's weakness scores into a categorized, deduplicated list of
problem recommendations by querying the problem catalog.

Pipeline:
1. weakness   - staircase of level steps for the 10 weakest tags
2. challenge  - one harder band for the 5 weakest tags
3. review     - tags not practised recently
4. popular    - widely solved problems around the user's level
5. foundation - easy problems for tags with poor coverage
6. backfill   - popular-style top-up when fewer than 40 items were found

Every run allocates its own GenerationContext, so the used-ID set and tag
usage counters are never shared between calls. Catalog failures are logged
and the run moves on to the next candidate source.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from .catalog_client import ProblemCatalog
from .config import (
    CATEGORY_LIMITS,
    MIN_LEVEL,
    MIN_RECOMMENDATION_COUNT,
    MAX_LEVEL,
    WEAK_TAG_COUNT,
    CHALLENGE_TAG_COUNT,
    CHALLENGE_PER_TAG,
    CHALLENGE_DISCOUNT,
    REVIEW_TAG_COUNT,
    REVIEW_PER_TAG,
    REVIEW_RECENCY_THRESHOLD,
    FOUNDATION_TAG_COUNT,
    FOUNDATION_PER_TAG,
    FOUNDATION_COVERAGE_THRESHOLD,
    FOUNDATION_MAX_LEVEL,
    STEP_SIZE,
    BACKFILL_MAX_PAGES,
    GENERATION_CALL_INTERVAL,
    clamp_level,
    get_tier_name,
    round_half_up,
)
from .errors import CatalogAPIError
from .schemas import (
    Category,
    RecommendationCriteria,
    RecommendationItem,
    RecommendationResult,
    RecommendationStats,
    ScoreBreakdown,
    SolvedProblem,
)
from .scoring import (
    WeaknessScore,
    calculate_diversity,
    calculate_level_fitness,
    calculate_problem_quality,
    calculate_score_breakdown,
    days_since,
    weighted_score,
)
from .tag_expectations import TagExpectationSource
from .throttle import RateLimiter

logger = logging.getLogger(__name__)

BACKFILL_SORT_MODES = [
    ("solved", "desc"),
    ("average_try", "asc"),
    ("id", "asc"),
]


# =============================================================================
# PER-CALL STATE
# =============================================================================

@dataclass
class GenerationContext:
    """Mutable state of one generation run. Never reuse across runs."""
    catalog: ProblemCatalog
    avg_level: int
    solved_ids: Set[int]
    throttle: RateLimiter
    rng: random.Random
    now: datetime
    used_ids: Set[int] = field(default_factory=set)
    tag_usage: Dict[str, int] = field(default_factory=dict)

    def is_available(self, problem_id: int) -> bool:
        return problem_id not in self.solved_ids and problem_id not in self.used_ids

    def usage(self, tag: str) -> int:
        return self.tag_usage.get(tag, 0)

    def claim(self, problem_id: int, tag: Optional[str] = None) -> None:
        self.used_ids.add(problem_id)
        if tag:
            self.tag_usage[tag] = self.tag_usage.get(tag, 0) + 1

    def search(self, **params) -> List[SolvedProblem]:
        """Run one paced catalog search. CatalogAPIError propagates."""
        self.throttle.wait()
        return self.catalog.search(**params).items

    def jitter(self, magnitude: float) -> float:
        return self.rng.random() * magnitude


@dataclass
class Step:
    level: int
    min: int
    max: int


def generate_steps(from_level: float, to_level: float) -> List[Step]:
    """Level steps of size 2 from from_level (at least 1) up to to_level (inclusive)."""
    steps = []
    level = max(MIN_LEVEL, math.floor(from_level))
    while level <= to_level:
        steps.append(Step(level=level, min=max(1, level - 1), max=min(MAX_LEVEL, level + 1)))
        level += STEP_SIZE
    return steps


def _priority(score: float, factor: int) -> int:
    return round_half_up(score * factor)


# =============================================================================
# REASONS
# =============================================================================

def generate_reasons(
    weakness: WeaknessScore,
    problem: SolvedProblem,
    avg_level: int,
    category: Category,
    now: datetime,
) -> List[str]:
    """Human-readable reasons for a tag-driven recommendation."""
    reasons = []
    name = weakness.display_name
    tier_name = get_tier_name(problem.level)

    if category == Category.WEAKNESS:
        reasons.append(f"Strengthen {name}")
        if weakness.details.coverage_score > 0.5:
            reasons.append(f"Few {name} problems solved so far")
        if weakness.details.recency_score > 0.5:
            reasons.append("No recent solves in this tag")
    elif category == Category.CHALLENGE:
        reasons.append(f"Step up in {name}")
        reasons.append(f"Target: reach {tier_name}")
    elif category == Category.REVIEW:
        reasons.append(f"Review {name}")
        days = days_since(weakness.analysis.last_solved_at, now)
        if days is not None:
            reasons.append(f"Not practised for {days} days")

    level_diff = problem.level - avg_level
    if abs(level_diff) <= 1:
        reasons.append(f"Right difficulty ({tier_name})")
    elif level_diff > 0:
        reasons.append(f"Challenging difficulty ({tier_name})")

    return reasons


# =============================================================================
# CATEGORY GENERATORS
# =============================================================================

def generate_weakness_recommendations(
    ctx: GenerationContext,
    weak_tags: List[WeaknessScore],
) -> List[RecommendationItem]:
    """Walk a staircase of level steps for each weak tag."""
    items: List[RecommendationItem] = []
    limit = CATEGORY_LIMITS["weakness"]
    if not weak_tags:
        return items
    max_per_tag = math.ceil(limit / len(weak_tags))

    def capped(tag: str) -> bool:
        return len(items) >= limit or ctx.usage(tag) >= max_per_tag

    for weakness in weak_tags:
        if len(items) >= limit:
            break

        start_level = max(MIN_LEVEL, weakness.analysis.avg_level or (ctx.avg_level - 2))
        for step in generate_steps(start_level, ctx.avg_level + 2):
            if capped(weakness.tag):
                break

            try:
                results = ctx.search(
                    tags=[weakness.tag],
                    level_min=step.min,
                    level_max=step.max,
                    page=1,
                    sort="solved",
                    direction="desc",
                )
            except CatalogAPIError as e:
                logger.error(f"Weakness search failed for tag {weakness.tag} step {step.level}: {e.message}")
                continue

            for problem in results:
                if not ctx.is_available(problem.problem_id):
                    continue
                if capped(weakness.tag):
                    break

                breakdown = calculate_score_breakdown(
                    problem, weakness, ctx.avg_level, step.level, ctx.tag_usage
                )
                score = weighted_score(breakdown)
                items.append(RecommendationItem(
                    problem_id=problem.problem_id,
                    score=score,
                    category=Category.WEAKNESS,
                    priority=_priority(score, 10),
                    reasons=generate_reasons(weakness, problem, ctx.avg_level, Category.WEAKNESS, ctx.now),
                    tags=problem.tag_keys,
                    level=problem.level,
                    step_level=step.level,
                    score_breakdown=breakdown,
                ))
                ctx.claim(problem.problem_id, weakness.tag)

    return items


def generate_challenge_recommendations(
    ctx: GenerationContext,
    weak_tags: List[WeaknessScore],
) -> List[RecommendationItem]:
    """A few problems from a harder band for each of the weakest tags."""
    items: List[RecommendationItem] = []
    limit = CATEGORY_LIMITS["challenge"]
    challenge_level = min(ctx.avg_level + 3, MAX_LEVEL)

    for weakness in weak_tags:
        if len(items) >= limit:
            break

        try:
            results = ctx.search(
                tags=[weakness.tag],
                level_min=challenge_level,
                level_max=min(challenge_level + 3, MAX_LEVEL),
                page=1,
            )
        except CatalogAPIError as e:
            logger.error(f"Challenge search failed for tag {weakness.tag}: {e.message}")
            continue

        for problem in results[:CHALLENGE_PER_TAG]:
            if not ctx.is_available(problem.problem_id):
                continue
            if len(items) >= limit:
                break

            breakdown = calculate_score_breakdown(
                problem, weakness, ctx.avg_level, challenge_level, ctx.tag_usage
            )
            score = weighted_score(breakdown)
            items.append(RecommendationItem(
                problem_id=problem.problem_id,
                score=score * CHALLENGE_DISCOUNT,
                category=Category.CHALLENGE,
                priority=_priority(score, 8),
                reasons=generate_reasons(weakness, problem, ctx.avg_level, Category.CHALLENGE, ctx.now),
                tags=problem.tag_keys,
                level=problem.level,
                score_breakdown=breakdown,
            ))
            ctx.claim(problem.problem_id, weakness.tag)

    return items


def generate_review_recommendations(
    ctx: GenerationContext,
    all_tags: List[WeaknessScore],
) -> List[RecommendationItem]:
    """Recent catalog problems for tags the user has not touched in a while."""
    items: List[RecommendationItem] = []
    limit = CATEGORY_LIMITS["review"]

    review_tags = sorted(
        (t for t in all_tags if t.details.recency_score > REVIEW_RECENCY_THRESHOLD),
        key=lambda t: -t.details.recency_score,
    )[:REVIEW_TAG_COUNT]

    for tag_score in review_tags:
        if len(items) >= limit:
            break

        try:
            results = ctx.search(
                tags=[tag_score.tag],
                level_min=max(1, ctx.avg_level - 2),
                level_max=min(MAX_LEVEL, ctx.avg_level + 1),
                page=1,
                sort="id",
                direction="desc",
            )
        except CatalogAPIError as e:
            logger.error(f"Review search failed for tag {tag_score.tag}: {e.message}")
            continue

        for problem in results[:REVIEW_PER_TAG]:
            if not ctx.is_available(problem.problem_id):
                continue
            if len(items) >= limit:
                break

            recency = tag_score.details.recency_score
            score = 0.6 + recency * 0.3 + ctx.jitter(0.1)
            items.append(RecommendationItem(
                problem_id=problem.problem_id,
                score=score,
                category=Category.REVIEW,
                priority=_priority(score, 7),
                reasons=generate_reasons(tag_score, problem, ctx.avg_level, Category.REVIEW, ctx.now),
                tags=problem.tag_keys,
                level=problem.level,
                score_breakdown=ScoreBreakdown(
                    tag_weakness=tag_score.total_score,
                    level_fitness=calculate_level_fitness(problem.level, ctx.avg_level),
                    step_progress=0.5,
                    problem_quality=min(problem.accepted_user_count / 10000, 1.0),
                    diversity=calculate_diversity(ctx.usage(tag_score.tag)),
                ),
            ))
            ctx.claim(problem.problem_id, tag_score.tag)

    return items


def generate_popular_recommendations(ctx: GenerationContext) -> List[RecommendationItem]:
    """Widely solved problems in progressively wider bands around the user's level."""
    items: List[RecommendationItem] = []
    limit = CATEGORY_LIMITS["popular"]
    level_ranges = [
        (max(1, ctx.avg_level - 2), min(MAX_LEVEL, ctx.avg_level + 2)),
        (max(1, ctx.avg_level - 5), min(MAX_LEVEL, ctx.avg_level + 5)),
        (1, 15),
    ]

    for level_min, level_max in level_ranges:
        if len(items) >= limit:
            break

        try:
            results = ctx.search(
                level_min=level_min,
                level_max=level_max,
                page=1,
                sort="solved",
                direction="desc",
            )
        except CatalogAPIError as e:
            logger.error(f"Popular search failed for range {level_min}-{level_max}: {e.message}")
            continue

        if not results:
            continue

        for problem in sorted(results, key=lambda p: -p.accepted_user_count):
            if not ctx.is_available(problem.problem_id):
                continue
            if len(items) >= limit:
                break

            quality = calculate_problem_quality(problem, popularity_scale=50000)
            score = 0.5 + quality * 0.4 + ctx.jitter(0.1)
            items.append(RecommendationItem(
                problem_id=problem.problem_id,
                score=score,
                category=Category.POPULAR,
                priority=_priority(score, 6),
                reasons=[
                    f"Popular problem solved by {problem.accepted_user_count:,} users",
                    f"Difficulty: {get_tier_name(problem.level)}",
                ],
                tags=problem.tag_keys,
                level=problem.level,
                score_breakdown=ScoreBreakdown(
                    tag_weakness=0.3,
                    level_fitness=calculate_level_fitness(problem.level, ctx.avg_level),
                    step_progress=0.5,
                    problem_quality=quality,
                    diversity=0.5,
                ),
            ))
            ctx.claim(problem.problem_id)

    return items


def generate_foundation_recommendations(
    ctx: GenerationContext,
    all_tags: List[WeaknessScore],
    user_tier: int,
    tag_expectations: Optional[TagExpectationSource] = None,
) -> List[RecommendationItem]:
    """Easy, well-known problems for tags with poor coverage."""
    items: List[RecommendationItem] = []
    limit = CATEGORY_LIMITS["foundation"]

    foundation_tags = [
        t for t in all_tags
        if t.details.coverage_score > FOUNDATION_COVERAGE_THRESHOLD
        and (tag_expectations is None or tag_expectations.covers(t.tag))
    ][:FOUNDATION_TAG_COUNT]

    max_level = max(1, min(user_tier, FOUNDATION_MAX_LEVEL))

    for tag_score in foundation_tags:
        if len(items) >= limit:
            break

        try:
            results = ctx.search(
                tags=[tag_score.tag],
                level_min=1,
                level_max=max_level,
                page=1,
                sort="solved",
                direction="desc",
            )
        except CatalogAPIError as e:
            logger.error(f"Foundation search failed for tag {tag_score.tag}: {e.message}")
            continue

        for problem in results[:FOUNDATION_PER_TAG]:
            if not ctx.is_available(problem.problem_id):
                continue
            if len(items) >= limit:
                break

            items.append(RecommendationItem(
                problem_id=problem.problem_id,
                score=0.55 + ctx.jitter(0.1),
                category=Category.FOUNDATION,
                priority=5,
                reasons=[
                    f"Build fundamentals in {tag_score.display_name}",
                    "Solid basics first",
                ],
                tags=problem.tag_keys,
                level=problem.level,
                score_breakdown=ScoreBreakdown(
                    tag_weakness=tag_score.total_score,
                    level_fitness=0.8,
                    step_progress=1.0,
                    problem_quality=min(problem.accepted_user_count / 10000, 1.0),
                    diversity=calculate_diversity(ctx.usage(tag_score.tag)),
                ),
            ))
            ctx.claim(problem.problem_id, tag_score.tag)

    return items


def generate_backfill_recommendations(
    ctx: GenerationContext,
    needed_count: int,
) -> List[RecommendationItem]:
    """
    Top up a sparse result with popular-category problems.

    Widens the level band and varies the sort order, paging up to six pages
    per combination. A short page means the catalog has no more results for
    that combination.
    """
    items: List[RecommendationItem] = []
    if needed_count <= 0:
        return items

    level_ranges = [
        (max(1, ctx.avg_level - 2), min(MAX_LEVEL, ctx.avg_level + 2)),
        (max(1, ctx.avg_level - 5), min(MAX_LEVEL, ctx.avg_level + 5)),
        (1, MAX_LEVEL),
    ]
    page_size = ctx.catalog.page_size

    for level_min, level_max in level_ranges:
        if len(items) >= needed_count:
            break

        for sort, direction in BACKFILL_SORT_MODES:
            if len(items) >= needed_count:
                break

            for page in range(1, BACKFILL_MAX_PAGES + 1):
                if len(items) >= needed_count:
                    break

                try:
                    results = ctx.search(
                        level_min=level_min,
                        level_max=level_max,
                        page=page,
                        sort=sort,
                        direction=direction,
                    )
                except CatalogAPIError as e:
                    logger.error(
                        f"Backfill search failed for range {level_min}-{level_max}, "
                        f"sort {sort}, page {page}: {e.message}"
                    )
                    break

                if not results:
                    break

                for problem in results:
                    if len(items) >= needed_count:
                        break
                    if not ctx.is_available(problem.problem_id):
                        continue

                    tags = problem.tag_keys
                    primary_tag = tags[0] if tags else None
                    ctx.claim(problem.problem_id, primary_tag)

                    level_fitness = calculate_level_fitness(problem.level, ctx.avg_level, scale=12)
                    popularity = min(problem.accepted_user_count / 60000, 1.0)
                    score = 0.45 + level_fitness * 0.25 + popularity * 0.25 + ctx.jitter(0.05)

                    items.append(RecommendationItem(
                        problem_id=problem.problem_id,
                        score=score,
                        category=Category.POPULAR,
                        priority=max(3, _priority(score, 10)),
                        reasons=[
                            "Extra practice to round out your list",
                            f"Solved by {problem.accepted_user_count:,} users",
                        ],
                        tags=tags,
                        level=problem.level,
                        score_breakdown=ScoreBreakdown(
                            tag_weakness=0.3,
                            level_fitness=level_fitness,
                            step_progress=0.4,
                            problem_quality=popularity,
                            diversity=(
                                max(0.0, 1 - (ctx.usage(primary_tag) - 1) / 8)
                                if primary_tag else 0.5
                            ),
                        ),
                    ))

                if len(results) < page_size:
                    break

    if len(items) < needed_count:
        logger.warning(f"Backfill found {len(items)} of {needed_count} requested problems")
    return items


# =============================================================================
# ASSEMBLY
# =============================================================================

def build_recommendation_stats(items: Iterable[RecommendationItem]) -> RecommendationStats:
    """Category counts, mean score and the tags covered by a list of items."""
    items = list(items)
    by_category = {c.value: 0 for c in Category}
    tag_coverage: List[str] = []
    seen = set()

    for item in items:
        by_category[Category(item.category).value] += 1
        for tag in item.tags:
            if tag not in seen:
                seen.add(tag)
                tag_coverage.append(tag)

    avg_score = sum(i.score for i in items) / len(items) if items else 0.0

    return RecommendationStats(
        total_count=len(items),
        by_category=by_category,
        avg_score=avg_score,
        tag_coverage=tag_coverage,
    )


def calculate_user_avg_level(solved_problems: List[SolvedProblem], user_tier: int) -> int:
    """Rounded mean level of solved problems, or 80% of the tier without history."""
    if solved_problems:
        return round_half_up(sum(p.level for p in solved_problems) / len(solved_problems))
    return math.floor(user_tier * 0.8)


def generate_recommendations(
    catalog: ProblemCatalog,
    user_id: int,
    user_tier: int,
    solved_problems: List[SolvedProblem],
    weakness_scores: List[WeaknessScore],
    tag_expectations: Optional[TagExpectationSource] = None,
    throttle: Optional[RateLimiter] = None,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> RecommendationResult:
    """
    Generate a full recommendation snapshot for a user (not persisted).

    Args:
        catalog: Problem catalog to search
        user_id: Owner of the snapshot
        user_tier: User's tier (0-31)
        solved_problems: Every problem the user has solved
        weakness_scores: Output of calculate_weakness_scores, weakest first
        tag_expectations: Restricts foundation tags to the known population
        throttle: Pacing between catalog searches
        rng: Source of score jitter; seed it for reproducible output
        now: Snapshot time

    Returns:
        RecommendationResult with items sorted by score, stats and criteria
    """
    now = now or datetime.utcnow()
    avg_level = calculate_user_avg_level(solved_problems, user_tier)
    ctx = GenerationContext(
        catalog=catalog,
        avg_level=avg_level,
        solved_ids={p.problem_id for p in solved_problems},
        throttle=throttle or RateLimiter(GENERATION_CALL_INTERVAL),
        rng=rng or random.Random(),
        now=now,
    )

    all_items: List[RecommendationItem] = []
    all_items += generate_weakness_recommendations(ctx, weakness_scores[:WEAK_TAG_COUNT])
    all_items += generate_challenge_recommendations(ctx, weakness_scores[:CHALLENGE_TAG_COUNT])
    all_items += generate_review_recommendations(ctx, weakness_scores)
    all_items += generate_popular_recommendations(ctx)
    all_items += generate_foundation_recommendations(
        ctx, weakness_scores, user_tier, tag_expectations
    )

    if len(all_items) < MIN_RECOMMENDATION_COUNT:
        logger.info(
            f"Only {len(all_items)} primary recommendations for user {user_id}, backfilling"
        )
        all_items += generate_backfill_recommendations(
            ctx, MIN_RECOMMENDATION_COUNT - len(all_items)
        )

    all_items.sort(key=lambda i: -i.score)
    stats = build_recommendation_stats(all_items)

    logger.info(
        f"Generated {stats.total_count} recommendations for user {user_id} "
        f"(avg level {avg_level}): {stats.by_category}"
    )

    return RecommendationResult(
        user_id=user_id,
        generated_at=now,
        criteria=RecommendationCriteria(
            user_tier=user_tier,
            user_avg_level=avg_level,
            level_min=clamp_level(avg_level - 5),
            level_max=clamp_level(avg_level + 5),
            weak_tags=[w.tag for w in weakness_scores[:WEAK_TAG_COUNT]],
            exclude_solved=True,
        ),
        items=all_items,
        stats=stats,
    )
