"""
Realtime Query Layer.

Builds an ephemeral recommendation list on demand from caller filters,
straight against the catalog and without a stored snapshot. Also serves the
stored-snapshot read path, topping up sparse snapshots from the catalog.

Realtime calls are best effort and single pass: no pacing between searches,
and a failed search only ends the strategy it belongs to.
"""

import logging
from typing import Iterable, List, Mapping, Optional, Set

from .catalog_client import ProblemCatalog
from .config import (
    DEFAULT_AVG_LEVEL,
    DEFAULT_RECOMMENDATION_LIMIT,
    DEFAULT_TAG_POOL,
    MAX_LEVEL,
    MAX_RECOMMENDATION_LIMIT,
    MIN_RECOMMENDATION_COUNT,
    REALTIME_LEVEL_WINDOW,
    REALTIME_MAX_PAGES,
    REALTIME_TAG_POOL_SIZE,
    clamp_level,
    get_tier_name,
    normalize_tags,
    round_half_up,
)
from .errors import CatalogAPIError
from .recommender import BACKFILL_SORT_MODES
from .schemas import (
    Category,
    RecommendationItem,
    RecommendationQuery,
    ScoreBreakdown,
    SolvedProblem,
)
from .scoring import calculate_level_fitness

logger = logging.getLogger(__name__)

DEFAULT_WEAK_SCORE = 0.3
UNTAGGED = "etc"


def clamp_recommendation_limit(limit: Optional[float] = None) -> int:
    """Default 120 when missing or zero; otherwise floor into [1, 300]."""
    if not limit or limit != limit:
        return DEFAULT_RECOMMENDATION_LIMIT
    return max(1, min(MAX_RECOMMENDATION_LIMIT, int(limit // 1)))


def tier_anchored_avg_level(tier: Optional[int]) -> int:
    """Approximate working level from the tier alone (8 for unrated users)."""
    if not tier:
        return DEFAULT_AVG_LEVEL
    return clamp_level(round_half_up(tier * 0.8))


def realtime_problem_quality(problem: SolvedProblem) -> float:
    popularity = min(problem.accepted_user_count / 60000, 1.0)
    if problem.average_tries > 0:
        tries = max(0.0, 1 - problem.average_tries / 6)
    else:
        tries = 0.6
    return popularity * 0.7 + tries * 0.3


def infer_category(level: int, avg_level: int, weak_score: float) -> Category:
    if level >= avg_level + 2:
        return Category.CHALLENGE
    if weak_score >= 0.55:
        return Category.WEAKNESS
    if level <= min(10, avg_level - 2):
        return Category.FOUNDATION
    return Category.POPULAR


class RealtimeCollector:
    """Accumulates scored candidates for one realtime request."""

    def __init__(
        self,
        avg_level: int,
        weak_scores: Mapping[str, float],
        solved_ids: Set[int],
        limit: int,
        exclude_solved: bool = True,
        category_hint: Optional[Category] = None,
    ):
        self.avg_level = avg_level
        self.weak_scores = weak_scores
        self.solved_ids = solved_ids
        self.limit = limit
        self.exclude_solved = exclude_solved
        self.category_hint = category_hint
        self.items: List[RecommendationItem] = []
        self.used_ids: Set[int] = set()
        self.tag_usage = {}

    @property
    def full(self) -> bool:
        return len(self.items) >= self.limit

    def push(self, problem: SolvedProblem, primary_tag: str) -> None:
        if self.full or problem.problem_id in self.used_ids:
            return
        if self.exclude_solved and problem.problem_id in self.solved_ids:
            return

        weak_score = self.weak_scores.get(primary_tag, DEFAULT_WEAK_SCORE)
        level_fitness = calculate_level_fitness(problem.level, self.avg_level, scale=12)
        quality = realtime_problem_quality(problem)
        usage = self.tag_usage.get(primary_tag, 0)
        diversity = max(0.0, 1 - usage / 8)
        score = (
            0.35 + weak_score * 0.3 + level_fitness * 0.2
            + quality * 0.1 + diversity * 0.05
        )

        self.items.append(RecommendationItem(
            problem_id=problem.problem_id,
            score=score,
            category=self.category_hint or infer_category(problem.level, self.avg_level, weak_score),
            priority=max(3, round_half_up(score * 10)),
            reasons=[
                f"Live pick related to {primary_tag}",
                f"Solved by {problem.accepted_user_count:,} users",
            ],
            tags=problem.tag_keys,
            level=problem.level,
            score_breakdown=ScoreBreakdown(
                tag_weakness=weak_score,
                level_fitness=level_fitness,
                step_progress=0.5,
                problem_quality=quality,
                diversity=diversity,
            ),
        ))
        self.used_ids.add(problem.problem_id)
        self.tag_usage[primary_tag] = usage + 1


def _collect_pages(
    catalog: ProblemCatalog,
    collector: RealtimeCollector,
    tag: Optional[str],
    level_min: int,
    level_max: int,
    sort: str,
    direction: str,
) -> None:
    """Page one (tag, band, sort) combination into the collector."""
    for page in range(1, REALTIME_MAX_PAGES + 1):
        if collector.full:
            break

        try:
            results = catalog.search(
                tags=[tag] if tag else None,
                level_min=level_min,
                level_max=level_max,
                page=page,
                sort=sort,
                direction=direction,
            ).items
        except CatalogAPIError as e:
            scope = f"tag {tag}" if tag else f"range {level_min}-{level_max}"
            logger.error(f"Realtime search failed for {scope}, sort {sort}: {e.message}")
            break

        if not results:
            break

        for problem in results:
            primary = tag or (problem.tag_keys[0] if problem.tags else UNTAGGED)
            collector.push(problem, primary)
            if collector.full:
                break

        if len(results) < catalog.page_size:
            break


def build_realtime_recommendations(
    catalog: ProblemCatalog,
    tier: Optional[int],
    solved_ids: Iterable[int],
    weak_scores: Mapping[str, float],
    query: Optional[RecommendationQuery] = None,
) -> List[RecommendationItem]:
    """
    Build recommendations on demand from caller filters.

    Args:
        catalog: Problem catalog to search
        tier: User's tier; anchors the default level band
        solved_ids: Problems the user has solved
        weak_scores: tag key -> weakness total score (may be empty)
        query: Filters and limit; defaults apply when None

    Returns:
        Items sorted by score, filtered by category, at most query.limit long
    """
    query = query or RecommendationQuery()
    limit = clamp_recommendation_limit(query.limit)
    avg_level = tier_anchored_avg_level(tier)
    target_min = query.level_min if query.level_min is not None else max(1, avg_level - REALTIME_LEVEL_WINDOW)
    target_max = query.level_max if query.level_max is not None else min(MAX_LEVEL, avg_level + REALTIME_LEVEL_WINDOW)

    requested = normalize_tags(query.tags)
    if requested:
        tag_pool = requested
    else:
        ranked = sorted(weak_scores.items(), key=lambda kv: (-(kv[1] or 0), kv[0]))
        tag_pool = [tag for tag, _ in ranked[:REALTIME_TAG_POOL_SIZE]] or list(DEFAULT_TAG_POOL)

    collector = RealtimeCollector(
        avg_level=avg_level,
        weak_scores=weak_scores,
        solved_ids=set(solved_ids),
        limit=limit,
        exclude_solved=query.exclude_solved,
        category_hint=query.category,
    )

    for tag in tag_pool:
        if collector.full:
            break
        for sort, direction in BACKFILL_SORT_MODES:
            if collector.full:
                break
            _collect_pages(catalog, collector, tag, target_min, target_max, sort, direction)

    if not collector.full:
        general_ranges = [
            (target_min, target_max),
            (max(1, avg_level - 10), min(MAX_LEVEL, avg_level + 10)),
            (1, MAX_LEVEL),
        ]
        for level_min, level_max in general_ranges:
            if collector.full:
                break
            for sort, direction in BACKFILL_SORT_MODES:
                if collector.full:
                    break
                _collect_pages(catalog, collector, None, level_min, level_max, sort, direction)

    items = collector.items
    if query.category:
        items = [i for i in items if i.category == query.category]

    items = sorted(items, key=lambda i: -i.score)[:limit]
    logger.info(f"Realtime query produced {len(items)} items (limit {limit}, tags {tag_pool[:3]}...)")
    return items


# =============================================================================
# STORED SNAPSHOT READS
# =============================================================================

def build_fallback_recommendations(
    catalog: ProblemCatalog,
    tier: Optional[int],
    solved_ids: Set[int],
    existing_items: List[RecommendationItem],
    needed_count: int,
) -> List[RecommendationItem]:
    """Tier-anchored popular top-up for a sparse stored snapshot."""
    if needed_count <= 0:
        return []

    used_ids = {i.problem_id for i in existing_items}
    avg_level = tier_anchored_avg_level(tier)
    items: List[RecommendationItem] = []
    level_ranges = [
        (max(1, avg_level - 2), min(MAX_LEVEL, avg_level + 2)),
        (max(1, avg_level - 5), min(MAX_LEVEL, avg_level + 5)),
        (1, MAX_LEVEL),
    ]

    for level_min, level_max in level_ranges:
        if len(items) >= needed_count:
            break

        for page in range(1, REALTIME_MAX_PAGES + 1):
            if len(items) >= needed_count:
                break

            try:
                results = catalog.search(
                    level_min=level_min,
                    level_max=level_max,
                    page=page,
                    sort="solved",
                    direction="desc",
                ).items
            except CatalogAPIError as e:
                logger.error(f"Fallback search failed for range {level_min}-{level_max}: {e.message}")
                break

            if not results:
                break

            for problem in results:
                if len(items) >= needed_count:
                    break
                if problem.problem_id in solved_ids or problem.problem_id in used_ids:
                    continue

                level_fitness = calculate_level_fitness(problem.level, avg_level, scale=12)
                quality = min(problem.accepted_user_count / 60000, 1.0)
                score = 0.45 + level_fitness * 0.3 + quality * 0.2

                items.append(RecommendationItem(
                    problem_id=problem.problem_id,
                    score=score,
                    category=Category.POPULAR,
                    priority=max(3, round_half_up(score * 10)),
                    reasons=[
                        "Extra practice to widen your pool",
                        f"Popular at {get_tier_name(problem.level)}",
                    ],
                    tags=problem.tag_keys,
                    level=problem.level,
                    score_breakdown=ScoreBreakdown(
                        tag_weakness=0.2,
                        level_fitness=level_fitness,
                        step_progress=0.4,
                        problem_quality=quality,
                        diversity=0.5,
                    ),
                ))
                used_ids.add(problem.problem_id)

            if len(results) < catalog.page_size:
                break

    return items


def read_stored_recommendations(
    stored_items: Iterable[RecommendationItem],
    catalog: ProblemCatalog,
    tier: Optional[int],
    solved_ids: Iterable[int],
    query: Optional[RecommendationQuery] = None,
) -> List[RecommendationItem]:
    """
    Serve the latest stored snapshot through caller filters.

    Sparse snapshots (fewer than max(40, limit) items) are topped up from the
    catalog before filtering.
    """
    query = query or RecommendationQuery()
    limit = clamp_recommendation_limit(query.limit)
    solved = set(solved_ids)
    items = list(stored_items)

    wanted = max(MIN_RECOMMENDATION_COUNT, limit)
    if len(items) < wanted:
        items += build_fallback_recommendations(catalog, tier, solved, items, wanted - len(items))

    if query.category:
        items = [i for i in items if i.category == query.category]
    if query.level_min is not None:
        items = [i for i in items if i.level >= query.level_min]
    if query.level_max is not None:
        items = [i for i in items if i.level <= query.level_max]

    tags = set(normalize_tags(query.tags))
    if tags:
        items = [i for i in items if tags.intersection(i.tags)]
    if query.exclude_solved:
        items = [i for i in items if i.problem_id not in solved]

    return items[:limit]
