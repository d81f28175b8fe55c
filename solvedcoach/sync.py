"""
Sync job orchestration.

One sync pulls a handle's profile and solved problems from the catalog,
recomputes tag analysis and weakness scores, generates a fresh
recommendation snapshot and stores it. Progress is written to the SyncJob
row as the run advances.
"""

import logging
import random
from datetime import datetime
from typing import Optional

from .catalog_client import SolvedAcClient
from .errors import HandleNotFoundError, SyncError
from .recommender import (
    build_recommendation_stats,
    calculate_user_avg_level,
    generate_recommendations,
)
from .schemas import RecommendationCriteria, RecommendationResult
from .scoring import calculate_weakness_scores
from .solve_history import resolve_solve_dates, scrape_solve_dates
from .store import SnapshotStore, to_tag_stat_rows
from .tag_analysis import analyze_user_tags
from .tag_expectations import DynamicTagExpectations, TagExpectationSource
from .throttle import RateLimiter

logger = logging.getLogger(__name__)


def _empty_result(user_id, tier, solved_problems, weakness_scores, now) -> RecommendationResult:
    return RecommendationResult(
        user_id=user_id,
        generated_at=now,
        criteria=RecommendationCriteria(
            user_tier=tier,
            user_avg_level=calculate_user_avg_level(solved_problems, tier),
            level_min=1,
            level_max=30,
            weak_tags=[w.tag for w in weakness_scores[:5]],
            exclude_solved=True,
        ),
        items=[],
        stats=build_recommendation_stats([]),
    )


def summarize_categories(result: RecommendationResult) -> str:
    return ", ".join(
        f"{category}: {count}"
        for category, count in result.stats.by_category.items()
        if count > 0
    )


def run_sync(
    store: SnapshotStore,
    client: SolvedAcClient,
    user_id: int,
    job_id: int,
    scraper=scrape_solve_dates,
    tag_expectations: Optional[TagExpectationSource] = None,
    throttle: Optional[RateLimiter] = None,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> RecommendationResult:
    """
    Run a full sync for a user.

    Args:
        store: Persistence collaborator
        client: Catalog client (profile, solved list, lookups, searches)
        user_id: Local user row
        job_id: SyncJob row to report progress on
        scraper: Solve-date source; None skips straight to the synthetic proxy
        tag_expectations: Overrides the catalog-backed expectation source
        throttle: Pacing between generation searches
        rng: Jitter source for generation
        now: Reference time

    Returns:
        The saved RecommendationResult

    Raises:
        SyncError / HandleNotFoundError / CatalogAPIError: the job is marked
        FAILED before the error propagates
    """
    try:
        store.update_job(job_id, status="RUNNING", started_at=datetime.utcnow(),
                         message="Sync started")

        user = store.get_user_by_id(user_id)
        if user is None:
            raise SyncError(f"No linked account for user {user_id}")
        handle = user.handle

        store.update_job(job_id, progress=5, message="Fetching profile")
        profile = client.get_user_profile(handle)
        if profile is None:
            raise HandleNotFoundError(handle)
        store.update_profile(user, profile)
        store.update_job(job_id, progress=10, message="Profile updated")

        store.update_job(job_id, progress=15, message="Fetching solved problems")
        solved_ids = client.get_user_solved_problem_ids(handle)
        store.update_job(job_id, progress=30, message=f"Found {len(solved_ids)} solved problems")

        store.update_job(job_id, progress=35, message="Fetching problem details")
        problems = client.fetch_by_ids(solved_ids)
        store.update_job(job_id, progress=60, message="Saving problem details")
        store.upsert_problems(problems)

        store.update_job(job_id, progress=65, message="Resolving solve dates")
        solved_dates = resolve_solve_dates(handle, solved_ids, scraper=scraper, now=now)

        store.update_job(job_id, progress=70, message="Updating solve status")
        store.save_solve_records(user_id, solved_ids, solved_dates)

        store.update_job(job_id, progress=75, message="Analysing tags")
        expectations = tag_expectations or DynamicTagExpectations(client)
        analysis = analyze_user_tags(problems, solved_dates, now=now)
        weakness_scores = calculate_weakness_scores(analysis, profile.tier, expectations, now=now)
        store.save_tag_stats(user_id, to_tag_stat_rows(user_id, weakness_scores, now))

        store.update_job(job_id, progress=85, message="Generating recommendations")
        try:
            result = generate_recommendations(
                client,
                user_id,
                profile.tier,
                problems,
                weakness_scores,
                tag_expectations=expectations,
                throttle=throttle,
                rng=rng,
                now=now,
            )
        except Exception as e:
            logger.error(f"Recommendation generation failed for user {user_id}: {e}")
            result = _empty_result(
                user_id, profile.tier, problems, weakness_scores, now or datetime.utcnow()
            )

        rec_ids = list(dict.fromkeys(item.problem_id for item in result.items))
        if rec_ids:
            store.update_job(job_id, progress=87, message="Saving recommended problem details")
            store.upsert_problems(client.fetch_by_ids(rec_ids))

        store.save_snapshot(result)

        store.update_job(
            job_id,
            status="SUCCESS",
            progress=100,
            message=(
                f"Sync complete: analysed {len(solved_ids)} problems, "
                f"{len(result.items)} recommendations ({summarize_categories(result)})"
            ),
            ended_at=datetime.utcnow(),
        )
        logger.info(f"Sync {job_id} for {handle} finished with {len(result.items)} recommendations")
        return result

    except Exception as e:
        logger.error(f"Sync {job_id} failed: {e}")
        message = getattr(e, "message", None) or str(e) or "Sync failed"
        store.rollback()
        store.update_job(job_id, status="FAILED", message=message, ended_at=datetime.utcnow())
        raise
