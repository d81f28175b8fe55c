"""
Persistence collaborator.

Stores what a sync produces (profile, catalog mirror, solve status, tag
stats, recommendation snapshots, job progress) and serves the latest
snapshot back for reads. The engine itself never touches the database.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Set

from sqlalchemy.orm import Session

from .models import (
    Problem,
    RecommendationSnapshot,
    SyncJob,
    User,
    UserProblemStatus,
    UserTagStat,
)
from .schemas import RecommendationResult, SolvedProblem, UserProfile
from .scoring import WeaknessScore, days_since

logger = logging.getLogger(__name__)

NEVER_SOLVED_DAYS = 999


def to_tag_stat_rows(
    user_id: int,
    weakness_scores: Iterable[WeaknessScore],
    now: Optional[datetime] = None,
) -> List[dict]:
    """Flatten weakness scores into user_tag_stats rows."""
    now = now or datetime.utcnow()
    rows = []
    for ws in weakness_scores:
        analysis = ws.analysis
        days = days_since(analysis.last_solved_at, now)
        rows.append({
            "user_id": user_id,
            "tag": ws.tag,
            "solved_count": analysis.solved_count,
            "recent_solved_count_30d": analysis.recent_counts.days30,
            "recent_solved_count_60d": analysis.recent_counts.days60,
            "recent_solved_count_90d": analysis.recent_counts.days90,
            "avg_level": analysis.avg_level,
            "max_level": analysis.max_level,
            "level_distribution": {str(k): v for k, v in analysis.level_distribution.items()},
            "total_problems_in_tag": analysis.total_problems_in_tag,
            "coverage_rate": (
                analysis.solved_count / analysis.total_problems_in_tag
                if analysis.total_problems_in_tag > 0 else 0.0
            ),
            "days_since_last_solve": NEVER_SOLVED_DAYS if days is None else days,
            "last_solved_at": analysis.last_solved_at,
            "weak_score": ws.total_score,
            "weak_score_details": {
                "coverage_score": ws.details.coverage_score,
                "level_gap_score": ws.details.level_gap_score,
                "recency_score": ws.details.recency_score,
                "ceiling_score": ws.details.ceiling_score,
                "consistency_score": ws.details.consistency_score,
            },
            "updated_at": now,
        })
    return rows


class SnapshotStore:
    """Session-bound access to everything a sync reads and writes."""

    def __init__(self, db: Session):
        self.db = db

    def rollback(self) -> None:
        """Discard a failed transaction so the session is usable again."""
        self.db.rollback()

    # ---------------------------------------------------------------- users

    def get_user(self, handle: str) -> Optional[User]:
        return self.db.query(User).filter(User.handle == handle).first()

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_or_create_user(self, handle: str) -> User:
        db_user = self.get_user(handle)
        if not db_user:
            db_user = User(handle=handle)
            self.db.add(db_user)
            self.db.commit()
            self.db.refresh(db_user)
            logger.info(f"Created user {handle}")
        return db_user

    def update_profile(self, user: User, profile: UserProfile) -> User:
        user.tier = profile.tier
        user.rating = profile.rating
        user.solved_count = profile.solved_count
        self.db.commit()
        self.db.refresh(user)
        return user

    # ----------------------------------------------------------------- jobs

    def create_job(self, user_id: int) -> SyncJob:
        job = SyncJob(user_id=user_id, status="PENDING", progress=0)
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        return job

    def get_job(self, job_id: int) -> Optional[SyncJob]:
        return self.db.query(SyncJob).filter(SyncJob.id == job_id).first()

    def update_job(self, job_id: int, **fields) -> Optional[SyncJob]:
        job = self.get_job(job_id)
        if job is None:
            logger.warning(f"Sync job {job_id} not found")
            return None
        for key, value in fields.items():
            setattr(job, key, value)
        self.db.commit()
        return job

    # -------------------------------------------------------------- catalog

    def upsert_problems(self, problems: Iterable[SolvedProblem]) -> int:
        # the lookup can repeat a problem; the last copy wins
        unique = {p.problem_id: p for p in problems}
        count = 0
        for p in unique.values():
            row = self.db.query(Problem).filter(Problem.problem_id == p.problem_id).first()
            if row is None:
                row = Problem(problem_id=p.problem_id)
                self.db.add(row)
            row.title = p.title or f"Problem {p.problem_id}"
            row.level = p.level
            row.tags = p.tag_keys
            row.accepted_user_count = p.accepted_user_count
            row.average_tries = p.average_tries
            row.updated_at = datetime.utcnow()
            count += 1
        self.db.commit()
        return count

    # -------------------------------------------------------- solve records

    def save_solve_records(
        self,
        user_id: int,
        problem_ids: Iterable[int],
        solved_dates: Mapping[int, datetime],
    ) -> int:
        """Upsert SOLVED status rows; problems without a date count as solved now."""
        existing = {
            row.problem_id: row
            for row in self.db.query(UserProblemStatus).filter(UserProblemStatus.user_id == user_id)
        }
        now = datetime.utcnow()
        count = 0
        for pid in problem_ids:
            row = existing.get(pid)
            if row is None:
                row = UserProblemStatus(user_id=user_id, problem_id=pid)
                self.db.add(row)
                existing[pid] = row
            row.status = "SOLVED"
            row.solved_at = solved_dates.get(pid) or now
            count += 1
        self.db.commit()
        return count

    def solved_problem_ids(self, user_id: int) -> Set[int]:
        rows = self.db.query(UserProblemStatus.problem_id).filter(
            UserProblemStatus.user_id == user_id,
            UserProblemStatus.status == "SOLVED",
        )
        return {pid for (pid,) in rows}

    # ------------------------------------------------------------ tag stats

    def save_tag_stats(self, user_id: int, rows: Iterable[dict]) -> int:
        """Replace a user's tag stats wholesale."""
        self.db.query(UserTagStat).filter(UserTagStat.user_id == user_id).delete()
        count = 0
        for row in rows:
            self.db.add(UserTagStat(**row))
            count += 1
        self.db.commit()
        return count

    def weak_scores(self, user_id: int) -> Dict[str, float]:
        rows = self.db.query(UserTagStat).filter(UserTagStat.user_id == user_id).all()
        return {row.tag: row.weak_score or 0.0 for row in rows}

    # ------------------------------------------------------------ snapshots

    def save_snapshot(self, result: RecommendationResult) -> RecommendationSnapshot:
        payload = result.model_dump(mode="json")
        snapshot = RecommendationSnapshot(
            user_id=result.user_id,
            generated_at=result.generated_at,
            criteria=payload["criteria"],
            items=payload["items"],
            stats=payload["stats"],
        )
        self.db.add(snapshot)
        self.db.commit()
        self.db.refresh(snapshot)
        logger.info(f"Saved snapshot {snapshot.id} with {len(result.items)} items for user {result.user_id}")
        return snapshot

    def latest_snapshot(self, user_id: int) -> Optional[RecommendationResult]:
        snapshot = (
            self.db.query(RecommendationSnapshot)
            .filter(RecommendationSnapshot.user_id == user_id)
            .order_by(RecommendationSnapshot.generated_at.desc(), RecommendationSnapshot.id.desc())
            .first()
        )
        if snapshot is None:
            return None
        return RecommendationResult.model_validate({
            "user_id": snapshot.user_id,
            "generated_at": snapshot.generated_at,
            "criteria": snapshot.criteria,
            "items": snapshot.items or [],
            "stats": snapshot.stats or {},
        })
