"""
SQLAlchemy ORM models for solvedcoach.
Stores linked judge accounts, the problem catalog mirror, solve status,
per-tag statistics, recommendation snapshots and sync jobs.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, JSON
from sqlalchemy.orm import relationship

from .database import Base


class User(Base):
    """
    A linked judge account and its latest rating-service profile.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    handle = Column(String, unique=True, index=True, nullable=False)
    tier = Column(Integer, default=0)
    rating = Column(Integer, default=0)
    solved_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    solved_problems = relationship("UserProblemStatus", back_populates="user")


class Problem(Base):
    """
    Local mirror of catalog problems seen during sync.
    """
    __tablename__ = "problems"

    problem_id = Column(Integer, primary_key=True)
    title = Column(String, default="")
    level = Column(Integer, default=0)
    tags = Column(JSON, default=list)  # list of tag keys
    accepted_user_count = Column(Integer, default=0)
    average_tries = Column(Float, default=0.0)
    updated_at = Column(DateTime, default=datetime.utcnow)


class UserProblemStatus(Base):
    """
    First accepted solve of a problem by a user.
    """
    __tablename__ = "user_problem_status"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    problem_id = Column(Integer, nullable=False, index=True)
    status = Column(String, default="SOLVED")
    solved_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="solved_problems")


class UserTagStat(Base):
    """
    Per-tag analysis and weakness score, replaced wholesale on every sync.
    """
    __tablename__ = "user_tag_stats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tag = Column(String, nullable=False, index=True)
    solved_count = Column(Integer, default=0)
    recent_solved_count_30d = Column(Integer, default=0)
    recent_solved_count_60d = Column(Integer, default=0)
    recent_solved_count_90d = Column(Integer, default=0)
    avg_level = Column(Float, default=0.0)
    max_level = Column(Integer, default=0)
    level_distribution = Column(JSON, default=dict)
    total_problems_in_tag = Column(Integer, default=0)
    coverage_rate = Column(Float, default=0.0)
    days_since_last_solve = Column(Integer, default=999)
    last_solved_at = Column(DateTime, nullable=True)
    weak_score = Column(Float, default=0.0)
    weak_score_details = Column(JSON, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow)


class RecommendationSnapshot(Base):
    """
    One generation run's output. Append-only; the latest generated_at wins.
    """
    __tablename__ = "recommendation_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    generated_at = Column(DateTime, default=datetime.utcnow, index=True)
    criteria = Column(JSON, default=dict)
    items = Column(JSON, default=list)
    stats = Column(JSON, default=dict)


class SyncJob(Base):
    """
    Progress and outcome of one sync run.
    Status moves PENDING -> RUNNING -> SUCCESS | FAILED.
    """
    __tablename__ = "sync_jobs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String, default="PENDING")
    progress = Column(Integer, default=0)
    message = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
