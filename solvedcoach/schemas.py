"""
Pydantic schemas for catalog payloads and recommendation results.
Catalog models accept solved.ac camelCase fields through aliases.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


# ============ Catalog Schemas ============

class TagRef(BaseModel):
    """A catalog tag attached to a problem (or listed by tag/list)."""
    key: str
    display_name: str = Field("", alias="displayName")
    problem_count: int = Field(0, alias="problemCount")

    class Config:
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def _pick_display_name(cls, data):
        if not isinstance(data, dict):
            return data
        if data.get("displayName") or data.get("display_name"):
            return data
        data = dict(data)
        names = data.get("displayNames") or []
        by_language = {n.get("language"): n.get("name") for n in names if isinstance(n, dict)}
        data["displayName"] = by_language.get("en") or by_language.get("ko") or data.get("key", "")
        if data.get("problemCount") is None and data.get("problem_count") is None:
            data.pop("problemCount", None)
        return data


class SolvedProblem(BaseModel):
    """Problem facts as returned by the catalog. Immutable once fetched."""
    problem_id: int = Field(alias="problemId")
    title: str = Field("", alias="titleKo")
    level: int = 0
    tags: List[TagRef] = []
    accepted_user_count: int = Field(0, alias="acceptedUserCount")
    average_tries: float = Field(0.0, alias="averageTries")

    class Config:
        populate_by_name = True
        frozen = True

    @property
    def tag_keys(self) -> List[str]:
        return [t.key for t in self.tags]


class SearchResult(BaseModel):
    """One page of catalog search results plus the total match count."""
    items: List[SolvedProblem] = []
    count: int = 0


class UserProfile(BaseModel):
    """Rating-service profile for a judge handle."""
    handle: str
    tier: int = 0
    rating: int = 0
    solved_count: int = Field(0, alias="solvedCount")

    class Config:
        populate_by_name = True


class SolveRecord(BaseModel):
    """First accepted solve of one problem by one user."""
    problem_id: int
    solved_at: datetime


# ============ Recommendation Schemas ============

class Category(str, Enum):
    """Recommendation categories."""
    WEAKNESS = "weakness"
    CHALLENGE = "challenge"
    REVIEW = "review"
    POPULAR = "popular"
    FOUNDATION = "foundation"


class ScoreBreakdown(BaseModel):
    """Per-factor components behind a recommendation score."""
    tag_weakness: float = 0.0
    level_fitness: float = 0.0
    step_progress: float = 0.0
    problem_quality: float = 0.0
    diversity: float = 0.0


class RecommendationItem(BaseModel):
    """A single recommended problem."""
    problem_id: int
    score: float
    category: Category
    priority: int
    reasons: List[str] = []
    tags: List[str] = []
    level: int
    step_level: Optional[int] = None
    score_breakdown: ScoreBreakdown = ScoreBreakdown()


class RecommendationStats(BaseModel):
    """Aggregate statistics over a recommendation list."""
    total_count: int = 0
    by_category: Dict[str, int] = {}
    avg_score: float = 0.0
    tag_coverage: List[str] = []


class RecommendationCriteria(BaseModel):
    """Inputs recorded with a generation run for auditability."""
    user_tier: int
    user_avg_level: int
    level_min: int
    level_max: int
    weak_tags: List[str] = []
    exclude_solved: bool = True


class RecommendationResult(BaseModel):
    """An unsaved recommendation snapshot."""
    user_id: int
    generated_at: datetime
    criteria: RecommendationCriteria
    items: List[RecommendationItem] = []
    stats: RecommendationStats = RecommendationStats()


class RecommendationQuery(BaseModel):
    """Caller filters for realtime and stored reads."""
    limit: int = 120
    category: Optional[Category] = None
    level_min: Optional[int] = None
    level_max: Optional[int] = None
    tags: List[str] = []
    exclude_solved: bool = True
