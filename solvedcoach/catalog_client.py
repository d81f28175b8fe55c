"""
Problem Catalog Client Module.

Defines the catalog contract the recommendation engine consumes and the
solved.ac v3 implementation of it:
- Paginated problem search by tag / level band / sort order
- Batch problem lookup by ID
- User profile and solved-problem listing used by sync
- Tag population listing used for dynamic tag expectations

Per-call failures are raised as CatalogAPIError and never swallowed here;
deciding whether to continue is the caller's job.
"""

import requests
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from .config import (
    SOLVED_AC_API_BASE_URL,
    CATALOG_TIMEOUT,
    CATALOG_PROFILE_TIMEOUT,
    CATALOG_MAX_RETRIES,
    CATALOG_RETRY_DELAY,
    CATALOG_PAGE_SIZE,
    CATALOG_LOOKUP_BATCH_SIZE,
    CATALOG_BULK_DELAY,
    TAG_LIST_DELAY,
    TAG_EXPECTATION_TTL_SECONDS,
)
from .cache import TTLCache
from .errors import CatalogAPIError, CatalogTimeoutError
from .schemas import SearchResult, SolvedProblem, TagRef, UserProfile

logger = logging.getLogger(__name__)

SEARCH_SORTS = ("id", "level", "solved", "average_try", "random")
SEARCH_DIRECTIONS = ("asc", "desc")


class ProblemCatalog(ABC):
    """What the engine needs from a problem catalog."""

    page_size: int = CATALOG_PAGE_SIZE

    @abstractmethod
    def search(
        self,
        tags: Optional[List[str]] = None,
        level_min: Optional[int] = None,
        level_max: Optional[int] = None,
        page: int = 1,
        sort: str = "solved",
        direction: str = "desc",
    ) -> SearchResult:
        ...

    @abstractmethod
    def fetch_by_ids(self, problem_ids: Iterable[int]) -> List[SolvedProblem]:
        ...


def build_search_query(
    query: str = "",
    tags: Optional[List[str]] = None,
    level_min: Optional[int] = None,
    level_max: Optional[int] = None,
) -> str:
    """
    Build a solved.ac search query string.

    Examples:
        level 5..9 with tag dp -> "tier:5..9 tag:dp"
        only a maximum level 7 -> "tier:..7"
    """
    parts = [query.strip()] if query and query.strip() else []

    if level_min is not None or level_max is not None:
        low = "" if level_min is None else str(level_min)
        high = "" if level_max is None else str(level_max)
        parts.append(f"tier:{low}..{high}")

    for tag in tags or []:
        parts.append(f"tag:{tag}")

    return " ".join(parts)


class SolvedAcClient(ProblemCatalog):
    """
    solved.ac v3 API client.

    Bulk helpers (solved-list paging, ID lookups in batches, tag listing)
    pause between their own sequential requests. Single searches never pause;
    pacing across searches belongs to the caller.

    By default every request is tried once. A client built with
    max_retries > 1 retries timeouts, 5xx and 429 with exponential backoff.
    """

    def __init__(
        self,
        base_url: str = SOLVED_AC_API_BASE_URL,
        cache: Optional[TTLCache] = None,
        bulk_delay: float = CATALOG_BULK_DELAY,
        tag_list_delay: float = TAG_LIST_DELAY,
        max_retries: int = CATALOG_MAX_RETRIES,
        sleep=time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.cache = cache if cache is not None else TTLCache()
        self.bulk_delay = bulk_delay
        self.tag_list_delay = tag_list_delay
        self.max_retries = max(1, max_retries)
        self._sleep = sleep

    def _request(self, path: str, params: Dict = None, timeout: int = CATALOG_TIMEOUT) -> Any:
        """
        GET a solved.ac endpoint and return the decoded JSON body.

        Raises:
            CatalogTimeoutError: the last attempt timed out
            CatalogAPIError: any other transport, HTTP or decoding failure
        """
        url = f"{self.base_url}{path}"
        last_error: Optional[CatalogAPIError] = None

        for attempt in range(self.max_retries):
            delay = CATALOG_RETRY_DELAY * (2 ** (attempt - 1)) if attempt > 0 else 0
            if delay > 0:
                logger.info(f"Retry {attempt + 1}/{self.max_retries} for {path} after {delay}s")
                self._sleep(delay)

            try:
                response = requests.get(url, params=params, timeout=timeout)
                response.raise_for_status()
                return response.json()

            except requests.exceptions.Timeout as e:
                logger.warning(f"solved.ac timeout on {path} (attempt {attempt + 1})")
                last_error = CatalogTimeoutError(detail=str(e))

            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                logger.warning(f"solved.ac returned HTTP {status} for {path}")
                last_error = CatalogAPIError(
                    f"solved.ac request failed: {path}", detail=str(e), status_code=status
                )
                if status is not None and 400 <= status < 500 and status != 429:
                    break

            except requests.exceptions.RequestException as e:
                logger.warning(f"solved.ac request failed for {path}: {e}")
                last_error = CatalogAPIError(f"solved.ac request failed: {path}", detail=str(e))

            except ValueError as e:
                logger.warning(f"solved.ac returned invalid JSON for {path}")
                last_error = CatalogAPIError(f"Invalid JSON from solved.ac: {path}", detail=str(e))
                break

        raise last_error

    def search(
        self,
        tags: Optional[List[str]] = None,
        level_min: Optional[int] = None,
        level_max: Optional[int] = None,
        page: int = 1,
        sort: str = "solved",
        direction: str = "desc",
        query: str = "",
    ) -> SearchResult:
        """Search one page of problems."""
        if sort not in SEARCH_SORTS:
            raise ValueError(f"Unsupported sort: {sort}")
        if direction not in SEARCH_DIRECTIONS:
            raise ValueError(f"Unsupported direction: {direction}")

        data = self._request(
            "/search/problem",
            {
                "query": build_search_query(query, tags, level_min, level_max),
                "page": page or 1,
                "sort": sort,
                "direction": direction,
            },
        )
        try:
            return SearchResult.model_validate(data)
        except PydanticValidationError as e:
            raise CatalogAPIError("Malformed search payload from solved.ac", detail=str(e))

    def fetch_by_ids(self, problem_ids: Iterable[int]) -> List[SolvedProblem]:
        """Look up problem details in batches of 100 IDs."""
        ids = list(problem_ids)
        if not ids:
            return []

        problems: List[SolvedProblem] = []
        for start in range(0, len(ids), CATALOG_LOOKUP_BATCH_SIZE):
            batch = ids[start:start + CATALOG_LOOKUP_BATCH_SIZE]
            data = self._request(
                "/problem/lookup",
                {"problemIds": ",".join(str(i) for i in batch)},
            )
            try:
                problems.extend(SolvedProblem.model_validate(p) for p in data or [])
            except PydanticValidationError as e:
                raise CatalogAPIError("Malformed lookup payload from solved.ac", detail=str(e))

            if start + CATALOG_LOOKUP_BATCH_SIZE < len(ids) and self.bulk_delay > 0:
                self._sleep(self.bulk_delay)

        logger.info(f"Fetched {len(problems)} problem details for {len(ids)} ids")
        return problems

    def get_user_profile(self, handle: str) -> Optional[UserProfile]:
        """Fetch a user's profile. Returns None when the handle does not exist."""
        try:
            data = self._request("/user/show", {"handle": handle}, timeout=CATALOG_PROFILE_TIMEOUT)
        except CatalogAPIError as e:
            if e.status_code == 404:
                return None
            logger.error(f"Failed to get profile for {handle}: {e.message}")
            raise
        try:
            return UserProfile.model_validate(data)
        except PydanticValidationError as e:
            raise CatalogAPIError(f"Malformed profile payload for {handle}", detail=str(e))

    def get_user_solved_problem_ids(self, handle: str) -> List[int]:
        """List every problem ID solved by a handle, oldest ID first."""
        problem_ids: List[int] = []
        page = 1

        while True:
            data = self._request(
                "/search/problem",
                {"query": f"solved_by:{handle}", "page": page, "sort": "id", "direction": "asc"},
            )
            items = data.get("items", [])
            total = data.get("count", 0)
            problem_ids.extend(item["problemId"] for item in items)

            if not items or len(problem_ids) >= total:
                break

            page += 1
            if self.bulk_delay > 0:
                self._sleep(self.bulk_delay)

        logger.info(f"{handle} has {len(problem_ids)} solved problems")
        return problem_ids

    def get_all_tags(self, use_cache: bool = True) -> List[TagRef]:
        """List every catalog tag with its problem population."""
        if use_cache:
            cached, hit = self.cache.get("all_tags")
            if hit:
                logger.info("Cache hit for tag list")
                return cached

        tags: List[TagRef] = []
        page = 1
        while True:
            data = self._request("/tag/list", {"page": page}, timeout=CATALOG_PROFILE_TIMEOUT)
            items = (data or {}).get("items", [])
            if not items:
                break

            try:
                tags.extend(TagRef.model_validate(item) for item in items)
            except PydanticValidationError as e:
                raise CatalogAPIError("Malformed tag list payload from solved.ac", detail=str(e))
            if len(items) < CATALOG_PAGE_SIZE:
                break

            page += 1
            if self.tag_list_delay > 0:
                self._sleep(self.tag_list_delay)

        self.cache.set("all_tags", tags, ttl=TAG_EXPECTATION_TTL_SECONDS)
        return tags
