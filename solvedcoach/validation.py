"""
Input Validation Utilities for solvedcoach.

Provides validation functions for caller input with consistent error handling.
"""

import re
from typing import List, Optional, Tuple

from .config import BOJ_HANDLE_PATTERN, MIN_LEVEL, MAX_LEVEL, normalize_tags
from .errors import InvalidHandleError, ValidationError
from .schemas import Category, RecommendationQuery


def validate_boj_handle(handle: str) -> Tuple[bool, Optional[str]]:
    """
    Validate judge handle format.

    Args:
        handle: The handle to validate

    Returns:
        Tuple of (is_valid, error_message)
        If valid, returns (True, None)
        If invalid, returns (False, "error description")
    """
    if not handle:
        return False, "Handle cannot be empty"

    handle = handle.strip()

    if len(handle) > 20:
        return False, "Handle must be at most 20 characters"

    if not re.match(BOJ_HANDLE_PATTERN, handle):
        return False, "Handle can only contain letters, numbers and underscores"

    return True, None


def validate_level(level: int) -> Tuple[bool, Optional[str]]:
    """
    Validate a difficulty level.

    Args:
        level: The level to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(level, int) or isinstance(level, bool):
        return False, "Level must be an integer"

    if level < MIN_LEVEL or level > MAX_LEVEL:
        return False, f"Level must be between {MIN_LEVEL} and {MAX_LEVEL}"

    return True, None


def sanitize_handle(handle: str) -> str:
    return handle.strip() if handle else ""


def sanitize_tags(tags: Optional[List[str]]) -> List[str]:
    """Normalize tag aliases to catalog keys, dropping blanks and duplicates."""
    return normalize_tags(tags)


def require_handle(handle: str) -> str:
    """Sanitize a handle or raise InvalidHandleError."""
    handle = sanitize_handle(handle)
    is_valid, error = validate_boj_handle(handle)
    if not is_valid:
        raise InvalidHandleError(handle or "<empty>")
    return handle


def build_query(
    limit: Optional[int] = None,
    category: Optional[str] = None,
    level_min: Optional[int] = None,
    level_max: Optional[int] = None,
    tags: Optional[List[str]] = None,
    exclude_solved: bool = True,
) -> RecommendationQuery:
    """
    Turn raw caller filters into a RecommendationQuery.

    Raises:
        ValidationError: unknown category, out-of-range level or an inverted
        level range
    """
    for name, level in (("level_min", level_min), ("level_max", level_max)):
        if level is None:
            continue
        is_valid, error = validate_level(level)
        if not is_valid:
            raise ValidationError(error, detail=f"{name}={level}")

    if level_min is not None and level_max is not None and level_min > level_max:
        raise ValidationError("level_min cannot exceed level_max",
                              detail=f"{level_min} > {level_max}")

    parsed_category = None
    if category:
        try:
            parsed_category = Category(category.strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown category: {category}")

    return RecommendationQuery(
        limit=limit or 0,
        category=parsed_category,
        level_min=level_min,
        level_max=level_max,
        tags=sanitize_tags(tags),
        exclude_solved=exclude_solved,
    )
