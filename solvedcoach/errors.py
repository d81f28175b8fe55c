"""
Structured Error Module for solvedcoach.

Provides a small exception hierarchy with stable error codes so callers
(sync jobs, the command line) can report failures consistently.
"""

from typing import Optional, Dict, Any
from enum import Enum
from datetime import datetime


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # Caller errors
    INVALID_HANDLE = "INVALID_HANDLE"
    HANDLE_NOT_FOUND = "HANDLE_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Collaborator errors
    CATALOG_API_ERROR = "CATALOG_API_ERROR"
    CATALOG_TIMEOUT = "CATALOG_TIMEOUT"
    SYNC_ERROR = "SYNC_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CoachError(Exception):
    """Base exception carrying a structured error payload."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        detail: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.detail = detail
        self.timestamp = datetime.utcnow().isoformat() + "Z"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dict for logs and job messages."""
        result = {
            "error": True,
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.detail:
            result["detail"] = self.detail
        return result


class InvalidHandleError(CoachError):
    """Raised when a judge handle has an invalid format."""

    def __init__(self, handle: str):
        super().__init__(
            code=ErrorCode.INVALID_HANDLE,
            message=f"Invalid judge handle format: '{handle}'",
            detail="Handle must be 1-20 characters: letters, digits or underscore",
        )


class HandleNotFoundError(CoachError):
    """Raised when the rating service has no such user."""

    def __init__(self, handle: str):
        super().__init__(
            code=ErrorCode.HANDLE_NOT_FOUND,
            message=f"User not found on solved.ac: '{handle}'",
        )


class CatalogAPIError(CoachError):
    """Raised when a catalog request fails (network, 4xx/5xx, bad payload)."""

    def __init__(
        self,
        message: str = "solved.ac API error",
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(
            code=ErrorCode.CATALOG_API_ERROR,
            message=message,
            detail=detail,
        )


class CatalogTimeoutError(CatalogAPIError):
    """Raised when a catalog request times out."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(message="solved.ac API timeout", detail=detail)
        self.code = ErrorCode.CATALOG_TIMEOUT


class ValidationError(CoachError):
    """Raised for invalid caller input."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            detail=detail,
        )


class SyncError(CoachError):
    """Raised when a sync job cannot proceed."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(
            code=ErrorCode.SYNC_ERROR,
            message=message,
            detail=detail,
        )
