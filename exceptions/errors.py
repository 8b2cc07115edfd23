"""
Custom exception classes for the application.

Every error surfaced to the operator carries a stable code (the error kind)
and a human-readable message.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "INVALID_MAPPING")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with current state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# DIRECTORY ERRORS
# ===================

class IssuingNotFoundError(NotFoundError):
    """Issuing not found."""

    def __init__(self, issuing_id: str):
        super().__init__(
            resource="Issuing",
            identifier=issuing_id,
            code="ISSUING_NOT_FOUND"
        )


# ===================
# WORKBOOK ERRORS
# ===================

class UnreadableWorkbookError(ValidationError):
    """Uploaded bytes are not a readable .xlsx/.xls workbook."""

    def __init__(self, details: Optional[dict] = None):
        super().__init__(
            code="UNREADABLE_WORKBOOK",
            message="The file could not be read as an Excel workbook (.xlsx or .xls)",
            details=details
        )


class EmptyWorkbookError(ValidationError):
    """Workbook decoded but contains no sheets."""

    def __init__(self):
        super().__init__(
            code="EMPTY_WORKBOOK",
            message="The workbook does not contain any sheets"
        )


class InvalidMappingError(ValidationError):
    """Column, sheet or slot mapping is incomplete or references unknown names."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_MAPPING",
            message=message,
            details=details
        )


# ===================
# SINK ERRORS
# ===================

class LookupFailedError(AppError):
    """Existing-employee lookup failed after retry."""

    def __init__(self, details: Optional[dict] = None):
        super().__init__(
            code="LOOKUP_FAILED",
            message="Could not check existing employees. Please try again.",
            status_code=502,
            details=details
        )


class PersistFailedError(AppError):
    """
    Upsert batch failed after retry.

    Batches written before the failure stay written; re-running the same
    import completes the remainder.
    """

    def __init__(
        self,
        table: str,
        completed_batches: int,
        total_batches: int,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="PERSIST_FAILED",
            message=(
                "Saving the import failed part-way. "
                "Run the same import again to finish it."
            ),
            status_code=502,
            details={
                "table": table,
                "completed_batches": completed_batches,
                "total_batches": total_batches,
                **(details or {})
            }
        )


# ===================
# IMPORT SESSION ERRORS
# ===================

class ImportSessionNotFoundError(NotFoundError):
    """Import session expired or never existed."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Import session",
            identifier=session_id,
            code="IMPORT_SESSION_NOT_FOUND"
        )


class InvalidStateTransitionError(ConflictError):
    """Import wizard step called out of order."""

    def __init__(self, current_state: str, action: str):
        super().__init__(
            code="INVALID_STATE_TRANSITION",
            message=f"Cannot {action} while import is {current_state}",
            details={"current_state": current_state, "action": action}
        )


class ImportCancelledError(ConflictError):
    """Operator cancelled before anything was written."""

    def __init__(self):
        super().__init__(
            code="IMPORT_CANCELLED",
            message="Import cancelled before any data was saved"
        )
