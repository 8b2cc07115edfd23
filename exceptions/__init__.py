"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DatabaseError,

    # Directory
    IssuingNotFoundError,

    # Workbook
    UnreadableWorkbookError,
    EmptyWorkbookError,
    InvalidMappingError,

    # Sink
    LookupFailedError,
    PersistFailedError,

    # Import sessions
    ImportSessionNotFoundError,
    InvalidStateTransitionError,
    ImportCancelledError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DatabaseError",

    # Directory
    "IssuingNotFoundError",

    # Workbook
    "UnreadableWorkbookError",
    "EmptyWorkbookError",
    "InvalidMappingError",

    # Sink
    "LookupFailedError",
    "PersistFailedError",

    # Import sessions
    "ImportSessionNotFoundError",
    "InvalidStateTransitionError",
    "ImportCancelledError",
]
