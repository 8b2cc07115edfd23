"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, CamelSchema
from models.directory import (
    CompanyResponse,
    IssuingResponse,
    GiftSlotResponse,
)
from models.employee import (
    EmployeeCreate,
    EmployeeRef,
    EmployeeSlotCreate,
)
from models.imports import (
    ImportMode,
    RowStatus,
    SlotRule,
    ColumnMapping,
    SlotMappingRequest,
    CreateSessionRequest,
    ImportSummary,
    PreviewRow,
    SheetSlotSuggestion,
    ImportSessionResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "CamelSchema",

    # Directory
    "CompanyResponse",
    "IssuingResponse",
    "GiftSlotResponse",

    # Employees
    "EmployeeCreate",
    "EmployeeRef",
    "EmployeeSlotCreate",

    # Imports
    "ImportMode",
    "RowStatus",
    "SlotRule",
    "ColumnMapping",
    "SlotMappingRequest",
    "CreateSessionRequest",
    "ImportSummary",
    "PreviewRow",
    "SheetSlotSuggestion",
    "ImportSessionResponse",
]
