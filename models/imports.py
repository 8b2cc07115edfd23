"""
Import wizard models.

Requests the operator sends while stepping through an import, and the
summary / preview returned.
"""

from enum import Enum
from typing import Any, Literal, Optional
from pydantic import ConfigDict, Field, model_validator

from models.base import BaseSchema, CamelSchema
from models.directory import GiftSlotResponse, IssuingResponse


class ImportMode(str, Enum):
    """Shape of the uploaded workbook."""
    EMPLOYEE_TABLE = "employee_table"   # One sheet, one row per employee
    GIFT_SHEETS = "gift_sheets"         # One sheet per slot, employee numbers in column A


class RowStatus(str, Enum):
    """Classification of a workbook row against the file and the store."""
    TO_INSERT = "to_insert"
    IN_FILE_DUPLICATE = "in_file_duplicate"
    ALREADY_EXISTS = "already_exists"
    MISSING_EMP_NUM = "missing_employee_number"


class SlotRule(BaseSchema):
    """
    Qualification rule for one gift slot.

    mode="all": every imported employee qualifies.
    mode="column": employee qualifies when the row's cell in `column`
    fuzzy-equals `value`.
    """

    mode: Literal["all", "column"] = "all"
    column: Optional[str] = Field(None, description="Header to test (column mode)")
    value: Optional[str] = Field(None, description="Expected value (column mode)")

    @model_validator(mode="after")
    def column_mode_needs_column(self) -> "SlotRule":
        if self.mode == "column" and not self.column:
            raise ValueError("column rules require a column")
        return self


class ColumnMapping(BaseSchema):
    """Which headers of the employee sheet hold which employee fields."""

    # Sheet names are matched verbatim
    model_config = ConfigDict(str_strip_whitespace=False)

    sheet_name: Optional[str] = Field(
        None,
        description="Sheet holding the employee table (defaults to the first sheet)"
    )
    employee_number: str = Field(..., description="Header of the employee number column")
    first_name: Optional[str] = Field(None, description="Header of the first name column")
    last_name: Optional[str] = Field(None, description="Header of the last name column")

    def mapped_columns(self) -> set[str]:
        return {c for c in (self.employee_number, self.first_name, self.last_name) if c}


class SlotMappingRequest(BaseSchema):
    """
    Slot mapping step.

    Employee table mode: `slot_rules`, qualification rule per slot id
    (slots left out default to mode "all").
    Gift sheets mode: `sheet_slots`, sheet name → slot id ("" = ignore sheet).
    """

    model_config = ConfigDict(str_strip_whitespace=False)

    slot_rules: dict[str, SlotRule] = Field(default_factory=dict)
    sheet_slots: dict[str, str] = Field(default_factory=dict)


class CreateSessionRequest(BaseSchema):
    """Start an import for one issuing."""

    issuing_id: str = Field(..., min_length=1, description="Issuing UUID")


class ImportSummary(CamelSchema):
    """
    Result counts of one import.

    found_in_excel == imported + skipped_duplicates_in_file
                      + skipped_duplicates_existing
                      + skipped_missing_employee_number
    """

    found_in_excel: int = 0
    imported: int = 0
    skipped_duplicates_in_file: int = 0
    skipped_duplicates_existing: int = 0
    skipped_missing_employee_number: int = 0
    entitlements_asserted: int = 0

    @property
    def is_balanced(self) -> bool:
        return self.found_in_excel == (
            self.imported
            + self.skipped_duplicates_in_file
            + self.skipped_duplicates_existing
            + self.skipped_missing_employee_number
        )


class PreviewRow(BaseSchema):
    """One resolved row of the pre-import preview."""

    employee_number: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    slots: list[str] = Field(default_factory=list, description="Names of qualifying slots")


class SheetSlotSuggestion(BaseSchema):
    """Auto-suggested slot for a gift sheet."""

    sheet_name: str
    slot_id: Optional[str] = None
    candidate_slot_ids: list[str] = Field(default_factory=list)
    ambiguous: bool = Field(
        False,
        description="More than one slot matches the sheet name; operator must confirm"
    )


class ImportSessionResponse(BaseSchema):
    """Current state of an import wizard session."""

    model_config = ConfigDict(str_strip_whitespace=False)

    session_id: str
    state: str
    mode: Optional[ImportMode] = None
    issuing: Optional[IssuingResponse] = None
    slots: list[GiftSlotResponse] = Field(default_factory=list)
    filename: Optional[str] = None
    workbook: Optional[dict[str, Any]] = None
    column_mapping: Optional[ColumnMapping] = None
    slot_rules: dict[str, SlotRule] = Field(default_factory=dict)
    sheet_slots: dict[str, str] = Field(default_factory=dict)
    summary: Optional[ImportSummary] = None
    error: Optional[dict[str, Any]] = None
