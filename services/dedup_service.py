"""
Deduplication and diff engine.

Classifies planned employees against the rest of the file and against the
employees already stored for the issuing:

    MISSING_EMP_NUM    blank employee number, skipped
    IN_FILE_DUPLICATE  employee number seen earlier in the file (any casing)
    ALREADY_EXISTS     employee number already stored for the issuing
    TO_INSERT          new employee

Employee numbers compare case-insensitively but keep the casing of their
first occurrence.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Optional
import math
import structlog

from models.employee import EmployeeRef
from models.imports import ImportSummary, RowStatus
from services.mapping_service import EmployeeTablePlan, GiftSheetsPlan
from utils.text_utils import trim

logger = structlog.get_logger(__name__)


def dedup_key(employee_number: str) -> str:
    """Case-insensitive identity of an employee number."""
    return employee_number.lower()


@dataclass
class EmployeeCandidate:
    """A distinct employee from the file, ready to be diffed and stored."""
    employee_number: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    extra_data: dict[str, Any] = field(default_factory=dict)
    source_row: dict[str, Any] = field(default_factory=dict)
    row_number: int = 0

    @property
    def key(self) -> str:
        return dedup_key(self.employee_number)


@dataclass
class RowClassification:
    """Outcome for one workbook row (Excel row number, 1-based incl. header)."""
    row_number: int
    employee_number: str
    status: RowStatus


@dataclass
class EmployeeTableDiff:
    """Classification of an employee table import."""
    found_in_excel: int = 0
    candidates: list[EmployeeCandidate] = field(default_factory=list)
    classifications: list[RowClassification] = field(default_factory=list)
    skipped_duplicates_in_file: int = 0
    skipped_missing_employee_number: int = 0
    to_insert: list[EmployeeCandidate] = field(default_factory=list)
    already_existing: list[EmployeeCandidate] = field(default_factory=list)

    def apply_existing(self, existing: dict[str, EmployeeRef]) -> None:
        """Split candidates into TO_INSERT / ALREADY_EXISTS against stored keys."""
        self.to_insert = [c for c in self.candidates if c.key not in existing]
        self.already_existing = [c for c in self.candidates if c.key in existing]

        statuses = {c.row_number: RowStatus.ALREADY_EXISTS for c in self.already_existing}
        statuses.update({c.row_number: RowStatus.TO_INSERT for c in self.to_insert})
        for item in self.classifications:
            if item.row_number in statuses:
                item.status = statuses[item.row_number]


@dataclass
class GiftSheetMembers:
    """Distinct employees listed on one mapped sheet."""
    sheet_name: str
    slot_id: str
    keys: list[str] = field(default_factory=list)


@dataclass
class GiftSheetsDiff:
    """Classification of a gift sheets import."""
    found_in_excel: int = 0
    # dedup key -> employee number as first seen, in first-seen order
    numbers: dict[str, str] = field(default_factory=dict)
    sheets: list[GiftSheetMembers] = field(default_factory=list)
    skipped_duplicates_in_file: int = 0
    skipped_missing_employee_number: int = 0
    to_insert: list[str] = field(default_factory=list)
    already_existing: list[str] = field(default_factory=list)

    def apply_existing(self, existing: dict[str, EmployeeRef]) -> None:
        self.to_insert = [k for k in self.numbers if k not in existing]
        self.already_existing = [k for k in self.numbers if k in existing]


# ===================
# EMPLOYEE TABLE
# ===================

def classify_rows(plan: EmployeeTablePlan) -> EmployeeTableDiff:
    """
    Classify every row of the employee sheet, in order.

    The first occurrence of an employee number wins; later ones (including
    casing variants) are in-file duplicates.
    """
    mapping = plan.mapping
    mapped_columns = mapping.mapped_columns()
    extra_headers = [h for h in plan.headers if h not in mapped_columns]

    diff = EmployeeTableDiff(found_in_excel=len(plan.rows))
    seen: set[str] = set()

    for idx, row in enumerate(plan.rows):
        row_number = idx + 2  # Excel row (1-indexed + header)
        employee_number = trim(row.get(mapping.employee_number))

        if not employee_number:
            diff.skipped_missing_employee_number += 1
            diff.classifications.append(RowClassification(
                row_number=row_number,
                employee_number="",
                status=RowStatus.MISSING_EMP_NUM,
            ))
            continue

        k = dedup_key(employee_number)
        if k in seen:
            diff.skipped_duplicates_in_file += 1
            diff.classifications.append(RowClassification(
                row_number=row_number,
                employee_number=employee_number,
                status=RowStatus.IN_FILE_DUPLICATE,
            ))
            continue
        seen.add(k)

        diff.candidates.append(EmployeeCandidate(
            employee_number=employee_number,
            first_name=optional_name(row, mapping.first_name),
            last_name=optional_name(row, mapping.last_name),
            extra_data={h: json_safe(row.get(h, "")) for h in extra_headers},
            source_row=row,
            row_number=row_number,
        ))
        # Provisional until diffed against the store
        diff.classifications.append(RowClassification(
            row_number=row_number,
            employee_number=employee_number,
            status=RowStatus.TO_INSERT,
        ))

    logger.info(
        "employee_rows_classified",
        found=diff.found_in_excel,
        candidates=len(diff.candidates),
        duplicates_in_file=diff.skipped_duplicates_in_file,
        missing_employee_number=diff.skipped_missing_employee_number,
    )

    return diff


def optional_name(row: dict[str, Any], column: Optional[str]) -> Optional[str]:
    if not column:
        return None
    return trim(row.get(column)) or None


def json_safe(value: Any) -> Any:
    """Raw cell as a JSON-storable value; dates become ISO strings."""
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) or math.isinf(value) else value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return trim(value)


# ===================
# GIFT SHEETS
# ===================

def collect_gift_sheet_candidates(plan: GiftSheetsPlan) -> GiftSheetsDiff:
    """
    Union the employee numbers of every mapped sheet.

    Each sheet also keeps its own distinct member list so a number listed
    twice on one sheet yields one entitlement.
    """
    diff = GiftSheetsDiff()

    for sheet in plan.sheets:
        members = GiftSheetMembers(sheet_name=sheet.sheet_name, slot_id=sheet.slot_id)
        sheet_seen: set[str] = set()

        for employee_number in sheet.employee_numbers:
            diff.found_in_excel += 1
            if not employee_number:
                diff.skipped_missing_employee_number += 1
                continue

            k = dedup_key(employee_number)
            if k in diff.numbers:
                diff.skipped_duplicates_in_file += 1
            else:
                diff.numbers[k] = employee_number

            if k not in sheet_seen:
                sheet_seen.add(k)
                members.keys.append(k)

        diff.sheets.append(members)

    logger.info(
        "gift_sheet_numbers_collected",
        found=diff.found_in_excel,
        distinct=len(diff.numbers),
        duplicates_in_file=diff.skipped_duplicates_in_file,
        missing_employee_number=diff.skipped_missing_employee_number,
    )

    return diff


# ===================
# SUMMARY
# ===================

def build_summary(
    diff: EmployeeTableDiff | GiftSheetsDiff,
    imported: int,
    entitlements_asserted: int = 0,
) -> ImportSummary:
    """
    Summary counts for a finished import.

    Employees that were absent at lookup but ignored by the store's conflict
    key (inserted concurrently) count as existing, so the counts always add
    up to found_in_excel.
    """
    distinct = len(diff.to_insert) + len(diff.already_existing)
    return ImportSummary(
        found_in_excel=diff.found_in_excel,
        imported=imported,
        skipped_duplicates_in_file=diff.skipped_duplicates_in_file,
        skipped_duplicates_existing=distinct - imported,
        skipped_missing_employee_number=diff.skipped_missing_employee_number,
        entitlements_asserted=entitlements_asserted,
    )
