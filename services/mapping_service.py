"""
Mapping resolver.

Turns the operator's choices (column mapping + slot rules, or sheet → slot
mapping) and a parsed workbook into an import plan. Every reference is
validated here; nothing downstream re-checks headers, sheets or slots.
"""

import re
from dataclasses import dataclass, field
from typing import Optional
import structlog

from config import settings
from models.directory import GiftSlotResponse, IssuingResponse
from models.imports import ColumnMapping, ImportMode, SheetSlotSuggestion, SlotRule
from parsers.workbook_parser import ParsedSheet, ParsedWorkbook
from exceptions import InvalidMappingError
from utils.text_utils import key, trim

logger = structlog.get_logger(__name__)

_HAS_DIGIT = re.compile(r"\d")


# ===================
# PLANS
# ===================

@dataclass
class EmployeeTablePlan:
    """Employee table import: one sheet, per-slot qualification rules."""
    issuing_id: str
    company_id: str
    sheet: ParsedSheet
    mapping: ColumnMapping
    slot_rules: dict[str, SlotRule]
    mode: ImportMode = ImportMode.EMPLOYEE_TABLE

    @property
    def rows(self) -> list[dict]:
        return self.sheet.rows

    @property
    def headers(self) -> list[str]:
        return self.sheet.headers


@dataclass
class GiftSheet:
    """One mapped gift sheet: its slot and the employee numbers listed on it."""
    sheet_name: str
    slot_id: str
    # Trimmed column A values in sheet order, blanks included
    employee_numbers: list[str] = field(default_factory=list)


@dataclass
class GiftSheetsPlan:
    """Gift sheets import: every mapped sheet grants its slot."""
    issuing_id: str
    company_id: str
    sheets: list[GiftSheet]
    mode: ImportMode = ImportMode.GIFT_SHEETS


ImportPlan = EmployeeTablePlan | GiftSheetsPlan


# ===================
# EMPLOYEE TABLE
# ===================

def resolve_employee_sheet(workbook: ParsedWorkbook, mapping: ColumnMapping) -> ParsedSheet:
    """
    Pick the employee sheet and check the column mapping against its headers.

    Raises:
        InvalidMappingError: Unknown sheet, missing employee_number column,
            or a mapped column that is not a header
    """
    sheet_name = mapping.sheet_name or workbook.sheet_names[0]
    sheet = workbook.get_sheet(sheet_name)
    if sheet is None:
        raise InvalidMappingError(
            f"Sheet '{sheet_name}' is not in the workbook",
            details={"sheet": sheet_name, "available": workbook.sheet_names}
        )

    if not mapping.employee_number:
        raise InvalidMappingError("Map the employee_number column")

    unknown = [
        column for column in (mapping.employee_number, mapping.first_name, mapping.last_name)
        if column and column not in sheet.headers
    ]
    if unknown:
        raise InvalidMappingError(
            "Mapped columns are not headers of the sheet",
            details={"sheet": sheet_name, "columns": unknown, "headers": sheet.headers}
        )

    return sheet


def resolve_slot_rules(
    sheet: ParsedSheet,
    slots: list[GiftSlotResponse],
    slot_rules: Optional[dict[str, SlotRule]],
) -> dict[str, SlotRule]:
    """
    One rule per slot of the issuing.

    Slots without a rule default to mode "all"; rules for slot ids that are
    not in the issuing are dropped.

    Raises:
        InvalidMappingError: A column rule names a header the sheet lacks
    """
    slot_rules = slot_rules or {}
    slot_ids = {slot.id for slot in slots}

    ignored = sorted(set(slot_rules) - slot_ids)
    if ignored:
        logger.info("unknown_slot_rules_ignored", slot_ids=ignored)

    resolved = {}
    bad_columns = {}
    for slot in slots:
        rule = slot_rules.get(slot.id) or SlotRule(mode="all")
        if rule.mode == "column" and rule.column not in sheet.headers:
            bad_columns[slot.id] = rule.column
        resolved[slot.id] = rule

    if bad_columns:
        raise InvalidMappingError(
            "Qualification rules reference columns that are not in the sheet",
            details={"slot_columns": bad_columns, "headers": sheet.headers}
        )

    return resolved


def build_employee_table_plan(
    issuing: IssuingResponse,
    slots: list[GiftSlotResponse],
    workbook: ParsedWorkbook,
    mapping: ColumnMapping,
    slot_rules: Optional[dict[str, SlotRule]] = None,
) -> EmployeeTablePlan:
    """Validate the employee table mapping and build its plan."""
    sheet = resolve_employee_sheet(workbook, mapping)
    rules = resolve_slot_rules(sheet, slots, slot_rules)

    logger.info(
        "employee_table_plan_built",
        issuing_id=issuing.id,
        sheet=sheet.name,
        rows=sheet.row_count,
        column_rules=sum(1 for r in rules.values() if r.mode == "column"),
    )

    return EmployeeTablePlan(
        issuing_id=issuing.id,
        company_id=issuing.company_id,
        sheet=sheet,
        mapping=mapping.model_copy(update={"sheet_name": sheet.name}),
        slot_rules=rules,
    )


# ===================
# GIFT SHEETS
# ===================

def resolve_sheet_slots(
    workbook: ParsedWorkbook,
    slots: list[GiftSlotResponse],
    sheet_slots: dict[str, str],
) -> dict[str, str]:
    """
    Keep the sheets mapped to a slot, in workbook order.

    Raises:
        InvalidMappingError: Unknown sheet, unknown slot, or no sheet mapped
    """
    unknown_sheets = [name for name in sheet_slots if name not in workbook.sheets]
    if unknown_sheets:
        raise InvalidMappingError(
            "Mapped sheets are not in the workbook",
            details={"sheets": unknown_sheets, "available": workbook.sheet_names}
        )

    slot_ids = {slot.id for slot in slots}
    unknown_slots = {
        name: slot_id for name, slot_id in sheet_slots.items()
        if slot_id and slot_id not in slot_ids
    }
    if unknown_slots:
        raise InvalidMappingError(
            "Sheets are mapped to slots that do not belong to this issuing",
            details={"sheet_slots": unknown_slots}
        )

    mapped = {
        name: sheet_slots[name]
        for name in workbook.sheet_names
        if sheet_slots.get(name)
    }
    if not mapped:
        raise InvalidMappingError("Map at least one sheet to a gift slot")

    return mapped


def looks_like_employee_number(value: str, max_length: Optional[int] = None) -> bool:
    """A header cell that is really the first employee number: has a digit, short."""
    max_length = max_length or settings.employee_number_max_length
    return bool(value) and len(value) <= max_length and bool(_HAS_DIGIT.search(value))


def collect_sheet_employee_numbers(sheet: ParsedSheet) -> list[str]:
    """
    Employee numbers listed in column A of a gift sheet.

    Sheets often have no header row, so a first-row value that looks like an
    employee number is kept as the first entry.
    """
    numbers = []
    if sheet.header_cells:
        first_header = trim(sheet.header_cells[0])
        if looks_like_employee_number(first_header):
            numbers.append(first_header)

    numbers.extend(trim(value) for value in sheet.column_values(0))
    return numbers


def build_gift_sheets_plan(
    issuing: IssuingResponse,
    slots: list[GiftSlotResponse],
    workbook: ParsedWorkbook,
    sheet_slots: dict[str, str],
) -> GiftSheetsPlan:
    """Validate the sheet → slot mapping and build its plan."""
    mapped = resolve_sheet_slots(workbook, slots, sheet_slots)

    sheets = [
        GiftSheet(
            sheet_name=name,
            slot_id=slot_id,
            employee_numbers=collect_sheet_employee_numbers(workbook.sheets[name]),
        )
        for name, slot_id in mapped.items()
    ]

    logger.info(
        "gift_sheets_plan_built",
        issuing_id=issuing.id,
        sheets={s.sheet_name: len(s.employee_numbers) for s in sheets},
    )

    return GiftSheetsPlan(
        issuing_id=issuing.id,
        company_id=issuing.company_id,
        sheets=sheets,
    )


def suggest_sheet_slots(
    workbook: ParsedWorkbook,
    slots: list[GiftSlotResponse],
) -> list[SheetSlotSuggestion]:
    """
    Suggest a slot for each sheet by fuzzy name match.

    When several slots share the sheet's key, the first is suggested and the
    suggestion is flagged ambiguous so the operator confirms it.
    """
    suggestions = []
    for name in workbook.sheet_names:
        sheet_key = key(name)
        candidates = [slot.id for slot in slots if sheet_key and key(slot.name) == sheet_key]
        ambiguous = len(candidates) > 1
        if ambiguous:
            logger.warning("ambiguous_sheet_slot_match", sheet=name, slot_ids=candidates)
        suggestions.append(SheetSlotSuggestion(
            sheet_name=name,
            slot_id=candidates[0] if candidates else None,
            candidate_slot_ids=candidates,
            ambiguous=ambiguous,
        ))
    return suggestions
