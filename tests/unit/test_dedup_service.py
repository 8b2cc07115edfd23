"""
Unit tests for the deduplication and diff engine.
"""

from datetime import date, datetime

import pytest

from models.directory import GiftSlotResponse, IssuingResponse
from models.employee import EmployeeRef
from models.imports import ColumnMapping, RowStatus
from services.dedup_service import (
    build_summary,
    classify_rows,
    collect_gift_sheet_candidates,
    dedup_key,
    json_safe,
)
from services.mapping_service import build_employee_table_plan, build_gift_sheets_plan
from tests.factories import build_workbook


@pytest.fixture
def issuing_model(issuing):
    return IssuingResponse(**issuing)


@pytest.fixture
def slot_models(gift_slots):
    return [GiftSlotResponse(**slot) for slot in gift_slots]


def employee_plan(issuing_model, slot_models, rows, mapping=None):
    workbook = build_workbook({"Employees": rows})
    mapping = mapping or ColumnMapping(
        employee_number="employee_number",
        first_name="first_name",
        last_name="last_name",
    )
    return build_employee_table_plan(issuing_model, slot_models, workbook, mapping)


# ===================
# EMPLOYEE TABLE
# ===================

class TestClassifyRows:
    """Tests for classify_rows()."""

    def test_rows_are_classified_in_order(self, issuing_model, slot_models):
        plan = employee_plan(issuing_model, slot_models, [
            ["employee_number", "first_name", "last_name"],
            ["10001", "John", "Doe"],
            ["", "Ghost", ""],
            ["10002", "Jane", "Smith"],
            ["10001", "John", "Again"],
        ])

        diff = classify_rows(plan)

        assert diff.found_in_excel == 4
        assert [c.employee_number for c in diff.candidates] == ["10001", "10002"]
        assert diff.skipped_missing_employee_number == 1
        assert diff.skipped_duplicates_in_file == 1
        assert [(c.row_number, c.status) for c in diff.classifications] == [
            (2, RowStatus.TO_INSERT),
            (3, RowStatus.MISSING_EMP_NUM),
            (4, RowStatus.TO_INSERT),
            (5, RowStatus.IN_FILE_DUPLICATE),
        ]

    def test_first_casing_wins(self, issuing_model, slot_models):
        plan = employee_plan(issuing_model, slot_models, [
            ["employee_number", "first_name", "last_name"],
            ["emp-7", "First", ""],
            ["EMP-7", "Second", ""],
        ])

        diff = classify_rows(plan)

        assert [c.employee_number for c in diff.candidates] == ["emp-7"]
        assert diff.candidates[0].first_name == "First"
        assert diff.skipped_duplicates_in_file == 1

    def test_blank_names_are_none(self, issuing_model, slot_models):
        plan = employee_plan(issuing_model, slot_models, [
            ["employee_number", "first_name", "last_name"],
            ["10003", "", "  "],
        ])
        candidate = classify_rows(plan).candidates[0]
        assert candidate.first_name is None
        assert candidate.last_name is None

    def test_unmapped_name_columns_are_none(self, issuing_model, slot_models):
        plan = employee_plan(
            issuing_model,
            slot_models,
            [["employee_number", "first_name"], ["10001", "John"]],
            mapping=ColumnMapping(employee_number="employee_number"),
        )
        candidate = classify_rows(plan).candidates[0]
        assert candidate.first_name is None
        assert candidate.extra_data == {"first_name": "John"}

    def test_extra_data_holds_exactly_the_unmapped_headers(self, issuing_model, slot_models):
        plan = employee_plan(issuing_model, slot_models, [
            ["employee_number", "first_name", "last_name", "department", "shift", "crew"],
            ["10001", "John", "Doe", "Engineering", "Day", 7],
        ])
        candidate = classify_rows(plan).candidates[0]
        assert candidate.extra_data == {"department": "Engineering", "shift": "Day", "crew": 7}

    def test_apply_existing_splits_candidates(self, issuing_model, slot_models):
        plan = employee_plan(issuing_model, slot_models, [
            ["employee_number", "first_name", "last_name"],
            ["10001", "John", "Doe"],
            ["ab-1", "Jane", "Smith"],
        ])
        diff = classify_rows(plan)

        diff.apply_existing({"ab-1": EmployeeRef(id="emp-1", employee_number="AB-1")})

        assert [c.employee_number for c in diff.to_insert] == ["10001"]
        assert [c.employee_number for c in diff.already_existing] == ["ab-1"]
        assert diff.classifications[1].status == RowStatus.ALREADY_EXISTS


class TestJsonSafe:
    """Tests for json_safe()."""

    def test_passes_json_scalars_through(self):
        assert json_safe("x") == "x"
        assert json_safe(7) == 7
        assert json_safe(1.5) == 1.5
        assert json_safe(True) is True
        assert json_safe(None) is None

    def test_dates_become_iso_strings(self):
        assert json_safe(date(2025, 1, 2)) == "2025-01-02"
        assert json_safe(datetime(2025, 1, 2, 3, 4)) == "2025-01-02T03:04:00"

    def test_nan_becomes_none(self):
        assert json_safe(float("nan")) is None


# ===================
# GIFT SHEETS
# ===================

class TestCollectGiftSheetCandidates:
    """Tests for collect_gift_sheet_candidates()."""

    def test_union_across_sheets(self, issuing_model, slot_models):
        workbook = build_workbook({
            "Lamp": [["Employee No"], ["10001"], ["10002"], [None], ["10002"]],
            "Hamper": [["Employee No"], ["10002"], ["E-9"], ["e-9"]],
        })
        plan = build_gift_sheets_plan(issuing_model, slot_models, workbook, {
            "Lamp": "slot-lamp",
            "Hamper": "slot-hamper",
        })

        diff = collect_gift_sheet_candidates(plan)

        assert diff.found_in_excel == 7
        assert diff.numbers == {"10001": "10001", "10002": "10002", "e-9": "E-9"}
        assert diff.skipped_missing_employee_number == 1
        assert diff.skipped_duplicates_in_file == 3
        assert [(m.slot_id, m.keys) for m in diff.sheets] == [
            ("slot-lamp", ["10001", "10002"]),
            ("slot-hamper", ["10002", "e-9"]),
        ]


# ===================
# SUMMARY
# ===================

def test_summary_balances(issuing_model, slot_models):
    plan = employee_plan(issuing_model, slot_models, [
        ["employee_number", "first_name", "last_name"],
        ["10001", "John", "Doe"],
        ["10002", "Jane", "Smith"],
        ["10002", "Jane", "Smith"],
        ["", "", ""],
    ])
    diff = classify_rows(plan)
    diff.apply_existing({"10002": EmployeeRef(id="emp-2", employee_number="10002")})

    summary = build_summary(diff, imported=1, entitlements_asserted=3)

    assert summary.found_in_excel == 4
    assert summary.imported == 1
    assert summary.skipped_duplicates_existing == 1
    assert summary.skipped_duplicates_in_file == 1
    assert summary.skipped_missing_employee_number == 1
    assert summary.is_balanced


def test_summary_counts_concurrent_insert_as_existing(issuing_model, slot_models):
    """Absent at lookup, ignored by the conflict key at insert."""
    plan = employee_plan(issuing_model, slot_models, [
        ["employee_number", "first_name", "last_name"],
        ["10001", "John", "Doe"],
        ["10002", "Jane", "Smith"],
    ])
    diff = classify_rows(plan)
    diff.apply_existing({})

    summary = build_summary(diff, imported=1)

    assert summary.skipped_duplicates_existing == 1
    assert summary.is_balanced


def test_summary_serializes_camel_case():
    from models.imports import ImportSummary
    data = ImportSummary(found_in_excel=1, imported=1).model_dump(by_alias=True)
    assert data["foundInExcel"] == 1
    assert data["skippedDuplicatesInFile"] == 0
    assert data["skippedMissingEmployeeNumber"] == 0


def test_dedup_key_is_lowercase():
    assert dedup_key("EMP-7") == "emp-7"
