"""
Unit tests for the employee import template.
"""

from openpyxl import load_workbook

from models.imports import ColumnMapping
from parsers.workbook_parser import parse_workbook
from services.mapping_service import resolve_employee_sheet
from services.template_service import (
    EXAMPLE_ROWS,
    INSTRUCTIONS,
    TEMPLATE_HEADERS,
    build_employee_template,
)


def test_template_sheets():
    wb = load_workbook(build_employee_template())
    assert wb.sheetnames == ["Employees", "README"]


def test_employees_sheet_layout():
    ws = load_workbook(build_employee_template())["Employees"]

    rows = [list(r) for r in ws.iter_rows(values_only=True)]

    assert rows[0] == TEMPLATE_HEADERS
    assert rows[1:] == EXAMPLE_ROWS
    assert ws.freeze_panes == "A2"
    assert all(cell.font.bold for cell in ws[1])
    assert ws["A2"].number_format == "@"


def test_readme_lists_instructions():
    ws = load_workbook(build_employee_template())["README"]

    lines = [row[0] for row in ws.iter_rows(values_only=True) if row[0]]

    assert lines == [line for line in INSTRUCTIONS if line]
    assert ws["A1"].font.bold


def test_template_parses_as_employee_table():
    workbook = parse_workbook(build_employee_template().getvalue(), filename="template.xlsx")

    sheet = resolve_employee_sheet(workbook, ColumnMapping(employee_number="employee_number"))

    assert sheet.name == "Employees"
    assert sheet.headers == TEMPLATE_HEADERS
    assert [row["employee_number"] for row in sheet.rows] == ["10001", "10002"]
