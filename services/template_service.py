"""
Template service — Generate the master employee import workbook.

Operators fill the "Employees" sheet and upload it in employee table mode.
"""

from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
import structlog

logger = structlog.get_logger(__name__)

TEMPLATE_FILENAME = "Master_Employee_Import_Template.xlsx"

TEMPLATE_HEADERS = [
    "employee_number",
    "first_name",
    "last_name",
    "mine",
    "department",
    "shift",
    "crew",
    "job_title",
]

EXAMPLE_ROWS = [
    ["10001", "John", "Doe", "Shaft 1", "Engineering", "Day", "A", "Operator"],
    ["10002", "Jane", "Smith", "Shaft 1", "Operations", "Night", "B", "Supervisor"],
]

INSTRUCTIONS = [
    "How to use this template",
    "1) Keep row 1 as headers (do not rename them).",
    "2) Paste employee rows starting from row 2.",
    "3) You can add extra columns to the right; they will be saved as extra_data.",
    "4) Do not use merged cells.",
    "5) Save as .xlsx.",
    "",
    "Import steps in the app",
    "Upload file → Mode: Employee table → Sheet: Employees",
    "Map employee_number (required). first_name/last_name are optional.",
    "",
    "Gift qualification notes",
    "If you use a qualification column, matching is case-insensitive and ignores spaces/punctuation.",
    "Example: Powerbank, power bank, POWER-BANK will match.",
]

SECTION_TITLES = {"How to use this template", "Import steps in the app", "Gift qualification notes"}


def build_employee_template() -> BytesIO:
    """
    Build the employee import template.

    Returns:
        BytesIO containing the Excel file
    """
    wb = Workbook()
    bold_font = Font(bold=True)

    # === EMPLOYEES SHEET ===
    ws = wb.active
    ws.title = "Employees"
    ws.append(TEMPLATE_HEADERS)
    for row in EXAMPLE_ROWS:
        ws.append(row)

    for col, header in enumerate(TEMPLATE_HEADERS, start=1):
        ws.cell(row=1, column=col).font = bold_font
        ws.column_dimensions[get_column_letter(col)].width = max(14, len(header) + 2)

    # Employee numbers stay text ("00123" must not become 123)
    for row in ws.iter_rows(min_row=2, max_col=1):
        for cell in row:
            cell.number_format = "@"

    ws.freeze_panes = "A2"

    # === README SHEET ===
    ws_readme = wb.create_sheet("README")
    ws_readme.column_dimensions["A"].width = 90
    for line in INSTRUCTIONS:
        ws_readme.append([line])
        if line in SECTION_TITLES:
            ws_readme.cell(row=ws_readme.max_row, column=1).font = bold_font

    output = BytesIO()
    wb.save(output)
    output.seek(0)

    logger.info("employee_template_generated", filename=TEMPLATE_FILENAME)
    return output
