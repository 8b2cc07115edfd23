"""
Workbook parser for employee uploads.

Decodes an .xlsx / .xls upload into ordered sheets, each with a resolved
header row and data rows keyed by header. Cell values are kept raw so they
can be stored in extra_data; use utils.text_utils.trim() for string use.
"""

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Optional, Union
import structlog

import pandas as pd

from exceptions import UnreadableWorkbookError, EmptyWorkbookError
from utils.text_utils import trim

logger = structlog.get_logger(__name__)

WorkbookSource = Union[bytes, BytesIO, str, Path]


@dataclass
class ParsedSheet:
    """One worksheet: resolved headers plus rows keyed by header."""
    name: str
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    # Raw header row as read, before "Column N" / duplicate resolution
    header_cells: list[Any] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def column_values(self, index: int) -> list[Any]:
        """Raw values of the column at position `index`, one per data row."""
        if index >= len(self.headers):
            return []
        header = self.headers[index]
        return [row.get(header, "") for row in self.rows]

    def to_dict(self, preview_rows: int = 0) -> dict:
        """Convert to dictionary for API response."""
        return {
            "name": self.name,
            "headers": self.headers,
            "row_count": self.row_count,
            "preview": [
                {h: trim(row.get(h)) for h in self.headers}
                for row in self.rows[:preview_rows]
            ],
        }


@dataclass
class ParsedWorkbook:
    """All sheets of an upload, in workbook order."""
    sheet_names: list[str] = field(default_factory=list)
    sheets: dict[str, ParsedSheet] = field(default_factory=dict)

    @property
    def first_sheet(self) -> ParsedSheet:
        return self.sheets[self.sheet_names[0]]

    def get_sheet(self, name: str) -> Optional[ParsedSheet]:
        return self.sheets.get(name)

    def to_dict(self, preview_rows: int = 0) -> dict:
        return {
            "sheet_names": self.sheet_names,
            "sheets": [
                self.sheets[name].to_dict(preview_rows=preview_rows)
                for name in self.sheet_names
            ],
        }


def parse_workbook(
    file: WorkbookSource,
    filename: Optional[str] = None,
) -> ParsedWorkbook:
    """
    Parse an uploaded workbook.

    Args:
        file: Raw bytes, file-like object (BytesIO) or path
        filename: Original filename, used to pick the engine to try first

    Returns:
        ParsedWorkbook with every sheet in workbook order

    Raises:
        UnreadableWorkbookError: If neither openpyxl nor xlrd can decode it
        EmptyWorkbookError: If the workbook has no sheets
    """
    logger.info("parsing_workbook", file_type=type(file).__name__, filename=filename)

    excel = _open_excel(file, filename)

    sheet_names = [str(name) for name in excel.sheet_names]
    if not sheet_names:
        logger.warning("workbook_has_no_sheets", filename=filename)
        raise EmptyWorkbookError()

    workbook = ParsedWorkbook(sheet_names=sheet_names)
    for original_name, name in zip(excel.sheet_names, sheet_names):
        # Read before parse: pandas resets read-only sheet dimensions
        declared_rows = _declared_row_count(excel, original_name)
        try:
            df = excel.parse(
                original_name,
                header=None,
                dtype=object,
                keep_default_na=False,
            )
        except Exception as e:
            logger.error("sheet_read_failed", sheet=name, error=str(e))
            raise UnreadableWorkbookError(
                details={"sheet": name, "original_error": str(e)}
            ) from e

        workbook.sheets[name] = _parse_sheet(name, df, row_count=declared_rows)

    logger.info(
        "workbook_parsed",
        sheet_count=len(sheet_names),
        row_counts={name: workbook.sheets[name].row_count for name in sheet_names},
    )

    return workbook


def _open_excel(file: WorkbookSource, filename: Optional[str]) -> pd.ExcelFile:
    """Open the workbook, trying openpyxl (.xlsx) then xlrd (.xls)."""
    engines = ["openpyxl", "xlrd"]
    if filename and Path(filename).suffix.lower() == ".xls":
        engines = ["xlrd", "openpyxl"]

    content = _read_bytes(file)
    if not content:
        raise UnreadableWorkbookError(details={"original_error": "empty file"})

    errors = {}
    for engine in engines:
        try:
            excel = pd.ExcelFile(BytesIO(content), engine=engine)
            logger.debug("workbook_opened", engine=engine)
            return excel
        except Exception as e:
            errors[engine] = str(e)

    logger.error("workbook_read_failed", filename=filename, errors=errors)
    raise UnreadableWorkbookError(details={"original_error": errors})


def _read_bytes(file: WorkbookSource) -> bytes:
    if isinstance(file, bytes):
        return file
    if isinstance(file, (str, Path)):
        try:
            return Path(file).read_bytes()
        except OSError as e:
            raise UnreadableWorkbookError(details={"original_error": str(e)}) from e
    file.seek(0)
    return file.read()


def _declared_row_count(excel: pd.ExcelFile, sheet_name: str) -> int:
    """
    Rows in the sheet's used range as the file declares it.

    xlsx: the worksheet dimension (openpyxl max_row). xls: xlrd nrows.
    0 when the file declares none.
    """
    book = getattr(excel, "book", None)
    if book is None:
        return 0
    try:
        if hasattr(book, "sheet_by_name"):
            return book.sheet_by_name(sheet_name).nrows
        return book[sheet_name].max_row or 0
    except (KeyError, AttributeError, TypeError) as e:
        logger.warning("sheet_dimension_unavailable", sheet=sheet_name, error=str(e))
        return 0


def _parse_sheet(name: str, df: pd.DataFrame, row_count: int = 0) -> ParsedSheet:
    """
    Turn a header-less frame into headers + keyed rows.

    pandas drops blank rows at the end of a sheet; they are restored up to
    `row_count` (the sheet's declared range) so they count as rows without
    an employee number.
    """
    raw_rows = [[_clean_cell(v) for v in row] for row in df.itertuples(index=False, name=None)]
    if not raw_rows:
        logger.debug("sheet_is_empty", sheet=name)
        return ParsedSheet(name=name)

    if len(raw_rows) < row_count:
        logger.debug("trailing_blank_rows_restored", sheet=name, count=row_count - len(raw_rows))
        raw_rows.extend([] for _ in range(row_count - len(raw_rows)))

    header_cells = raw_rows[0]
    headers = resolve_headers(header_cells)

    rows = []
    for raw in raw_rows[1:]:
        rows.append({
            header: raw[i] if i < len(raw) else ""
            for i, header in enumerate(headers)
        })

    return ParsedSheet(name=name, headers=headers, rows=rows, header_cells=header_cells)


def resolve_headers(header_cells: list[Any]) -> list[str]:
    """
    Resolve the header row into unique, non-empty labels.

    Blank cell i becomes "Column <i+1>". A label repeated later in the row
    gets " (2)", " (3)"... so every column position has its own key.
    """
    headers = []
    used = set()
    for i, cell in enumerate(header_cells):
        label = trim(cell) or f"Column {i + 1}"
        candidate = label
        n = 2
        while candidate in used:
            candidate = f"{label} ({n})"
            n += 1
        used.add(candidate)
        headers.append(candidate)
    return headers


def _clean_cell(value: Any) -> Any:
    """
    Map pandas' missing markers (None, NaN, NaT) to "" and restore
    integral floats to int (xls stores every number as a float).
    """
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
