"""
Workbook parsers module.
"""

from parsers.workbook_parser import (
    parse_workbook,
    resolve_headers,
    ParsedWorkbook,
    ParsedSheet,
)

__all__ = [
    "parse_workbook",
    "resolve_headers",
    "ParsedWorkbook",
    "ParsedSheet",
]
