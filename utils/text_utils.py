"""
Text utilities for spreadsheet cells.

Two normalizations are used across the import pipeline:

- trim(): display-preserving string form of a cell (employee numbers,
  names, header labels).
- key(): fuzzy comparison key, so "Powerbank", "power bank" and
  "POWER-BANK" all compare equal.
"""

import math
import re
from datetime import date, datetime, time
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def trim(value: Any) -> str:
    """
    Normalize a raw cell to a trimmed string.

    - None / NaN → ""
    - True / False → "true" / "false"
    - 10001 / 10001.0 → "10001", 1.5 → "1.5"
    - dates and times → ISO format
    - strings → stripped

    A cell that cannot be converted (opaque object whose __str__ raises)
    is treated as empty.

    Args:
        value: Raw cell value from the parsed workbook

    Returns:
        Normalized string, never None
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    # bool is an int subclass, check it first
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()

    try:
        return str(value).strip()
    except Exception as e:
        logger.warning(
            "unexpected_cell_value",
            value_type=type(value).__name__,
            error=str(e)
        )
        return ""


def key(value: Any) -> str:
    """
    Fuzzy comparison key: lowercase, every non [a-z0-9] run removed.

    key("POWER-BANK") == key("power bank") == "powerbank"
    key("") == ""
    """
    return _NON_ALNUM.sub("", trim(value).lower())


def keys_match(left: Any, right: Any) -> bool:
    """
    Fuzzy equality used for qualification and sheet/slot matching.

    An empty key never matches anything, including another empty key.
    """
    left_key = key(left)
    if not left_key:
        return False
    return left_key == key(right)
