"""
Qualification evaluator.

Decides which gift slots an employee row qualifies for under the slot
rules of an employee table import. Pure: same row and rules, same answer.
"""

from typing import Any

from models.imports import SlotRule
from utils.text_utils import keys_match


def rule_matches(row: dict[str, Any], rule: SlotRule) -> bool:
    """True if the row satisfies one slot rule."""
    if rule.mode == "all":
        return True
    return keys_match(row.get(rule.column), rule.value)


def qualifying_slot_ids(row: dict[str, Any], slot_rules: dict[str, SlotRule]) -> set[str]:
    """
    Slot ids the row qualifies for.

    Args:
        row: Workbook row keyed by header
        slot_rules: Rule per slot id (already resolved for the issuing)

    Returns:
        Set of qualifying slot ids
    """
    return {slot_id for slot_id, rule in slot_rules.items() if rule_matches(row, rule)}
