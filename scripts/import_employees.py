"""
Import employees and gift entitlements from a workbook, without the web UI.

Usage:
    # Employee table: map columns, everyone gets every slot
    python scripts/import_employees.py \
        --issuing-id 6f1c... --file staff.xlsx \
        --employee-number-column "Emp No" --first-name-column Name

    # Employee table: Powerbank slot only for rows whose "Gift" cell says so
    python scripts/import_employees.py \
        --issuing-id 6f1c... --file staff.xlsx \
        --employee-number-column "Emp No" \
        --rule "<slot_id>=Gift:Power bank"

    # Gift sheets: one sheet per slot, slots matched by sheet name
    python scripts/import_employees.py \
        --issuing-id 6f1c... --file gifts.xlsx --mode gift_sheets --auto-map

    # Preview only
    python scripts/import_employees.py ... --dry-run
"""

import argparse
import os
import sys

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

from models.imports import ColumnMapping, ImportMode, SlotRule  # noqa: E402
from parsers.workbook_parser import parse_workbook  # noqa: E402
from services.employee_service import get_employee_service  # noqa: E402
from services.import_service import get_import_service  # noqa: E402
from services.import_session import ImportSession  # noqa: E402
from exceptions import AppError  # noqa: E402


def parse_rule(raw: str) -> tuple[str, SlotRule]:
    """'<slot_id>=all' or '<slot_id>=<column>:<value>'."""
    slot_id, _, spec = raw.partition("=")
    if not slot_id or not spec:
        raise argparse.ArgumentTypeError(f"Bad rule '{raw}', expected SLOT_ID=all or SLOT_ID=COLUMN:VALUE")
    if spec == "all":
        return slot_id, SlotRule(mode="all")
    column, _, value = spec.partition(":")
    return slot_id, SlotRule(mode="column", column=column, value=value)


def parse_sheet_slot(raw: str) -> tuple[str, str]:
    """'<sheet name>=<slot_id>'."""
    sheet, _, slot_id = raw.rpartition("=")
    if not sheet:
        raise argparse.ArgumentTypeError(f"Bad sheet mapping '{raw}', expected SHEET=SLOT_ID")
    return sheet, slot_id


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import employees into a gift issuing")
    parser.add_argument("--issuing-id", required=True, help="Issuing UUID")
    parser.add_argument("--file", required=True, help="Workbook path (.xlsx / .xls)")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ImportMode],
        default=ImportMode.EMPLOYEE_TABLE.value,
    )
    parser.add_argument("--sheet", help="Employee table sheet (default: first sheet)")
    parser.add_argument("--employee-number-column", help="Employee table: employee number header")
    parser.add_argument("--first-name-column", help="Employee table: first name header")
    parser.add_argument("--last-name-column", help="Employee table: last name header")
    parser.add_argument(
        "--rule", action="append", type=parse_rule, default=[],
        help="Employee table: SLOT_ID=all or SLOT_ID=COLUMN:VALUE (repeatable)",
    )
    parser.add_argument(
        "--sheet-slot", action="append", type=parse_sheet_slot, default=[],
        help="Gift sheets: SHEET=SLOT_ID (repeatable)",
    )
    parser.add_argument(
        "--auto-map", action="store_true",
        help="Gift sheets: map unambiguous sheet names to slots automatically",
    )
    parser.add_argument("--dry-run", action="store_true", help="Show the preview, write nothing")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    mode = ImportMode(args.mode)

    print("=" * 50)
    print("EMPLOYEE IMPORT")
    print(f"Issuing: {args.issuing_id}")
    print(f"File: {args.file}")
    print(f"Mode: {mode.value}")
    print("=" * 50)

    try:
        store = get_employee_service()
        issuing = store.get_issuing(args.issuing_id)
        slots = store.select_gift_slots(issuing.id)
        print(f"Issuing '{issuing.name}' has {len(slots)} gift slots")

        session = ImportSession()
        session.select_issuing(issuing, slots)
        session.load_workbook(
            parse_workbook(args.file, filename=args.file),
            os.path.basename(args.file),
            mode,
        )

        if mode == ImportMode.EMPLOYEE_TABLE:
            if not args.employee_number_column:
                print("ERROR: --employee-number-column is required in employee_table mode")
                return 2
            session.map_columns(ColumnMapping(
                sheet_name=args.sheet,
                employee_number=args.employee_number_column,
                first_name=args.first_name_column,
                last_name=args.last_name_column,
            ))
            session.map_slots(slot_rules=dict(args.rule))
        else:
            sheet_slots = {}
            if args.auto_map:
                for suggestion in session.suggestions():
                    if suggestion.slot_id and not suggestion.ambiguous:
                        sheet_slots[suggestion.sheet_name] = suggestion.slot_id
                    elif suggestion.ambiguous:
                        print(f"  Sheet '{suggestion.sheet_name}' matches several slots, map it with --sheet-slot")
            sheet_slots.update(dict(args.sheet_slot))
            session.map_slots(sheet_slots=sheet_slots)

        service = get_import_service()
        print("\nPreview:")
        for row in session.preview(service):
            name = " ".join(p for p in (row.first_name, row.last_name) if p)
            print(f"  {row.employee_number:<15} {name:<30} {', '.join(row.slots)}")

        if args.dry_run:
            print("\nDry run, nothing written.")
            return 0

        session.confirm()
        summary = session.execute(service)

    except AppError as e:
        print(f"\nERROR [{e.code}]: {e.message}")
        if e.details:
            print(f"  {e.details}")
        return 1

    print("\nSummary:")
    print(f"  Found in Excel:                 {summary.found_in_excel}")
    print(f"  Imported:                       {summary.imported}")
    print(f"  Skipped (duplicate in file):    {summary.skipped_duplicates_in_file}")
    print(f"  Skipped (already existing):     {summary.skipped_duplicates_existing}")
    print(f"  Skipped (missing employee no.): {summary.skipped_missing_employee_number}")
    print(f"  Entitlements asserted:          {summary.entitlements_asserted}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
