"""
Import service.

Runs an import plan end to end:

    classify rows → look up existing employees → insert new employees
    → assert entitlements → summary

The first fatal error stops the run and propagates to the caller as an
AppError (see exceptions.errors).
"""

import threading
from typing import Optional
import structlog

from config import settings
from models.directory import GiftSlotResponse
from models.employee import EmployeeCreate, EmployeeRef, EmployeeSlotCreate
from models.imports import ImportSummary, PreviewRow
from services.dedup_service import (
    EmployeeTableDiff,
    GiftSheetsDiff,
    build_summary,
    classify_rows,
    collect_gift_sheet_candidates,
    dedup_key,
    optional_name,
)
from services.employee_service import EmployeeService, get_employee_service
from services.mapping_service import EmployeeTablePlan, GiftSheetsPlan, ImportPlan
from services.persist_service import BatchPersister
from services.qualification_service import qualifying_slot_ids
from utils.text_utils import trim

logger = structlog.get_logger(__name__)


class ImportService:
    """
    Executes employee table and gift sheets imports against the store.

    Handles:
    - Diffing planned employees against the issuing's stored employees
    - Idempotent batch inserts of employees and entitlements
    - Pre-import preview of resolved rows
    """

    def __init__(self, store: Optional[EmployeeService] = None):
        self.store = store or get_employee_service()

    def run_plan(
        self,
        plan: ImportPlan,
        cancel_event: Optional[threading.Event] = None,
        assert_existing_entitlements: Optional[bool] = None,
    ) -> ImportSummary:
        """
        Run an import plan.

        Args:
            plan: Plan from services.mapping_service
            cancel_event: Set to cancel; honoured until the first write
            assert_existing_entitlements: Employee table imports also link
                slots for employees that already existed. Defaults to
                settings.assert_existing_entitlements.

        Returns:
            ImportSummary

        Raises:
            LookupFailedError, PersistFailedError, ImportCancelledError
        """
        if assert_existing_entitlements is None:
            assert_existing_entitlements = settings.assert_existing_entitlements

        persister = BatchPersister(self.store, cancel_event=cancel_event)

        logger.info("import_started", issuing_id=plan.issuing_id, mode=plan.mode.value)

        if isinstance(plan, EmployeeTablePlan):
            summary = self._run_employee_table(plan, persister, assert_existing_entitlements)
        else:
            summary = self._run_gift_sheets(plan, persister)

        logger.info(
            "import_completed",
            issuing_id=plan.issuing_id,
            mode=plan.mode.value,
            **summary.model_dump(),
        )
        return summary

    # ===================
    # EMPLOYEE TABLE
    # ===================

    def _run_employee_table(
        self,
        plan: EmployeeTablePlan,
        persister: BatchPersister,
        assert_existing_entitlements: bool,
    ) -> ImportSummary:
        diff: EmployeeTableDiff = classify_rows(plan)

        existing = persister.lookup_existing(
            plan.issuing_id,
            [c.employee_number for c in diff.candidates],
        )
        diff.apply_existing(existing)

        inserted = persister.upsert_employees([
            EmployeeCreate(
                company_id=plan.company_id,
                issuing_id=plan.issuing_id,
                employee_number=c.employee_number,
                first_name=c.first_name,
                last_name=c.last_name,
                extra_data=c.extra_data,
            )
            for c in diff.to_insert
        ])

        candidates = {c.key: c for c in diff.candidates}
        targets = [(ref, candidates[ref.dedup_key]) for ref in inserted if ref.dedup_key in candidates]
        if assert_existing_entitlements:
            targets.extend((existing[c.key], c) for c in diff.already_existing)

        links = []
        for ref, candidate in targets:
            qualified = qualifying_slot_ids(candidate.source_row, plan.slot_rules)
            links.extend(
                EmployeeSlotCreate(employee_id=ref.id, slot_id=slot_id, company_id=plan.company_id)
                for slot_id in plan.slot_rules
                if slot_id in qualified
            )

        asserted = persister.upsert_employee_slots(links)
        return build_summary(diff, imported=len(inserted), entitlements_asserted=asserted)

    # ===================
    # GIFT SHEETS
    # ===================

    def _run_gift_sheets(self, plan: GiftSheetsPlan, persister: BatchPersister) -> ImportSummary:
        diff: GiftSheetsDiff = collect_gift_sheet_candidates(plan)

        existing = persister.lookup_existing(plan.issuing_id, list(diff.numbers.values()))
        diff.apply_existing(existing)

        inserted = persister.upsert_employees([
            EmployeeCreate(
                company_id=plan.company_id,
                issuing_id=plan.issuing_id,
                employee_number=diff.numbers[k],
            )
            for k in diff.to_insert
        ])

        ids: dict[str, EmployeeRef] = dict(existing)
        ids.update({ref.dedup_key: ref for ref in inserted})

        # Inserted concurrently between lookup and insert: ignored by the
        # conflict key, so not returned. Look them up again.
        unresolved = [diff.numbers[k] for k in diff.numbers if k not in ids]
        if unresolved:
            logger.warning("employee_ids_unresolved_after_insert", count=len(unresolved))
            ids.update(persister.lookup_existing(plan.issuing_id, unresolved))

        links = [
            EmployeeSlotCreate(
                employee_id=ids[k].id,
                slot_id=members.slot_id,
                company_id=plan.company_id,
            )
            for members in diff.sheets
            for k in members.keys
            if k in ids
        ]

        asserted = persister.upsert_employee_slots(links)
        return build_summary(diff, imported=len(inserted), entitlements_asserted=asserted)

    # ===================
    # PREVIEW
    # ===================

    def preview(
        self,
        plan: ImportPlan,
        slots: list[GiftSlotResponse],
        limit: Optional[int] = None,
    ) -> list[PreviewRow]:
        """
        Resolve the first rows of a plan without touching the store.

        Employee table: the first `limit` sheet rows with their qualifying
        slot names. Gift sheets: the first `limit` distinct employee numbers
        with the slots of every sheet listing them.
        """
        limit = limit or settings.preview_rows
        slot_names = {slot.id: slot.name for slot in slots}

        if isinstance(plan, EmployeeTablePlan):
            mapping = plan.mapping
            rows = []
            for row in plan.rows[:limit]:
                qualified = qualifying_slot_ids(row, plan.slot_rules)
                rows.append(PreviewRow(
                    employee_number=trim(row.get(mapping.employee_number)),
                    first_name=optional_name(row, mapping.first_name),
                    last_name=optional_name(row, mapping.last_name),
                    slots=[slot_names.get(s, s) for s in plan.slot_rules if s in qualified],
                ))
            return rows

        order: dict[str, str] = {}
        slots_by_key: dict[str, list[str]] = {}
        for sheet in plan.sheets:
            for number in sheet.employee_numbers:
                if not number:
                    continue
                k = dedup_key(number)
                order.setdefault(k, number)
                names = slots_by_key.setdefault(k, [])
                slot_name = slot_names.get(sheet.slot_id, sheet.slot_id)
                if slot_name not in names:
                    names.append(slot_name)

        return [
            PreviewRow(employee_number=number, slots=slots_by_key[k])
            for k, number in list(order.items())[:limit]
        ]


# =============================================================================
# Singleton
# =============================================================================

_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create ImportService instance."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService()
    return _import_service
