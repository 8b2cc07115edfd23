"""
Import wizard state machine.

    IDLE → ISSUING_SELECTED → FILE_PARSED → COLUMNS_MAPPED (employee table only)
         → SLOTS_MAPPED → CONFIRMED → PERSISTING → DONE | FAILED

Each step is guarded by the mapping checks of services.mapping_service.
Every state before PERSISTING can step back without losing the workbook or
the mappings entered so far; PERSISTING → DONE | FAILED is final.
"""

import threading
import uuid
from enum import Enum
from typing import Optional
import structlog

from models.directory import GiftSlotResponse, IssuingResponse
from models.imports import (
    ColumnMapping,
    ImportMode,
    ImportSessionResponse,
    ImportSummary,
    PreviewRow,
    SheetSlotSuggestion,
    SlotRule,
)
from parsers.workbook_parser import ParsedWorkbook
from services.import_service import ImportService
from services.mapping_service import (
    ImportPlan,
    build_employee_table_plan,
    build_gift_sheets_plan,
    resolve_employee_sheet,
    resolve_sheet_slots,
    resolve_slot_rules,
    suggest_sheet_slots,
)
from exceptions import AppError, ImportCancelledError, InvalidStateTransitionError

logger = structlog.get_logger(__name__)


class ImportState(str, Enum):
    """Wizard states."""
    IDLE = "idle"
    ISSUING_SELECTED = "issuing_selected"
    FILE_PARSED = "file_parsed"
    COLUMNS_MAPPED = "columns_mapped"
    SLOTS_MAPPED = "slots_mapped"
    CONFIRMED = "confirmed"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


FINAL_STATES = {ImportState.PERSISTING, ImportState.DONE, ImportState.FAILED}


class ImportSession:
    """
    One operator's import, from issuing selection to summary.

    Usage:
        session = ImportSession()
        session.select_issuing(issuing, slots)
        session.load_workbook(workbook, "staff.xlsx", ImportMode.EMPLOYEE_TABLE)
        session.map_columns(ColumnMapping(employee_number="employee_number"))
        session.map_slots(slot_rules={...})
        session.confirm()
        summary = session.execute(import_service)
    """

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id or str(uuid.uuid4())
        self.state = ImportState.IDLE
        self._history: list[ImportState] = []
        self._lock = threading.Lock()
        self.cancel_event = threading.Event()

        self.issuing: Optional[IssuingResponse] = None
        self.slots: list[GiftSlotResponse] = []
        self.workbook: Optional[ParsedWorkbook] = None
        self.filename: Optional[str] = None
        self.mode: Optional[ImportMode] = None
        self.column_mapping: Optional[ColumnMapping] = None
        self.slot_rules: dict[str, SlotRule] = {}
        self.sheet_slots: dict[str, str] = {}
        self.plan: Optional[ImportPlan] = None
        self.summary: Optional[ImportSummary] = None
        self.error: Optional[dict] = None

    @property
    def is_persisting(self) -> bool:
        return self.state == ImportState.PERSISTING

    # ===================
    # TRANSITION HELPERS
    # ===================

    def _require(self, action: str, *states: ImportState) -> None:
        if self.state not in states:
            raise InvalidStateTransitionError(self.state.value, action)

    def _advance(self, new_state: ImportState) -> None:
        logger.debug(
            "import_state_changed",
            session_id=self.session_id,
            from_state=self.state.value,
            to_state=new_state.value,
        )
        self._history.append(self.state)
        self.state = new_state

    # ===================
    # STEPS
    # ===================

    def select_issuing(self, issuing: IssuingResponse, slots: list[GiftSlotResponse]) -> None:
        with self._lock:
            self._require("select an issuing", ImportState.IDLE)
            self.issuing = issuing
            self.slots = list(slots)
            self._advance(ImportState.ISSUING_SELECTED)

    def load_workbook(
        self,
        workbook: ParsedWorkbook,
        filename: Optional[str],
        mode: ImportMode,
    ) -> None:
        with self._lock:
            self._require("load a workbook", ImportState.ISSUING_SELECTED)
            if self.workbook is not workbook:
                # New file: mappings made against the old one no longer apply
                self.column_mapping = None
                self.slot_rules = {}
                self.sheet_slots = {}
            self.workbook = workbook
            self.filename = filename
            self.mode = ImportMode(mode)
            self._advance(ImportState.FILE_PARSED)

    def map_columns(self, mapping: ColumnMapping) -> None:
        """Employee table only: set and validate the column mapping."""
        with self._lock:
            self._require("map columns", ImportState.FILE_PARSED)
            if self.mode != ImportMode.EMPLOYEE_TABLE:
                raise InvalidStateTransitionError(self.state.value, "map columns in gift sheets mode")
            sheet = resolve_employee_sheet(self.workbook, mapping)
            self.column_mapping = mapping.model_copy(update={"sheet_name": sheet.name})
            self._advance(ImportState.COLUMNS_MAPPED)

    def map_slots(
        self,
        slot_rules: Optional[dict[str, SlotRule]] = None,
        sheet_slots: Optional[dict[str, str]] = None,
    ) -> None:
        """Set qualification rules (employee table) or the sheet → slot map (gift sheets)."""
        with self._lock:
            if self.mode == ImportMode.EMPLOYEE_TABLE:
                self._require("map slots", ImportState.COLUMNS_MAPPED)
                sheet = resolve_employee_sheet(self.workbook, self.column_mapping)
                self.slot_rules = resolve_slot_rules(sheet, self.slots, slot_rules)
            else:
                self._require("map slots", ImportState.FILE_PARSED)
                sheet_slots = sheet_slots or {}
                resolve_sheet_slots(self.workbook, self.slots, sheet_slots)
                self.sheet_slots = dict(sheet_slots)
            self._advance(ImportState.SLOTS_MAPPED)

    def confirm(self) -> ImportPlan:
        """Freeze the mappings into an import plan."""
        with self._lock:
            self._require("confirm", ImportState.SLOTS_MAPPED)
            self.plan = self._build_plan()
            self._advance(ImportState.CONFIRMED)
            return self.plan

    def execute(self, service: ImportService) -> ImportSummary:
        """
        Persist the confirmed plan.

        A cancel requested before the first write returns the session to
        CONFIRMED with nothing written; any other failure is final.
        """
        with self._lock:
            self._require("run the import", ImportState.CONFIRMED)
            self._advance(ImportState.PERSISTING)

        try:
            summary = service.run_plan(self.plan, cancel_event=self.cancel_event)
        except ImportCancelledError:
            with self._lock:
                self.state = self._history.pop()
                self.cancel_event.clear()
            raise
        except AppError as e:
            with self._lock:
                self.error = {"kind": e.code, "message": e.message}
                self._advance(ImportState.FAILED)
            raise
        except Exception as e:
            with self._lock:
                self.error = {"kind": "INTERNAL_ERROR", "message": "An unexpected error occurred"}
                self._advance(ImportState.FAILED)
            logger.error("import_session_failed", session_id=self.session_id, error=str(e))
            raise

        with self._lock:
            self.summary = summary
            self._advance(ImportState.DONE)
        return summary

    def back(self) -> None:
        """Return to the previous step, keeping workbook and mappings."""
        with self._lock:
            if self.state in FINAL_STATES or not self._history:
                raise InvalidStateTransitionError(self.state.value, "go back")
            if self.state == ImportState.CONFIRMED:
                self.plan = None
            previous = self._history.pop()
            logger.debug(
                "import_state_reverted",
                session_id=self.session_id,
                from_state=self.state.value,
                to_state=previous.value,
            )
            self.state = previous

    def request_cancel(self) -> None:
        """Ask a running or about-to-run import to stop before its first write."""
        logger.info("import_cancel_requested", session_id=self.session_id, state=self.state.value)
        self.cancel_event.set()

    # ===================
    # READ HELPERS
    # ===================

    def suggestions(self) -> list[SheetSlotSuggestion]:
        if self.workbook is None:
            raise InvalidStateTransitionError(self.state.value, "suggest sheet slots")
        return suggest_sheet_slots(self.workbook, self.slots)

    def preview(self, service: ImportService, limit: Optional[int] = None) -> list[PreviewRow]:
        if self.state not in (ImportState.SLOTS_MAPPED, ImportState.CONFIRMED):
            raise InvalidStateTransitionError(self.state.value, "preview")
        plan = self.plan or self._build_plan()
        return service.preview(plan, self.slots, limit=limit)

    def _build_plan(self) -> ImportPlan:
        if self.mode == ImportMode.EMPLOYEE_TABLE:
            return build_employee_table_plan(
                self.issuing, self.slots, self.workbook, self.column_mapping, self.slot_rules
            )
        return build_gift_sheets_plan(self.issuing, self.slots, self.workbook, self.sheet_slots)

    def to_response(self, preview_rows: int = 5) -> ImportSessionResponse:
        return ImportSessionResponse(
            session_id=self.session_id,
            state=self.state.value,
            mode=self.mode,
            issuing=self.issuing,
            slots=self.slots,
            filename=self.filename,
            workbook=self.workbook.to_dict(preview_rows=preview_rows) if self.workbook else None,
            column_mapping=self.column_mapping,
            slot_rules=self.slot_rules,
            sheet_slots=self.sheet_slots,
            summary=self.summary,
            error=self.error,
        )
