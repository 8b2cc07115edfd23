"""
Employee store backed by Supabase.

The import needs only a handful of operations on the store:

- get_issuing / select_gift_slots: read the issuing being imported into
- select_employees: which employee numbers already exist for the issuing
- upsert_employees / upsert_employee_slots: conflict-ignoring inserts

Every request is bounded by the client timeout (settings.sink_timeout_seconds)
and retried on timeout with jittered backoff before the error propagates.
Chunking is the caller's job (see services.persist_service).
"""

from typing import Any, Callable, Optional
import httpx
import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from config import get_supabase_client, settings
from models.directory import GiftSlotResponse, IssuingResponse
from models.employee import EmployeeCreate, EmployeeRef, EmployeeSlotCreate
from exceptions import DatabaseError, IssuingNotFoundError

logger = structlog.get_logger(__name__)

EMPLOYEE_CONFLICT_KEY = "issuing_id,employee_number"
EMPLOYEE_SLOT_CONFLICT_KEY = "employee_id,slot_id"


def ilike_filter(column: str, value: str) -> str:
    """
    PostgREST `or` condition matching `value` exactly, ignoring case.

    LIKE wildcards (% _) and the escape character are escaped, then the
    pattern is double-quoted so commas, dots and parentheses survive.
    """
    pattern = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    quoted = pattern.replace("\\", "\\\\").replace('"', '\\"')
    return f'{column}.ilike."{quoted}"'


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "sink_request_retrying",
        attempt=retry_state.attempt_number,
        error=str(exc) if exc else None,
        error_type=type(exc).__name__ if exc else None,
    )


class EmployeeService:
    """
    Store operations for employees and their gift-slot entitlements.

    All writes are scoped to one issuing by the rows themselves.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.issuings_table = "issuings"
        self.slots_table = "gift_slots"
        self.employees_table = "employees"
        self.employee_slots_table = "employee_slots"

    def _execute(self, operation: str, build_query: Callable[[], Any]) -> Any:
        """Run one PostgREST request, retrying on timeout."""
        retrying = Retrying(
            stop=stop_after_attempt(settings.sink_retry_attempts),
            wait=wait_random_exponential(multiplier=0.5, max=settings.sink_retry_max_wait_seconds),
            retry=retry_if_exception_type(httpx.TimeoutException),
            before_sleep=_log_retry,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                logger.debug("sink_request", operation=operation, attempt=attempt.retry_state.attempt_number)
                return build_query().execute()

    # ===================
    # DIRECTORY READS
    # ===================

    def get_issuing(self, issuing_id: str) -> IssuingResponse:
        """
        Get the issuing an import targets.

        Raises:
            IssuingNotFoundError: If the issuing doesn't exist
        """
        logger.debug("getting_issuing", issuing_id=issuing_id)

        try:
            result = self._execute(
                "get_issuing",
                lambda: (
                    self.db.table(self.issuings_table)
                    .select("id, company_id, name, mine_name, is_active")
                    .eq("id", issuing_id)
                    .limit(1)
                ),
            )
        except Exception as e:
            logger.error("get_issuing_failed", issuing_id=issuing_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise IssuingNotFoundError(issuing_id)

        return IssuingResponse(**result.data[0])

    def select_gift_slots(self, issuing_id: str) -> list[GiftSlotResponse]:
        """Gift slots of an issuing, in creation order."""
        logger.debug("getting_gift_slots", issuing_id=issuing_id)

        try:
            result = self._execute(
                "select_gift_slots",
                lambda: (
                    self.db.table(self.slots_table)
                    .select("id, issuing_id, name, is_choice")
                    .eq("issuing_id", issuing_id)
                    .order("created_at")
                ),
            )
        except Exception as e:
            logger.error("get_gift_slots_failed", issuing_id=issuing_id, error=str(e))
            raise DatabaseError("select", str(e))

        return [GiftSlotResponse(**row) for row in result.data]

    # ===================
    # EMPLOYEES
    # ===================

    def select_employees(
        self,
        issuing_id: str,
        employee_numbers: list[str],
    ) -> list[EmployeeRef]:
        """
        Stored employees of the issuing whose number is in `employee_numbers`.

        Matching ignores case ("Ab12x" finds "aB12X"). PostgREST turns `*`
        into a wildcard even inside quotes, so results are re-checked here.
        Errors propagate unchanged.
        """
        numbers = list(dict.fromkeys(n for n in employee_numbers if n))
        if not numbers:
            return []

        wanted = {n.lower() for n in numbers}
        condition = ",".join(ilike_filter("employee_number", n) for n in numbers)

        result = self._execute(
            "select_employees",
            lambda: (
                self.db.table(self.employees_table)
                .select("id, employee_number")
                .eq("issuing_id", issuing_id)
                .or_(condition)
            ),
        )
        return [
            EmployeeRef(**row) for row in result.data
            if row["employee_number"].lower() in wanted
        ]

    def upsert_employees(self, rows: list[EmployeeCreate]) -> list[EmployeeRef]:
        """
        Insert employees, ignoring rows that conflict on
        (issuing_id, employee_number).

        Returns:
            Only the rows actually inserted. Errors propagate unchanged.
        """
        if not rows:
            return []

        payload = [row.model_dump() for row in rows]
        result = self._execute(
            "upsert_employees",
            lambda: self.db.table(self.employees_table).upsert(
                payload,
                on_conflict=EMPLOYEE_CONFLICT_KEY,
                ignore_duplicates=True,
            ),
        )
        return [
            EmployeeRef(id=row["id"], employee_number=row["employee_number"])
            for row in (result.data or [])
        ]

    def upsert_employee_slots(self, rows: list[EmployeeSlotCreate]) -> int:
        """
        Insert entitlements, ignoring rows that conflict on
        (employee_id, slot_id).

        Returns:
            Number of rows sent. Errors propagate unchanged.
        """
        if not rows:
            return 0

        payload = [row.model_dump() for row in rows]
        self._execute(
            "upsert_employee_slots",
            lambda: self.db.table(self.employee_slots_table).upsert(
                payload,
                on_conflict=EMPLOYEE_SLOT_CONFLICT_KEY,
                ignore_duplicates=True,
            ),
        )
        return len(payload)


# ===================
# SINGLETON
# ===================

_employee_service: Optional[EmployeeService] = None


def get_employee_service() -> EmployeeService:
    """Get or create EmployeeService instance."""
    global _employee_service
    if _employee_service is None:
        _employee_service = EmployeeService()
    return _employee_service
