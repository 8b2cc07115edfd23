"""
Batch persister.

Writes an import's employees and entitlements to the store in bounded
batches. Every write is a conflict-ignoring upsert, so re-running the same
import after a failure completes whatever is missing and changes nothing
else.

Ordering within one import:
    all lookups → all employee batches → all entitlement batches
"""

import threading
from typing import Iterator, Optional, TypeVar
import structlog

from config import settings
from models.employee import EmployeeCreate, EmployeeRef, EmployeeSlotCreate
from services.employee_service import EmployeeService
from exceptions import ImportCancelledError, LookupFailedError, PersistFailedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def chunked(items: list[T], size: int) -> Iterator[list[T]]:
    """Split a list into consecutive batches of at most `size` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BatchPersister:
    """
    Chunked lookups and upserts for one import run.

    Cancellation is honoured until the first write batch succeeds; after
    that the run finishes (already-written rows stay, re-running is safe).
    """

    def __init__(
        self,
        store: EmployeeService,
        cancel_event: Optional[threading.Event] = None,
        lookup_batch_size: Optional[int] = None,
        employee_batch_size: Optional[int] = None,
        link_batch_size: Optional[int] = None,
    ):
        self.store = store
        self.cancel_event = cancel_event
        self.lookup_batch_size = lookup_batch_size or settings.lookup_batch_size
        self.employee_batch_size = employee_batch_size or settings.employee_batch_size
        self.link_batch_size = link_batch_size or settings.link_batch_size
        self.batches_written = 0
        self._cancel_ignored_logged = False

    def check_cancelled(self) -> None:
        """
        Raise if the operator cancelled and nothing has been written yet.

        Raises:
            ImportCancelledError: Cancel requested before the first write
        """
        if self.cancel_event is None or not self.cancel_event.is_set():
            return
        if self.batches_written == 0:
            logger.info("import_cancelled_before_write")
            raise ImportCancelledError()
        if not self._cancel_ignored_logged:
            logger.warning("cancel_ignored_after_first_batch", batches_written=self.batches_written)
            self._cancel_ignored_logged = True

    # ===================
    # LOOKUP
    # ===================

    def lookup_existing(
        self,
        issuing_id: str,
        employee_numbers: list[str],
    ) -> dict[str, EmployeeRef]:
        """
        Stored employees of the issuing, keyed by lowercase employee number.

        Raises:
            LookupFailedError: A lookup batch failed after retry
        """
        existing: dict[str, EmployeeRef] = {}
        batches = list(chunked(employee_numbers, self.lookup_batch_size))

        for index, batch in enumerate(batches):
            self.check_cancelled()
            try:
                refs = self.store.select_employees(issuing_id, batch)
            except Exception as e:
                logger.error(
                    "employee_lookup_failed",
                    issuing_id=issuing_id,
                    batch=index,
                    total_batches=len(batches),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise LookupFailedError(details={"batch": index}) from e

            wanted = {number.lower() for number in batch}
            for ref in refs:
                if ref.dedup_key in wanted:
                    existing.setdefault(ref.dedup_key, ref)

        logger.info(
            "existing_employees_looked_up",
            issuing_id=issuing_id,
            requested=len(employee_numbers),
            found=len(existing),
            batches=len(batches),
        )
        return existing

    # ===================
    # WRITES
    # ===================

    def upsert_employees(self, rows: list[EmployeeCreate]) -> list[EmployeeRef]:
        """
        Insert employees in batches; conflicting rows are left untouched.

        Returns:
            Employees actually inserted

        Raises:
            ImportCancelledError: Cancel requested before the first batch
            PersistFailedError: A batch failed after retry
        """
        inserted: list[EmployeeRef] = []
        batches = list(chunked(rows, self.employee_batch_size))

        for index, batch in enumerate(batches):
            self.check_cancelled()
            try:
                inserted.extend(self.store.upsert_employees(batch))
            except Exception as e:
                self._raise_persist_failed("employees", index, len(batches), e)
            self.batches_written += 1

        logger.info(
            "employees_upserted",
            sent=len(rows),
            inserted=len(inserted),
            batches=len(batches),
        )
        return inserted

    def upsert_employee_slots(self, links: list[EmployeeSlotCreate]) -> int:
        """
        Insert entitlements in batches; existing (employee, slot) pairs are
        left untouched.

        Returns:
            Number of distinct entitlements sent

        Raises:
            ImportCancelledError: Cancel requested before the first write
            PersistFailedError: A batch failed after retry
        """
        unique = list({(link.employee_id, link.slot_id): link for link in links}.values())
        batches = list(chunked(unique, self.link_batch_size))

        for index, batch in enumerate(batches):
            self.check_cancelled()
            try:
                self.store.upsert_employee_slots(batch)
            except Exception as e:
                self._raise_persist_failed("employee_slots", index, len(batches), e)
            self.batches_written += 1

        logger.info("employee_slots_upserted", sent=len(unique), batches=len(batches))
        return len(unique)

    def _raise_persist_failed(
        self,
        table: str,
        index: int,
        total: int,
        error: Exception,
    ) -> None:
        logger.error(
            "upsert_batch_failed",
            table=table,
            batch=index,
            total_batches=total,
            error=str(error),
            error_type=type(error).__name__,
        )
        raise PersistFailedError(
            table=table,
            completed_batches=index,
            total_batches=total,
        ) from error
