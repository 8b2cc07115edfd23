"""
Unit tests for the Supabase-backed employee store.
"""

import httpx
import pytest

from models.employee import EmployeeCreate, EmployeeSlotCreate
from services.employee_service import EmployeeService, ilike_filter
from services.persist_service import BatchPersister
from exceptions import DatabaseError, IssuingNotFoundError, PersistFailedError
from tests.factories import EmployeeFactory


@pytest.fixture
def service(seeded_db):
    return EmployeeService()


def employee(number, issuing_id="issuing-1"):
    return EmployeeCreate(company_id="company-1", issuing_id=issuing_id, employee_number=number)


# ===================
# DIRECTORY READS
# ===================

class TestDirectoryReads:
    """Tests for get_issuing / select_gift_slots."""

    def test_get_issuing(self, service):
        issuing = service.get_issuing("issuing-1")
        assert issuing.company_id == "company-1"
        assert issuing.name == "Year End 2025"

    def test_get_issuing_not_found(self, service):
        with pytest.raises(IssuingNotFoundError) as exc_info:
            service.get_issuing("missing")
        assert exc_info.value.status_code == 404

    def test_get_issuing_database_error(self, service, seeded_db):
        seeded_db.fail_next("issuings", "select", RuntimeError("relation does not exist"))
        with pytest.raises(DatabaseError):
            service.get_issuing("issuing-1")

    def test_gift_slots_in_creation_order(self, service, seeded_db, gift_slots):
        seeded_db.set_table_data("gift_slots", list(reversed(gift_slots)))
        slots = service.select_gift_slots("issuing-1")
        assert [s.name for s in slots] == ["Lamp", "Powerbank", "Hamper"]

    def test_gift_slots_scoped_to_issuing(self, service, seeded_db, gift_slots):
        other = dict(gift_slots[0], id="slot-other", issuing_id="issuing-2")
        seeded_db.set_table_data("gift_slots", gift_slots + [other])
        assert "slot-other" not in [s.id for s in service.select_gift_slots("issuing-1")]


# ===================
# EMPLOYEES
# ===================

class TestEmployees:
    """Tests for employee lookups and upserts."""

    def test_select_matches_casing_variants(self, service, seeded_db):
        seeded_db.set_table_data("employees", [
            EmployeeFactory.create("AB-1", "issuing-1", "company-1", id="emp-1"),
            EmployeeFactory.create("cd-2", "issuing-1", "company-1", id="emp-2"),
        ])
        refs = service.select_employees("issuing-1", ["ab-1", "CD-2", "10001"])
        assert sorted(r.id for r in refs) == ["emp-1", "emp-2"]

    def test_select_matches_mixed_case(self, service, seeded_db):
        seeded_db.set_table_data("employees", [
            EmployeeFactory.create("Ab12x", "issuing-1", "company-1", id="emp-1"),
        ])
        refs = service.select_employees("issuing-1", ["aB12X"])
        assert [(r.id, r.employee_number) for r in refs] == [("emp-1", "Ab12x")]

    def test_select_treats_wildcards_literally(self, service, seeded_db):
        seeded_db.set_table_data("employees", [
            EmployeeFactory.create("A-1", "issuing-1", "company-1", id="emp-1"),
            EmployeeFactory.create("AB100", "issuing-1", "company-1", id="emp-2"),
            EmployeeFactory.create("A_1", "issuing-1", "company-1", id="emp-3"),
        ])
        assert [r.id for r in service.select_employees("issuing-1", ["a_1"])] == ["emp-3"]
        assert service.select_employees("issuing-1", ["AB%"]) == []
        assert service.select_employees("issuing-1", ["A*"]) == []

    def test_select_handles_reserved_characters(self, service, seeded_db):
        seeded_db.set_table_data("employees", [
            EmployeeFactory.create('7,(a.b)"c', "issuing-1", "company-1", id="emp-1"),
        ])
        refs = service.select_employees("issuing-1", ['7,(A.B)"C'])
        assert [r.id for r in refs] == ["emp-1"]

    def test_ilike_filter_quotes_and_escapes(self):
        assert ilike_filter("employee_number", "A_1") == 'employee_number.ilike."A\\\\_1"'
        assert ilike_filter("employee_number", 'x"y') == 'employee_number.ilike."x\\"y"'

    def test_select_is_scoped_to_issuing(self, service, seeded_db):
        seeded_db.set_table_data("employees", [
            EmployeeFactory.create("10001", "issuing-2", "company-1"),
        ])
        assert service.select_employees("issuing-1", ["10001"]) == []

    def test_select_with_no_numbers_skips_the_request(self, service, seeded_db):
        assert service.select_employees("issuing-1", []) == []
        assert seeded_db.count_calls("employees", "select") == 0

    def test_upsert_returns_only_inserted_rows(self, service, seeded_db):
        seeded_db.set_table_data("employees", [
            EmployeeFactory.create("10001", "issuing-1", "company-1", id="emp-1"),
        ])
        inserted = service.upsert_employees([employee("10001"), employee("10002")])
        assert [r.employee_number for r in inserted] == ["10002"]
        assert len(seeded_db.rows("employees")) == 2

    def test_upsert_links_ignores_existing_pairs(self, service, seeded_db):
        link = EmployeeSlotCreate(employee_id="emp-1", slot_id="slot-lamp", company_id="company-1")
        service.upsert_employee_slots([link])
        service.upsert_employee_slots([link])
        assert len(seeded_db.rows("employee_slots")) == 1


# ===================
# TIMEOUTS
# ===================

class TestTimeoutRetry:
    """Each request is retried once on timeout, then the error propagates."""

    def test_timeout_is_retried_once(self, service, seeded_db):
        seeded_db.fail_next("employees", "upsert", httpx.TimeoutException("timed out"))

        inserted = service.upsert_employees([employee("10001")])

        assert len(inserted) == 1
        assert seeded_db.count_calls("employees", "upsert") == 2

    def test_second_timeout_propagates(self, service, seeded_db):
        seeded_db.fail_next("employees", "upsert", httpx.TimeoutException("timed out"), times=2)

        with pytest.raises(httpx.TimeoutException):
            service.upsert_employees([employee("10001")])

        assert seeded_db.count_calls("employees", "upsert") == 2
        assert seeded_db.rows("employees") == []

    def test_other_errors_are_not_retried(self, service, seeded_db):
        seeded_db.fail_next("employees", "select", RuntimeError("bad request"))

        with pytest.raises(RuntimeError):
            service.select_employees("issuing-1", ["10001"])

        assert seeded_db.count_calls("employees", "select") == 1

    def test_exhausted_retries_surface_as_persist_failed(self, service, seeded_db):
        seeded_db.fail_next("employee_slots", "upsert", httpx.TimeoutException("timed out"), times=2)
        persister = BatchPersister(service)

        with pytest.raises(PersistFailedError) as exc_info:
            persister.upsert_employee_slots([
                EmployeeSlotCreate(employee_id="emp-1", slot_id="slot-lamp", company_id="company-1"),
            ])

        assert exc_info.value.details["table"] == "employee_slots"
