"""
Shared test fixtures.

The Supabase double keeps rows per table and honours the filters and
upsert options the import uses, so tests can seed an issuing, run an
import and assert on what ended up stored.
"""

import os
import re
import sys
from pathlib import Path

# Add project directory to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

# Settings are validated at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import pytest
from unittest.mock import patch
from datetime import datetime, timezone
from typing import Generator, Optional
from uuid import uuid4

from tests.factories import IssuingFactory, GiftSlotFactory


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


def parse_or_filters(filters: str) -> list[tuple[str, str, str]]:
    """Split a PostgREST `or` string into (column, operator, value), unquoting values."""
    conditions = []
    i = 0
    while i < len(filters):
        column_end = filters.index(".", i)
        operator_end = filters.index(".", column_end + 1)
        column = filters[i:column_end]
        operator = filters[column_end + 1:operator_end]
        i = operator_end + 1

        if filters[i] == '"':
            i += 1
            chars = []
            while filters[i] != '"':
                if filters[i] == "\\":
                    i += 1
                chars.append(filters[i])
                i += 1
            value = "".join(chars)
            i += 1
        else:
            end = filters.find(",", i)
            end = len(filters) if end == -1 else end
            value = filters[i:end]
            i = end

        conditions.append((column, operator, value))
        i += 1  # comma
    return conditions


def like_to_regex(pattern: str) -> re.Pattern:
    """Case-insensitive regex for a LIKE pattern (PostgREST also reads * as %)."""
    parts = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch in "%*":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
        i += 1
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


class MockSupabaseQuery:
    """
    Chainable query against one MockSupabaseClient table.

    Supports select / eq / in_ / or_ (ilike) / order / limit and
    upsert(on_conflict=..., ignore_duplicates=...).
    """

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._operation = "select"
        self._filters: list = []
        self._order: Optional[tuple[str, bool]] = None
        self._limit: Optional[int] = None
        self._payload: list = []
        self._on_conflict: Optional[str] = None
        self._ignore_duplicates = False

    def select(self, *args, **kwargs):
        self._operation = "select"
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def or_(self, filters: str, **kwargs):
        """Only `column.ilike.value` conditions, as the employee lookup sends them."""
        conditions = []
        for column, operator, value in parse_or_filters(filters):
            assert operator == "ilike", f"unsupported or_ operator: {operator}"
            conditions.append((column, like_to_regex(value)))
        self._filters.append(lambda row: any(
            pattern.fullmatch(str(row.get(column, ""))) for column, pattern in conditions
        ))
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def upsert(self, data, on_conflict: Optional[str] = None, ignore_duplicates: bool = False, **kwargs):
        self._operation = "upsert"
        self._payload = [data] if isinstance(data, dict) else list(data)
        self._on_conflict = on_conflict
        self._ignore_duplicates = ignore_duplicates
        return self

    def execute(self) -> MockSupabaseResponse:
        self._client.calls.append({
            "table": self._table,
            "operation": self._operation,
            "size": len(self._payload),
        })
        self._client.raise_scheduled_failure(self._table, self._operation)

        if self._operation == "upsert":
            return MockSupabaseResponse(data=self._execute_upsert())

        rows = [r for r in self._client.rows(self._table) if all(f(r) for f in self._filters)]
        if self._order:
            column, desc = self._order
            rows.sort(key=lambda r: r.get(column) or "", reverse=desc)
        if self._limit is not None:
            rows = rows[:self._limit]
        return MockSupabaseResponse(data=[dict(r) for r in rows])

    def _execute_upsert(self) -> list:
        stored = self._client.rows(self._table)
        conflict_columns = self._on_conflict.split(",") if self._on_conflict else ["id"]
        returned = []

        for item in self._payload:
            existing = next(
                (r for r in stored if all(r.get(c) == item.get(c) for c in conflict_columns)),
                None,
            )
            if existing is not None:
                if not self._ignore_duplicates:
                    existing.update(item)
                    returned.append(dict(existing))
                continue
            row = {
                "id": str(uuid4()),
                "created_at": datetime.now(timezone.utc).isoformat(),
                **item,
            }
            stored.append(row)
            returned.append(dict(row))

        return returned


class MockSupabaseClient:
    """In-memory Supabase client."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._failures: dict[tuple[str, str], list[Exception]] = {}
        self.calls: list[dict] = []

    def set_table_data(self, table_name: str, data: list):
        """Seed a table."""
        self._tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        return self._tables.setdefault(table_name, [])

    def fail_next(
        self,
        table_name: str,
        operation: str,
        error: Exception,
        times: int = 1,
        after: int = 0,
    ):
        """Let `after` calls of `operation` on `table_name` through, then raise `error` `times` times."""
        self._failures.setdefault((table_name, operation), []).extend([None] * after + [error] * times)

    def raise_scheduled_failure(self, table_name: str, operation: str):
        pending = self._failures.get((table_name, operation))
        if pending:
            error = pending.pop(0)
            if error is not None:
                raise error

    def count_calls(self, table_name: str, operation: str) -> int:
        return sum(1 for c in self.calls if c["table"] == table_name and c["operation"] == operation)

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create an empty in-memory Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("employees", [...])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with the mock and reset service singletons.

    Usage:
        def test_something(mock_db):
            mock_db.set_table_data("issuings", [...])
            # Now any code using get_supabase_client() gets the mock
    """
    import services.employee_service as employee_service
    import services.import_service as import_service

    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.employee_service.get_supabase_client", return_value=mock_supabase):
            employee_service._employee_service = None
            import_service._import_service = None
            yield mock_supabase
            employee_service._employee_service = None
            import_service._import_service = None


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """No backoff sleeps between retried sink requests."""
    from config import settings
    monkeypatch.setattr(settings, "sink_retry_max_wait_seconds", 0.0)


@pytest.fixture
def issuing() -> dict:
    """The issuing imports run against."""
    return IssuingFactory.create(id="issuing-1", company_id="company-1", name="Year End 2025")


@pytest.fixture
def gift_slots(issuing) -> list:
    """Lamp, Powerbank and Hamper slots, in creation order."""
    return [
        GiftSlotFactory.create(id="slot-lamp", name="Lamp", issuing_id=issuing["id"], position=1),
        GiftSlotFactory.create(id="slot-powerbank", name="Powerbank", issuing_id=issuing["id"], position=2),
        GiftSlotFactory.create(id="slot-hamper", name="Hamper", issuing_id=issuing["id"], position=3),
    ]


@pytest.fixture
def seeded_db(mock_db, issuing, gift_slots) -> MockSupabaseClient:
    """Mock database holding one issuing with three gift slots."""
    mock_db.set_table_data("companies", [{"id": issuing["company_id"], "name": "Acme Mining"}])
    mock_db.set_table_data("issuings", [issuing])
    mock_db.set_table_data("gift_slots", gift_slots)
    mock_db.set_table_data("employees", [])
    mock_db.set_table_data("employee_slots", [])
    return mock_db


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(seeded_db):
    """
    FastAPI test client backed by the seeded mock database.

    Usage:
        def test_endpoint(test_client_with_mock_db):
            response = test_client_with_mock_db.get("/api/issuings/issuing-1/slots")
    """
    from fastapi.testclient import TestClient
    from main import app

    yield TestClient(app)

