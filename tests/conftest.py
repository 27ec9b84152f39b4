"""
Shared test fixtures.

The mock Supabase client keeps rows per table so insert/upsert/delete
behave like the real query builder (delete returns the removed rows).
"""

import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import threading
import pytest
from unittest.mock import MagicMock, patch
from typing import Generator, Optional

from services.staging_store import InMemoryStagingStore
from services.mapping_service import MappingService
from services.import_coordinator import ImportCoordinator


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, table: "MockSupabaseTable", action: str, payload=None, **options):
        self._table = table
        self._action = action
        self._payload = payload
        self._options = options
        self._filters = []
        self._limit = None

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def lt(self, column, value):
        self._filters.append(lambda row: row.get(column) is not None and row.get(column) < value)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> MockSupabaseResponse:
        table = self._table
        table.calls.append(self._action)

        if self._action in table.errors:
            raise table.errors[self._action]

        with table.lock:
            if self._action == "select":
                matched = [dict(r) for r in table.rows if self._matches(r)]
                total = len(matched)
                if self._limit is not None:
                    matched = matched[:self._limit]
                return MockSupabaseResponse(data=matched, count=total)

            if self._action == "insert":
                records = self._payload if isinstance(self._payload, list) else [self._payload]
                inserted = []
                for record in records:
                    row = dict(record)
                    row.setdefault("id", f"row-{len(table.rows) + 1}")
                    table.rows.append(row)
                    inserted.append(dict(row))
                if table.ack_limit is not None:
                    inserted = inserted[:table.ack_limit]
                return MockSupabaseResponse(data=inserted)

            if self._action == "upsert":
                record = dict(self._payload)
                key = self._options.get("on_conflict", "id")
                table.rows = [r for r in table.rows if r.get(key) != record.get(key)]
                table.rows.append(record)
                return MockSupabaseResponse(data=[dict(record)])

            if self._action == "delete":
                removed = [r for r in table.rows if self._matches(r)]
                table.rows = [r for r in table.rows if not self._matches(r)]
                return MockSupabaseResponse(data=removed)

        raise AssertionError(f"Unsupported mock action: {self._action}")


class MockSupabaseTable:
    """Rows of one mock table plus injected failures."""

    def __init__(self):
        self.rows: list[dict] = []
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.ack_limit: Optional[int] = None
        self.lock = threading.Lock()

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self, "select")

    def insert(self, data):
        return MockSupabaseQuery(self, "insert", data)

    def upsert(self, data, **kwargs):
        return MockSupabaseQuery(self, "upsert", data, **kwargs)

    def delete(self):
        return MockSupabaseQuery(self, "delete")


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables: dict[str, MockSupabaseTable] = {}

    def table(self, name: str) -> MockSupabaseTable:
        if name not in self._tables:
            self._tables[name] = MockSupabaseTable()
        return self._tables[name]

    def set_table_data(self, table_name: str, data: list):
        """Configure rows for a table."""
        self.table(table_name).rows = [dict(r) for r in data]

    def fail_on(self, table_name: str, action: str, error: Exception):
        """Make every `action` on the table raise `error`."""
        self.table(table_name).errors[action] = error

    def rows(self, table_name: str) -> list[dict]:
        return self.table(table_name).rows


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("transactions", [...])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            # Any code using get_supabase_client() gets the mock
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.transaction_store.get_supabase_client", return_value=mock_supabase):
            with patch("services.staging_store.get_admin_client", return_value=None):
                with patch("services.staging_store.get_supabase_client", return_value=mock_supabase):
                    yield mock_supabase


@pytest.fixture
def memory_store() -> InMemoryStagingStore:
    return InMemoryStagingStore()


@pytest.fixture
def mock_dispatcher() -> MagicMock:
    """Extraction dispatch that always succeeds."""
    return MagicMock(return_value=None)


@pytest.fixture
def mock_transaction_store() -> MagicMock:
    """Transaction store whose bulk insert reports every row inserted."""
    store = MagicMock()
    store.bulk_insert.side_effect = lambda rows: len(rows)
    return store


@pytest.fixture
def coordinator(memory_store, mock_dispatcher, mock_transaction_store) -> ImportCoordinator:
    """
    Coordinator with injected collaborators and no background thread.

    Tests drive polling by calling run_polling() directly.
    """
    return ImportCoordinator(
        staging_store=memory_store,
        transaction_store=mock_transaction_store,
        mapping_service=MappingService(),
        dispatcher=mock_dispatcher,
        poll_interval=0,
        max_attempts=30,
        run_in_background=False,
    )


@pytest.fixture
def sample_csv() -> bytes:
    return (
        "Date,Description,Amt,Category\n"
        "2024-01-05,Coffee,$4.50,Food\n"
        "05/01/2024,Refund,\"-1,200.00\",\n"
    ).encode("utf-8")


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(coordinator, memory_store, mock_transaction_store):
    """
    Create FastAPI test client wired to the test collaborators.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/pending-import?key=abc")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("routes.imports.get_import_coordinator", return_value=coordinator):
        with patch("routes.imports.get_transaction_store", return_value=mock_transaction_store):
            with patch("routes.staging.get_staging_store", return_value=memory_store):
                yield TestClient(app)
