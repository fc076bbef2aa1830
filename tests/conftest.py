"""
Shared test fixtures.

MockSupabaseClient keeps real rows in memory and applies filters, so
store behaviour (conditional updates, upserts, pagination) can be tested
without a database.
"""

import sys
from pathlib import Path

# Add project root to Python path
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

import copy
import pytest
from datetime import datetime, timezone
from typing import Any, Callable, Generator, Optional
from uuid import uuid4


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: Any = None, count: Optional[int] = None):
        self.data = data if data is not None else []
        self.count = count


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op == "is":
        if expected in (None, "null"):
            return actual is None
        if expected in (True, "true"):
            return actual is True
        if expected in (False, "false"):
            return actual is False
        return False
    if op == "eq":
        return actual == expected
    if op == "neq":
        return actual != expected
    if actual is None:
        return False
    try:
        if op == "lt":
            return actual < expected
        if op == "lte":
            return actual <= expected
        if op == "gt":
            return actual > expected
        if op == "gte":
            return actual >= expected
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator: {op}")


def _coerce(value: str) -> Any:
    """Postgrest filter strings carry numbers as text."""
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value


class MockSupabaseQuery:
    """Chainable query builder over one in-memory table."""

    def __init__(self, client: "MockSupabaseClient", table_name: str):
        self._client = client
        self._table = table_name
        self._action = "select"
        self._columns = "*"
        self._payload: Any = None
        self._on_conflict = "id"
        self._filters: list[Callable[[dict], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None
        self._count_mode: Optional[str] = None
        self._is_single = False

    # Actions

    def select(self, columns: str = "*", count: Optional[str] = None):
        self._action = "select"
        self._columns = columns
        self._count_mode = count
        return self

    def insert(self, data):
        self._action, self._payload = "insert", data
        return self

    def update(self, data):
        self._action, self._payload = "update", data
        return self

    def upsert(self, data, on_conflict: str = "id", **kwargs):
        self._action, self._payload, self._on_conflict = "upsert", data, on_conflict
        return self

    def delete(self):
        self._action = "delete"
        return self

    # Filters

    def _add(self, column: str, op: str, value: Any):
        self._filters.append(lambda row: _compare(op, row.get(column), value))
        return self

    def eq(self, column, value):
        return self._add(column, "eq", value)

    def neq(self, column, value):
        return self._add(column, "neq", value)

    def lt(self, column, value):
        return self._add(column, "lt", value)

    def gt(self, column, value):
        return self._add(column, "gt", value)

    def is_(self, column, value):
        return self._add(column, "is", value)

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def or_(self, expression: str):
        """Supports 'col.op.value,col.op.value'."""
        clauses = []
        for part in expression.split(","):
            column, op, value = part.split(".", 2)
            clauses.append((column, op, value if op == "is" else _coerce(value)))
        self._filters.append(
            lambda row: any(_compare(op, row.get(col), val) for col, op, val in clauses)
        )
        return self

    # Modifiers

    def order(self, column, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def single(self):
        self._is_single = True
        return self

    # Execution

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> MockSupabaseResponse:
        self._client.calls.append((self._table, self._action))
        if self._client.failures:
            raise self._client.failures.pop(0)

        rows = self._client.rows(self._table)
        now = datetime.now(timezone.utc).isoformat()

        if self._action == "select":
            matched = [r for r in rows if self._matches(r)]
            for column, desc in reversed(self._order):
                matched.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
            count = len(matched) if self._count_mode else None
            if self._range:
                matched = matched[self._range[0]:self._range[1] + 1]
            if self._limit is not None:
                matched = matched[:self._limit]
            if self._columns.strip() != "*":
                wanted = [c.strip() for c in self._columns.split(",")]
                matched = [{c: r.get(c) for c in wanted} for r in matched]
            data = copy.deepcopy(matched)
            if self._is_single:
                return MockSupabaseResponse(data[0] if data else None, count)
            return MockSupabaseResponse(data, count)

        if self._action == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = []
            for item in payload:
                row = {"id": str(uuid4()), "created_at": now, **copy.deepcopy(item)}
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return MockSupabaseResponse(inserted)

        if self._action == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    updated.append(copy.deepcopy(row))
            return MockSupabaseResponse(updated)

        if self._action == "upsert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            written = []
            for item in payload:
                key = item.get(self._on_conflict)
                existing = next((r for r in rows if r.get(self._on_conflict) == key), None)
                if existing is not None:
                    existing.update(copy.deepcopy(item))
                    written.append(copy.deepcopy(existing))
                else:
                    row = {"id": str(uuid4()), "created_at": now, **copy.deepcopy(item)}
                    rows.append(row)
                    written.append(copy.deepcopy(row))
            return MockSupabaseResponse(written)

        if self._action == "delete":
            kept = [r for r in rows if not self._matches(r)]
            removed = [r for r in rows if self._matches(r)]
            rows[:] = kept
            return MockSupabaseResponse(copy.deepcopy(removed))

        raise ValueError(f"Unsupported action: {self._action}")


class MockSupabaseClient:
    """In-memory Supabase client."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self.failures: list[Exception] = []
        self.calls: list[tuple[str, str]] = []

    def set_table_data(self, table_name: str, data: list):
        """Configure rows for a table."""
        self._tables[table_name] = copy.deepcopy(data)

    def rows(self, table_name: str) -> list[dict]:
        """Live row list (tests may inspect it directly)."""
        return self._tables.setdefault(table_name, [])

    def fail_next(self, error: Exception):
        """Make the next execute() raise error."""
        self.failures.append(error)

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("shipments", [
                {"id": "1", "booking_number": "263805268", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def store(mock_supabase):
    """ShipmentStore over the mock client."""
    from services.shipment_store import ShipmentStore

    return ShipmentStore(mock_supabase, page_size=50)


@pytest.fixture
def rule_table():
    from config.workflow_rules import WorkflowRuleTable

    return WorkflowRuleTable.default()


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for reproducible scores."""
    return datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(store) -> Generator:
    """
    FastAPI test client with the store dependency overridden.

    Usage:
        def test_endpoint(test_client, mock_supabase):
            mock_supabase.set_table_data("shipments", [...])
            response = test_client.get("/api/shipments/abc/workflow")
    """
    from fastapi.testclient import TestClient
    from main import app
    from routes.dependencies import get_store

    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
