"""
Shared test fixtures.

Provides an in-memory Supabase stand-in (tables + storage) whose query
builder applies eq/in_/is_/range/order filters, so services can be tested
against stateful data.
"""

import os
import sys
from pathlib import Path

# Add project directory to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

# Settings are loaded at import time
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from unittest.mock import patch
from datetime import datetime
from typing import Generator, Optional

from utils.date_utils import parse_daterange

# Primary key column per table, auto-assigned on insert
ID_COLUMNS = {
    "supplier": "supplier_id",
    "supplier_product": "supplier_product_id",
    "price_history": "price_id",
    "upload": "upload_id",
}


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


def _ranges_overlap(left: str, right: str) -> bool:
    a_start, a_end = parse_daterange(left)
    b_start, b_end = parse_daterange(right)
    if a_end is not None and b_start is not None and a_end <= b_start:
        return False
    if b_end is not None and a_start is not None and b_end <= a_start:
        return False
    return True


class MockSupabaseQuery:
    """Chainable query builder over one MockSupabaseTable."""

    def __init__(self, table: "MockSupabaseTable", operation: str, payload=None, **options):
        self._table = table
        self._operation = operation
        self._payload = payload
        self._options = options
        self._filters: list[tuple[str, str, object]] = []
        self._order: list[tuple[str, bool]] = []
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None

    # Filters

    def eq(self, column, value):
        self._filters.append(("eq", column, value))
        return self

    def neq(self, column, value):
        self._filters.append(("neq", column, value))
        return self

    def in_(self, column, values):
        self._filters.append(("in", column, list(values)))
        return self

    def is_(self, column, value):
        self._filters.append(("is", column, value))
        return self

    def filter(self, column, operator, value):
        self._filters.append((operator, column, value))
        return self

    # Shaping

    def order(self, column, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matches(self, row: dict) -> bool:
        for op, column, value in self._filters:
            cell = row.get(column)
            if op == "eq" and cell != value:
                return False
            if op == "neq" and cell == value:
                return False
            if op == "in" and cell not in value:
                return False
            if op == "is" and cell is not value:
                return False
            if op == "ov" and not _ranges_overlap(cell or "", value):
                return False
        return True

    def execute(self) -> MockSupabaseResponse:
        self._table.client.calls.append({
            "table": self._table.name,
            "operation": self._operation,
            "filters": list(self._filters),
        })
        if self._table.client.fail_on.get(self._table.name) in (self._operation, "*"):
            raise RuntimeError(f"{self._table.name} {self._operation} unavailable")

        if self._operation == "insert":
            return MockSupabaseResponse([self._table.add(row) for row in self._payload])
        if self._operation == "upsert":
            return MockSupabaseResponse(self._table.merge(self._payload, self._options.get("on_conflict")))

        matched = [row for row in self._table.rows if self._matches(row)]

        if self._operation == "update":
            for row in matched:
                row.update(self._payload)
            return MockSupabaseResponse([dict(r) for r in matched])
        if self._operation == "delete":
            self._table.rows = [r for r in self._table.rows if r not in matched]
            return MockSupabaseResponse(matched)

        for column, desc in reversed(self._order):
            matched.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        total = len(matched)
        if self._range is not None:
            matched = matched[self._range[0]:self._range[1] + 1]
        if self._limit is not None:
            matched = matched[:self._limit]
        count = total if self._options.get("count") else None
        return MockSupabaseResponse([dict(r) for r in matched], count)


class MockSupabaseTable:
    """Stateful in-memory table."""

    def __init__(self, client: "MockSupabaseClient", name: str):
        self.client = client
        self.name = name
        self.rows: list[dict] = []
        self.id_column = ID_COLUMNS.get(name, "id")
        self._next_id = 1

    def add(self, row: dict) -> dict:
        stored = dict(row)
        if stored.get(self.id_column) is None:
            stored[self.id_column] = self._next_id
        self._next_id = max(self._next_id, stored[self.id_column]) + 1
        if self.name == "upload":
            stored.setdefault("uploaded_at", datetime.utcnow().isoformat() + "Z")
        self.rows.append(stored)
        return dict(stored)

    def merge(self, payload: list, on_conflict: Optional[str]) -> list[dict]:
        keys = [k.strip() for k in (on_conflict or self.id_column).split(",")]
        result = []
        for row in payload:
            existing = next(
                (r for r in self.rows if all(r.get(k) == row.get(k) for k in keys)),
                None
            )
            if existing is None:
                result.append(self.add(row))
            else:
                existing.update(row)
                result.append(dict(existing))
        return result

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self, "select", **kwargs)

    def insert(self, data):
        rows = [data] if isinstance(data, dict) else list(data)
        return MockSupabaseQuery(self, "insert", rows)

    def upsert(self, data, on_conflict: Optional[str] = None, **kwargs):
        rows = [data] if isinstance(data, dict) else list(data)
        return MockSupabaseQuery(self, "upsert", rows, on_conflict=on_conflict)

    def update(self, data):
        return MockSupabaseQuery(self, "update", dict(data))

    def delete(self):
        return MockSupabaseQuery(self, "delete")


class MockStorageBucket:
    """In-memory storage bucket."""

    def __init__(self, storage: "MockStorage", name: str):
        self.storage = storage
        self.name = name

    def upload(self, path, file, file_options=None):
        if isinstance(file, (bytes, bytearray)):
            data = file
        elif isinstance(file, (str, os.PathLike)):
            with open(file, "rb") as f:
                data = f.read()
        else:
            data = file.read()
        self.storage.objects[(self.name, path)] = bytes(data)
        self.storage.uploads.append((self.name, path, file_options or {}))
        return {"Key": f"{self.name}/{path}"}

    def download(self, path):
        try:
            return self.storage.objects[(self.name, path)]
        except KeyError:
            raise RuntimeError(f"Object not found: {path}")


class MockStorage:
    """Mock Supabase storage client."""

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.uploads: list[tuple[str, str, dict]] = []

    def from_(self, bucket: str) -> MockStorageBucket:
        return MockStorageBucket(self, bucket)


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables: dict[str, MockSupabaseTable] = {}
        self.storage = MockStorage()
        self.calls: list[dict] = []
        self.fail_on: dict[str, str] = {}

    def set_table_data(self, table_name: str, data: list):
        """Replace the rows of a table."""
        table = self.table(table_name)
        table.rows = []
        table._next_id = 1
        for row in data:
            table.add(row)

    def table(self, name: str) -> MockSupabaseTable:
        """Get (or create) a mock table."""
        if name not in self._tables:
            self._tables[name] = MockSupabaseTable(self, name)
        return self._tables[name]

    def rows(self, name: str) -> list[dict]:
        """Current rows of a table."""
        return self.table(name).rows

    def calls_to(self, table_name: str, operation: Optional[str] = None) -> list[dict]:
        """Executed queries against a table."""
        return [
            c for c in self.calls
            if c["table"] == table_name and (operation is None or c["operation"] == operation)
        ]


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("supplier", [
                {"supplier_id": 1, "name": "Acme", "is_active": True}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase, monkeypatch) -> Generator:
    """
    Patch the database client with mock and reset service singletons.

    Usage:
        def test_something(mock_db):
            mock_db.set_table_data("supplier", [...])
            # Any service created now talks to the mock
    """
    import services.catalog_service
    import services.price_service
    import services.upload_service
    import services.chunk_processor_service
    import services.export_service

    monkeypatch.setattr(services.catalog_service, "_catalog_service", None)
    monkeypatch.setattr(services.price_service, "_price_service", None)
    monkeypatch.setattr(services.upload_service, "_upload_service", None)
    monkeypatch.setattr(services.chunk_processor_service, "_chunk_processor", None)
    monkeypatch.setattr(services.export_service, "_export_service", None)

    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.catalog_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.price_service.get_supabase_client", return_value=mock_supabase):
                with patch("services.upload_service.get_supabase_client", return_value=mock_supabase):
                    yield mock_supabase


@pytest.fixture
def sample_supplier(mock_db) -> dict:
    """One active supplier in the store."""
    mock_db.set_table_data("supplier", [
        {"supplier_id": 1, "name": "Acme Electrical", "is_active": True}
    ])
    return mock_db.rows("supplier")[0]


@pytest.fixture
def sample_price_list_csv() -> bytes:
    """Three-row supplier price list."""
    return (
        "Item Code,Mfr Part,Desc,Cost,Brand\n"
        "SKU-1,AB 100,Cable tie 100mm,$1.50,Hellerman\n"
        'SKU-2,CD&200,"Conduit, 20mm",12.00,Clipsal\n'
        "SKU-3,EF-300,Junction box,\"1,204.75\",\n"
    ).encode("utf-8")


@pytest.fixture
def sample_mapping() -> dict:
    """Mapping for sample_price_list_csv."""
    return {
        "supplier_sku": "Item Code",
        "mpn": "Mfr Part",
        "description": "Desc",
        "price_ex_gst": "Cost",
        "brand": "Brand",
    }


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_db):
            mock_db.set_table_data("supplier", [...])
            response = test_client_with_mock_db.get("/api/suppliers")
    """
    from fastapi.testclient import TestClient
    from main import app

    yield TestClient(app)
