"""Shared pytest fixtures for test suite."""

import os

# Settings are read at import time by the rate limiter and Celery app
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import copy  # noqa: E402
import itertools  # noqa: E402
import time  # noqa: E402
from datetime import date, datetime, timezone  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import Any, Optional  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from fastapi import Request  # noqa: E402
from jose import jwt  # noqa: E402
from postgrest.exceptions import APIError  # noqa: E402

# =============================================================================
# In-memory Supabase stand-in
# =============================================================================


def _comparable(value: Any) -> Any:
    """Timestamps compare as aware datetimes, everything else as-is."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and len(value) >= 10 and value[4:5] == "-" and value[7:8] == "-":
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


class FakeQuery:
    """Chainable query over one in-memory table, mirroring the postgrest builder."""

    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self._db = db
        self._table = table
        self._action = "select"
        self._payload: Any = None
        self._count: Optional[str] = None
        self._filters: list = []
        self._order: list[tuple[str, bool]] = []
        self._limit: Optional[int] = None
        self._range: Optional[tuple[int, int]] = None

    # --- actions ---

    def select(self, columns: str = "*", count: Optional[str] = None) -> "FakeQuery":
        self._action = "select"
        self._count = count
        return self

    def insert(self, payload) -> "FakeQuery":
        self._action = "insert"
        self._payload = payload
        return self

    def update(self, values: dict) -> "FakeQuery":
        self._action = "update"
        self._payload = values
        return self

    def delete(self) -> "FakeQuery":
        self._action = "delete"
        return self

    # --- filters ---

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: _comparable(row.get(column)) == _comparable(value))
        return self

    def neq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: _comparable(row.get(column)) != _comparable(value))
        return self

    def in_(self, column: str, values: list) -> "FakeQuery":
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def is_(self, column: str, value: str) -> "FakeQuery":
        if value == "null":
            self._filters.append(lambda row: row.get(column) is None)
        else:
            self._filters.append(lambda row: str(row.get(column)).lower() == value)
        return self

    def _compare(self, column: str, value: Any, op) -> "FakeQuery":
        def check(row: dict) -> bool:
            current = row.get(column)
            if current is None:
                return False
            return op(_comparable(current), _comparable(value))

        self._filters.append(check)
        return self

    def gt(self, column: str, value: Any) -> "FakeQuery":
        return self._compare(column, value, lambda a, b: a > b)

    def gte(self, column: str, value: Any) -> "FakeQuery":
        return self._compare(column, value, lambda a, b: a >= b)

    def lt(self, column: str, value: Any) -> "FakeQuery":
        return self._compare(column, value, lambda a, b: a < b)

    def lte(self, column: str, value: Any) -> "FakeQuery":
        return self._compare(column, value, lambda a, b: a <= b)

    # --- modifiers ---

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order.append((column, desc))
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    # --- execution ---

    def _matching(self) -> list[dict]:
        rows = self._db.tables.setdefault(self._table, [])
        return [row for row in rows if all(check(row) for check in self._filters)]

    def execute(self) -> SimpleNamespace:
        self._db.calls.append((self._table, self._action))
        error = self._db.failures.get((self._table, self._action))
        if error is not None:
            raise error

        if self._action == "insert":
            return SimpleNamespace(data=self._db._insert(self._table, self._payload), count=None)

        matched = self._matching()
        if self._action == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
            return SimpleNamespace(data=copy.deepcopy(matched), count=None)

        if self._action == "delete":
            remaining = [row for row in self._db.tables[self._table] if row not in matched]
            self._db.tables[self._table] = remaining
            return SimpleNamespace(data=copy.deepcopy(matched), count=None)

        for column, desc in reversed(self._order):
            matched.sort(
                key=lambda row: (row.get(column) is None, _comparable(row.get(column))),
                reverse=desc,
            )
        total = len(matched)
        if self._range is not None:
            matched = matched[self._range[0] : self._range[1] + 1]
        if self._limit is not None:
            matched = matched[: self._limit]
        return SimpleNamespace(
            data=copy.deepcopy(matched), count=total if self._count else None
        )


class FakeSupabase:
    """
    Dict-backed tables with the subset of the Supabase client the services use.

    `unique` maps table -> column tuples that raise a 23505 APIError on
    duplicate insert. `defaults` fills columns the database would default.
    `failures` maps (table, action) -> exception raised on execute.
    """

    def __init__(
        self,
        unique: Optional[dict[str, list[tuple[str, ...]]]] = None,
        defaults: Optional[dict[str, dict[str, Any]]] = None,
    ) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.unique = unique or {}
        self.defaults = defaults or {}
        self.failures: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def seed(self, table: str, *rows: dict) -> list[dict]:
        return self._insert(table, list(rows))

    def rows(self, table: str, **filters: Any) -> list[dict]:
        return [
            row
            for row in self.tables.get(table, [])
            if all(row.get(key) == value for key, value in filters.items())
        ]

    def _insert(self, table: str, payload) -> list[dict]:
        rows = payload if isinstance(payload, list) else [payload]
        stored = self.tables.setdefault(table, [])
        inserted = []
        for row in rows:
            new_row = {**copy.deepcopy(self.defaults.get(table, {})), **copy.deepcopy(row)}
            new_row.setdefault("id", f"{table}-{next(self._ids)}")
            new_row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            for columns in self.unique.get(table, []):
                key = tuple(new_row.get(column) for column in columns)
                if any(tuple(existing.get(c) for c in columns) == key for existing in stored):
                    raise APIError(
                        {
                            "code": "23505",
                            "message": f"duplicate key value violates unique constraint on {table}",
                            "details": None,
                            "hint": None,
                        }
                    )
            stored.append(new_row)
            inserted.append(copy.deepcopy(new_row))
        return inserted


REVIEW_DEFAULTS = {
    "lease_id": None,
    "reviewee_id": None,
    "target_tenant_group_id": None,
    "rating": 0,
    "comment": None,
    "redacted_text": None,
    "violates_policy": False,
    "publish_after": None,
    "submitted_at": None,
    "published_at": None,
    "is_anonymous": False,
    "is_double_blind": True,
    "is_system_generated": False,
    "is_early_termination": False,
    "early_termination_reason": None,
    "exclude_from_aggregates": False,
    "redacted_at": None,
    "redacted_by": None,
}


@pytest.fixture
def fake_db() -> FakeSupabase:
    """In-memory Supabase with the review uniqueness constraints."""
    return FakeSupabase(
        unique={
            "reviews": [
                ("lease_id", "reviewee_id", "target_tenant_group_id", "reviewer_id", "stage")
            ],
            "review_replies": [("review_id",)],
            "review_reports": [("review_id", "reporter_id")],
        },
        defaults={
            "reviews": REVIEW_DEFAULTS,
            "users": {"role": "TENANT", "is_suspended": False},
            "user_badges": {"is_active": True},
        },
    )


# =============================================================================
# Lease Fixtures
# =============================================================================


@pytest.fixture
def lease_parties(fake_db):
    """
    One ended lease: landlord-1 rents to tenant group group-1
    (tenant-1 primary, tenant-2 secondary).
    """
    fake_db.seed(
        "users",
        {"id": "landlord-1", "role": "LANDLORD"},
        {"id": "tenant-1", "role": "TENANT"},
        {"id": "tenant-2", "role": "TENANT"},
        {"id": "admin-1", "role": "ADMIN"},
        {"id": "outsider-1", "role": "TENANT"},
    )
    fake_db.seed(
        "tenant_group_members",
        {"tenant_group_id": "group-1", "user_id": "tenant-2", "is_primary": False},
        {"tenant_group_id": "group-1", "user_id": "tenant-1", "is_primary": True},
    )
    fake_db.seed("tenant_groups", {"id": "group-1"})
    fake_db.seed(
        "leases",
        {
            "id": "lease-1",
            "status": "ENDED",
            "start_date": "2025-01-01",
            "end_date": "2026-01-01",
            "landlord_id": "landlord-1",
            "tenant_group_id": "group-1",
        },
    )
    return SimpleNamespace(
        lease_id="lease-1",
        landlord_id="landlord-1",
        group_id="group-1",
        tenant_id="tenant-1",
        second_tenant_id="tenant-2",
        admin_id="admin-1",
        outsider_id="outsider-1",
    )


# =============================================================================
# JWT Fixtures
# =============================================================================


@pytest.fixture
def jwt_secret() -> str:
    return os.environ["JWT_SECRET"]


@pytest.fixture
def valid_jwt_claims():
    """Standard valid JWT claims issued by the platform auth service."""
    return {
        "sub": "user-uuid-12345",
        "email": "testuser@example.com",
        "role": "TENANT",
        "iat": int(time.time()),
        "exp": int(time.time()) + 3600,  # 1 hour from now
    }


@pytest.fixture
def valid_jwt_token(valid_jwt_claims, jwt_secret):
    """Generate a valid, signed HS256 JWT token."""
    return jwt.encode(valid_jwt_claims, jwt_secret, algorithm="HS256")


@pytest.fixture
def expired_jwt_token(valid_jwt_claims, jwt_secret):
    """Generate an expired JWT token."""
    claims = valid_jwt_claims.copy()
    claims["exp"] = int(time.time()) - 3600
    claims["iat"] = int(time.time()) - 7200
    return jwt.encode(claims, jwt_secret, algorithm="HS256")


# =============================================================================
# Mock Request Fixtures
# =============================================================================


@pytest.fixture
def mock_request():
    """Create a mock FastAPI Request object."""
    request = MagicMock(spec=Request)
    request.state = MagicMock()
    request.headers = {}
    return request


@pytest.fixture
def mock_request_authenticated(mock_request):
    """Mock request with authenticated user in state (post-middleware)."""
    from reputation.core.auth import AuthOptionalUser

    mock_request.state.user = AuthOptionalUser(
        user_id="user-uuid-12345",
        email="testuser@example.com",
        role="TENANT",
        is_authenticated=True,
    )
    mock_request.state.token_error = None
    return mock_request


@pytest.fixture
def mock_request_unauthenticated(mock_request):
    """Mock request with unauthenticated user in state."""
    from reputation.core.auth import AuthOptionalUser

    mock_request.state.user = AuthOptionalUser(is_authenticated=False)
    mock_request.state.token_error = None
    return mock_request


@pytest.fixture
def mock_request_with_token_error(mock_request):
    """Mock request with a token error in state."""
    from reputation.core.auth import AuthOptionalUser

    mock_request.state.user = AuthOptionalUser(is_authenticated=False)
    mock_request.state.token_error = "Token expired"
    return mock_request


# =============================================================================
# Mock Supabase Client
# =============================================================================


@pytest.fixture
def mock_supabase():
    """Create a mock Supabase client for database operations."""
    mock = MagicMock()
    mock.table.return_value = mock
    mock.select.return_value = mock
    mock.eq.return_value = mock
    mock.insert.return_value = mock
    mock.update.return_value = mock
    mock.execute.return_value = MagicMock(data=None)
    return mock


# =============================================================================
# Settings Cache Reset Fixture
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Clear cached settings so env overrides in a test never leak."""
    from reputation.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
