"""Pytest configuration and fixtures."""

import asyncio
import base64
import copy
import hashlib
import hmac
import json
import os
import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("CASHFREE_APP_ID", "test-app-id")
os.environ.setdefault("CASHFREE_SECRET_KEY", "test-cashfree-secret")
os.environ.setdefault("CASHFREE_ENVIRONMENT", "sandbox")
os.environ.setdefault("CASHFREE_VERIFY_WEBHOOKS", "true")
os.environ.setdefault("RESEND_API_KEY", "re_test_key")
os.environ.setdefault("FRONTEND_URL", "https://tickets.example.com/")
os.environ.setdefault("RATE_LIMIT_GENERAL_REQUESTS", "10000")
os.environ.setdefault("RATE_LIMIT_CHECKOUT_REQUESTS", "1000")

from src.core.gateway import CashfreeClient, GatewayConfig, GatewayEnvironment  # noqa: E402

WEBHOOK_SECRET = os.environ["CASHFREE_SECRET_KEY"]

# Unique constraints enforced by the fake store, per table
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    "events": [("name",)],
    "orders": [("order_id",)],
    "identities": [("email",)],
    "team_compositions": [("order_id", "event_name")],
}


class FakeResponse:
    def __init__(self, data: Any) -> None:
        self.data = data


class FakeQuery:
    """Chainable stand-in for the PostgREST query builder."""

    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table = table
        self.op = "select"
        self.payload: Any = None
        self.on_conflict: str | None = None
        self.filters: list[tuple[str, str, Any]] = []
        self.order_by: tuple[str, bool] | None = None
        self.row_limit: int | None = None
        self.single = False

    def select(self, *columns: str, **kwargs: Any) -> "FakeQuery":
        return self

    def insert(self, payload: Any, **kwargs: Any) -> "FakeQuery":
        self.op, self.payload = "insert", payload
        return self

    def upsert(self, payload: Any, on_conflict: str | None = None, **kwargs: Any) -> "FakeQuery":
        self.op, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, payload: dict[str, Any], **kwargs: Any) -> "FakeQuery":
        self.op, self.payload = "update", payload
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(("eq", column, value))
        return self

    def is_(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(("is", column, value))
        return self

    def order(self, column: str, desc: bool = False, **kwargs: Any) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def limit(self, size: int, **kwargs: Any) -> "FakeQuery":
        self.row_limit = size
        return self

    def maybe_single(self) -> "FakeQuery":
        self.single = True
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        for kind, column, value in self.filters:
            if kind == "eq" and row.get(column) != value:
                return False
            if kind == "is" and value in ("null", None) and row.get(column) is not None:
                return False
        return True

    def execute(self) -> FakeResponse | None:
        failure = self.db.failures.pop((self.table, self.op), None)
        if failure is not None:
            raise failure
        self.db.calls.append((self.table, self.op))

        rows = self.db.tables.setdefault(self.table, [])

        if self.op in ("insert", "upsert"):
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResponse([self.db.write(self.table, dict(row), upsert=self.op == "upsert") for row in payload])

        matched = [row for row in rows if self._matches(row)]

        if self.op == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matched))

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda r: str(r.get(column) or ""), reverse=desc)
        if self.row_limit is not None:
            matched = matched[: self.row_limit]
        matched = copy.deepcopy(matched)

        if self.single:
            return FakeResponse(matched[0]) if matched else None
        return FakeResponse(matched)


class FakeSupabase:
    """In-memory Supabase client with unique keys and generated ids."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.failures: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail_next(self, table: str, op: str, error: Exception | None = None) -> None:
        """Make the next `op` on `table` raise."""
        self.failures[(table, op)] = error or APIError({"message": "database unavailable", "code": "08006"})

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.get(table, [])

    def seed(self, table: str, *rows: dict[str, Any]) -> list[dict[str, Any]]:
        return [self.write(table, dict(row)) for row in rows]

    def write(self, table: str, row: dict[str, Any], upsert: bool = False) -> dict[str, Any]:
        rows = self.tables.setdefault(table, [])
        for key in UNIQUE_KEYS.get(table, []):
            existing = next((r for r in rows if all(r.get(k) == row.get(k) for k in key)), None)
            if existing is None:
                continue
            if upsert:
                existing.update(copy.deepcopy(row))
                return copy.deepcopy(existing)
            raise APIError(
                {
                    "message": f'duplicate key value violates unique constraint "{table}_{"_".join(key)}_key"',
                    "code": "23505",
                    "details": f"Key ({', '.join(key)}) already exists.",
                    "hint": None,
                }
            )
        self._clock += timedelta(seconds=1)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", self._clock.isoformat())
        rows.append(copy.deepcopy(row))
        return copy.deepcopy(row)


class FakeCashfree:
    """Scriptable Cashfree PG backend for httpx.MockTransport."""

    def __init__(self) -> None:
        self.created: list[dict[str, Any]] = []
        self.payments: dict[str, list[dict[str, Any]]] = {}
        self.order_status: dict[str, str] = {}
        self.create_error: tuple[int, str] | None = None
        self.delay_seconds = 0.0
        self.requests: list[httpx.Request] = []

    def pay(self, order_id: str, status: str = "SUCCESS", payment_id: int = 5114910000001) -> None:
        self.payments.setdefault(order_id, []).append(
            {"cf_payment_id": payment_id, "order_id": order_id, "payment_status": status, "payment_group": "upi"}
        )
        if status == "SUCCESS":
            self.order_status[order_id] = "PAID"

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        parts = request.url.path.rstrip("/").split("/")
        if request.method == "POST" and parts[-1] == "orders":
            if self.create_error:
                code, message = self.create_error
                return httpx.Response(code, json={"message": message, "code": "request_failed"})
            body = json.loads(request.content)
            self.created.append(body)
            return httpx.Response(
                200,
                json={
                    "order_id": body["order_id"],
                    "order_amount": body["order_amount"],
                    "order_status": "ACTIVE",
                    "payment_session_id": f"session_{body['order_id']}",
                },
            )
        if request.method == "GET" and parts[-1] == "payments":
            return httpx.Response(200, json=self.payments.get(parts[-2], []))
        if request.method == "GET" and parts[-2] == "orders":
            order_id = parts[-1]
            return httpx.Response(
                200, json={"order_id": order_id, "order_status": self.order_status.get(order_id, "ACTIVE")}
            )
        return httpx.Response(404, json={"message": "not found"})


def sign_webhook(body: bytes, timestamp: str = "1700000000", secret: str = WEBHOOK_SECRET) -> dict[str, str]:
    """Headers for a correctly signed webhook request."""
    digest = hmac.new(secret.encode(), timestamp.encode() + body, hashlib.sha256).digest()
    return {
        "x-webhook-timestamp": timestamp,
        "x-webhook-signature": base64.b64encode(digest).decode(),
        "content-type": "application/json",
    }


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def fake_db() -> Generator[FakeSupabase, None, None]:
    """Patch every service's Supabase client with one in-memory store."""
    db = FakeSupabase()
    targets = [
        "src.core.supabase.get_supabase_client",
        "src.services.catalog_service.get_supabase_client",
        "src.services.order_service.get_supabase_client",
        "src.services.identity_service.get_supabase_client",
        "src.services.registration_service.get_supabase_client",
    ]
    patchers = [patch(target, return_value=db) for target in targets]
    for p in patchers:
        p.start()
    yield db
    for p in reversed(patchers):
        p.stop()


@pytest.fixture
def catalog(fake_db: FakeSupabase) -> list[dict[str, Any]]:
    """A small event catalog."""
    return fake_db.seed(
        "events",
        {"name": "Chess (Boys)", "price": 150, "category": "Sports", "active": True},
        {"name": "Chess (Girls)", "price": 0, "category": "Sports", "active": True},
        {"name": "Basketball (Boys)", "price": 250, "category": "Sports", "active": True},
        {"name": "Box Cricket", "price": 1100, "category": "Sports", "active": True},
        {"name": "Kabaddi", "price": 1100, "category": "Sports", "active": True},
        {"name": "Retired Event", "price": 50, "category": "Sports", "active": False},
    )


@pytest.fixture
def fake_cashfree() -> FakeCashfree:
    return FakeCashfree()


@pytest.fixture
def gateway_client(fake_cashfree: FakeCashfree) -> CashfreeClient:
    """A real CashfreeClient talking to the fake backend."""
    config = GatewayConfig(
        app_id="test-app-id",
        secret_key=WEBHOOK_SECRET,
        environment=GatewayEnvironment.SANDBOX,
        timeout_seconds=1.0,
    )
    return CashfreeClient(config, transport=httpx.MockTransport(fake_cashfree.handler))


@pytest.fixture
def mock_email_send() -> Generator[MagicMock, None, None]:
    """Patch the Resend transport; returns a fake email id."""
    with patch("src.services.email_service.resend.Emails.send", return_value={"id": "email_123"}) as mock_send:
        yield mock_send


@pytest.fixture
def client(
    fake_db: FakeSupabase,
    gateway_client: CashfreeClient,
    mock_email_send: MagicMock,
) -> Generator[TestClient, None, None]:
    """Provide a test client wired to the fake store, gateway and mailer.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.core.rate_limiter import get_rate_limiter
    from src.main import app

    get_rate_limiter().reset()
    with patch("src.services.checkout_service.get_gateway_client", return_value=gateway_client), \
         patch("src.services.reconciliation_service.get_gateway_client", return_value=gateway_client):
        with TestClient(app) as test_client:
            yield test_client


@pytest.fixture
def webhook_headers():
    """Build signed webhook headers for a raw body."""
    return sign_webhook
