"""Shared fixtures for the crosspost test suite."""

import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from cryptography.fernet import Fernet

from crosspost.config import EmailSettings, SchedulingPolicy, Settings, reset_settings
from crosspost.crypto import TokenCipher
from crosspost.database import SupabaseDB
from crosspost.logging import event_logger, init_logger


# ---------------------------------------------------------------------------
# Ensure we don't hit real services during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear secrets and policy overrides so tests never hit real services."""
    keys = [
        "SUPABASE_URL",
        "SUPABASE_SERVICE_KEY",
        "TOKEN_ENCRYPTION_KEY",
        "SMTP_HOST",
        "SMTP_PORT",
        "SMTP_USER",
        "SMTP_PASSWORD",
        "SMTP_FROM",
        "ALERT_EMAIL_TO",
        "BACKEND_BASE_URL",
        "APP_BASE_URL",
        "LOG_LEVEL",
        "MAX_PUBLISH_RETRIES",
        "RETRY_BACKOFF_SECONDS",
        "TOKEN_REFRESH_HORIZON_MINUTES",
        "SCHEDULE_MIN_LEAD_SECONDS",
        "OAUTH_STATE_TTL_MINUTES",
        "POLL_INTERVAL_SECONDS",
        "PUBLISH_TIMEOUT_SECONDS",
    ]
    for platform in ("LINKEDIN", "YOUTUBE_DRAFT", "FACEBOOK_PAGE", "INSTAGRAM_BUSINESS"):
        keys += [f"OAUTH_{platform}_CLIENT_ID", f"OAUTH_{platform}_CLIENT_SECRET"]
    for key in keys:
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def event_log(tmp_path):
    """A fresh structured event logger writing under ``tmp_path``."""
    logger = init_logger(log_dir=str(tmp_path / "logs"))
    yield logger
    event_logger._logger = None


# ---------------------------------------------------------------------------
# Common datetime fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def sample_utc_now():
    """A fixed UTC datetime for deterministic tests."""
    return datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# In-memory Supabase
# ---------------------------------------------------------------------------
def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


class FakeResult:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data
        self.count = len(data)


class FakeQuery:
    """Query builder mirroring the postgrest chain used by ``SupabaseDB``.

    ``execute()`` applies the whole statement without yielding to the
    event loop, so each statement is atomic under asyncio like a single
    SQL statement is in Postgres.
    """

    def __init__(self, client: "FakeSupabase", table: str):
        self._client = client
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._on_conflict: Optional[str] = None
        self._filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None
        self._columns: Optional[List[str]] = None

    # statements
    def select(self, columns: str = "*") -> "FakeQuery":
        self._op = "select"
        if columns.strip() != "*":
            self._columns = [c.strip() for c in columns.split(",")]
        return self

    def insert(self, rows: Any) -> "FakeQuery":
        self._op, self._payload = "insert", rows
        return self

    def upsert(self, row: Any, on_conflict: Optional[str] = None) -> "FakeQuery":
        self._op, self._payload, self._on_conflict = "upsert", row, on_conflict
        return self

    def update(self, fields: Dict[str, Any]) -> "FakeQuery":
        self._op, self._payload = "update", fields
        return self

    def delete(self) -> "FakeQuery":
        self._op = "delete"
        return self

    # filters
    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda r: _comparable(r.get(column)) == _comparable(value))
        return self

    def lte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(
            lambda r: r.get(column) is not None and _comparable(r[column]) <= _comparable(value)
        )
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(
            lambda r: r.get(column) is not None and _comparable(r[column]) >= _comparable(value)
        )
        return self

    def is_(self, column: str, value: str) -> "FakeQuery":
        assert value == "null"
        self._filters.append(lambda r: r.get(column) is None)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = (column, desc)
        return self

    def limit(self, n: int) -> "FakeQuery":
        self._limit = n
        return self

    async def execute(self) -> FakeResult:
        self._client.statements.append((self._table, self._op))
        if self._client.fail_tables.get(self._table) == self._op:
            raise RuntimeError(f"simulated {self._op} failure on {self._table}")

        rows = self._client.tables.setdefault(self._table, [])

        if self._op == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = [self._client.with_defaults(dict(row)) for row in payload]
            rows.extend(inserted)
            return FakeResult(copy.deepcopy(inserted))

        if self._op == "upsert":
            keys = (self._on_conflict or "id").split(",")
            existing = next(
                (r for r in rows if all(r.get(k) == self._payload.get(k) for k in keys)), None
            )
            if existing is not None:
                existing.update(self._payload)
                return FakeResult([copy.deepcopy(existing)])
            row = self._client.with_defaults(dict(self._payload))
            rows.append(row)
            return FakeResult([copy.deepcopy(row)])

        matched = [r for r in rows if all(f(r) for f in self._filters)]

        if self._op == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
            return FakeResult(copy.deepcopy(matched))

        if self._op == "delete":
            for row in matched:
                rows.remove(row)
            return FakeResult(copy.deepcopy(matched))

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: _comparable(r.get(column)) or "", reverse=desc)
        if self._limit is not None:
            matched = matched[: self._limit]
        if self._columns:
            matched = [{c: r.get(c) for c in self._columns} for r in matched]
        return FakeResult(copy.deepcopy(matched))


class FakeBucket:
    def __init__(self, client: "FakeSupabase", bucket: str):
        self._client = client
        self._bucket = bucket

    async def create_signed_url(self, path: str, expires_in: int) -> Dict[str, str]:
        self._client.signed_urls.append((self._bucket, path, expires_in))
        return {"signedURL": f"https://storage.test/{self._bucket}/{path}?token=signed"}


class FakeStorage:
    def __init__(self, client: "FakeSupabase"):
        self._client = client

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self._client, bucket)


class FakeSupabase:
    """In-memory stand-in for the Supabase async client."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.statements: List[tuple] = []
        self.fail_tables: Dict[str, str] = {}
        self.signed_urls: List[tuple] = []
        self.storage = FakeStorage(self)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def with_defaults(self, row: Dict[str, Any]) -> Dict[str, Any]:
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return row

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.rows(table) if r.get("id") == row_id), None)


@pytest.fixture
def fake_client():
    return FakeSupabase()


@pytest.fixture
def db(fake_client):
    return SupabaseDB(fake_client)


# ---------------------------------------------------------------------------
# Crypto / settings
# ---------------------------------------------------------------------------
@pytest.fixture
def fernet_key():
    return Fernet.generate_key().decode()


@pytest.fixture
def cipher(fernet_key):
    return TokenCipher(fernet_key)


@pytest.fixture
def policy():
    return SchedulingPolicy()


@pytest.fixture
def settings(policy):
    return Settings(policy=policy, email=EmailSettings())


# ---------------------------------------------------------------------------
# Row seeding helpers
# ---------------------------------------------------------------------------
@pytest.fixture
def seed_content(fake_client):
    def _seed(user_id: str = "user-1", content_id: str = "content-1", storage_path: str = "user-1/video.mp4"):
        row = {"id": content_id, "user_id": user_id, "storage_path": storage_path}
        fake_client.tables.setdefault("contents", []).append(row)
        return row

    return _seed


@pytest.fixture
def seed_account(fake_client, cipher):
    def _seed(
        user_id: str = "user-1",
        platform: str = "linkedin",
        access_token: str = "access-token",
        refresh_token: Optional[str] = "refresh-token",
        expires_in: Optional[timedelta] = timedelta(hours=2),
        external_account_id: str = "urn:li:person:abc",
        disabled: bool = False,
    ) -> Dict[str, Any]:
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "platform": platform,
            "external_account_id": external_account_id,
            "access_token_encrypted": cipher.encrypt(access_token),
            "refresh_token_encrypted": cipher.encrypt(refresh_token) if refresh_token else None,
            "expires_at": (
                (datetime.now(timezone.utc) + expires_in).isoformat() if expires_in is not None else None
            ),
            "disabled": disabled,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        fake_client.tables.setdefault("social_accounts", []).append(row)
        return row

    return _seed


@pytest.fixture
def seed_schedule(fake_client):
    def _seed(
        user_id: str = "user-1",
        platform: str = "linkedin",
        platform_text: Any = "Sharing what our team shipped this week.",
        scheduled_time: Optional[datetime] = None,
        status: str = "pending",
        tries: int = 0,
        content_id: str = "content-1",
        **extra: Any,
    ) -> Dict[str, Any]:
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "content_id": content_id,
            "platform": platform,
            "platform_text": platform_text,
            "scheduled_time": (
                scheduled_time or datetime.now(timezone.utc) - timedelta(minutes=1)
            ).isoformat(),
            "status": status,
            "tries": tries,
            "last_error": None,
            "fallback_sent": False,
            "claimed_at": None,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        row.update(extra)
        fake_client.tables.setdefault("schedules", []).append(row)
        return row

    return _seed
