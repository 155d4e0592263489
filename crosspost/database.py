"""
Unified async database client for all system operations.

ALL database operations go through the SupabaseDB class defined here.
No direct Supabase calls should appear anywhere else in the codebase.

Every state change that other workers may race on (claiming a schedule,
refreshing or disabling a social account, consuming an OAuth state) is a
*conditional* write: the filter includes the expected current value and
the caller inspects the returned rows.  An empty result means another
worker got there first.

Usage::

    from crosspost.database import SupabaseDB, get_db

    db = await get_db()
    claimed = await db.claim_schedule(schedule_id)
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from supabase import AsyncClient, create_async_client

from crosspost.exceptions import DatabaseError, ValidationError
from crosspost.utils import utc_now

logger = logging.getLogger(__name__)

SCHEDULES = "schedules"
SOCIAL_ACCOUNTS = "social_accounts"
OAUTH_STATES = "oauth_states"
CONTENTS = "contents"
PUBLISH_EVENTS = "publish_events"

# Signed asset links in fallback emails stay valid for six hours
SIGNED_URL_TTL_SECONDS = 6 * 60 * 60


# =============================================================================
# VALIDATION HELPERS
# =============================================================================


def validate_not_empty(value: Any, name: str) -> None:
    """Validate that *value* is not ``None`` or an empty string.

    Raises:
        ValidationError: If *value* is ``None`` or a blank string.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{name} cannot be empty string")


def validate_positive(value: Union[int, float], name: str) -> None:
    """Validate that *value* is strictly positive (> 0).

    Raises:
        ValidationError: If *value* is ``None`` or not positive.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")


def _apply_match(query: Any, match: Mapping[str, Any]) -> Any:
    """Add an equality filter per key; ``None`` becomes ``IS NULL``."""
    for column, expected in match.items():
        if expected is None:
            query = query.is_(column, "null")
        else:
            query = query.eq(column, expected)
    return query


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class SupabaseConfig:
    """Supabase configuration loaded from environment variables.

    Attributes:
        url: The Supabase project URL (``SUPABASE_URL``).
        key: The service-role key for full server-side access
            (``SUPABASE_SERVICE_KEY``).
    """

    url: str
    key: str  # service_role key for full server-side access

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Create a config instance from environment variables.

        Raises:
            ValueError: If either variable is missing or empty.
        """
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_KEY")

        if not url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set"
            )

        return cls(url=url, key=key)


# =============================================================================
# SUPABASE DATABASE CLIENT
# =============================================================================


class SupabaseDB:
    """Unified **async** database client for all system operations.

    **Important:** Use the :meth:`create` factory method instead of
    ``__init__`` directly -- the underlying async client requires an
    ``await`` during initialisation.  Tests pass any object exposing the
    same query-builder interface to ``__init__``.
    """

    def __init__(self, client: AsyncClient) -> None:
        """Private constructor.  Use :meth:`create` factory method."""
        self.client = client

    @classmethod
    async def create(
        cls, config: Optional[SupabaseConfig] = None
    ) -> "SupabaseDB":
        """Factory method to create an async :class:`SupabaseDB` instance.

        Args:
            config: Optional configuration.  When ``None``,
                :meth:`SupabaseConfig.from_env` is used.
        """
        config = config or SupabaseConfig.from_env()
        client = await create_async_client(config.url, config.key)
        return cls(client)

    # -----------------------------------------------------------------
    # SCHEDULES
    # -----------------------------------------------------------------

    async def insert_schedules(
        self, rows: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Insert schedule rows in a single statement.

        PostgREST runs one insert per request inside one transaction, so
        either every row lands or none does.

        Raises:
            ValidationError: If *rows* is empty.
            DatabaseError: When the insert fails or returns no data.
        """
        if not rows:
            raise ValidationError("schedule rows cannot be empty")

        try:
            result = await self.client.table(SCHEDULES).insert(rows).execute()
        except Exception as exc:
            raise DatabaseError(f"Schedule insert failed: {exc}") from exc
        if not result.data or len(result.data) != len(rows):
            raise DatabaseError("Insert succeeded but returned no data")
        return result.data

    async def get_due_schedules(
        self, now: Optional[datetime] = None, limit: int = 20
    ) -> List[Dict[str, Any]]:
        """Get pending schedules whose ``scheduled_time`` has passed.

        Returns:
            Up to *limit* rows ordered by ``scheduled_time`` ascending.
        """
        validate_positive(limit, "limit")
        now_iso = (now or utc_now()).isoformat()
        result = await (
            self.client.table(SCHEDULES)
            .select("*")
            .eq("status", "pending")
            .lte("scheduled_time", now_iso)
            .order("scheduled_time", desc=False)
            .limit(limit)
            .execute()
        )
        return result.data

    async def claim_schedule(self, schedule_id: str) -> Optional[Dict[str, Any]]:
        """Atomically claim a schedule for publishing.

        Transitions the row from ``"pending"`` to ``"publishing"``.  Only
        succeeds if the row currently has status ``"pending"``, so two
        workers can never both claim it.

        Returns:
            The claimed row, or ``None`` if another worker claimed it
            first or the row is no longer pending.
        """
        validate_not_empty(schedule_id, "schedule_id")

        result = await (
            self.client.table(SCHEDULES)
            .update({
                "status": "publishing",
                "claimed_at": utc_now().isoformat(),
            })
            .eq("id", schedule_id)
            .eq("status", "pending")
            .execute()
        )
        # If data is returned, the update matched and the claim succeeded
        return result.data[0] if result.data else None

    async def update_schedule(
        self,
        schedule_id: str,
        fields: Dict[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Update a schedule row, optionally only if it matches *expected*.

        Args:
            schedule_id: UUID of the schedule.
            fields: Columns to set.
            expected: Extra equality filters (e.g. ``{"status": "publishing"}``).

        Returns:
            The updated row, or ``None`` when no row matched.
        """
        validate_not_empty(schedule_id, "schedule_id")
        if not fields:
            raise ValidationError("schedule update cannot be empty")

        query = self.client.table(SCHEDULES).update(fields).eq("id", schedule_id)
        query = _apply_match(query, expected or {})
        result = await query.execute()
        return result.data[0] if result.data else None

    async def get_schedule(
        self, schedule_id: str, user_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Get one schedule, scoped to *user_id* when given."""
        validate_not_empty(schedule_id, "schedule_id")
        query = self.client.table(SCHEDULES).select("*").eq("id", schedule_id)
        if user_id is not None:
            query = query.eq("user_id", user_id)
        result = await query.limit(1).execute()
        return result.data[0] if result.data else None

    async def list_schedules(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        ascending: bool = False,
    ) -> List[Dict[str, Any]]:
        """List a user's schedules, optionally within ``[start, end]``."""
        validate_not_empty(user_id, "user_id")
        query = self.client.table(SCHEDULES).select("*").eq("user_id", user_id)
        if start is not None:
            query = query.gte("scheduled_time", start.isoformat())
        if end is not None:
            query = query.lte("scheduled_time", end.isoformat())
        result = await query.order("scheduled_time", desc=not ascending).execute()
        return result.data

    async def get_stuck_schedules(self, cutoff: datetime) -> List[Dict[str, Any]]:
        """Rows left in ``"publishing"`` with ``claimed_at`` before *cutoff*."""
        result = await (
            self.client.table(SCHEDULES)
            .select("*")
            .eq("status", "publishing")
            .lte("claimed_at", cutoff.isoformat())
            .execute()
        )
        return result.data

    # -----------------------------------------------------------------
    # CONTENTS
    # -----------------------------------------------------------------

    async def get_content(
        self, content_id: str, user_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Get a content item, scoped to its owner when *user_id* is given."""
        validate_not_empty(content_id, "content_id")
        query = self.client.table(CONTENTS).select("*").eq("id", content_id)
        if user_id is not None:
            query = query.eq("user_id", user_id)
        result = await query.limit(1).execute()
        return result.data[0] if result.data else None

    async def create_signed_content_links(
        self, content_id: str, bucket: str
    ) -> List[str]:
        """Signed download links for a content item's stored asset.

        Returns an empty list when the content has no stored asset.
        """
        content = await self.get_content(content_id)
        if not content or not content.get("storage_path"):
            return []

        signed = await self.client.storage.from_(bucket).create_signed_url(
            content["storage_path"], SIGNED_URL_TTL_SECONDS
        )
        url = (signed or {}).get("signedURL") or (signed or {}).get("signedUrl")
        return [url] if url else []

    # -----------------------------------------------------------------
    # SOCIAL ACCOUNTS
    # -----------------------------------------------------------------

    async def get_social_account(
        self, user_id: str, platform: str
    ) -> Optional[Dict[str, Any]]:
        """Get the account for ``(user_id, platform)``, disabled or not."""
        validate_not_empty(user_id, "user_id")
        validate_not_empty(platform, "platform")
        result = await (
            self.client.table(SOCIAL_ACCOUNTS)
            .select("*")
            .eq("user_id", user_id)
            .eq("platform", platform)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def list_social_accounts(self, user_id: str) -> List[Dict[str, Any]]:
        """List a user's accounts without token columns."""
        validate_not_empty(user_id, "user_id")
        result = await (
            self.client.table(SOCIAL_ACCOUNTS)
            .select("id, user_id, platform, external_account_id, expires_at, disabled, created_at")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return result.data

    async def upsert_social_account(self, account: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace the account for ``(user_id, platform)``.

        Raises:
            ValidationError: On missing key fields.
            DatabaseError: When the upsert returns no data.
        """
        for key in ("user_id", "platform"):
            if not account.get(key):
                raise ValidationError(f"social account must have '{key}'")

        result = await (
            self.client.table(SOCIAL_ACCOUNTS)
            .upsert(account, on_conflict="user_id,platform")
            .execute()
        )
        if not result.data:
            raise DatabaseError("Upsert succeeded but returned no data")
        return result.data[0]

    async def update_social_account(
        self,
        account_id: str,
        fields: Dict[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Conditionally update a social account.

        Returns:
            The updated row, or ``None`` when *expected* no longer matched.
        """
        validate_not_empty(account_id, "account_id")
        if not fields:
            raise ValidationError("social account update cannot be empty")

        query = self.client.table(SOCIAL_ACCOUNTS).update(fields).eq("id", account_id)
        query = _apply_match(query, expected or {})
        result = await query.execute()
        return result.data[0] if result.data else None

    # -----------------------------------------------------------------
    # OAUTH STATES
    # -----------------------------------------------------------------

    async def insert_oauth_state(self, row: Dict[str, Any]) -> None:
        """Persist a fresh OAuth state row.

        Raises:
            DatabaseError: When the insert returns no data.
        """
        validate_not_empty(row.get("state"), "state")
        result = await self.client.table(OAUTH_STATES).insert(row).execute()
        if not result.data:
            raise DatabaseError("Unable to create OAuth state")

    async def delete_oauth_state(self, state: str) -> Optional[Dict[str, Any]]:
        """Delete a state row and return it.

        ``DELETE ... RETURNING`` is a single statement, so at most one
        caller receives the row; replays get ``None``.
        """
        validate_not_empty(state, "state")
        result = await (
            self.client.table(OAUTH_STATES)
            .delete()
            .eq("state", state)
            .execute()
        )
        return result.data[0] if result.data else None

    # -----------------------------------------------------------------
    # PUBLISH EVENTS
    # -----------------------------------------------------------------

    async def insert_event(self, event: Dict[str, Any]) -> None:
        """Persist one structured pipeline event."""
        await self.client.table(PUBLISH_EVENTS).insert(event).execute()


# =============================================================================
# GLOBAL DATABASE INSTANCE (Singleton)
# =============================================================================

# One async connection for the entire application.
_db_instance: Optional[SupabaseDB] = None
_db_lock: Optional[asyncio.Lock] = None

# Thread lock for safe initialisation of the async lock itself.
_init_lock = threading.Lock()


async def get_db() -> SupabaseDB:
    """Get the global async database instance.

    Thread-safe **and** async-safe.  The first call creates the
    :class:`SupabaseDB` singleton; subsequent calls return the same
    instance.
    """
    global _db_instance, _db_lock

    # Thread-safe lazy initialisation of the async lock.
    if _db_lock is None:
        with _init_lock:
            # Double-check after acquiring thread lock.
            if _db_lock is None:
                _db_lock = asyncio.Lock()

    if _db_instance is None:
        async with _db_lock:
            # Double-check after acquiring async lock.
            if _db_instance is None:
                _db_instance = await SupabaseDB.create()

    return _db_instance
