"""
Schedule repository: validated creation and user-scoped reads of schedules.

``ScheduleRepository.create`` is all-or-nothing.  Every selected platform
is validated before anything is written, and all rows go out in a single
insert, so a request with one bad platform leaves no rows behind.

Errors raised here carry ``http_status`` and ``to_response()`` so the
routing layer can answer with ``{"error": ...}`` and the right status:
400 invalid input, 403 ownership failure, 422 missing structured fields,
500 persistence failure.
"""

import logging
import re
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from crosspost.config import SchedulingPolicy, get_settings
from crosspost.database import SupabaseDB
from crosspost.exceptions import (
    DatabaseError,
    OwnershipError,
    ValidationError,
)
from crosspost.logging import ComponentLogger, LogComponent
from crosspost.platforms import ADAPTERS, get_adapter
from crosspost.platforms.base import Platform, PlatformAdapter
from crosspost.platforms.blocklist import matches_forbidden_term
from crosspost.scheduling.models import (
    CreateScheduleRequest,
    ScheduleRecord,
    ScheduleStatus,
)
from crosspost.utils import generate_id, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

MAX_CALENDAR_DAYS = 60
PREVIEW_CHARS = 20

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class DateRangeTooLargeError(ValidationError):
    """Raised when a calendar query spans more than ``MAX_CALENDAR_DAYS``."""

    http_status = 422


class ScheduleRepository:
    """CRUD over ``schedules`` with creation-time validation.

    Args:
        db: Database client.
        policy: Scheduling policy (minimum lead time).
        adapters: Platform adapter registry used for payload validation.
    """

    def __init__(
        self,
        db: SupabaseDB,
        policy: Optional[SchedulingPolicy] = None,
        adapters: Mapping[Platform, PlatformAdapter] = ADAPTERS,
    ) -> None:
        self.db = db
        self.policy = policy or get_settings().policy
        self.adapters = adapters
        self.events = ComponentLogger(LogComponent.SCHEDULE_REPOSITORY)

    # ================================================================
    # CREATE
    # ================================================================

    async def create(
        self,
        user_id: str,
        request: Union[CreateScheduleRequest, Mapping[str, Any]],
        now: Optional[datetime] = None,
    ) -> List[ScheduleRecord]:
        """Validate a request and insert one pending row per selected platform.

        Args:
            user_id: Authenticated user.
            request: Parsed request or its raw JSON body.
            now: Reference time for the lead-time check (defaults to now).

        Returns:
            The inserted records, in selection order.

        Raises:
            ValidationError: Invalid input (400), incl. ``UnknownPlatformError``.
            MissingFieldError: Missing structured fields (422).
            OwnershipError: Content not owned by *user_id* (403).
            DatabaseError: Insert failed (500).
        """
        if not isinstance(request, CreateScheduleRequest):
            request = CreateScheduleRequest.from_dict(request)
        now = now or utc_now()

        if not request.selected_platforms:
            raise ValidationError("At least one platform must be selected")
        platforms = [Platform.parse(value) for value in request.selected_platforms]
        if len(set(platforms)) != len(platforms):
            raise ValidationError("Each platform can be selected once")

        if matches_forbidden_term(request.unified_text):
            raise ValidationError("Content contains forbidden language")

        content = await self.db.get_content(request.content_id, user_id=user_id)
        if content is None:
            raise OwnershipError("Content not found")

        earliest = now + self.policy.min_lead
        seen_times = set()
        records: List[ScheduleRecord] = []

        for platform in platforms:
            raw_time = request.scheduled_times.get(platform.value)
            if not raw_time:
                raise ValidationError(f"Scheduled time required for {platform.value}")
            try:
                scheduled_time = parse_timestamp(raw_time)
            except (AttributeError, TypeError, ValueError):
                scheduled_time = None
            if scheduled_time is None or scheduled_time < earliest:
                raise ValidationError(f"Invalid scheduled time for {platform.value}")
            if scheduled_time in seen_times:
                raise ValidationError("Times must differ per platform")
            seen_times.add(scheduled_time)

            platform_text = request.platform_texts.get(platform.value)
            get_adapter(platform, self.adapters).validate(platform_text)

            records.append(
                ScheduleRecord(
                    id=generate_id(),
                    user_id=user_id,
                    content_id=request.content_id,
                    platform=platform,
                    platform_text=platform_text,
                    scheduled_time=scheduled_time,
                )
            )

        try:
            await self.db.insert_schedules([record.to_row() for record in records])
        except DatabaseError as exc:
            logger.error("[SCHEDULE] Insert failed for content %s: %s", request.content_id, exc)
            raise DatabaseError("Unable to create schedule") from exc

        logger.info(
            "[SCHEDULE] Created %d schedules for content %s (%s)",
            len(records),
            request.content_id,
            ", ".join(p.value for p in platforms),
        )
        await self.events.info(
            "Schedules created",
            data={
                "content_id": request.content_id,
                "schedule_ids": [record.id for record in records],
            },
        )
        return records

    # ================================================================
    # READ
    # ================================================================

    async def list_for_user(self, user_id: str) -> List[ScheduleRecord]:
        """All of a user's schedules, newest ``scheduled_time`` first."""
        rows = await self.db.list_schedules(user_id)
        return [ScheduleRecord.from_row(row) for row in rows]

    async def get(self, user_id: str, schedule_id: str) -> Optional[ScheduleRecord]:
        row = await self.db.get_schedule(schedule_id, user_id=user_id)
        return ScheduleRecord.from_row(row) if row else None

    async def calendar(
        self,
        user_id: str,
        start: Union[str, date, None],
        end: Union[str, date, None],
    ) -> List[Dict[str, Any]]:
        """Calendar items between two dates (inclusive, UTC days).

        Raises:
            ValidationError: Missing dates, bad format, or end before start.
            DateRangeTooLargeError: Range longer than 60 days (422).
        """
        if not start or not end:
            raise ValidationError("Missing date range")
        start_date = _parse_date(start)
        end_date = _parse_date(end)
        if start_date is None or end_date is None:
            raise ValidationError("Invalid date format")
        if end_date < start_date:
            raise ValidationError("Invalid date range")
        if (end_date - start_date).days > MAX_CALENDAR_DAYS:
            raise DateRangeTooLargeError("Date range too large")

        rows = await self.db.list_schedules(
            user_id,
            start=datetime.combine(start_date, time.min, tzinfo=timezone.utc),
            end=datetime.combine(end_date, time.max, tzinfo=timezone.utc),
            ascending=True,
        )
        return [_calendar_item(ScheduleRecord.from_row(row)) for row in rows]

    # ================================================================
    # CANCEL
    # ================================================================

    async def cancel(self, user_id: str, schedule_id: str) -> ScheduleRecord:
        """Cancel a pending schedule.

        Raises:
            OwnershipError: Schedule does not exist for this user.
            ValidationError: Schedule is no longer pending.
        """
        row = await self.db.update_schedule(
            schedule_id,
            {"status": ScheduleStatus.CANCELLED.value},
            expected={"user_id": user_id, "status": ScheduleStatus.PENDING.value},
        )
        if row is not None:
            logger.info("[SCHEDULE] Schedule %s cancelled", schedule_id)
            return ScheduleRecord.from_row(row)

        existing = await self.get(user_id, schedule_id)
        if existing is None:
            raise OwnershipError("Schedule not found")
        raise ValidationError(
            f"Only pending schedules can be cancelled (status is {existing.status.value})"
        )


def _parse_date(value: Union[str, date]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not _DATE_ONLY.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _calendar_item(record: ScheduleRecord) -> Dict[str, Any]:
    text = record.platform_text
    if isinstance(text, Mapping):
        text = text.get("title") or ""
    return {
        "id": record.id,
        "platform": record.platform.value,
        "scheduled_time": record.scheduled_time.isoformat(),
        "status": record.status.value,
        "platform_text_preview": (text or "")[:PREVIEW_CHARS],
        "content_id": record.content_id,
        "tries": record.tries,
    }


__all__ = ["ScheduleRepository", "DateRangeTooLargeError"]
