"""
Scheduling data models: ScheduleStatus, ScheduleRecord, CreateScheduleRequest,
TickReport.

- ``ScheduleStatus``: Lifecycle status of one per-platform publish request.
- ``ScheduleRecord``: A row of the ``schedules`` table.
- ``CreateScheduleRequest``: Payload accepted by the schedule repository.
- ``TickReport``: What one scheduler tick did, for logs and tests.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from crosspost.exceptions import MissingFieldError
from crosspost.platforms.base import Platform, PlatformText
from crosspost.utils import parse_timestamp


# =============================================================================
# SCHEDULE STATUS ENUM
# =============================================================================


class ScheduleStatus(Enum):
    """Lifecycle status of a schedule record.

    Transitions:
        PENDING -> PUBLISHING -> PUBLISHED
                              -> PENDING   (transient failure, tries < max)
                              -> FAILED
        PENDING -> CANCELLED  (user action)
    """

    PENDING = "pending"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Check if status is terminal (no further transitions allowed)."""
        return self in {
            ScheduleStatus.PUBLISHED,
            ScheduleStatus.FAILED,
            ScheduleStatus.CANCELLED,
        }


# =============================================================================
# SCHEDULE RECORD
# =============================================================================


@dataclass
class ScheduleRecord:
    """One platform-specific, time-bound publish request for a content item.

    Attributes:
        id: Unique identifier (UUID).
        user_id: Owner of the record.
        content_id: Content item the post was composed from.
        platform: Target platform.
        platform_text: Post text, or ``{"title", "description"}`` for
            YouTube drafts.
        scheduled_time: When the post is due (timezone-aware UTC).  Moved
            forward by the retry backoff on transient failures.
        status: Current lifecycle status.
        tries: Number of failed transient attempts so far.
        last_error: Most recent failure, truncated.
        published_url: Public URL of the published post.
        external_id: Platform's identifier for the published post.
        claimed_at: When a worker last claimed the record.
        fallback_sent: Whether the manual-publish email went out.
    """

    id: str
    user_id: str
    content_id: str
    platform: Platform
    platform_text: PlatformText
    scheduled_time: datetime

    status: ScheduleStatus = ScheduleStatus.PENDING
    tries: int = 0
    last_error: Optional[str] = None

    published_url: Optional[str] = None
    external_id: Optional[str] = None
    claimed_at: Optional[datetime] = None
    fallback_sent: bool = False
    fallback_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ScheduleRecord":
        """Build a record from a Supabase ``schedules`` row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            content_id=row["content_id"],
            platform=Platform.parse(row["platform"]),
            platform_text=row.get("platform_text"),
            scheduled_time=parse_timestamp(row["scheduled_time"]),
            status=ScheduleStatus(row.get("status", "pending")),
            tries=int(row.get("tries") or 0),
            last_error=row.get("last_error"),
            published_url=row.get("published_url"),
            external_id=row.get("external_id"),
            claimed_at=parse_timestamp(row.get("claimed_at")),
            fallback_sent=bool(row.get("fallback_sent")),
            fallback_sent_at=parse_timestamp(row.get("fallback_sent_at")),
            created_at=parse_timestamp(row.get("created_at")),
        )

    def to_row(self) -> Dict[str, Any]:
        """Serialize for insertion into ``schedules``."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "content_id": self.content_id,
            "platform": self.platform.value,
            "platform_text": self.platform_text,
            "scheduled_time": self.scheduled_time.isoformat(),
            "status": self.status.value,
            "tries": self.tries,
            "last_error": self.last_error,
            "fallback_sent": self.fallback_sent,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses (schedule list / calendar)."""
        data = self.to_row()
        data.update({
            "published_url": self.published_url,
            "external_id": self.external_id,
            "fallback_sent": self.fallback_sent,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        })
        return data


# =============================================================================
# CREATE REQUEST
# =============================================================================


@dataclass
class CreateScheduleRequest:
    """Schedule creation payload as received from the routing layer.

    ``platform_texts`` and ``scheduled_times`` are keyed by platform value;
    only entries for ``selected_platforms`` are used.
    """

    content_id: str
    unified_text: str
    selected_platforms: List[str]
    platform_texts: Mapping[str, Any] = field(default_factory=dict)
    scheduled_times: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CreateScheduleRequest":
        """
        Parse a JSON body.

        Raises:
            MissingFieldError: If a required field is absent or mistyped.
        """
        if not payload.get("content_id"):
            raise MissingFieldError("content_id is required")
        selected = payload.get("selected_platforms")
        if not isinstance(selected, list):
            raise MissingFieldError("selected_platforms must be a list")
        platform_texts = payload.get("platform_texts") or {}
        scheduled_times = payload.get("scheduled_times") or {}
        if not isinstance(platform_texts, Mapping) or not isinstance(scheduled_times, Mapping):
            raise MissingFieldError("platform_texts and scheduled_times must be objects")
        return cls(
            content_id=payload["content_id"],
            unified_text=payload.get("unified_text") or "",
            selected_platforms=list(selected),
            platform_texts=platform_texts,
            scheduled_times=scheduled_times,
        )


# =============================================================================
# TICK REPORT
# =============================================================================


@dataclass
class TickReport:
    """Summary of one scheduler tick."""

    due: int = 0
    claimed: int = 0
    published: int = 0
    requeued: int = 0
    failed: int = 0
    skipped: int = 0
    recovered: int = 0
    tick_id: Optional[str] = None

    def to_dict(self) -> Dict[str, int]:
        return {
            "due": self.due,
            "claimed": self.claimed,
            "published": self.published,
            "requeued": self.requeued,
            "failed": self.failed,
            "skipped": self.skipped,
            "recovered": self.recovered,
        }
