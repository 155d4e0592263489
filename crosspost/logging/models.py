"""Structured event models: LogLevel, LogComponent, LogEntry."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    """Log levels with numeric values for severity comparison.

    Uses integer values so that severity comparison works correctly.
    String comparison would fail (e.g., "debug" > "critical" lexicographically).
    """

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @property
    def name_str(self) -> str:
        """Get lowercase name for display/serialization."""
        return self.name.lower()


class LogComponent(Enum):
    """All system components that can produce structured events."""

    SCHEDULER = "scheduler"
    SCHEDULE_REPOSITORY = "schedule_repository"
    TOKEN_STORE = "token_store"
    OAUTH = "oauth"
    PLATFORM = "platform"
    NOTIFIER = "notifier"
    DATABASE = "database"
    STARTUP = "startup"


@dataclass
class LogEntry:
    """Structured log entry.

    One event with its tick/schedule context, optional error details and
    timing.  ``data`` must never carry token material.
    """

    # Required fields
    timestamp: datetime
    level: LogLevel
    component: LogComponent
    message: str

    # Context
    tick_id: Optional[str] = None
    schedule_id: Optional[str] = None

    # Additional data
    data: Dict[str, Any] = field(default_factory=dict)

    # Error details
    error_type: Optional[str] = None
    error_traceback: Optional[str] = None

    # Performance
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for Supabase insertion."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "level_name": self.level.name_str,
            "component": self.component.value,
            "message": self.message,
            "tick_id": self.tick_id,
            "schedule_id": self.schedule_id,
            "data": self.data,
            "error_type": self.error_type,
            "error_traceback": self.error_traceback,
            "duration_ms": self.duration_ms,
        }

    def to_json(self) -> str:
        """Serialize to a JSON line for file logging."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_readable(self) -> str:
        """Human-readable format for console output."""
        time_str = self.timestamp.strftime("%H:%M:%S")
        msg = (
            f"[{self.level.name}] [{time_str}] "
            f"[{self.component.value}] {self.message}"
        )
        if self.schedule_id:
            msg += f" schedule={self.schedule_id}"
        if self.data:
            msg += f" {self.data}"
        if self.duration_ms:
            msg += f" ({self.duration_ms}ms)"
        return msg
