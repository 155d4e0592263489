"""Scheduling subsystem: validated schedule creation and background publishing."""

from crosspost.scheduling.models import (
    CreateScheduleRequest,
    ScheduleRecord,
    ScheduleStatus,
    TickReport,
)
from crosspost.scheduling.publish_scheduler import PublishScheduler
from crosspost.scheduling.schedule_repository import ScheduleRepository

__all__ = [
    "CreateScheduleRequest",
    "ScheduleRecord",
    "ScheduleStatus",
    "TickReport",
    "PublishScheduler",
    "ScheduleRepository",
]
