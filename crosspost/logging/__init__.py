"""Structured event logging for the publish pipeline."""
from crosspost.logging.models import LogLevel, LogComponent, LogEntry
from crosspost.logging.event_logger import EventLogger, init_logger, get_logger
from crosspost.logging.component_logger import ComponentLogger, TimedOperation

__all__ = [
    "LogLevel", "LogComponent", "LogEntry",
    "EventLogger", "init_logger", "get_logger",
    "ComponentLogger", "TimedOperation",
]
