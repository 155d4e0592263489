"""Per-component logger wrapper and timed-operation context manager.

``ComponentLogger`` binds a ``LogComponent`` to the global ``EventLogger``
so a subsystem can emit structured events without repeating its
component.  When no ``EventLogger`` has been initialised (library use,
one-off scripts) events are routed to stdlib ``logging`` instead.
"""

import logging
import time
from typing import Any, Optional

from crosspost.logging import event_logger
from crosspost.logging.models import LogComponent, LogEntry, LogLevel
from crosspost.utils import utc_now


class ComponentLogger:
    """Wrapper that binds a fixed ``LogComponent`` to the global logger.

    Usage::

        self.events = ComponentLogger(LogComponent.SCHEDULER)
        await self.events.info("published", schedule_id=record.id)
    """

    def __init__(self, component: LogComponent) -> None:
        self.component = component
        self._fallback = logging.getLogger(f"crosspost.events.{component.value}")

    async def _emit(self, level: LogLevel, message: str, **kwargs: Any) -> None:
        if event_logger._logger is None:
            entry = LogEntry(
                timestamp=utc_now(),
                level=level,
                component=self.component,
                message=message,
                schedule_id=kwargs.get("schedule_id"),
                data=kwargs.get("data") or {},
                duration_ms=kwargs.get("duration_ms"),
            )
            self._fallback.log(level.value, entry.to_readable())
            return
        await event_logger._logger.log(level, self.component, message, **kwargs)

    async def debug(self, message: str, **kwargs: Any) -> None:
        await self._emit(LogLevel.DEBUG, message, **kwargs)

    async def info(self, message: str, **kwargs: Any) -> None:
        await self._emit(LogLevel.INFO, message, **kwargs)

    async def warning(self, message: str, **kwargs: Any) -> None:
        await self._emit(LogLevel.WARNING, message, **kwargs)

    async def error(
        self, message: str, error: Optional[BaseException] = None, **kwargs: Any
    ) -> None:
        await self._emit(LogLevel.ERROR, message, error=error, **kwargs)

    async def critical(
        self, message: str, error: Optional[BaseException] = None, **kwargs: Any
    ) -> None:
        await self._emit(LogLevel.CRITICAL, message, error=error, **kwargs)

    def set_context(self, tick_id: Optional[str] = None) -> None:
        """Attach *tick_id* to every event until :meth:`clear_context`."""
        if event_logger._logger is not None:
            event_logger._logger.set_context(tick_id=tick_id)

    def clear_context(self) -> None:
        if event_logger._logger is not None:
            event_logger._logger.clear_context()

    def timed(self, message: str, **kwargs: Any) -> "TimedOperation":
        """Return an async context manager that logs the block's duration.

        Usage::

            async with self.events.timed("tick"):
                await self._process_batch()
        """
        return TimedOperation(self, message, **kwargs)


class TimedOperation:
    """Async context manager that measures and logs operation duration.

    On successful exit, logs an INFO event with ``duration_ms``.  On
    exception, logs an ERROR event with ``duration_ms`` and the error, then
    lets the exception propagate.
    """

    def __init__(self, logger: ComponentLogger, message: str, **kwargs: Any) -> None:
        self.logger = logger
        self.message = message
        self.kwargs = kwargs
        self.start: Optional[float] = None

    async def __aenter__(self) -> "TimedOperation":
        self.start = time.monotonic()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Any,
    ) -> None:
        assert self.start is not None
        duration_ms = int((time.monotonic() - self.start) * 1000)

        if exc_type is not None:
            await self.logger.error(
                f"Failed: {self.message}",
                error=exc_val,
                duration_ms=duration_ms,
                **self.kwargs,
            )
        else:
            await self.logger.info(
                f"Completed: {self.message}",
                duration_ms=duration_ms,
                **self.kwargs,
            )
        # Return None (falsy) so exceptions propagate
