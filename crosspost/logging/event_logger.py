"""Central structured event logger with file and Supabase outputs.

Provides the ``EventLogger`` class that dispatches structured log entries
to local JSON-lines files (via ``aiofiles``) and an optional Supabase
``publish_events`` table.  A lightweight in-memory ring buffer allows fast
``get_recent()`` queries, which the test-suite uses to assert that the
scheduler emitted one event per record outcome.

Global helpers:
    - ``init_logger()``  -- create and register a singleton ``EventLogger``
    - ``get_logger()``   -- retrieve the singleton (raises if not initialised)
"""

import asyncio
import logging
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import aiofiles

from crosspost.logging.models import LogComponent, LogEntry, LogLevel
from crosspost.utils import utc_now

stdlib_logger = logging.getLogger(__name__)


class EventLogger:
    """Central structured logging for the publish pipeline.

    Parameters:
        log_dir: Directory for log files (created if missing).
        db: Optional :class:`~crosspost.database.SupabaseDB` used to persist
            events at or above *min_level*.
        min_level: Minimum level for Supabase writes.
    """

    def __init__(
        self,
        log_dir: str = "logs",
        db: Any = None,
        min_level: LogLevel = LogLevel.INFO,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.db = db
        self.min_level = min_level

        # Current context (set per scheduler tick)
        self._tick_id: Optional[str] = None

        # Log file paths
        self._main_log = self.log_dir / "events.log"
        self._error_log = self.log_dir / "errors.log"

        # In-memory ring buffer for quick access
        self._recent_logs: List[LogEntry] = []
        self._max_recent: int = 1000

        # Track pending async tasks to prevent garbage collection
        self._pending_tasks: Set["asyncio.Task[None]"] = set()

    # ------------------------------------------------------------------
    # Context management
    # ------------------------------------------------------------------

    def set_context(self, tick_id: Optional[str] = None) -> None:
        """Set the tick id attached to subsequent entries."""
        self._tick_id = tick_id

    def clear_context(self) -> None:
        self._tick_id = None

    # ------------------------------------------------------------------
    # Core log method
    # ------------------------------------------------------------------

    async def log(
        self,
        level: LogLevel,
        component: LogComponent,
        message: str,
        schedule_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        """Log a structured event.

        Writes to the JSON files always, and to Supabase when connected and
        the severity threshold is met.
        """
        entry = LogEntry(
            timestamp=utc_now(),
            level=level,
            component=component,
            message=message,
            tick_id=self._tick_id,
            schedule_id=schedule_id,
            data=data or {},
            duration_ms=duration_ms,
        )

        if error is not None:
            entry.error_type = type(error).__name__
            entry.error_traceback = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        # Append to ring buffer
        self._recent_logs.append(entry)
        if len(self._recent_logs) > self._max_recent:
            self._recent_logs.pop(0)

        # Write to file (awaited so file I/O completes before return)
        await self._write_to_file(entry)

        # Write to Supabase (fire-and-forget but tracked)
        if self.db is not None and level.value >= self.min_level.value:
            task = asyncio.create_task(self._write_to_supabase(entry))
            self._pending_tasks.add(task)
            task.add_done_callback(self._pending_tasks.discard)

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    async def debug(self, component: LogComponent, message: str, **kwargs: Any) -> None:
        await self.log(LogLevel.DEBUG, component, message, **kwargs)

    async def info(self, component: LogComponent, message: str, **kwargs: Any) -> None:
        await self.log(LogLevel.INFO, component, message, **kwargs)

    async def warning(self, component: LogComponent, message: str, **kwargs: Any) -> None:
        await self.log(LogLevel.WARNING, component, message, **kwargs)

    async def error(self, component: LogComponent, message: str, **kwargs: Any) -> None:
        await self.log(LogLevel.ERROR, component, message, **kwargs)

    async def critical(self, component: LogComponent, message: str, **kwargs: Any) -> None:
        await self.log(LogLevel.CRITICAL, component, message, **kwargs)

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_recent(
        self,
        limit: int = 20,
        level: Optional[LogLevel] = None,
        component: Optional[LogComponent] = None,
        schedule_id: Optional[str] = None,
    ) -> List[LogEntry]:
        """Return recent entries from the in-memory ring buffer."""
        logs = self._recent_logs.copy()

        if level is not None:
            logs = [entry for entry in logs if entry.level == level]
        if component is not None:
            logs = [entry for entry in logs if entry.component == component]
        if schedule_id is not None:
            logs = [entry for entry in logs if entry.schedule_id == schedule_id]

        return logs[-limit:]

    async def flush(self) -> None:
        """Wait for all pending Supabase writes.

        Call this before application shutdown to ensure every event has
        been written.
        """
        if self._pending_tasks:
            await asyncio.gather(*self._pending_tasks, return_exceptions=True)
            self._pending_tasks.clear()

    # ------------------------------------------------------------------
    # Private output methods
    # ------------------------------------------------------------------

    async def _write_to_file(self, entry: LogEntry) -> None:
        """Append the entry to ``events.log`` (and ``errors.log`` for ERROR+)."""
        json_line = entry.to_json() + "\n"

        async with aiofiles.open(self._main_log, "a", encoding="utf-8") as f:
            await f.write(json_line)

        if entry.level.value >= LogLevel.ERROR.value:
            async with aiofiles.open(self._error_log, "a", encoding="utf-8") as f:
                await f.write(json_line)

    async def _write_to_supabase(self, entry: LogEntry) -> None:
        try:
            await self.db.insert_event(entry.to_dict())
        except Exception as exc:
            # Event persistence must never break the pipeline
            stdlib_logger.warning("[LOGGING] Failed to write event to Supabase: %s", exc)


# ======================================================================
# GLOBAL LOGGER SINGLETON
# ======================================================================

_logger: Optional[EventLogger] = None


def init_logger(
    log_dir: str = "logs",
    db: Any = None,
    min_level: LogLevel = LogLevel.INFO,
) -> EventLogger:
    """Initialise and register the global ``EventLogger`` singleton."""
    global _logger
    _logger = EventLogger(log_dir=log_dir, db=db, min_level=min_level)
    return _logger


def get_logger() -> EventLogger:
    """Retrieve the global ``EventLogger`` singleton.

    Raises:
        RuntimeError: If ``init_logger()`` has not been called yet.
    """
    if _logger is None:
        raise RuntimeError("Logger not initialized. Call init_logger() first.")
    return _logger
