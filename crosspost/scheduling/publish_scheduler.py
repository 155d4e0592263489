"""
Publish scheduler: drives due schedule records to ``published`` or ``failed``.

``PublishScheduler.tick()`` is the whole algorithm.  It can be called from
the built-in polling loop (:meth:`PublishScheduler.start`) or from an
external cron, concurrently and repeatedly.  Due time lives only in the
``schedules`` table, so nothing is lost when a process restarts.

Per due record::

    pending --claim--> publishing --success------------------> published
                                  --transient, tries < max---> pending (scheduled_time += backoff)
                                  --transient, tries == max--> failed (+ fallback email)
                                  --permanent / auth---------> failed (+ fallback email)

The claim (``pending -> publishing WHERE status = 'pending'``) happens
before any network call and is the only mutual exclusion.  Every later
transition is conditional on ``status = 'publishing'``.
"""

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from crosspost.accounts.token_store import TokenStore
from crosspost.config import SchedulingPolicy, get_settings
from crosspost.database import SupabaseDB
from crosspost.exceptions import (
    AuthError,
    PermanentPublishError,
    PublishError,
    RefreshFailed,
    TransientPublishError,
    ValidationError,
)
from crosspost.logging import ComponentLogger, LogComponent
from crosspost.platforms import ADAPTERS, get_adapter
from crosspost.platforms.base import Platform, PlatformAdapter, PublishResult
from crosspost.scheduling.models import ScheduleRecord, ScheduleStatus, TickReport
from crosspost.utils import generate_id, truncate, utc_now

if TYPE_CHECKING:
    from crosspost.notifications.email import EmailNotifier

logger = logging.getLogger(__name__)

PUBLISHING = ScheduleStatus.PUBLISHING.value


class PublishScheduler:
    """Polls due schedule records and publishes them with bounded retry.

    Args:
        db: Database client.
        token_store: Source of fresh platform credentials.
        notifier: Receives the manual-publish fallback on terminal failure.
        policy: Retry, backoff, timeout and polling constants.
        adapters: Platform adapter registry.
        content_bucket: Storage bucket for signed asset links.
    """

    def __init__(
        self,
        db: SupabaseDB,
        token_store: TokenStore,
        notifier: "EmailNotifier",
        policy: Optional[SchedulingPolicy] = None,
        adapters: Mapping[Platform, PlatformAdapter] = ADAPTERS,
        content_bucket: Optional[str] = None,
    ) -> None:
        settings = get_settings() if policy is None or content_bucket is None else None
        self.db = db
        self.token_store = token_store
        self.notifier = notifier
        self.policy = policy or settings.policy
        self.adapters = adapters
        self.content_bucket = content_bucket or settings.content_bucket
        self.events = ComponentLogger(LogComponent.SCHEDULER)
        self._running: bool = False
        self._tick_count: int = 0

    # ================================================================
    # LIFECYCLE
    # ================================================================

    async def start(self) -> None:
        """Run :meth:`tick` every ``poll_interval_seconds`` until stopped."""
        self._running = True
        logger.info(
            "[SCHEDULER] Publish scheduler started (interval=%ds, max_retries=%d)",
            self.policy.poll_interval_seconds,
            self.policy.max_retries,
        )

        while self._running:
            try:
                report = await self.tick()
                if report.claimed or report.recovered:
                    logger.info("[SCHEDULER] Tick finished: %s", report.to_dict())
            except asyncio.CancelledError:
                logger.info("[SCHEDULER] Publish scheduler cancelled")
                break
            except Exception:
                logger.exception("[SCHEDULER] Unexpected error in publish scheduler loop")

            try:
                await asyncio.sleep(self.policy.poll_interval_seconds)
            except asyncio.CancelledError:
                logger.info("[SCHEDULER] Publish scheduler sleep cancelled")
                break

        logger.info("[SCHEDULER] Publish scheduler stopped")

    async def stop(self) -> None:
        """Let the loop in :meth:`start` exit after the current tick."""
        self._running = False
        logger.info("[SCHEDULER] Publish scheduler stop requested")

    # ================================================================
    # TICK
    # ================================================================

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Process every record that is due at *now*.

        One record's failure never stops the others.
        """
        now = now or utc_now()
        report = TickReport()
        report.tick_id = generate_id()

        self.events.set_context(tick_id=report.tick_id)
        try:
            async with self.events.timed("tick", data={"now": now.isoformat()}):
                self._tick_count += 1
                if self._tick_count % self.policy.recovery_interval_cycles == 0:
                    report.recovered = await self.recover_stuck(now)

                due_rows = await self.db.get_due_schedules(now, limit=self.policy.batch_limit)
                report.due = len(due_rows)
                if due_rows:
                    logger.info("[SCHEDULER] Found %d schedules due for publishing", len(due_rows))

                for row in due_rows:
                    try:
                        await self._process(row, report)
                    except Exception:
                        # Only reachable when the database itself fails mid-record
                        logger.exception("[SCHEDULER] Could not process schedule %s", row.get("id"))
        finally:
            self.events.clear_context()
        return report

    async def _process(self, row: Dict[str, Any], report: TickReport) -> None:
        schedule_id = row["id"]

        claimed = await self.db.claim_schedule(schedule_id)
        if claimed is None:
            logger.debug("[SCHEDULER] Schedule %s already claimed, skipping", schedule_id)
            report.skipped += 1
            return
        report.claimed += 1

        try:
            record = ScheduleRecord.from_row(claimed)
        except (KeyError, TypeError, ValueError) as exc:
            await self._fail_malformed(claimed, exc, report)
            return

        try:
            await self._publish(record, report)
        except Exception as exc:
            logger.exception("[SCHEDULER] Unexpected error publishing %s", schedule_id)
            await self._retry_or_fail(record, exc, report)

    async def _publish(self, record: ScheduleRecord, report: TickReport) -> None:
        try:
            adapter = get_adapter(record.platform, self.adapters)
            credentials = await self.token_store.get_credentials(record.user_id, record.platform)
            media_urls = await self._media_urls(record)
            result = await asyncio.wait_for(
                adapter.publish(record.platform_text, credentials, media_urls),
                timeout=self.policy.publish_timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = TransientPublishError(
                record.platform.value,
                "timeout",
                f"no response within {self.policy.publish_timeout_seconds}s",
            )
            await self._retry_or_fail(record, error, report)
        except (AuthError, RefreshFailed) as exc:
            await self._fail(record, exc, report)
        except TransientPublishError as exc:
            await self._retry_or_fail(record, exc, report)
        except (PermanentPublishError, ValidationError) as exc:
            await self._fail(record, exc, report)
        else:
            await self._succeed(record, result, report)

    async def _media_urls(self, record: ScheduleRecord) -> List[str]:
        try:
            return await self.db.create_signed_content_links(record.content_id, self.content_bucket)
        except Exception as exc:
            raise TransientPublishError(
                record.platform.value, "media_unavailable", f"could not sign asset links: {exc}"
            ) from exc

    # ================================================================
    # TRANSITIONS
    # ================================================================

    async def _succeed(self, record: ScheduleRecord, result: PublishResult, report: TickReport) -> None:
        updated = await self.db.update_schedule(
            record.id,
            {
                "status": ScheduleStatus.PUBLISHED.value,
                "last_error": None,
                "external_id": result.external_id,
                "published_url": result.published_url,
            },
            expected={"status": PUBLISHING},
        )
        if updated is None:
            logger.warning("[SCHEDULER] Schedule %s left publishing before success was recorded", record.id)
            return

        report.published += 1
        logger.info(
            "[SCHEDULER] Published schedule %s to %s (external_id=%s)",
            record.id,
            record.platform.value,
            result.external_id,
        )
        await self.events.info(
            "published",
            schedule_id=record.id,
            data={
                "platform": record.platform.value,
                "external_id": result.external_id,
                "published_url": result.published_url,
            },
        )

    async def _retry_or_fail(self, record: ScheduleRecord, error: Exception, report: TickReport) -> None:
        """Requeue with backoff, or fail once retries are exhausted."""
        tries = record.tries + 1
        if tries >= self.policy.max_retries:
            await self._fail(record, error, report, tries=tries)
            return

        retry_at = max(record.scheduled_time, utc_now()) + self.policy.backoff_delay(tries)
        updated = await self.db.update_schedule(
            record.id,
            {
                "status": ScheduleStatus.PENDING.value,
                "tries": tries,
                "last_error": truncate(str(error)),
                "scheduled_time": retry_at.isoformat(),
                "claimed_at": None,
            },
            expected={"status": PUBLISHING},
        )
        if updated is None:
            logger.warning("[SCHEDULER] Schedule %s left publishing before requeue", record.id)
            return

        report.requeued += 1
        logger.warning(
            "[SCHEDULER] Schedule %s transient failure (try %d/%d), retry at %s: %s",
            record.id,
            tries,
            self.policy.max_retries,
            retry_at.isoformat(),
            error,
        )
        await self.events.warning(
            "requeued",
            schedule_id=record.id,
            data={
                "platform": record.platform.value,
                "tries": tries,
                "retry_at": retry_at.isoformat(),
                "code": getattr(error, "code", type(error).__name__),
            },
        )

    async def _fail(
        self,
        record: ScheduleRecord,
        error: Exception,
        report: TickReport,
        tries: Optional[int] = None,
    ) -> None:
        """Mark failed and send the fallback exactly once.

        The failed transition also sets ``fallback_sent``; only the worker
        whose conditional update matched sends the email.
        """
        message = truncate(str(error))
        fields: Dict[str, Any] = {
            "status": ScheduleStatus.FAILED.value,
            "last_error": message,
            "claimed_at": None,
            "fallback_sent": True,
            "fallback_sent_at": utc_now().isoformat(),
        }
        if tries is not None:
            fields["tries"] = tries

        updated = await self.db.update_schedule(
            record.id, fields, expected={"status": PUBLISHING, "fallback_sent": False}
        )
        if updated is None:
            logger.warning("[SCHEDULER] Schedule %s already finalised; no fallback sent", record.id)
            return

        report.failed += 1
        logger.error(
            "[SCHEDULER] Schedule %s failed on %s: %s",
            record.id,
            record.platform.value,
            message,
        )
        await self.events.error(
            "failed",
            schedule_id=record.id,
            data={
                "platform": record.platform.value,
                "tries": tries if tries is not None else record.tries,
                "kind": _failure_kind(error),
            },
        )
        await self._send_fallback(record, message)

    async def _fail_malformed(self, row: Dict[str, Any], error: Exception, report: TickReport) -> None:
        """Fail a claimed row that cannot be read as a schedule record.

        There is no record to render the manual-publish email from, so the
        admin alert carries the raw identifiers instead.
        """
        message = truncate(f"Malformed schedule: {error}")
        updated = await self.db.update_schedule(
            row["id"],
            {
                "status": ScheduleStatus.FAILED.value,
                "last_error": message,
                "claimed_at": None,
                "fallback_sent": True,
                "fallback_sent_at": utc_now().isoformat(),
            },
            expected={"status": PUBLISHING, "fallback_sent": False},
        )
        if updated is None:
            return

        report.failed += 1
        logger.error("[SCHEDULER] Schedule %s is malformed: %s", row["id"], error)
        await self.events.error("Malformed schedule", schedule_id=row["id"], error=error)
        await self.notifier.send_admin_alert(
            f"Manual publish required for schedule {row['id']}",
            f"Schedule {row['id']} (user {row.get('user_id')}, platform {row.get('platform')}) "
            f"could not be read and was marked failed.\n\n{message}",
        )

    async def _send_fallback(self, record: ScheduleRecord, error: str) -> None:
        links: List[str] = []
        try:
            links = await self.db.create_signed_content_links(record.content_id, self.content_bucket)
        except Exception as exc:
            logger.warning("[SCHEDULER] Could not sign asset links for %s: %s", record.id, exc)
        await self.notifier.send_fallback_alert(record.user_id, record, error, links)

    # ================================================================
    # RECOVERY
    # ================================================================

    async def recover_stuck(self, now: Optional[datetime] = None) -> int:
        """Return records abandoned in ``publishing`` to the queue.

        A record counts as abandoned when its ``claimed_at`` is older than
        ``stuck_timeout_minutes``.  The abandoned attempt counts as a try,
        so a record that keeps crashing workers still ends in ``failed``.

        Returns:
            Number of records recovered (requeued or failed).
        """
        now = now or utc_now()
        rows = await self.db.get_stuck_schedules(now - self.policy.stuck_timeout)
        recovered = 0

        for row in rows:
            tries = int(row.get("tries") or 0) + 1
            error = "Publish attempt abandoned by a stopped worker"
            if tries >= self.policy.max_retries:
                fields: Dict[str, Any] = {
                    "status": ScheduleStatus.FAILED.value,
                    "tries": tries,
                    "last_error": error,
                    "claimed_at": None,
                    "fallback_sent": True,
                    "fallback_sent_at": now.isoformat(),
                }
            else:
                fields = {
                    "status": ScheduleStatus.PENDING.value,
                    "tries": tries,
                    "last_error": error,
                    "claimed_at": None,
                }

            updated = await self.db.update_schedule(
                row["id"],
                fields,
                expected={"status": PUBLISHING, "claimed_at": row.get("claimed_at")},
            )
            if updated is None:
                continue

            recovered += 1
            logger.warning(
                "[SCHEDULER] Recovered stuck schedule %s -> %s", row["id"], fields["status"]
            )
            await self.events.warning(
                "recovered", schedule_id=row["id"], data={"status": fields["status"], "tries": tries}
            )
            if fields["status"] == ScheduleStatus.FAILED.value:
                await self._send_fallback(ScheduleRecord.from_row(updated), error)

        return recovered


def _failure_kind(error: Exception) -> str:
    if isinstance(error, (AuthError, RefreshFailed)):
        return "auth"
    if isinstance(error, PublishError):
        return "transient" if error.transient else "permanent"
    if isinstance(error, ValidationError):
        return "validation"
    return "unexpected"


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "PublishScheduler",
]
