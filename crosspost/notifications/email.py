"""
Email notification sink for manual-publish fallbacks and admin alerts.

Both entry points are fire-and-forget: a failed SMTP delivery is logged
and reported as ``False``, never raised into the publish scheduler.
Without ``SMTP_HOST`` and ``ALERT_EMAIL_TO`` configured the notifier is a
logged no-op.
"""

import html
import logging
from email.message import EmailMessage
from typing import Mapping, Optional, Sequence

import aiosmtplib

from crosspost.config import EmailSettings, get_settings
from crosspost.logging import ComponentLogger, LogComponent
from crosspost.platforms.base import Platform
from crosspost.scheduling.models import ScheduleRecord

logger = logging.getLogger(__name__)

FALLBACK_SUBJECT = "Manual publish required"

LEGAL_NOTICE = (
    "All content is provided by the user. The user is solely responsible for "
    "accuracy, legality, copyright compliance, and platform policies."
)

PLATFORM_LABELS = {
    Platform.INSTAGRAM_BUSINESS: "Instagram (IG)",
    Platform.FACEBOOK_PAGE: "Facebook",
    Platform.LINKEDIN: "LinkedIn",
    Platform.YOUTUBE_DRAFT: "YouTube Draft",
}


# =============================================================================
# MESSAGE RENDERING
# =============================================================================


def _platform_copy_text(record: ScheduleRecord) -> str:
    label = PLATFORM_LABELS[record.platform]
    body = record.platform_text
    if not body:
        return f"{label}: Not provided."
    if isinstance(body, Mapping):
        return f"{label}: {body.get('title') or 'Untitled'}\n{body.get('description') or ''}".strip()
    return f"{label}: {body}"


def build_fallback_text(record: ScheduleRecord, error: str, asset_links: Sequence[str]) -> str:
    """Plain-text body with everything needed to publish by hand."""
    if asset_links:
        link_block = "Download Links:\n" + "\n".join(asset_links)
    else:
        link_block = "No media links available."
    return "\n\n".join([
        f"Manual publish required for schedule {record.id}",
        f"Platform: {record.platform.value}",
        f"Scheduled At: {record.scheduled_time.isoformat()}",
        f"Last Error: {error}",
        link_block,
        "--- Platform Copy ---",
        _platform_copy_text(record),
        f"Legal: {LEGAL_NOTICE}",
    ])


def build_fallback_html(record: ScheduleRecord, error: str, asset_links: Sequence[str]) -> str:
    """HTML alternative of :func:`build_fallback_text`."""
    esc = html.escape
    items = "".join(
        f'<li><a href="{esc(url)}" target="_blank" rel="noopener noreferrer">{esc(url)}</a></li>'
        for url in asset_links
    ) or "<li>No media links available</li>"

    label = PLATFORM_LABELS[record.platform]
    body = record.platform_text
    if not body:
        copy = f"<p><strong>{label}:</strong> Not provided.</p>"
    elif isinstance(body, Mapping):
        copy = (
            f"<div><p><strong>{label}:</strong></p>"
            f"<p><em>Title:</em> {esc(str(body.get('title') or 'Untitled'))}</p>"
            f"<p><em>Description:</em><br/>{esc(str(body.get('description') or '')).replace(chr(10), '<br/>')}</p></div>"
        )
    else:
        copy = f"<p><strong>{label}:</strong> {esc(str(body)).replace(chr(10), '<br/>')}</p>"

    return f"""
    <div style="font-family: Arial, sans-serif; color: #0f172a;">
      <h2>Manual publish required</h2>
      <p>Schedule <strong>{esc(record.id)}</strong> for <strong>{record.platform.value}</strong> could not be auto-published.</p>
      <p><strong>Scheduled At:</strong> {record.scheduled_time.isoformat()}</p>
      <p><strong>Last Error:</strong> {esc(error)}</p>
      <h3>Download links</h3>
      <ul>{items}</ul>
      <h3>Platform Copy</h3>
      {copy}
      <p style="margin-top:16px; font-size:12px; color:#475569;">{LEGAL_NOTICE}</p>
    </div>
    """


# =============================================================================
# NOTIFIER
# =============================================================================


class EmailNotifier:
    """Sends alerts over SMTP with ``aiosmtplib``."""

    def __init__(self, settings: Optional[EmailSettings] = None) -> None:
        self.settings = settings or get_settings().email
        self.events = ComponentLogger(LogComponent.NOTIFIER)

    async def send_fallback_alert(
        self,
        user_id: str,
        record: ScheduleRecord,
        error: str,
        asset_links: Sequence[str] = (),
    ) -> bool:
        """Ask a human to publish *record* manually.

        Returns:
            ``True`` if the message was handed to the SMTP server.
        """
        message = self._message(FALLBACK_SUBJECT)
        message["X-User-ID"] = user_id
        message.set_content(build_fallback_text(record, error, asset_links))
        message.add_alternative(build_fallback_html(record, error, asset_links), subtype="html")
        sent = await self._send(message)
        if sent:
            await self.events.info(
                "Fallback alert sent", schedule_id=record.id, data={"platform": record.platform.value}
            )
        return sent

    async def send_admin_alert(self, subject: str, message: str) -> bool:
        email = self._message(subject)
        email.set_content(message)
        return await self._send(email)

    def _message(self, subject: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.settings.sender
        message["To"] = self.settings.alert_to
        message["Subject"] = subject
        return message

    async def _send(self, message: EmailMessage) -> bool:
        if not self.settings.enabled:
            logger.info(
                "[NOTIFY] Email disabled (SMTP_HOST/ALERT_EMAIL_TO unset); skipping '%s'",
                message["Subject"],
            )
            return False
        try:
            await aiosmtplib.send(
                message,
                hostname=self.settings.host,
                port=self.settings.port,
                username=self.settings.username or None,
                password=self.settings.password or None,
                start_tls=self.settings.port in (587, 25),
                timeout=self.settings.timeout_seconds,
            )
        except Exception as exc:
            logger.error("[NOTIFY] Failed to send '%s': %s", message["Subject"], exc)
            return False
        logger.info("[NOTIFY] Sent '%s' to %s", message["Subject"], self.settings.alert_to)
        return True
