"""
YouTube draft adapter: uploads a video as *private* via a resumable session.

The payload is structured ``{"title": ..., "description": ...}``.  The
video itself is the content item's stored asset, passed in as the first
media URL.
"""

import logging
from typing import Any, Dict, Sequence

from crosspost.exceptions import MissingFieldError, PublishError, ValidationError
from crosspost.platforms.base import (
    Credentials,
    Platform,
    PlatformAdapter,
    PlatformText,
    PublishResult,
    permanent,
    transient,
)
from crosspost.platforms.blocklist import matches_forbidden_term

logger = logging.getLogger(__name__)

YOUTUBE_UPLOAD_URL = (
    "https://www.googleapis.com/upload/youtube/v3/videos"
    "?uploadType=resumable&part=snippet,status"
)

TITLE_MAX = 100
DESCRIPTION_MAX = 5000

TRANSIENT_403_REASONS = frozenset(
    {"rateLimitExceeded", "userRateLimitExceeded", "quotaExceeded"}
)


class YouTubeDraftAdapter(PlatformAdapter):
    """Uploads private video drafts to the connected channel."""

    platform = Platform.YOUTUBE_DRAFT

    def validate(self, platform_text: Any) -> None:
        draft = platform_text if isinstance(platform_text, dict) else {}
        title = draft.get("title")
        description = draft.get("description")
        if not all(isinstance(value, str) and value.strip() for value in (title, description)):
            raise MissingFieldError("YouTube title/description required")
        if len(title) > TITLE_MAX or len(description) > DESCRIPTION_MAX:
            raise ValidationError("YouTube length exceeded")
        if matches_forbidden_term(title) or matches_forbidden_term(description):
            raise ValidationError("Forbidden content detected")

    def classify_error(self, status_code: int, payload: Dict[str, Any]) -> PublishError:
        error = payload.get("error") or {}
        message = str(error.get("message", ""))
        reasons = {item.get("reason") for item in error.get("errors") or [] if isinstance(item, dict)}

        if status_code == 429:
            return transient(self.platform, "rate_limited", message, status_code)
        if status_code >= 500:
            return transient(self.platform, "provider_unavailable", message, status_code)
        if status_code == 403 and reasons & TRANSIENT_403_REASONS:
            return transient(self.platform, "quota_exceeded", message, status_code)
        if status_code == 401:
            return permanent(self.platform, "youtube_invalid_token", message, status_code)
        if status_code == 403:
            return permanent(self.platform, "youtube_insufficient_permissions", message, status_code)
        if status_code == 404:
            return permanent(self.platform, "youtube_channel_not_found", message, status_code)
        if status_code == 400:
            return permanent(self.platform, "youtube_invalid_metadata", message, status_code)
        return permanent(self.platform, "youtube_upload_failed", message, status_code)

    async def publish(
        self,
        platform_text: PlatformText,
        credentials: Credentials,
        media_urls: Sequence[str] = (),
    ) -> PublishResult:
        if not media_urls:
            raise permanent(self.platform, "youtube_missing_media")

        media = await self._download(media_urls[0])
        content_type = media.headers.get("content-type", "video/mp4")
        video = media.content

        session = await self._request(
            "POST",
            YOUTUBE_UPLOAD_URL,
            headers={
                "Authorization": f"Bearer {credentials.access_token}",
                "Content-Type": "application/json; charset=UTF-8",
                "X-Upload-Content-Type": content_type,
                "X-Upload-Content-Length": str(len(video)),
            },
            json={
                "snippet": {
                    "title": platform_text["title"],
                    "description": platform_text.get("description", ""),
                },
                "status": {"privacyStatus": "private"},
            },
        )
        upload_url = session.headers.get("location")
        if not upload_url:
            raise permanent(self.platform, "youtube_upload_url_missing")

        upload = await self._request(
            "PUT",
            upload_url,
            headers={"Content-Type": content_type},
            content=video,
        )
        if upload.status_code == 308:
            # Session accepted only part of the body; a new attempt starts over
            raise transient(self.platform, "youtube_upload_incomplete", status_code=308)

        video_id = upload.json().get("id")
        if not video_id:
            raise permanent(self.platform, "youtube_missing_video_id")

        logger.info("[PUBLISH] youtube_draft video uploaded: %s", video_id)
        return PublishResult(
            external_id=video_id,
            published_url=f"https://www.youtube.com/watch?v={video_id}",
        )
