"""
LinkedIn adapter: member share posts through the UGC Posts API.

The author URN comes from the connected account's ``external_account_id``
and must look like ``urn:li:person:<id>``.  An optional first media URL is
registered with the Assets API, uploaded, and attached as an image.
"""

import logging
from typing import Any, Dict, Optional, Sequence

from crosspost.exceptions import PublishError
from crosspost.platforms.base import (
    Credentials,
    Platform,
    PlatformText,
    PublishResult,
    TextPostAdapter,
    permanent,
    transient,
)

logger = logging.getLogger(__name__)

LINKEDIN_API_URL = "https://api.linkedin.com/v2"
LINKEDIN_VERSION = "202404"


class LinkedInAdapter(TextPostAdapter):
    """Publishes member posts to LinkedIn."""

    platform = Platform.LINKEDIN
    max_length = 3000

    def classify_error(self, status_code: int, payload: Dict[str, Any]) -> PublishError:
        message = str(payload.get("message", ""))
        if status_code == 429:
            return transient(self.platform, "rate_limited", message, status_code)
        if status_code >= 500:
            return transient(self.platform, "provider_unavailable", message, status_code)
        if status_code == 401:
            return permanent(self.platform, "unauthorized", message, status_code)
        if status_code == 403:
            return permanent(self.platform, "forbidden", message, status_code)
        if status_code in (400, 422):
            return permanent(self.platform, "invalid_content", message, status_code)
        return permanent(self.platform, "api_error", message, status_code)

    def _headers(self, access_token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "LinkedIn-Version": LINKEDIN_VERSION,
            "X-Restli-Protocol-Version": "2.0.0",
        }

    async def publish(
        self,
        platform_text: PlatformText,
        credentials: Credentials,
        media_urls: Sequence[str] = (),
    ) -> PublishResult:
        author = credentials.external_account_id or ""
        if not author.startswith("urn:li:"):
            raise permanent(self.platform, "invalid_author", "Missing or invalid LinkedIn author")

        asset = None
        if media_urls:
            asset = await self._upload_image(author, credentials.access_token, media_urls[0])

        share: Dict[str, Any] = {
            "shareCommentary": {"text": platform_text},
            "shareMediaCategory": "IMAGE" if asset else "NONE",
        }
        if asset:
            share["media"] = [{"status": "READY", "media": asset}]

        response = await self._request(
            "POST",
            f"{LINKEDIN_API_URL}/ugcPosts",
            headers=self._headers(credentials.access_token),
            json={
                "author": author,
                "lifecycleState": "PUBLISHED",
                "specificContent": {"com.linkedin.ugc.ShareContent": share},
                "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
            },
        )
        post_urn = _post_urn(response)
        if not post_urn:
            raise permanent(self.platform, "missing_post_id", "LinkedIn returned no post id")

        logger.info("[PUBLISH] linkedin post created: %s", post_urn)
        return PublishResult(
            external_id=post_urn,
            published_url=f"https://www.linkedin.com/feed/update/{post_urn}",
        )

    async def _upload_image(self, owner: str, access_token: str, media_url: str) -> str:
        registration = await self._request(
            "POST",
            f"{LINKEDIN_API_URL}/assets?action=registerUpload",
            headers=self._headers(access_token),
            json={
                "registerUploadRequest": {
                    "owner": owner,
                    "recipes": ["urn:li:digitalmediaRecipe:feedshare-image"],
                    "serviceRelationships": [
                        {"relationshipType": "OWNER", "identifier": "urn:li:userGeneratedContent"}
                    ],
                }
            },
        )
        value = registration.json().get("value") or {}
        upload_url = (
            value.get("uploadMechanism", {})
            .get("com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest", {})
            .get("uploadUrl")
        )
        asset = value.get("asset")
        if not upload_url or not asset:
            raise permanent(self.platform, "upload_registration_failed")

        media = await self._download(media_url)
        await self._request(
            "PUT",
            upload_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": media.headers.get("content-type", "application/octet-stream"),
            },
            content=media.content,
        )
        return asset


def _post_urn(response: Any) -> Optional[str]:
    header_id = response.headers.get("x-restli-id")
    if header_id:
        return header_id
    try:
        return response.json().get("id")
    except ValueError:
        return None
