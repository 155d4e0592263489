"""Instagram Business adapter: two-step container publish via the Graph API."""

import logging
from typing import Sequence

from crosspost.platforms.base import (
    Credentials,
    Platform,
    PlatformText,
    PublishResult,
    permanent,
)
from crosspost.platforms.graph import GraphAPIAdapter

logger = logging.getLogger(__name__)


class InstagramBusinessAdapter(GraphAPIAdapter):
    """Publishes an image post with caption to an Instagram business account.

    Instagram has no text-only posts, so a media URL is required.  The
    flow is ``POST /{ig_user}/media`` (container) followed by
    ``POST /{ig_user}/media_publish``.
    """

    platform = Platform.INSTAGRAM_BUSINESS
    max_length = 2200

    async def publish(
        self,
        platform_text: PlatformText,
        credentials: Credentials,
        media_urls: Sequence[str] = (),
    ) -> PublishResult:
        ig_user_id = credentials.external_account_id
        if not ig_user_id:
            raise permanent(
                self.platform, "missing_business_account", "No Instagram business account connected"
            )
        if not media_urls:
            raise permanent(self.platform, "instagram_missing_media")

        container = await self._graph(
            "POST",
            f"{ig_user_id}/media",
            credentials.access_token,
            data={"image_url": media_urls[0], "caption": platform_text},
        )
        creation_id = container.get("id")
        if not creation_id:
            raise permanent(self.platform, "container_failed", "Graph API returned no container id")

        published = await self._graph(
            "POST",
            f"{ig_user_id}/media_publish",
            credentials.access_token,
            data={"creation_id": creation_id},
        )
        media_id = published.get("id")
        if not media_id:
            raise permanent(self.platform, "missing_media_id", "Graph API returned no media id")

        details = await self._graph(
            "GET", media_id, credentials.access_token, params={"fields": "permalink"}
        )
        logger.info("[PUBLISH] instagram_business media published: %s", media_id)
        return PublishResult(external_id=media_id, published_url=details.get("permalink"))
