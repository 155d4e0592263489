"""Facebook Page adapter: feed posts (or photo posts) via the Graph API."""

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


class FacebookPageAdapter(GraphAPIAdapter):
    """Publishes to the connected page's feed.

    With a media URL the post is created through ``/{page}/photos``;
    otherwise it is a plain ``/{page}/feed`` message.
    """

    platform = Platform.FACEBOOK_PAGE
    max_length = 20000

    async def publish(
        self,
        platform_text: PlatformText,
        credentials: Credentials,
        media_urls: Sequence[str] = (),
    ) -> PublishResult:
        page_id = credentials.external_account_id
        if not page_id:
            raise permanent(self.platform, "missing_page_id", "No Facebook page connected")

        if media_urls:
            data = await self._graph(
                "POST",
                f"{page_id}/photos",
                credentials.access_token,
                data={"url": media_urls[0], "caption": platform_text},
            )
            post_id = data.get("post_id") or data.get("id")
        else:
            data = await self._graph(
                "POST",
                f"{page_id}/feed",
                credentials.access_token,
                data={"message": platform_text},
            )
            post_id = data.get("id")

        if not post_id:
            raise permanent(self.platform, "missing_post_id", "Graph API returned no id")

        permalink = await self._graph(
            "GET", post_id, credentials.access_token, params={"fields": "permalink_url"}
        )
        logger.info("[PUBLISH] facebook_page post created: %s", post_id)
        return PublishResult(external_id=post_id, published_url=permalink.get("permalink_url"))
