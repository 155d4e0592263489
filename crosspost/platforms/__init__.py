"""Platform adapter registry.

``ADAPTERS`` is built once at import and keyed by :class:`Platform`;
dispatch never falls back to a default adapter.
"""
from types import MappingProxyType
from typing import Mapping, Union

from crosspost.platforms.base import (
    Credentials,
    Platform,
    PlatformAdapter,
    PublishResult,
)
from crosspost.platforms.blocklist import matches_forbidden_term
from crosspost.platforms.facebook import FacebookPageAdapter
from crosspost.platforms.instagram import InstagramBusinessAdapter
from crosspost.platforms.linkedin import LinkedInAdapter
from crosspost.platforms.youtube import YouTubeDraftAdapter
from crosspost.platforms.formatting import format_for_platform, format_multiple

ADAPTERS: Mapping[Platform, PlatformAdapter] = MappingProxyType({
    Platform.INSTAGRAM_BUSINESS: InstagramBusinessAdapter(),
    Platform.FACEBOOK_PAGE: FacebookPageAdapter(),
    Platform.LINKEDIN: LinkedInAdapter(),
    Platform.YOUTUBE_DRAFT: YouTubeDraftAdapter(),
})


def get_adapter(
    platform: Union[Platform, str],
    registry: Mapping[Platform, PlatformAdapter] = ADAPTERS,
) -> PlatformAdapter:
    """Resolve the adapter for *platform*.

    Raises:
        UnknownPlatformError: If *platform* is not a supported platform.
    """
    return registry[Platform.parse(platform)]


__all__ = [
    "ADAPTERS",
    "get_adapter",
    "Platform",
    "PlatformAdapter",
    "Credentials",
    "PublishResult",
    "matches_forbidden_term",
    "InstagramBusinessAdapter",
    "FacebookPageAdapter",
    "LinkedInAdapter",
    "YouTubeDraftAdapter",
    "format_for_platform",
    "format_multiple",
]
