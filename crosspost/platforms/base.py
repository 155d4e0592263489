"""
Platform adapter contract shared by every publish target.

An adapter knows three things about its platform:

1. how to **validate** a platform payload before anything is persisted
   (length limits, required fields, forbidden-term check),
2. how to **publish** a payload with a user's access token, and
3. how to **classify** provider errors as transient (retry later) or
   permanent (fail the record now).

The classification is what drives the publish scheduler's retry loop, so
every adapter raises only :class:`TransientPublishError` or
:class:`PermanentPublishError` out of :meth:`PlatformAdapter.publish`.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import httpx

from crosspost.exceptions import (
    MissingFieldError,
    PermanentPublishError,
    PublishError,
    TransientPublishError,
    UnknownPlatformError,
    ValidationError,
)
from crosspost.platforms.blocklist import matches_forbidden_term

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 30.0

# Either plain post text or a structured {"title", "description"} video draft
PlatformText = Union[str, Mapping[str, Any]]


# =============================================================================
# PLATFORM ENUM
# =============================================================================


class Platform(str, Enum):
    """Supported publish targets.  Values are stored in the database."""

    INSTAGRAM_BUSINESS = "instagram_business"
    FACEBOOK_PAGE = "facebook_page"
    LINKEDIN = "linkedin"
    YOUTUBE_DRAFT = "youtube_draft"

    @classmethod
    def parse(cls, value: Union["Platform", str]) -> "Platform":
        """Resolve a platform from an enum member or its string value.

        Raises:
            UnknownPlatformError: For any other value.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            raise UnknownPlatformError(value) from exc

    @property
    def label(self) -> str:
        """Short label used in user-facing validation messages."""
        if self is Platform.INSTAGRAM_BUSINESS:
            return "ig"
        return self.value


# =============================================================================
# VALUE TYPES
# =============================================================================


@dataclass(frozen=True)
class Credentials:
    """What an adapter needs to act on behalf of a user."""

    access_token: str
    external_account_id: Optional[str] = None

    def __repr__(self) -> str:
        # Keep the token out of tracebacks and log lines
        return f"Credentials(external_account_id={self.external_account_id!r})"


@dataclass(frozen=True)
class PublishResult:
    """Identifiers returned by a successful publish."""

    external_id: str
    published_url: Optional[str] = None


# =============================================================================
# ADAPTER BASE CLASS
# =============================================================================


class PlatformAdapter(ABC):
    """Base class for all platform adapters.

    Args:
        http_client: Optional shared ``httpx.AsyncClient``.  When omitted a
            short-lived client with *timeout* is opened per request.
        timeout: Per-request timeout in seconds.
    """

    platform: Platform

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._http = http_client
        self.timeout = timeout

    @abstractmethod
    def validate(self, platform_text: Any) -> None:
        """Raise :class:`ValidationError` if *platform_text* cannot be published."""

    @abstractmethod
    async def publish(
        self,
        platform_text: PlatformText,
        credentials: Credentials,
        media_urls: Sequence[str] = (),
    ) -> PublishResult:
        """Publish *platform_text* and return its external identifiers.

        Raises:
            TransientPublishError: Retryable failure.
            PermanentPublishError: Non-retryable failure.
        """

    @abstractmethod
    def classify_error(
        self, status_code: int, payload: Dict[str, Any]
    ) -> PublishError:
        """Map a non-2xx provider response to a transient or permanent error."""

    # -----------------------------------------------------------------
    # HTTP plumbing
    # -----------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and raise a classified error on failure.

        Network errors and timeouts are always transient.  Non-2xx responses
        go through :meth:`classify_error`.
        """
        try:
            if self._http is not None:
                response = await self._http.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientPublishError(
                self.platform.value, "timeout", type(exc).__name__
            ) from exc
        except httpx.TransportError as exc:
            raise TransientPublishError(
                self.platform.value, "network_error", type(exc).__name__
            ) from exc

        if response.is_success or response.status_code == 308:
            return response

        error = self.classify_error(response.status_code, _json_body(response))
        logger.warning(
            "[PUBLISH] %s %s -> HTTP %d (%s)",
            self.platform.value,
            method,
            response.status_code,
            "transient" if error.transient else "permanent",
        )
        raise error

    async def _download(self, url: str) -> httpx.Response:
        """Fetch a media asset; a missing asset is a permanent failure."""
        try:
            return await self._request("GET", url)
        except PermanentPublishError as exc:
            raise PermanentPublishError(
                self.platform.value,
                "media_download_failed",
                str(exc),
                status_code=exc.status_code,
            ) from exc


class TextPostAdapter(PlatformAdapter):
    """Adapter whose payload is a single text body with a length limit."""

    max_length: int

    def validate(self, platform_text: Any) -> None:
        text = platform_text if isinstance(platform_text, str) else ""
        if not text.strip():
            raise MissingFieldError(f"Text required for {self.platform.value}")
        if len(text) > self.max_length:
            raise ValidationError(f"{self.platform.label} text too long")
        if matches_forbidden_term(text):
            raise ValidationError("Forbidden content detected")


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def permanent(platform: Platform, code: str, message: str = "", status_code: Optional[int] = None) -> PermanentPublishError:
    return PermanentPublishError(platform.value, code, message, status_code=status_code)


def transient(platform: Platform, code: str, message: str = "", status_code: Optional[int] = None) -> TransientPublishError:
    return TransientPublishError(platform.value, code, message, status_code=status_code)


__all__ = [
    "Platform",
    "PlatformText",
    "Credentials",
    "PublishResult",
    "PlatformAdapter",
    "TextPostAdapter",
    "permanent",
    "transient",
]
