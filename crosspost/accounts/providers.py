"""
OAuth provider strategies.

Each provider knows its authorize URL, how to exchange an authorization
code for tokens, how to resolve the external account the tokens act for,
and how to refresh.  All of them share one contract so the token store and
OAuth service never branch on platform.

Raw tokens are never logged; only status codes and error types are.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from crosspost.accounts.models import TokenSet
from crosspost.config import OAuthClientConfig
from crosspost.exceptions import RetryExhaustedError, TokenEndpointError
from crosspost.platforms.base import Platform
from crosspost.utils import with_retry

logger = logging.getLogger(__name__)

DEFAULT_OAUTH_TIMEOUT = 15.0


class OAuthProvider(ABC):
    """Base class for OAuth provider strategies.

    Args:
        platform: Platform the tokens will be stored under.
        client: Client credentials.  Loaded from the environment when omitted.
        http_client: Optional shared ``httpx.AsyncClient`` (tests inject one
            backed by ``httpx.MockTransport``).
    """

    authorize_url: str
    token_url: str

    def __init__(
        self,
        platform: Platform,
        client: Optional[OAuthClientConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_OAUTH_TIMEOUT,
    ) -> None:
        self.platform = platform
        self.client = client or OAuthClientConfig.for_platform(platform.value)
        self._http = http_client
        self.timeout = timeout

    # -----------------------------------------------------------------
    # Contract
    # -----------------------------------------------------------------

    def build_authorize_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client.client_id,
            "redirect_uri": redirect_uri,
            "state": state,
        }
        params.update(self.authorize_params())
        return f"{self.authorize_url}?{urlencode(params)}"

    @abstractmethod
    def authorize_params(self) -> Dict[str, str]:
        """Provider-specific authorize query parameters (scopes etc.)."""

    @abstractmethod
    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        """Exchange an authorization code for tokens."""

    @abstractmethod
    async def refresh(self, tokens: TokenSet) -> TokenSet:
        """Obtain a new access token.

        Raises:
            TokenEndpointError: ``transient`` is set for 5xx/429/network
                failures; anything else means re-authorisation is required.
        """

    # -----------------------------------------------------------------
    # HTTP plumbing
    # -----------------------------------------------------------------

    async def _call(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._send(method, url, **kwargs)
        except RetryExhaustedError as exc:
            raise TokenEndpointError(
                self.platform.value,
                f"network error ({type(exc.last_error).__name__})",
                transient=True,
            ) from exc

        if not response.is_success:
            transient = response.status_code == 429 or response.status_code >= 500
            logger.warning(
                "[OAUTH] %s %s -> HTTP %d",
                self.platform.value,
                url.split("?")[0],
                response.status_code,
            )
            raise TokenEndpointError(
                self.platform.value,
                f"HTTP {response.status_code}",
                transient=transient,
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise TokenEndpointError(self.platform.value, "invalid JSON response") from exc
        if not isinstance(body, dict):
            raise TokenEndpointError(self.platform.value, "unexpected response body")
        return body

    @with_retry(
        max_attempts=2,
        base_delay=0.5,
        retryable_exceptions=(httpx.TransportError,),
        operation_name="oauth_request",
    )
    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._http is not None:
            return await self._http.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, **kwargs)

    def _require_refresh_token(self, tokens: TokenSet) -> str:
        if not tokens.refresh_token:
            raise TokenEndpointError(self.platform.value, "no refresh token stored")
        return tokens.refresh_token

    def _field(self, body: Dict[str, Any], key: str) -> Any:
        """Read a required field from a provider response body."""
        value = body.get(key)
        if value in (None, ""):
            raise TokenEndpointError(self.platform.value, f"missing {key}")
        return value


# =============================================================================
# LINKEDIN
# =============================================================================


class LinkedInOAuth(OAuthProvider):
    authorize_url = "https://www.linkedin.com/oauth/v2/authorization"
    token_url = "https://www.linkedin.com/oauth/v2/accessToken"
    profile_url = "https://api.linkedin.com/v2/me"

    def authorize_params(self) -> Dict[str, str]:
        return {"scope": "w_member_social r_liteprofile"}

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        data = await self._call(
            "POST",
            self.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": self.client.client_id,
                "client_secret": self.client.client_secret,
            },
        )
        profile = await self._call(
            "GET",
            self.profile_url,
            headers={"Authorization": f"Bearer {self._field(data, 'access_token')}"},
        )
        return TokenSet(
            access_token=self._field(data, "access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=TokenSet.expiry_from(data.get("expires_in")),
            external_account_id=f"urn:li:person:{self._field(profile, 'id')}",
        )

    async def refresh(self, tokens: TokenSet) -> TokenSet:
        data = await self._call(
            "POST",
            self.token_url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": self._require_refresh_token(tokens),
                "client_id": self.client.client_id,
                "client_secret": self.client.client_secret,
            },
        )
        return TokenSet(
            access_token=self._field(data, "access_token"),
            refresh_token=data.get("refresh_token") or tokens.refresh_token,
            expires_at=TokenSet.expiry_from(data.get("expires_in")),
            external_account_id=tokens.external_account_id,
        )


# =============================================================================
# GOOGLE (YOUTUBE)
# =============================================================================


class GoogleOAuth(OAuthProvider):
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    channel_url = "https://www.googleapis.com/youtube/v3/channels"

    def authorize_params(self) -> Dict[str, str]:
        return {
            "scope": " ".join([
                "https://www.googleapis.com/auth/youtube.upload",
                "https://www.googleapis.com/auth/youtube.readonly",
            ]),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        data = await self._call(
            "POST",
            self.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": self.client.client_id,
                "client_secret": self.client.client_secret,
            },
        )
        channels = await self._call(
            "GET",
            self.channel_url,
            params={"part": "id", "mine": "true"},
            headers={"Authorization": f"Bearer {self._field(data, 'access_token')}"},
        )
        items = channels.get("items") or []
        if not items:
            raise TokenEndpointError(self.platform.value, "no YouTube channel on this account")
        return TokenSet(
            access_token=self._field(data, "access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=TokenSet.expiry_from(data.get("expires_in")),
            external_account_id=self._field(items[0], "id"),
        )

    async def refresh(self, tokens: TokenSet) -> TokenSet:
        data = await self._call(
            "POST",
            self.token_url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": self._require_refresh_token(tokens),
                "client_id": self.client.client_id,
                "client_secret": self.client.client_secret,
            },
        )
        # Google only returns a refresh token on the first consent
        return TokenSet(
            access_token=self._field(data, "access_token"),
            refresh_token=data.get("refresh_token") or tokens.refresh_token,
            expires_at=TokenSet.expiry_from(data.get("expires_in")),
            external_account_id=tokens.external_account_id,
        )


# =============================================================================
# META (FACEBOOK PAGES + INSTAGRAM BUSINESS)
# =============================================================================


class MetaOAuth(OAuthProvider):
    """
    Facebook Login for both page and Instagram business publishing.

    The long-lived *user* token is stored as the refresh token; the *page*
    token derived from it is the access token used for publishing.  A
    refresh re-extends the user token and re-reads the page token.
    """

    authorize_url = "https://www.facebook.com/v20.0/dialog/oauth"
    token_url = "https://graph.facebook.com/v20.0/oauth/access_token"
    accounts_url = "https://graph.facebook.com/v20.0/me/accounts"

    SCOPES = {
        Platform.FACEBOOK_PAGE: "pages_manage_posts,pages_read_engagement,pages_show_list",
        Platform.INSTAGRAM_BUSINESS: (
            "instagram_basic,instagram_content_publish,pages_show_list,pages_read_engagement"
        ),
    }

    def authorize_params(self) -> Dict[str, str]:
        return {"scope": self.SCOPES[self.platform]}

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        short_lived = await self._call(
            "GET",
            self.token_url,
            params={
                "client_id": self.client.client_id,
                "client_secret": self.client.client_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )
        return await self._long_lived(self._field(short_lived, "access_token"))

    async def refresh(self, tokens: TokenSet) -> TokenSet:
        return await self._long_lived(self._require_refresh_token(tokens))

    async def _long_lived(self, user_token: str) -> TokenSet:
        data = await self._call(
            "GET",
            self.token_url,
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.client.client_id,
                "client_secret": self.client.client_secret,
                "fb_exchange_token": user_token,
            },
        )
        long_lived = self._field(data, "access_token")
        external_id, page_token = await self._resolve_target(long_lived)
        return TokenSet(
            access_token=page_token,
            refresh_token=long_lived,
            expires_at=TokenSet.expiry_from(data.get("expires_in")),
            external_account_id=external_id,
        )

    async def _resolve_target(self, user_token: str) -> Tuple[str, str]:
        """Pick the first page (or its linked Instagram business account)."""
        pages = await self._call(
            "GET",
            self.accounts_url,
            params={
                "fields": "id,access_token,instagram_business_account",
                "access_token": user_token,
            },
        )
        for page in pages.get("data") or []:
            if self.platform is Platform.INSTAGRAM_BUSINESS:
                ig_account = page.get("instagram_business_account") or {}
                if ig_account.get("id"):
                    return ig_account["id"], self._field(page, "access_token")
            else:
                return self._field(page, "id"), self._field(page, "access_token")

        target = "Instagram business account" if self.platform is Platform.INSTAGRAM_BUSINESS else "Facebook page"
        raise TokenEndpointError(self.platform.value, f"no {target} available")


# =============================================================================
# REGISTRY
# =============================================================================

PROVIDERS = {
    Platform.LINKEDIN: LinkedInOAuth,
    Platform.YOUTUBE_DRAFT: GoogleOAuth,
    Platform.FACEBOOK_PAGE: MetaOAuth,
    Platform.INSTAGRAM_BUSINESS: MetaOAuth,
}


def get_provider(platform: Platform, http_client: Optional[httpx.AsyncClient] = None) -> OAuthProvider:
    """Instantiate the provider strategy for *platform*.

    Raises:
        ConfigurationError: If the platform's client credentials are not set.
    """
    return PROVIDERS[Platform.parse(platform)](Platform.parse(platform), http_client=http_client)
