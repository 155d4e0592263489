"""
OAuth connect flow: single-use state tokens and code exchange.

``OAuthService.start`` issues a state bound to the user and returns the
provider's authorize URL; ``OAuthService.callback`` consumes the state
exactly once, exchanges the code and stores the encrypted tokens, which
also re-enables an account that had been disabled.
"""

import logging
import secrets
from typing import Callable, Optional

from crosspost.accounts.models import OAuthState, SocialAccount, TokenSet
from crosspost.accounts.providers import OAuthProvider, get_provider
from crosspost.accounts.token_store import TokenStore
from crosspost.config import Settings, get_settings
from crosspost.database import SupabaseDB
from crosspost.exceptions import InvalidOAuthStateError
from crosspost.logging import ComponentLogger, LogComponent
from crosspost.platforms.base import Platform
from crosspost.utils import utc_now

logger = logging.getLogger(__name__)

STATE_BYTES = 32


class OAuthStateStore:
    """Persists short-lived OAuth states in ``oauth_states``."""

    def __init__(self, db: SupabaseDB, settings: Optional[Settings] = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def create_state(self, user_id: str, redirect_after: Optional[str] = None) -> OAuthState:
        state = OAuthState(
            state=secrets.token_urlsafe(STATE_BYTES),
            user_id=user_id,
            redirect_after=redirect_after,
            created_at=utc_now(),
        )
        await self.db.insert_oauth_state({
            "state": state.state,
            "user_id": state.user_id,
            "redirect_after": state.redirect_after,
            "created_at": state.created_at.isoformat(),
        })
        return state

    async def consume_state(self, state: str) -> Optional[OAuthState]:
        """Atomically read-and-delete *state*.

        Returns ``None`` when the state is unknown, already consumed, or
        older than the configured TTL.  Expired rows are deleted too.
        """
        if not state:
            return None
        row = await self.db.delete_oauth_state(state)
        if row is None:
            return None
        consumed = OAuthState.from_row(row)
        if consumed.is_expired(self.settings.policy.oauth_state_ttl):
            logger.info("[OAUTH] Expired state rejected for user %s", consumed.user_id)
            return None
        return consumed


class OAuthService:
    """Runs the connect flow for every supported platform."""

    def __init__(
        self,
        db: SupabaseDB,
        token_store: TokenStore,
        settings: Optional[Settings] = None,
        provider_factory: Callable[[Platform], OAuthProvider] = get_provider,
    ) -> None:
        self.settings = settings or get_settings()
        self.states = OAuthStateStore(db, self.settings)
        self.token_store = token_store
        self._provider_factory = provider_factory
        self.events = ComponentLogger(LogComponent.OAUTH)

    async def start(
        self, platform: Platform, user_id: str, redirect_after: Optional[str] = None
    ) -> str:
        """Create a state and return the provider authorize URL."""
        platform = Platform.parse(platform)
        provider = self._provider_factory(platform)
        state = await self.states.create_state(user_id, redirect_after)
        return provider.build_authorize_url(
            state.state, self.settings.oauth_redirect_uri(platform.value)
        )

    async def exchange_code(self, platform: Platform, code: str) -> TokenSet:
        platform = Platform.parse(platform)
        return await self._provider_factory(platform).exchange_code(
            code, self.settings.oauth_redirect_uri(platform.value)
        )

    async def callback(self, platform: Platform, code: str, state: str) -> SocialAccount:
        """Finish the flow for the user bound to *state*.

        Raises:
            InvalidOAuthStateError: State missing, expired or replayed.
            TokenEndpointError: Provider rejected the code.
        """
        platform = Platform.parse(platform)
        consumed = await self.states.consume_state(state)
        if consumed is None:
            raise InvalidOAuthStateError()

        tokens = await self.exchange_code(platform, code)
        account = await self.token_store.save_tokens(consumed.user_id, platform, tokens)
        await self.events.info(
            "Account connected",
            data={"platform": platform.value, "account_id": account.id},
        )
        return account


__all__ = ["OAuthStateStore", "OAuthService"]
