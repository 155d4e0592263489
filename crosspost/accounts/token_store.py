"""
Encrypted per-(user, platform) OAuth credential store.

The token store is the only component that sees plaintext tokens.  It
hands out a fresh access token on demand, refreshing through the
platform's :class:`~crosspost.accounts.providers.OAuthProvider` when the
stored token expires within the refresh horizon.

Every mutation of a ``social_accounts`` row is a conditional update:

- refresh:    ``WHERE id=X AND disabled=false AND access_token_encrypted=<seen>``
- disable:    ``WHERE id=X AND disabled=false``
- disconnect: ``WHERE id=X AND user_id=<owner>``

so a refresh racing a disconnect (or another refresh) never resurrects
a disabled account or overwrites newer tokens.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from crosspost.accounts.models import SocialAccount, TokenSet
from crosspost.accounts.providers import OAuthProvider, get_provider
from crosspost.config import SchedulingPolicy, get_settings
from crosspost.crypto import TokenCipher
from crosspost.database import SupabaseDB
from crosspost.exceptions import (
    AccountDisabledError,
    AccountNotFoundError,
    RefreshFailed,
    TokenEndpointError,
    TransientPublishError,
)
from crosspost.logging import ComponentLogger, LogComponent
from crosspost.platforms.base import Credentials, Platform

logger = logging.getLogger(__name__)


class TokenStore:
    """Loads, refreshes and disables social accounts.

    Args:
        db: Database client.
        cipher: Token cipher.  Built from ``TOKEN_ENCRYPTION_KEY`` when omitted.
        policy: Scheduling policy (refresh horizon).
        provider_factory: ``Platform -> OAuthProvider`` used for refreshes.
    """

    def __init__(
        self,
        db: SupabaseDB,
        cipher: Optional[TokenCipher] = None,
        policy: Optional[SchedulingPolicy] = None,
        provider_factory: Callable[[Platform], OAuthProvider] = get_provider,
    ) -> None:
        self.db = db
        self.cipher = cipher or TokenCipher()
        self.policy = policy or get_settings().policy
        self._provider_factory = provider_factory
        self.events = ComponentLogger(LogComponent.TOKEN_STORE)

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    async def get_account(self, user_id: str, platform: Platform) -> Optional[SocialAccount]:
        """Return the account for ``(user_id, platform)``, disabled or not."""
        platform = Platform.parse(platform)
        row = await self.db.get_social_account(user_id, platform.value)
        return SocialAccount.from_row(row) if row else None

    async def list_accounts(self, user_id: str) -> List[Dict[str, Any]]:
        """Connected accounts for display; token columns are never selected."""
        return await self.db.list_social_accounts(user_id)

    # -----------------------------------------------------------------
    # Freshness
    # -----------------------------------------------------------------

    async def ensure_fresh_token(self, user_id: str, platform: Platform) -> str:
        """Return a plaintext access token valid beyond the refresh horizon.

        Raises:
            AccountNotFoundError: No account connected.
            AccountDisabledError: Account disabled or disconnected.
            RefreshFailed: Refresh rejected; the account is now disabled.
            TransientPublishError: Provider temporarily unavailable.
        """
        _, token = await self._fresh(user_id, platform)
        return token

    async def get_credentials(self, user_id: str, platform: Platform) -> Credentials:
        """Like :meth:`ensure_fresh_token`, bundled with the external account id."""
        account, token = await self._fresh(user_id, platform)
        return Credentials(
            access_token=token, external_account_id=account.external_account_id
        )

    async def _fresh(self, user_id: str, platform: Platform) -> Tuple[SocialAccount, str]:
        platform = Platform.parse(platform)
        account = await self.get_account(user_id, platform)
        if account is None:
            raise AccountNotFoundError(f"No {platform.value} account connected")
        if account.disabled:
            raise AccountDisabledError(f"{platform.value} account is disabled; reconnect required")

        if account.is_fresh(self.policy.refresh_horizon):
            return account, self.cipher.decrypt(account.access_token_encrypted)

        return await self._refresh(account)

    async def _refresh(self, account: SocialAccount) -> Tuple[SocialAccount, str]:
        platform = account.platform
        current = TokenSet(
            access_token=self.cipher.decrypt(account.access_token_encrypted),
            refresh_token=(
                self.cipher.decrypt(account.refresh_token_encrypted)
                if account.refresh_token_encrypted
                else None
            ),
            expires_at=account.expires_at,
            external_account_id=account.external_account_id,
        )

        try:
            refreshed = await self._provider_factory(platform).refresh(current)
        except TokenEndpointError as exc:
            if exc.transient:
                logger.warning("[TOKENS] %s refresh unavailable: %s", platform.value, exc)
                raise TransientPublishError(
                    platform.value, "token_refresh_unavailable", str(exc), exc.status_code
                ) from exc
            await self.disable(account.id)
            await self.events.warning(
                "Refresh rejected, account disabled",
                data={"account_id": account.id, "platform": platform.value, "status": exc.status_code},
            )
            raise RefreshFailed(platform.value, str(exc), account_id=account.id) from exc

        row = await self.db.update_social_account(
            account.id,
            {
                "access_token_encrypted": self.cipher.encrypt(refreshed.access_token),
                "refresh_token_encrypted": (
                    self.cipher.encrypt(refreshed.refresh_token)
                    if refreshed.refresh_token
                    else account.refresh_token_encrypted
                ),
                "expires_at": refreshed.expires_at.isoformat() if refreshed.expires_at else None,
                "external_account_id": refreshed.external_account_id or account.external_account_id,
            },
            expected={
                "disabled": False,
                "access_token_encrypted": account.access_token_encrypted,
            },
        )

        if row is None:
            # Lost a race with a concurrent refresh or a disconnect
            latest = await self.get_account(account.user_id, platform)
            if latest and not latest.disabled and latest.is_fresh(self.policy.refresh_horizon):
                logger.info("[TOKENS] %s refreshed concurrently; using stored token", platform.value)
                return latest, self.cipher.decrypt(latest.access_token_encrypted)
            raise RefreshFailed(
                platform.value, "account changed during refresh", account_id=account.id
            )

        logger.info("[TOKENS] %s token refreshed for account %s", platform.value, account.id)
        await self.events.info(
            "Token refreshed", data={"account_id": account.id, "platform": platform.value}
        )
        return SocialAccount.from_row(row), refreshed.access_token

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    async def save_tokens(
        self, user_id: str, platform: Platform, tokens: TokenSet
    ) -> SocialAccount:
        """Store tokens from an OAuth callback, re-enabling the account."""
        platform = Platform.parse(platform)
        row = await self.db.upsert_social_account({
            "user_id": user_id,
            "platform": platform.value,
            "external_account_id": tokens.external_account_id,
            "access_token_encrypted": self.cipher.encrypt(tokens.access_token),
            "refresh_token_encrypted": (
                self.cipher.encrypt(tokens.refresh_token) if tokens.refresh_token else None
            ),
            "expires_at": tokens.expires_at.isoformat() if tokens.expires_at else None,
            "disabled": False,
        })
        logger.info("[TOKENS] %s account connected for user %s", platform.value, user_id)
        return SocialAccount.from_row(row)

    async def disable(self, account_id: str) -> bool:
        """Disable an account.  Returns ``False`` if it was already disabled."""
        row = await self.db.update_social_account(
            account_id, {"disabled": True}, expected={"disabled": False}
        )
        if row is not None:
            logger.warning("[TOKENS] Account %s disabled", account_id)
        return row is not None

    async def disconnect(self, user_id: str, account_id: str) -> SocialAccount:
        """Soft-delete: disable the account and clear its tokens.

        Raises:
            AccountNotFoundError: If *account_id* does not belong to *user_id*.
        """
        row = await self.db.update_social_account(
            account_id,
            {
                "disabled": True,
                "access_token_encrypted": "",
                "refresh_token_encrypted": None,
                "expires_at": None,
            },
            expected={"user_id": user_id},
        )
        if row is None:
            raise AccountNotFoundError("Account not found")
        logger.info("[TOKENS] Account %s disconnected by user %s", account_id, user_id)
        await self.events.info("Account disconnected", data={"account_id": account_id})
        return SocialAccount.from_row(row)
