"""Data models for connected social accounts and OAuth handshakes."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from crosspost.platforms.base import Platform
from crosspost.utils import parse_timestamp, utc_now


@dataclass
class SocialAccount:
    """
    Stored OAuth credential set linking a user to one platform.

    One row per ``(user_id, platform)``.  Token columns hold Fernet
    ciphertext; plaintext is only ever produced by the token store.
    """

    id: str
    user_id: str
    platform: Platform
    external_account_id: Optional[str] = None
    access_token_encrypted: str = ""
    refresh_token_encrypted: Optional[str] = None
    expires_at: Optional[datetime] = None
    disabled: bool = False
    created_at: Optional[datetime] = None

    def is_fresh(self, horizon: timedelta, now: Optional[datetime] = None) -> bool:
        """
        True when the access token stays valid beyond *horizon*.

        Tokens without an expiry (long-lived page tokens) are always fresh.
        """
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utc_now()) + horizon

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SocialAccount":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            platform=Platform.parse(row["platform"]),
            external_account_id=row.get("external_account_id"),
            access_token_encrypted=row.get("access_token_encrypted") or "",
            refresh_token_encrypted=row.get("refresh_token_encrypted"),
            expires_at=parse_timestamp(row.get("expires_at")),
            disabled=bool(row.get("disabled")),
            created_at=parse_timestamp(row.get("created_at")),
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """Account summary safe to return to clients (no token columns)."""
        return {
            "id": self.id,
            "platform": self.platform.value,
            "external_account_id": self.external_account_id,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "disabled": self.disabled,
        }


@dataclass
class OAuthState:
    """Short-lived CSRF state binding an OAuth redirect to a user."""

    state: str
    user_id: str
    redirect_after: Optional[str] = None
    created_at: Optional[datetime] = None

    def is_expired(self, ttl: timedelta, now: Optional[datetime] = None) -> bool:
        if self.created_at is None:
            return True
        return self.created_at + ttl < (now or utc_now())

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "OAuthState":
        return cls(
            state=row["state"],
            user_id=row["user_id"],
            redirect_after=row.get("redirect_after"),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class TokenSet:
    """Plaintext tokens returned by a code exchange or a refresh."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    external_account_id: Optional[str] = None

    def __repr__(self) -> str:
        # Tokens never appear in reprs, tracebacks or logs
        return (
            f"TokenSet(external_account_id={self.external_account_id!r}, "
            f"expires_at={self.expires_at!r}, "
            f"has_refresh_token={self.refresh_token is not None})"
        )

    @staticmethod
    def expiry_from(expires_in: Any) -> Optional[datetime]:
        """Absolute expiry from a provider's ``expires_in`` seconds."""
        if expires_in in (None, ""):
            return None
        return utc_now() + timedelta(seconds=int(expires_in))
