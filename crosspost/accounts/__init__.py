"""Connected social accounts: encrypted token storage and OAuth connect flow."""
from crosspost.accounts.models import OAuthState, SocialAccount, TokenSet
from crosspost.accounts.oauth import OAuthService, OAuthStateStore
from crosspost.accounts.providers import (
    GoogleOAuth,
    LinkedInOAuth,
    MetaOAuth,
    OAuthProvider,
    get_provider,
)
from crosspost.accounts.token_store import TokenStore

__all__ = [
    "OAuthState", "SocialAccount", "TokenSet",
    "OAuthService", "OAuthStateStore",
    "OAuthProvider", "LinkedInOAuth", "GoogleOAuth", "MetaOAuth", "get_provider",
    "TokenStore",
]
