"""
Symmetric encryption for stored OAuth tokens.

Tokens are encrypted with Fernet (AES-128-CBC + HMAC-SHA256) from the
``cryptography`` package.  The key comes from ``TOKEN_ENCRYPTION_KEY`` and
must be a urlsafe-base64 encoded 32-byte key as produced by
``Fernet.generate_key()``.  A missing or malformed key is a configuration
error raised at construction: there is no fallback key.
"""

import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from crosspost.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_KEY = "TOKEN_ENCRYPTION_KEY"


class TokenDecryptionError(ConfigurationError):
    """Raised when stored ciphertext cannot be decrypted with the current key."""

    pass


class TokenCipher:
    """Encrypts and decrypts token strings.

    Args:
        key: Fernet key.  Falls back to the ``TOKEN_ENCRYPTION_KEY``
            environment variable.

    Raises:
        ConfigurationError: If no key is configured or the key is malformed.
    """

    def __init__(self, key: Optional[str] = None) -> None:
        key = key or os.environ.get(ENV_KEY, "")
        if not key:
            raise ConfigurationError(f"{ENV_KEY} must be set")
        try:
            self._fernet = Fernet(key.encode("ascii"))
        except (ValueError, TypeError, UnicodeEncodeError) as exc:
            raise ConfigurationError(
                f"{ENV_KEY} is not a valid Fernet key: {exc}"
            ) from exc

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, TypeError, UnicodeEncodeError) as exc:
            # Never include the ciphertext itself in logs
            logger.error("[CRYPTO] Token decryption failed (%s)", type(exc).__name__)
            raise TokenDecryptionError(
                "Stored token could not be decrypted with the configured key"
            ) from exc


__all__ = ["TokenCipher", "TokenDecryptionError"]
