"""
Custom exception classes for the crosspost publishing service.

This module defines all exception classes used throughout the codebase.
Exceptions follow the fail-fast philosophy: no silent fallbacks, surface
errors immediately with clear context.  Errors that reach the schedule
creation API carry an ``http_status`` so the routing layer can map them
to a structured ``{"error": ...}`` response without guessing.

Hierarchy:
    Exception
    +-- CrosspostError (base for all service errors)
        +-- ValidationError (ValueError)
        |   +-- MissingFieldError
        |   +-- UnknownPlatformError
        +-- OwnershipError
        +-- AuthError
        |   +-- AccountNotFoundError
        |   +-- AccountDisabledError
        |   +-- InvalidOAuthStateError
        +-- RefreshFailed
        +-- TokenEndpointError
        +-- PublishError
        |   +-- TransientPublishError
        |   +-- PermanentPublishError
        +-- DatabaseError
        +-- ConfigurationError
        +-- RetryExhaustedError
"""

from typing import Any, Dict, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class CrosspostError(Exception):
    """Base exception for all service errors."""

    http_status: int = 500

    def to_response(self) -> Dict[str, str]:
        """Structured error body for the routing layer."""
        return {"error": str(self)}


# =============================================================================
# INPUT VALIDATION
# =============================================================================


class ValidationError(CrosspostError, ValueError):
    """Raised when input validation fails.  Never retried."""

    http_status = 400


class MissingFieldError(ValidationError):
    """Raised when a required structured field is absent."""

    http_status = 422


class UnknownPlatformError(ValidationError):
    """Raised when a platform value is not one of the supported platforms.

    Attributes:
        value: The rejected platform value.
    """

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Unsupported platform: {value!r}")


class OwnershipError(CrosspostError):
    """Raised when a user references a resource they do not own."""

    http_status = 403


# =============================================================================
# ACCOUNT / AUTH EXCEPTIONS
# =============================================================================


class AuthError(CrosspostError):
    """Raised when no usable credentials exist.  Terminal for the record."""

    http_status = 401


class AccountNotFoundError(AuthError):
    """Raised when no social account is connected for (user, platform)."""

    pass


class AccountDisabledError(AuthError):
    """Raised when the social account was disabled or disconnected."""

    pass


class InvalidOAuthStateError(AuthError):
    """Raised when an OAuth state is missing, expired, or already consumed."""

    def __init__(self, message: str = "invalid_state"):
        super().__init__(message)


class RefreshFailed(CrosspostError):
    """Raised when an access token cannot be refreshed.

    The account is disabled and must be re-authorised by the user.

    Attributes:
        platform: Platform value of the account.
        account_id: ID of the disabled account (if known).
    """

    def __init__(self, platform: str, message: str, account_id: Optional[str] = None):
        self.platform = platform
        self.account_id = account_id
        super().__init__(f"{platform} token refresh failed: {message}")


class TokenEndpointError(CrosspostError):
    """Raised when a provider's OAuth token or profile endpoint fails.

    Attributes:
        platform: Platform value the provider serves.
        transient: ``True`` for 5xx, 429 and network failures.
        status_code: HTTP status returned by the provider, if any.
    """

    http_status = 502

    def __init__(
        self,
        platform: str,
        message: str,
        transient: bool = False,
        status_code: Optional[int] = None,
    ):
        self.platform = platform
        self.transient = transient
        self.status_code = status_code
        super().__init__(f"{platform} OAuth endpoint error: {message}")


# =============================================================================
# PUBLISH EXCEPTIONS
# =============================================================================


class PublishError(CrosspostError):
    """Raised by platform adapters when publication fails.

    Attributes:
        platform: Platform value of the adapter that failed.
        code: Short machine-readable failure code (e.g. ``"rate_limited"``).
        status_code: HTTP status returned by the provider, if any.
    """

    transient: bool = False

    def __init__(
        self,
        platform: str,
        code: str,
        message: str = "",
        status_code: Optional[int] = None,
    ):
        self.platform = platform
        self.code = code
        self.status_code = status_code
        detail = f"{code}: {message}" if message else code
        super().__init__(f"[{platform}] {detail}")


class TransientPublishError(PublishError):
    """Retryable failure: rate limit, timeout, provider 5xx, network error."""

    transient = True


class PermanentPublishError(PublishError):
    """Non-retryable failure: content rejected, revoked auth, missing scope."""

    transient = False


# =============================================================================
# INFRASTRUCTURE EXCEPTIONS
# =============================================================================


class DatabaseError(CrosspostError):
    """Raised when database operations fail."""

    http_status = 500


class ConfigurationError(CrosspostError):
    """Raised when system configuration is invalid or missing."""

    pass


class RetryExhaustedError(CrosspostError):
    """Raised when all in-process retry attempts have been exhausted.

    Attributes:
        operation: Name of the operation that was retried.
        attempts: Total number of attempts made.
        last_error: The last exception raised before giving up.
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts. "
            f"Last error: {last_error}"
        )


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Base
    "CrosspostError",
    # Validation
    "ValidationError",
    "MissingFieldError",
    "UnknownPlatformError",
    "OwnershipError",
    # Auth
    "AuthError",
    "AccountNotFoundError",
    "AccountDisabledError",
    "InvalidOAuthStateError",
    "RefreshFailed",
    "TokenEndpointError",
    # Publish
    "PublishError",
    "TransientPublishError",
    "PermanentPublishError",
    # Infrastructure
    "DatabaseError",
    "ConfigurationError",
    "RetryExhaustedError",
]
