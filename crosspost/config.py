"""
Centralized configuration loader for the crosspost publishing service.

Loads settings from YAML files and environment variables, providing
sensible defaults when configuration files are absent.

Provides:
    - SchedulingPolicy: Retry, backoff, refresh-horizon and polling constants
      with env var overrides
    - OAuthClientConfig: Per-platform OAuth client credentials from env vars
    - EmailSettings: SMTP transport settings for fallback notifications
    - Settings: Global application settings loaded from YAML + env vars
    - get_settings(): Cached singleton accessor for Settings
    - validate_env(): Startup validation of required environment variables
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from crosspost.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Project root directory (parent of crosspost/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


# ===========================================================================
# SCHEDULING POLICY
# ===========================================================================


@dataclass
class SchedulingPolicy:
    """
    Single source of truth for the publish pipeline's policy constants.

    The defaults (3 retries, 10-minute refresh horizon, 60-second minimum
    lead time) are policy values, not protocol requirements.  Each one can
    be overridden from the environment; see ``.env.example``.

    Usage::

        policy = SchedulingPolicy()
        delay = policy.backoff_delay(tries=2)   # 120 seconds
    """

    # Publish retries
    max_retries: int = 3
    backoff_base_seconds: int = 60

    # Token freshness
    refresh_horizon_minutes: int = 10

    # Schedule creation
    min_lead_seconds: int = 60

    # OAuth
    oauth_state_ttl_minutes: int = 5

    # Poller
    poll_interval_seconds: int = 60
    publish_timeout_seconds: int = 30
    batch_limit: int = 20

    # Crash recovery for rows left in "publishing"
    stuck_timeout_minutes: int = 10
    recovery_interval_cycles: int = 10

    def __post_init__(self) -> None:
        """Override policy values from environment variables if set."""
        env_overrides = {
            "MAX_PUBLISH_RETRIES": "max_retries",
            "RETRY_BACKOFF_SECONDS": "backoff_base_seconds",
            "TOKEN_REFRESH_HORIZON_MINUTES": "refresh_horizon_minutes",
            "SCHEDULE_MIN_LEAD_SECONDS": "min_lead_seconds",
            "OAUTH_STATE_TTL_MINUTES": "oauth_state_ttl_minutes",
            "POLL_INTERVAL_SECONDS": "poll_interval_seconds",
            "PUBLISH_TIMEOUT_SECONDS": "publish_timeout_seconds",
        }
        for env_key, attr_name in env_overrides.items():
            env_val = os.environ.get(env_key)
            if env_val is not None:
                try:
                    setattr(self, attr_name, int(env_val))
                except (ValueError, TypeError) as exc:
                    raise ConfigurationError(
                        f"Invalid value for env var {env_key}='{env_val}': {exc}"
                    ) from exc

        if self.max_retries < 1:
            raise ConfigurationError(
                f"max_retries must be >= 1, got {self.max_retries}"
            )

    def backoff_delay(self, tries: int) -> timedelta:
        """
        Delay added to ``scheduled_time`` before retry number *tries*.

        Exponential: ``backoff_base_seconds * 2 ** (tries - 1)``, i.e. 60s,
        120s, 240s with the defaults.
        """
        exponent = max(tries - 1, 0)
        return timedelta(seconds=self.backoff_base_seconds * (2 ** exponent))

    @property
    def refresh_horizon(self) -> timedelta:
        return timedelta(minutes=self.refresh_horizon_minutes)

    @property
    def min_lead(self) -> timedelta:
        return timedelta(seconds=self.min_lead_seconds)

    @property
    def oauth_state_ttl(self) -> timedelta:
        return timedelta(minutes=self.oauth_state_ttl_minutes)

    @property
    def stuck_timeout(self) -> timedelta:
        return timedelta(minutes=self.stuck_timeout_minutes)


# ===========================================================================
# OAUTH CLIENT CREDENTIALS
# ===========================================================================


@dataclass
class OAuthClientConfig:
    """
    OAuth client credentials for one platform.

    Read from ``OAUTH_<PLATFORM>_CLIENT_ID`` / ``OAUTH_<PLATFORM>_CLIENT_SECRET``
    where ``<PLATFORM>`` is the upper-cased platform value, e.g.
    ``OAUTH_LINKEDIN_CLIENT_ID`` or ``OAUTH_YOUTUBE_DRAFT_CLIENT_SECRET``.
    """

    client_id: str
    client_secret: str

    @classmethod
    def for_platform(cls, platform: str) -> "OAuthClientConfig":
        """
        Load the credentials for *platform* from the environment.

        Raises:
            ConfigurationError: If either variable is missing (fail-fast).
        """
        prefix = f"OAUTH_{platform.upper()}"
        client_id = os.environ.get(f"{prefix}_CLIENT_ID")
        client_secret = os.environ.get(f"{prefix}_CLIENT_SECRET")
        if not client_id or not client_secret:
            raise ConfigurationError(
                f"{prefix}_CLIENT_ID and {prefix}_CLIENT_SECRET must be set"
            )
        return cls(client_id=client_id, client_secret=client_secret)


# ===========================================================================
# EMAIL SETTINGS
# ===========================================================================


@dataclass
class EmailSettings:
    """SMTP settings for fallback and admin alerts."""

    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    sender: str = "noreply@example.com"
    alert_to: str = ""
    timeout_seconds: float = 15.0

    @classmethod
    def from_env(cls) -> "EmailSettings":
        port_raw = os.environ.get("SMTP_PORT", "587")
        try:
            port = int(port_raw)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid value for env var SMTP_PORT='{port_raw}': {exc}"
            ) from exc
        return cls(
            host=os.environ.get("SMTP_HOST", ""),
            port=port,
            username=os.environ.get("SMTP_USER", ""),
            password=os.environ.get("SMTP_PASSWORD", ""),
            sender=os.environ.get("SMTP_FROM", "noreply@example.com"),
            alert_to=os.environ.get("ALERT_EMAIL_TO", ""),
        )

    @property
    def enabled(self) -> bool:
        """Alerts are sent only when both a server and a recipient are set."""
        return bool(self.host and self.alert_to)


# ===========================================================================
# GLOBAL SETTINGS
# ===========================================================================


@dataclass
class Settings:
    """
    Global application settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    sensible defaults. Environment variables override YAML values for
    secrets and deployment-specific configuration.
    """

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Public URLs
    backend_base_url: str = "http://localhost:4000"
    app_base_url: str = "http://localhost:3000"

    # Storage bucket holding uploaded content assets
    content_bucket: str = "contents"

    # Nested sections
    policy: SchedulingPolicy = field(default_factory=SchedulingPolicy)
    email: EmailSettings = field(default_factory=EmailSettings.from_env)

    def oauth_redirect_uri(self, platform: str) -> str:
        """Callback URL registered with the provider for *platform*."""
        return f"{self.backend_base_url.rstrip('/')}/api/oauth/{platform}/callback"

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables override YAML values for specific keys.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc

        # -----------------------------------------------------------------
        # Scheduling policy (YAML values, then env overrides in __post_init__)
        # -----------------------------------------------------------------
        policy_data = data.get("scheduling", {}) or {}
        unknown = set(policy_data) - set(SchedulingPolicy.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(
                f"Unknown keys in 'scheduling' section of {path}: {sorted(unknown)}"
            )
        policy = SchedulingPolicy(**policy_data)

        return cls(
            log_level=os.environ.get("LOG_LEVEL", data.get("log_level", "INFO")),
            log_dir=data.get("log_dir", "logs"),
            backend_base_url=os.environ.get(
                "BACKEND_BASE_URL",
                data.get("backend_base_url", "http://localhost:4000"),
            ),
            app_base_url=os.environ.get(
                "APP_BASE_URL", data.get("app_base_url", "http://localhost:3000")
            ),
            content_bucket=data.get("content_bucket", "contents"),
            policy=policy,
            email=EmailSettings.from_env(),
        )


# ===========================================================================
# SINGLETON SETTINGS ACCESSOR
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global Settings singleton.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """
    Reset the cached Settings singleton.

    Useful for testing or when configuration files have been updated
    at runtime.
    """
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# ENVIRONMENT VARIABLE VALIDATION
# ===========================================================================

# Required environment variables for the system to function
REQUIRED_ENV_VARS: List[str] = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_KEY",
    "TOKEN_ENCRYPTION_KEY",
]

# Optional but recommended environment variables
OPTIONAL_ENV_VARS: List[str] = [
    "BACKEND_BASE_URL",
    "SMTP_HOST",
    "ALERT_EMAIL_TO",
    "OAUTH_INSTAGRAM_BUSINESS_CLIENT_ID",
    "OAUTH_FACEBOOK_PAGE_CLIENT_ID",
    "OAUTH_LINKEDIN_CLIENT_ID",
    "OAUTH_YOUTUBE_DRAFT_CLIENT_ID",
]


def validate_env(strict: bool = True) -> Dict[str, bool]:
    """
    Validate that required environment variables are set.

    Args:
        strict: If ``True``, raise ``ConfigurationError`` when any required
            variable is missing. If ``False``, return the status dict
            without raising.

    Returns:
        Dict mapping variable name to presence status (``True`` if set).

    Raises:
        ConfigurationError: If ``strict=True`` and required vars are missing.
    """
    status: Dict[str, bool] = {}
    missing: List[str] = []

    for var in REQUIRED_ENV_VARS:
        present = bool(os.environ.get(var))
        status[var] = present
        if not present:
            missing.append(var)

    for var in OPTIONAL_ENV_VARS:
        status[var] = bool(os.environ.get(var))

    if strict and missing:
        raise ConfigurationError(
            f"Missing required environment variables: {missing}. "
            f"Copy .env.example to .env and fill in the values."
        )

    return status
