"""
Core Module - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the sync layer.

Values come from environment variables (optionally loaded from a
.env file). Every section has safe defaults so tests can build a
config without touching the environment.

============================================================
"""

import os
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from .exceptions import ConfigurationError


VALID_PERIODS = ("7d", "30d", "90d")


# ============================================================
# BACKEND CONFIGURATION
# ============================================================

@dataclass
class BackendConfig:
    """
    Hosted backend connection settings.
    """

    url: str = ""
    """Project base URL, e.g. https://xyz.supabase.co"""

    anon_key: str = ""
    """Public API key sent as `apikey`."""

    access_token: Optional[str] = None
    """User session token; falls back to the anon key."""

    schema: str = "public"
    """Database schema for queries and change feeds."""

    request_timeout_seconds: float = 15.0
    """Timeout for REST calls."""

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1"

    @property
    def realtime_url(self) -> str:
        base = self.url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/realtime/v1/websocket?apikey={self.anon_key}&vsn=1.0.0"

    @property
    def bearer_token(self) -> str:
        return self.access_token or self.anon_key


# ============================================================
# REALTIME CONFIGURATION
# ============================================================

@dataclass
class RealtimeConfig:
    """
    Change-feed connection settings.

    Reconnection uses exponential backoff capped at max_reconnect_interval.
    """

    heartbeat_interval_seconds: float = 25.0
    """Phoenix heartbeat interval."""

    join_timeout_seconds: float = 10.0
    """How long to wait for a phx_join reply."""

    reconnect: bool = True
    """Whether to reconnect after the socket drops."""

    max_reconnect_attempts: int = 10
    """Give up after this many consecutive failures."""

    reconnect_interval_seconds: float = 1.0
    """Initial backoff delay."""

    max_reconnect_interval_seconds: float = 30.0
    """Backoff ceiling."""


# ============================================================
# NOTIFICATION CONFIGURATION
# ============================================================

@dataclass
class NotificationConfig:
    """
    Notification presenter settings.
    """

    toast_duration_seconds: float = 6.0
    """Lifetime of a notification toast unless dismissed."""

    message_duration_seconds: float = 4.0
    """Lifetime of success/error message toasts."""

    fetch_limit: int = 20
    """Notifications loaded when the center mounts."""

    reminder_lead_hours: int = 24
    """Event reminders fire this long before the event."""

    toast_history_limit: int = 500
    """Toasts kept in history for a long-running session."""


# ============================================================
# AGGREGATION CONFIGURATION
# ============================================================

@dataclass
class AggregationConfig:
    """
    Derived metric settings.
    """

    timezone_name: str = "UTC"
    """IANA timezone for calendar-day bucketing."""

    default_period: str = "30d"
    """Trailing window of the analytics dashboard."""

    consistency_window_days: int = 7
    """Window of the habit consistency metric."""

    tip_context_days: int = 30
    """Progress history sent to the tip endpoint."""

    @property
    def tz(self) -> tzinfo:
        if self.timezone_name.upper() == "UTC":
            return timezone.utc
        try:
            return ZoneInfo(self.timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(
                f"Unknown timezone: {self.timezone_name}",
                config_key="APP_TIMEZONE",
                cause=e,
            )


# ============================================================
# INTEGRATION CONFIGURATION
# ============================================================

@dataclass
class IntegrationConfig:
    """
    Third-party endpoint settings.
    """

    base_url: str = ""
    """Origin that relative endpoint paths are resolved against."""

    tips_endpoint_url: str = "/api/generate-tips"
    """AI tip generation endpoint."""

    payment_intent_url: str = "/api/create-payment-intent"
    """Payment-intent endpoint."""

    http_timeout_seconds: float = 30.0
    """Timeout for endpoint calls."""

    currency: str = "USD"
    """Display currency for prices."""

    def resolve(self, endpoint: str) -> str:
        """Absolute URL for an endpoint path."""
        if endpoint.startswith(("http://", "https://")) or not self.base_url:
            return endpoint
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"


# ============================================================
# APPLICATION CONFIGURATION
# ============================================================

@dataclass
class AppConfig:
    """
    Master configuration.
    """

    backend: BackendConfig = field(default_factory=BackendConfig)
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    integrations: IntegrationConfig = field(default_factory=IntegrationConfig)

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "AppConfig":
        """Build configuration from the environment (and .env if present)."""
        load_dotenv(dotenv_path)

        return cls(
            backend=BackendConfig(
                url=os.getenv("SUPABASE_URL", ""),
                anon_key=os.getenv("SUPABASE_ANON_KEY", ""),
                access_token=os.getenv("SUPABASE_ACCESS_TOKEN") or None,
                schema=os.getenv("SUPABASE_SCHEMA", "public"),
                request_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 15.0),
            ),
            realtime=RealtimeConfig(
                heartbeat_interval_seconds=_env_float("REALTIME_HEARTBEAT_SECONDS", 25.0),
                max_reconnect_attempts=_env_int("REALTIME_MAX_RECONNECT_ATTEMPTS", 10),
            ),
            notifications=NotificationConfig(
                toast_duration_seconds=_env_float("NOTIFICATION_TOAST_SECONDS", 6.0),
                fetch_limit=_env_int("NOTIFICATION_FETCH_LIMIT", 20),
                toast_history_limit=_env_int("NOTIFICATION_TOAST_HISTORY", 500),
            ),
            aggregation=AggregationConfig(
                timezone_name=os.getenv("APP_TIMEZONE", "UTC"),
                default_period=os.getenv("ANALYTICS_DEFAULT_PERIOD", "30d"),
            ),
            integrations=IntegrationConfig(
                base_url=os.getenv("APP_BASE_URL", ""),
                tips_endpoint_url=os.getenv("TIPS_ENDPOINT_URL", "/api/generate-tips"),
                payment_intent_url=os.getenv("PAYMENT_INTENT_URL", "/api/create-payment-intent"),
                http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 30.0),
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )

    @classmethod
    def for_testing(cls) -> "AppConfig":
        """Configuration with short timers and no remote backend."""
        return cls(
            backend=BackendConfig(url="http://localhost:54321", anon_key="test-anon-key"),
            realtime=RealtimeConfig(reconnect=False, join_timeout_seconds=1.0),
            notifications=NotificationConfig(
                toast_duration_seconds=0.05,
                message_duration_seconds=0.05,
            ),
        )

    def validate(self, require_backend: bool = True) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if require_backend:
            if not self.backend.url:
                errors.append("SUPABASE_URL is required")
            elif not self.backend.url.startswith(("http://", "https://")):
                errors.append("SUPABASE_URL must start with http:// or https://")
            if not self.backend.anon_key:
                errors.append("SUPABASE_ANON_KEY is required")

        if self.realtime.heartbeat_interval_seconds <= 0:
            errors.append("REALTIME_HEARTBEAT_SECONDS must be positive")

        if self.realtime.max_reconnect_attempts < 0:
            errors.append("REALTIME_MAX_RECONNECT_ATTEMPTS must not be negative")

        if self.notifications.toast_duration_seconds <= 0:
            errors.append("NOTIFICATION_TOAST_SECONDS must be positive")

        if self.notifications.fetch_limit < 1:
            errors.append("NOTIFICATION_FETCH_LIMIT must be at least 1")

        if self.notifications.toast_history_limit < 1:
            errors.append("NOTIFICATION_TOAST_HISTORY must be at least 1")

        if self.aggregation.default_period not in VALID_PERIODS:
            errors.append(
                f"ANALYTICS_DEFAULT_PERIOD must be one of {', '.join(VALID_PERIODS)}"
            )

        try:
            self.aggregation.tz
        except ConfigurationError as e:
            errors.append(e.message)

        return errors


# ============================================================
# HELPERS
# ============================================================

def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number", config_key=name, cause=e)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer", config_key=name, cause=e)
