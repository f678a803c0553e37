"""
Core Module Package.

This package contains the infrastructure every other package
depends on.

Components:
- clock: Time abstraction with a controllable test clock
- config: Environment-driven configuration
- exceptions: Exception hierarchy
- cli: Argument parsing and logging setup
"""

from .clock import (
    ClockProtocol,
    SystemClock,
    MockClock,
    to_iso8601,
    parse_timestamp,
    calendar_date,
)

from .config import (
    VALID_PERIODS,
    BackendConfig,
    RealtimeConfig,
    NotificationConfig,
    AggregationConfig,
    IntegrationConfig,
    AppConfig,
)

from .exceptions import (
    Severity,
    ErrorClassification,
    SyncError,
    ConfigurationError,
    TransportError,
    ChannelJoinError,
    PayloadError,
    BackendError,
    QueryError,
    RecordNotFoundError,
    IntegrationError,
    TipGenerationError,
    PaymentIntentError,
    ViewClosedError,
)


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "to_iso8601",
    "parse_timestamp",
    "calendar_date",
    "VALID_PERIODS",
    "BackendConfig",
    "RealtimeConfig",
    "NotificationConfig",
    "AggregationConfig",
    "IntegrationConfig",
    "AppConfig",
    "Severity",
    "ErrorClassification",
    "SyncError",
    "ConfigurationError",
    "TransportError",
    "ChannelJoinError",
    "PayloadError",
    "BackendError",
    "QueryError",
    "RecordNotFoundError",
    "IntegrationError",
    "TipGenerationError",
    "PaymentIntentError",
    "ViewClosedError",
]
