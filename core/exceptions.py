"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the sync layer.

- Provides clear exception hierarchy
- Enables specific error handling per failure class
- Carries context for structured logging

============================================================
EXCEPTION HIERARCHY
============================================================
SyncError (base)
├── ConfigurationError
├── TransportError
│   └── ChannelJoinError
├── PayloadError
├── BackendError
│   ├── QueryError
│   └── RecordNotFoundError
├── IntegrationError
│   ├── TipGenerationError
│   └── PaymentIntentError
└── ViewClosedError

============================================================
HANDLING POLICY
============================================================
- Transport errors: logged, never fatal
- Query/write errors: surfaced to the initiating view as a toast
- Aggregation input problems: never raised
- AI endpoint errors: degraded inside the tip generator

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for logging."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, user-visible degradation."""

    HIGH = "high"
    """Serious issue, a feature is unavailable."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error can be recovered from automatically."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class SyncError(Exception):
    """
    Base exception for all sync layer errors.

    All exceptions carry:
    - severity: for logging
    - context: for debugging
    - classification: for retry decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_transient(self) -> bool:
        """Check if a retry may succeed."""
        return self.classification == ErrorClassification.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(SyncError):
    """Error in configuration."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key
        super().__init__(message, context=context, **kwargs)


# ============================================================
# TRANSPORT ERRORS
# ============================================================

class TransportError(SyncError):
    """Realtime connection failed or was lost."""

    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        channel: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if channel:
            context["channel"] = channel
        super().__init__(message, context=context, **kwargs)


class ChannelJoinError(TransportError):
    """The server refused or timed out a channel join."""


# ============================================================
# PAYLOAD ERRORS
# ============================================================

class PayloadError(SyncError):
    """A change payload could not be normalized."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if table:
            context["table"] = table
        super().__init__(message, context=context, **kwargs)


# ============================================================
# BACKEND ERRORS
# ============================================================

class BackendError(SyncError):
    """Base class for data store failures."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        status: Optional[int] = None,
        code: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if table:
            context["table"] = table
        if status is not None:
            context["status"] = status
        if code:
            context["code"] = code
        super().__init__(message, context=context, **kwargs)
        self.table = table
        self.status = status
        self.code = code


class QueryError(BackendError):
    """Malformed filter, constraint violation or transport failure."""


class RecordNotFoundError(BackendError):
    """A single-row lookup matched nothing."""

    default_severity = Severity.LOW


# ============================================================
# INTEGRATION ERRORS
# ============================================================

class IntegrationError(SyncError):
    """Base class for third-party endpoint failures."""

    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if endpoint:
            context["endpoint"] = endpoint
        if status is not None:
            context["status"] = status
        super().__init__(message, context=context, **kwargs)
        self.status = status


class TipGenerationError(IntegrationError):
    """AI tip endpoint returned an error."""


class PaymentIntentError(IntegrationError):
    """Payment-intent endpoint returned an error."""

    default_severity = Severity.HIGH


# ============================================================
# VIEW ERRORS
# ============================================================

class ViewClosedError(SyncError):
    """Work was scheduled on a view that has been unmounted."""

    default_severity = Severity.LOW


__all__ = [
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
