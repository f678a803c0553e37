"""
Notifications - Models.

============================================================
PURPOSE
============================================================
In-memory representations of user notifications and toasts.

STATE MACHINE (per notification):
    UNREAD -> READ   (one-way)

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from core.clock import parse_timestamp


# ============================================================
# SEVERITY
# ============================================================

class NotificationSeverity(Enum):
    """Severity of a notification or toast."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

    @classmethod
    def parse(cls, value: Any) -> "NotificationSeverity":
        """Unknown or missing values fall back to INFO."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.INFO


# ============================================================
# NOTIFICATION RECORD
# ============================================================

@dataclass
class NotificationRecord:
    """A persisted notification as held by the presenter."""

    id: str
    owner_user_id: str
    title: str
    message: str
    severity: NotificationSeverity = NotificationSeverity.INFO
    read: bool = False
    related_entity_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> "NotificationRecord":
        """Build from a backend row dict or a validated change record."""
        if not isinstance(row, dict):
            row = row.model_dump()
        return cls(
            id=str(row["id"]),
            owner_user_id=str(row.get("user_id") or ""),
            title=row.get("title") or "",
            message=row.get("message") or "",
            severity=NotificationSeverity.parse(row.get("type")),
            read=bool(row.get("read") or False),
            related_entity_id=row.get("event_id"),
            created_at=parse_timestamp(row.get("created_at")),
        )

    def to_row(self) -> Dict[str, Any]:
        """Backend column layout."""
        row = {
            "id": self.id,
            "user_id": self.owner_user_id,
            "title": self.title,
            "message": self.message,
            "type": self.severity.value,
            "read": self.read,
            "event_id": self.related_entity_id,
        }
        if self.created_at is not None:
            row["created_at"] = self.created_at.isoformat()
        return row


# ============================================================
# TOAST
# ============================================================

@dataclass
class Toast:
    """A transient, dismissible acknowledgement."""

    toast_id: str
    title: str
    message: str
    severity: NotificationSeverity = NotificationSeverity.INFO
    duration_seconds: float = 6.0
    created_at: Optional[datetime] = None
    source_id: Optional[str] = None
    dismissed: bool = False
    expired: bool = False
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_visible(self) -> bool:
        return not (self.dismissed or self.expired)


__all__ = [
    "NotificationSeverity",
    "NotificationRecord",
    "Toast",
]
