"""
Notifications Package.

============================================================
PURPOSE
============================================================
User notifications: rows, live list state and toasts.

COMPONENTS:
- NotificationPresenter: List + unread counter for one user
- NotificationService: Row CRUD and fan-out helpers
- ToastCenter / ToastFormatter: Transient acknowledgements

============================================================
"""

from .models import (
    NotificationSeverity,
    NotificationRecord,
    Toast,
)

from .toasts import (
    ToastFormatter,
    ToastCenter,
)

from .presenter import NotificationPresenter

from .service import NotificationService


__all__ = [
    "NotificationSeverity",
    "NotificationRecord",
    "Toast",
    "ToastFormatter",
    "ToastCenter",
    "NotificationPresenter",
    "NotificationService",
]
