"""
Toast Center.

============================================================
PURPOSE
============================================================
Show transient acknowledgements to the user.

PRINCIPLES:
- Every toast auto-expires unless dismissed first
- Sinks render toasts (terminal log, UI bridge, tests)
- A failing sink never blocks the others

============================================================
"""

import asyncio
import itertools
import logging
from typing import Callable, Dict, List, Optional

from core.clock import ClockProtocol, SystemClock
from .models import NotificationRecord, NotificationSeverity, Toast


logger = logging.getLogger(__name__)


ToastSink = Callable[[Toast], None]


# ============================================================
# TOAST FORMATTER
# ============================================================

class ToastFormatter:
    """
    Formats toasts and notifications as plain text.
    """

    # Severity icons
    SEVERITY_ICONS = {
        NotificationSeverity.INFO: "ℹ",
        NotificationSeverity.SUCCESS: "✓",
        NotificationSeverity.WARNING: "⚠",
        NotificationSeverity.ERROR: "✕",
    }

    @classmethod
    def icon(cls, severity: NotificationSeverity) -> str:
        return cls.SEVERITY_ICONS.get(severity, "ℹ")

    @classmethod
    def format_toast(cls, toast: Toast) -> str:
        """Single-line rendering of a toast."""
        icon = cls.icon(toast.severity)
        if toast.title:
            return f"{icon} {toast.title}: {toast.message}"
        return f"{icon} {toast.message}"

    @classmethod
    def format_notification(cls, record: NotificationRecord) -> str:
        """Notification list line with read marker and time."""
        marker = " " if record.read else "•"
        time_str = record.created_at.strftime("%Y-%m-%d %H:%M") if record.created_at else "--"
        return f"{marker} {cls.icon(record.severity)} {record.title} - {record.message} ({time_str})"

    @staticmethod
    def format_badge(unread_count: int) -> str:
        """Unread badge text; empty when nothing is unread."""
        if unread_count <= 0:
            return ""
        return "9+" if unread_count > 9 else str(unread_count)


# ============================================================
# TOAST CENTER
# ============================================================

class ToastCenter:
    """
    Holds visible toasts and expires them on the event loop.
    """

    def __init__(
        self,
        clock: Optional[ClockProtocol] = None,
        default_duration_seconds: float = 6.0,
        message_duration_seconds: float = 4.0,
        max_history: int = 500,
    ):
        """
        Initialize toast center.

        Args:
            clock: Timestamp source
            default_duration_seconds: Lifetime of notification toasts
            message_duration_seconds: Lifetime of success/error messages
            max_history: Toasts kept in history before the oldest are trimmed
        """
        self._clock = clock or SystemClock()
        self._default_duration = default_duration_seconds
        self._message_duration = message_duration_seconds

        self._toasts: Dict[str, Toast] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._sinks: List[ToastSink] = []
        self._ids = itertools.count(1)

        # Most recent toasts shown, oldest first
        self.history: List[Toast] = []
        self._max_history = max_history

    # --------------------------------------------------------
    # SINKS
    # --------------------------------------------------------

    def add_sink(self, sink: ToastSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, sink: ToastSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    # --------------------------------------------------------
    # SHOW / DISMISS
    # --------------------------------------------------------

    @property
    def active(self) -> List[Toast]:
        """Visible toasts, newest first."""
        return [t for t in reversed(list(self._toasts.values())) if t.is_visible]

    def show(
        self,
        title: str,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
        duration_seconds: Optional[float] = None,
        source_id: Optional[str] = None,
    ) -> Toast:
        """Show a toast and schedule its expiry."""
        toast = Toast(
            toast_id=f"toast-{next(self._ids)}",
            title=title,
            message=message,
            severity=severity,
            duration_seconds=self._default_duration if duration_seconds is None else duration_seconds,
            created_at=self._clock.now(),
            source_id=source_id,
        )
        self._toasts[toast.toast_id] = toast
        self.history.append(toast)
        if len(self.history) > self._max_history:
            self.history = self.history[-self._max_history:]
        self._schedule_expiry(toast)

        for sink in list(self._sinks):
            try:
                sink(toast)
            except Exception as e:
                logger.error(f"Toast sink error: {e}")

        return toast

    def success(self, message: str) -> Toast:
        return self.show("", message, NotificationSeverity.SUCCESS, self._message_duration)

    def error(self, message: str) -> Toast:
        return self.show("", message, NotificationSeverity.ERROR, self._message_duration)

    def dismiss(self, toast_id: str) -> bool:
        """Dismiss a visible toast early."""
        toast = self._toasts.pop(toast_id, None)
        self._cancel_timer(toast_id)
        if toast is None or not toast.is_visible:
            return False
        toast.dismissed = True
        return True

    def clear(self) -> None:
        """Dismiss everything and cancel pending expiries."""
        for toast_id in list(self._toasts):
            self.dismiss(toast_id)

    # --------------------------------------------------------
    # EXPIRY
    # --------------------------------------------------------

    def _schedule_expiry(self, toast: Toast) -> None:
        if toast.duration_seconds <= 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop; {toast.toast_id} will not auto-expire")
            return
        self._timers[toast.toast_id] = loop.call_later(
            toast.duration_seconds, self._expire, toast.toast_id
        )

    def _expire(self, toast_id: str) -> None:
        self._timers.pop(toast_id, None)
        toast = self._toasts.pop(toast_id, None)
        if toast is not None:
            toast.expired = True

    def _cancel_timer(self, toast_id: str) -> None:
        timer = self._timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()


__all__ = [
    "ToastSink",
    "ToastFormatter",
    "ToastCenter",
]
