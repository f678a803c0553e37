"""
Views Package.

============================================================
PURPOSE
============================================================
Realtime screens with a mount / unmount lifecycle.

COMPONENTS:
- NotificationCenterView: Notification list and unread badge
- AnalyticsDashboardView: Creator dashboard
- EventDetailView: Single event with tickets and ratings
- HabitDashboardView: Habits and their stats

============================================================
"""

from .base import (
    ViewContext,
    ViewScope,
    View,
)

from .notification_center import NotificationCenterView

from .analytics_dashboard import AnalyticsDashboardView

from .event_detail import EventDetailView

from .habit_dashboard import HabitDashboardView


__all__ = [
    "ViewContext",
    "ViewScope",
    "View",
    "NotificationCenterView",
    "AnalyticsDashboardView",
    "EventDetailView",
    "HabitDashboardView",
]
