"""
Analytics Package.

============================================================
PURPOSE
============================================================
Event analytics for creators.

COMPONENTS:
- EventAnalyticsService: Per-event analytics and creator dashboards
- TrackingService: Interaction tracking rows
- RatingService: Event ratings with creator notification

============================================================
"""

from .models import (
    MetricType,
    EventAnalytics,
    DashboardAnalytics,
)

from .service import EventAnalyticsService

from .tracking import TrackingService

from .ratings import (
    rating_message,
    RatingService,
)


__all__ = [
    "MetricType",
    "EventAnalytics",
    "DashboardAnalytics",
    "EventAnalyticsService",
    "TrackingService",
    "rating_message",
    "RatingService",
]
