"""
Analytics - Models.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List

from aggregation.models import DerivedMetricSet


# ============================================================
# METRIC TYPES
# ============================================================

class MetricType(Enum):
    """Kinds of rows in event_analytics."""

    VIEW = "view"
    TICKET_PURCHASE = "ticket_purchase"
    RATING = "rating"
    SHARE = "share"
    CLICK = "click"
    SEARCH = "search"

    @classmethod
    def parse(cls, value: Any) -> "MetricType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ValueError(
                f"Unknown metric type {value!r}, expected one of "
                f"{', '.join(m.value for m in cls)}"
            )


# ============================================================
# EVENT ANALYTICS
# ============================================================

@dataclass
class EventAnalytics:
    """Tracked metrics of one event."""

    event_id: str
    views: int = 0
    ticket_sales: int = 0
    revenue: Decimal = Decimal("0")
    average_rating: float = 0.0
    total_ratings: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "views": self.views,
            "ticket_sales": self.ticket_sales,
            "revenue": float(self.revenue),
            "average_rating": self.average_rating,
            "total_ratings": self.total_ratings,
        }


# ============================================================
# DASHBOARD
# ============================================================

@dataclass
class DashboardAnalytics:
    """A creator's dashboard for one trailing period."""

    creator_id: str
    period: str
    metrics: DerivedMetricSet
    events: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, Any]:
        return {
            "total_views": self.metrics.count("total_views"),
            "total_tickets": self.metrics.count("total_tickets"),
            "total_revenue": self.metrics.amount("total_revenue"),
            "average_rating": self.metrics.average("average_rating"),
            "events_created": self.metrics.count("events_created"),
        }

    def event_summaries(self) -> List[Dict[str, Any]]:
        """Per-event rows: views, tickets, revenue, rating."""
        summaries = []
        for event in self.events:
            event_metrics = self.metrics.breakdown.get(str(event.get("id")))
            if event_metrics is None:
                continue
            summaries.append({
                "id": event.get("id"),
                "name": event.get("name"),
                "views": event_metrics.count("views"),
                "tickets": event_metrics.count("tickets_sold"),
                "revenue": event_metrics.amount("revenue"),
                "average_rating": event_metrics.average("average_rating"),
            })
        return summaries


__all__ = [
    "MetricType",
    "EventAnalytics",
    "DashboardAnalytics",
]
