"""
Event Analytics Service.

============================================================
PURPOSE
============================================================
Loads raw analytics rows for events and creators and hands them to
the aggregation engine.

DATA SOURCES:
- event_analytics:       view / ticket_purchase / rating metric rows
- payment_transactions:  succeeded payments (event revenue)
- tickets:               dashboard ticket counts and revenue
- event_ratings:         dashboard average rating

============================================================
"""

import asyncio
import logging
from datetime import datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from aggregation.engine import AggregationEngine, average_rating, period_days, revenue, to_decimal
from backend.client import BackendClient
from backend.query import Query
from core.exceptions import BackendError
from .models import DashboardAnalytics, EventAnalytics, MetricType


logger = logging.getLogger(__name__)


class EventAnalyticsService:
    """
    Event and creator analytics.
    """

    def __init__(self, backend: BackendClient, engine: AggregationEngine):
        self._backend = backend
        self._engine = engine

    # --------------------------------------------------------
    # SINGLE EVENT
    # --------------------------------------------------------

    async def get_event_analytics(self, event_id: str) -> Optional[EventAnalytics]:
        """Tracked metrics of one event; None if the rows cannot be loaded."""
        try:
            rows = await self._backend.select(
                Query("event_analytics").eq("event_id", event_id)
            )
        except BackendError as e:
            logger.error(f"Error fetching analytics for {event_id}: {e.message}")
            return None

        views = Decimal("0")
        ticket_sales = Decimal("0")
        ratings = []
        for row in rows:
            metric_type = row.get("metric_type")
            if metric_type == MetricType.VIEW.value:
                views += to_decimal(row.get("metric_value"))
            elif metric_type == MetricType.TICKET_PURCHASE.value:
                ticket_sales += to_decimal(row.get("metric_value"))
            elif metric_type == MetricType.RATING.value:
                ratings.append(row.get("metric_value"))

        analytics = EventAnalytics(
            event_id=event_id,
            views=int(views),
            ticket_sales=int(ticket_sales),
            average_rating=average_rating(ratings),
            total_ratings=len(ratings),
        )

        try:
            payments = await self._backend.select(
                Query("payment_transactions")
                .select("amount, status")
                .eq("event_id", event_id)
                .eq("status", "succeeded")
            )
        except BackendError as e:
            logger.warning(f"Error fetching payments for {event_id}: {e.message}")
            payments = []

        analytics.revenue = revenue(payments, "amount")
        return analytics

    async def get_all_events_analytics(self, creator_id: str) -> List[Dict[str, Any]]:
        """Every event of a creator with its analytics under "analytics"."""
        try:
            events = await self._backend.select(
                Query("events").select("id, name, created_at, date").eq("creator_id", creator_id)
            )
        except BackendError as e:
            logger.error(f"Error fetching events of {creator_id}: {e.message}")
            return []

        analytics = await asyncio.gather(
            *(self.get_event_analytics(event["id"]) for event in events)
        )
        return [{**event, "analytics": a} for event, a in zip(events, analytics)]

    # --------------------------------------------------------
    # DASHBOARD
    # --------------------------------------------------------

    def window_start(self, period: str) -> datetime:
        """Start of the first day of a trailing period, in the clock's timezone."""
        first_day = self._engine.clock.days_ago(period_days(period) - 1)
        return datetime.combine(first_day, time.min, tzinfo=self._engine.clock.tz)

    async def load_dashboard_rows(self, creator_id: str, period: str) -> Dict[str, List[Dict[str, Any]]]:
        """
        Raw rows behind a creator dashboard.

        Raises:
            QueryError: If any query fails
        """
        since = self.window_start(period).isoformat()

        events = await self._backend.select(
            Query("events")
            .select("id, name, created_at, price, creator_id")
            .eq("creator_id", creator_id)
            .order("created_at", desc=True)
        )
        event_ids = [e["id"] for e in events]
        if not event_ids:
            return {"events": [], "analytics": [], "tickets": [], "ratings": []}

        analytics, tickets, ratings = await asyncio.gather(
            self._backend.select(
                Query("event_analytics").in_("event_id", event_ids).gte("created_at", since)
            ),
            self._backend.select(
                Query("tickets")
                .select("event_id, price_paid, status, created_at")
                .in_("event_id", event_ids)
                .gte("created_at", since)
            ),
            self._backend.select(
                Query("event_ratings")
                .select("event_id, rating, created_at")
                .in_("event_id", event_ids)
                .gte("created_at", since)
            ),
        )
        return {"events": events, "analytics": analytics, "tickets": tickets, "ratings": ratings}

    async def get_dashboard_analytics(self, creator_id: str, period: str = "30d") -> DashboardAnalytics:
        """
        Full creator dashboard.

        Raises:
            QueryError: If the rows cannot be loaded
        """
        rows = await self.load_dashboard_rows(creator_id, period)
        metrics = self._engine.dashboard_metrics(
            creator_id,
            rows["events"],
            analytics=rows["analytics"],
            tickets=rows["tickets"],
            ratings=rows["ratings"],
            period=period,
        )
        return DashboardAnalytics(
            creator_id=creator_id,
            period=period,
            metrics=metrics,
            events=rows["events"],
        )


__all__ = ["EventAnalyticsService"]
