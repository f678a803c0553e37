"""
Analytics Tracking.

============================================================
PURPOSE
============================================================
Records user interactions as analytics rows.

PRINCIPLES:
- Tracking never breaks the calling flow: failures are logged
  and reported as False
- One engagement row per (user, event), updated on every action

============================================================
"""

import logging
from typing import Any, Dict, Optional, Union

from backend.client import BackendClient
from core.clock import ClockProtocol
from core.exceptions import BackendError
from .models import MetricType


logger = logging.getLogger(__name__)


class TrackingService:
    """
    Writes event_analytics, user_engagement, search_analytics and
    page_analytics rows.
    """

    def __init__(self, backend: BackendClient, clock: ClockProtocol):
        self._backend = backend
        self._clock = clock

    async def track_event(
        self,
        event_id: str,
        metric_type: Union[MetricType, str],
        value: float = 1,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Record a metric for an event.

        Raises:
            ValueError: For an unknown metric type
        """
        metric = MetricType.parse(metric_type)

        try:
            await self._backend.insert("event_analytics", {
                "event_id": event_id,
                "metric_type": metric.value,
                "metric_value": value,
                "user_id": user_id,
                "metadata": metadata or {},
            })
        except BackendError as e:
            logger.error(f"Error tracking {metric.value} for {event_id}: {e.message}")
            return False

        if user_id:
            await self._track_user_engagement(user_id, metric.value, event_id)
        return True

    async def _track_user_engagement(self, user_id: str, action: str, event_id: str) -> None:
        try:
            await self._backend.upsert(
                "user_engagement",
                {
                    "user_id": user_id,
                    "event_id": event_id,
                    "last_action": action,
                    "last_interaction": self._clock.now().isoformat(),
                    "interaction_count": 1,
                },
                on_conflict="user_id,event_id",
            )
        except BackendError as e:
            logger.error(f"Error tracking engagement of {user_id} on {event_id}: {e.message}")

    async def track_search(
        self,
        query: str,
        results_count: int,
        user_id: Optional[str] = None,
    ) -> bool:
        try:
            await self._backend.insert("search_analytics", {
                "query": query,
                "results_count": results_count,
                "user_id": user_id,
                "timestamp": self._clock.now().isoformat(),
            })
        except BackendError as e:
            logger.error(f"Error tracking search {query!r}: {e.message}")
            return False
        return True

    async def track_page_view(
        self,
        page: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> bool:
        try:
            await self._backend.insert("page_analytics", {
                "page": page,
                "user_id": user_id,
                "session_id": session_id,
                "timestamp": self._clock.now().isoformat(),
            })
        except BackendError as e:
            logger.error(f"Error tracking page view {page}: {e.message}")
            return False
        return True


__all__ = ["TrackingService"]
