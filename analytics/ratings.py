"""
Event Ratings.

============================================================
PURPOSE
============================================================
Submit and read event ratings.

RULES:
- Ratings are whole stars from 1 to 5
- At most one rating per (event, user): submissions upsert on that
  pair, so a double submit updates instead of duplicating
- The event creator is notified unless they rated their own event

============================================================
"""

import logging
from typing import Any, Dict, List, Optional

from backend.client import BackendClient
from backend.query import Query
from core.exceptions import BackendError
from notifications.service import NotificationService
from .models import MetricType
from .tracking import TrackingService


logger = logging.getLogger(__name__)


MIN_RATING = 1
MAX_RATING = 5


def rating_message(event_name: str, rating: int) -> str:
    """Body of the creator notification."""
    suffix = "" if rating == 1 else "s"
    return f'Someone rated your event "{event_name}" {rating} star{suffix}'


class RatingService:
    """
    event_ratings rows plus the creator notification.
    """

    def __init__(
        self,
        backend: BackendClient,
        notifications: NotificationService,
        tracking: Optional[TrackingService] = None,
    ):
        self._backend = backend
        self._notifications = notifications
        self._tracking = tracking

    async def submit_rating(
        self,
        event_id: str,
        event_name: str,
        user_id: str,
        rating: int,
        review: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create or replace the user's rating of an event.

        Raises:
            ValueError: If rating is outside 1..5
            QueryError: If the rating cannot be written
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise ValueError(f"Rating must be an integer from {MIN_RATING} to {MAX_RATING}, got {rating!r}")

        rows = await self._backend.upsert(
            "event_ratings",
            {
                "event_id": event_id,
                "user_id": user_id,
                "rating": rating,
                "review": (review or "").strip() or None,
            },
            on_conflict="event_id,user_id",
        )
        stored = rows[0] if rows else {}
        logger.info(f"Rating {rating} stored for event {event_id}")

        if self._tracking is not None:
            await self._tracking.track_event(event_id, MetricType.RATING, rating, user_id)

        await self._notify_creator(event_id, event_name, user_id, rating)
        return stored

    async def _notify_creator(self, event_id: str, event_name: str, rater_id: str, rating: int) -> None:
        try:
            event = await self._backend.maybe_single(
                Query("events").select("creator_id").eq("id", event_id)
            )
        except BackendError as e:
            logger.warning(f"Cannot notify creator of {event_id}: {e.message}")
            return

        creator_id = event.get("creator_id") if event else None
        if not creator_id or creator_id == rater_id:
            return

        await self._notifications.create_notification(
            creator_id,
            "New Event Rating",
            rating_message(event_name, rating),
            event_id=event_id,
        )

    async def get_ratings(self, event_id: str) -> List[Dict[str, Any]]:
        """All ratings of an event, newest first."""
        return await self._backend.select(
            Query("event_ratings").eq("event_id", event_id).order("created_at", desc=True)
        )

    async def get_user_rating(self, event_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._backend.maybe_single(
            Query("event_ratings").eq("event_id", event_id).eq("user_id", user_id)
        )


__all__ = [
    "MIN_RATING",
    "MAX_RATING",
    "rating_message",
    "RatingService",
]
