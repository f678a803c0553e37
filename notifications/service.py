"""
Notification Service.

============================================================
PURPOSE
============================================================
Creates and queries notification rows, and fans out the standard
ticketing notifications.

MESSAGES:
- Ticket Sold          -> event creator
- New Rating           -> event creator
- New Event Created    -> creator's followers
- Event Reminder       -> ticket holders, 24 h before the event

Failures are logged and reported as False / empty results.

============================================================
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from backend.client import BackendClient
from backend.query import Query
from core.clock import ClockProtocol, parse_timestamp
from core.config import NotificationConfig
from core.exceptions import BackendError
from .models import NotificationRecord, NotificationSeverity


logger = logging.getLogger(__name__)


class NotificationService:
    """
    Notification rows in the data store.
    """

    def __init__(
        self,
        backend: BackendClient,
        clock: ClockProtocol,
        config: Optional[NotificationConfig] = None,
    ):
        self._backend = backend
        self._clock = clock
        self._config = config or NotificationConfig()
        self._reminders: Dict[str, asyncio.Task] = {}

    # --------------------------------------------------------
    # CRUD
    # --------------------------------------------------------

    async def create_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
        event_id: Optional[str] = None,
    ) -> Optional[NotificationRecord]:
        """Insert a notification; None on failure."""
        try:
            rows = await self._backend.insert("notifications", {
                "user_id": user_id,
                "title": title,
                "message": message,
                "type": NotificationSeverity.parse(severity).value,
                "read": False,
                "event_id": event_id,
            })
        except BackendError as e:
            logger.error(f"Error creating notification for {user_id}: {e.message}")
            return None

        return NotificationRecord.from_row(rows[0]) if rows else None

    async def get_user_notifications(
        self,
        user_id: str,
        limit: Optional[int] = None,
    ) -> List[NotificationRecord]:
        """Latest notifications for a user, newest first."""
        query = (
            Query("notifications")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit or self._config.fetch_limit)
        )
        try:
            rows = await self._backend.select(query)
        except BackendError as e:
            logger.error(f"Error fetching notifications for {user_id}: {e.message}")
            return []
        return [NotificationRecord.from_row(row) for row in rows]

    async def mark_notification_as_read(self, notification_id: str) -> bool:
        try:
            await self._backend.update(
                Query("notifications").eq("id", notification_id),
                {"read": True},
            )
        except BackendError as e:
            logger.error(f"Error marking notification {notification_id} read: {e.message}")
            return False
        return True

    async def mark_all_as_read(self, user_id: str) -> bool:
        try:
            await self._backend.update(
                Query("notifications").eq("user_id", user_id).eq("read", False),
                {"read": True},
            )
        except BackendError as e:
            logger.error(f"Error marking notifications read for {user_id}: {e.message}")
            return False
        return True

    # --------------------------------------------------------
    # FAN-OUT
    # --------------------------------------------------------

    async def notify_ticket_purchased(
        self,
        event_id: str,
        event_name: str,
        creator_id: str,
    ) -> Optional[NotificationRecord]:
        return await self.create_notification(
            creator_id,
            "Ticket Sold",
            f"Someone purchased a ticket for {event_name}",
            NotificationSeverity.SUCCESS,
            event_id,
        )

    async def notify_event_rated(
        self,
        event_id: str,
        event_name: str,
        rating: int,
        creator_id: str,
    ) -> Optional[NotificationRecord]:
        return await self.create_notification(
            creator_id,
            "New Rating",
            f'Your event "{event_name}" received a {rating}-star rating',
            NotificationSeverity.INFO,
            event_id,
        )

    async def notify_event_created(
        self,
        event_id: str,
        event_name: str,
        creator_id: str,
    ) -> int:
        """Notify every follower of the creator; returns rows inserted."""
        try:
            follows = await self._backend.select(
                Query("user_follows").select("follower_id").eq("following_id", creator_id)
            )
        except BackendError as e:
            logger.error(f"Error loading followers of {creator_id}: {e.message}")
            return 0

        rows = [
            {
                "user_id": follow["follower_id"],
                "title": "New Event Created",
                "message": f"{event_name} has been created by someone you follow",
                "type": NotificationSeverity.INFO.value,
                "read": False,
                "event_id": event_id,
            }
            for follow in follows
            if follow.get("follower_id")
        ]
        return await self._insert_many(rows, f"followers of {creator_id}")

    # --------------------------------------------------------
    # REMINDERS
    # --------------------------------------------------------

    def schedule_event_reminder(
        self,
        event_id: str,
        event_date: Any,
        event_name: str,
    ) -> Optional[asyncio.Task]:
        """
        Schedule the reminder for ticket holders.

        Returns None when the reminder moment has already passed or the
        date cannot be parsed. Rescheduling an event replaces its reminder.
        """
        starts_at = parse_timestamp(event_date)
        if starts_at is None:
            logger.warning(f"Cannot schedule reminder for {event_id}: bad date {event_date!r}")
            return None
        if starts_at.tzinfo is None:
            starts_at = starts_at.replace(tzinfo=self._clock.tz)

        remind_at = starts_at - timedelta(hours=self._config.reminder_lead_hours)
        delay = (remind_at - self._clock.now()).total_seconds()
        if delay <= 0:
            return None

        self.cancel_reminder(event_id)
        task = asyncio.create_task(self._remind_later(event_id, event_name, delay))
        self._reminders[event_id] = task
        logger.info(f"Reminder for {event_id} scheduled at {remind_at.isoformat()}")
        return task

    async def _remind_later(self, event_id: str, event_name: str, delay: float) -> int:
        try:
            await asyncio.sleep(delay)
            return await self.send_event_reminders(event_id, event_name)
        finally:
            if self._reminders.get(event_id) is asyncio.current_task():
                del self._reminders[event_id]

    async def send_event_reminders(self, event_id: str, event_name: str) -> int:
        """Insert a reminder for every ticket holder; returns rows inserted."""
        try:
            tickets = await self._backend.select(
                Query("tickets").select("user_id").eq("event_id", event_id)
            )
        except BackendError as e:
            logger.error(f"Error loading ticket holders of {event_id}: {e.message}")
            return 0

        holders = list(dict.fromkeys(t["user_id"] for t in tickets if t.get("user_id")))
        rows = [
            {
                "user_id": user_id,
                "title": "Event Reminder",
                "message": f"Don't forget! {event_name} is tomorrow",
                "type": NotificationSeverity.INFO.value,
                "read": False,
                "event_id": event_id,
            }
            for user_id in holders
        ]
        return await self._insert_many(rows, f"holders of {event_id}")

    def cancel_reminder(self, event_id: str) -> bool:
        task = self._reminders.pop(event_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all_reminders(self) -> None:
        for event_id in list(self._reminders):
            self.cancel_reminder(event_id)

    @property
    def pending_reminders(self) -> List[str]:
        return [k for k, t in self._reminders.items() if not t.done()]

    async def _insert_many(self, rows: List[Dict[str, Any]], audience: str) -> int:
        if not rows:
            return 0
        try:
            inserted = await self._backend.insert("notifications", rows)
        except BackendError as e:
            logger.error(f"Error notifying {audience}: {e.message}")
            return 0
        return len(inserted)


__all__ = ["NotificationService"]
