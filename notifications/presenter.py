"""
Notification Presenter.

============================================================
PURPOSE
============================================================
Keeps a user's notification list and unread counter in sync with
the change feed, and acknowledges new notifications with a toast.

PRINCIPLES:
- Most recent first
- Unread -> Read is one-way; only that transition lowers the counter
- The counter never goes below zero
- Failed write-backs show an error toast; local state is kept

============================================================
"""

import logging
from typing import Dict, Iterable, List, Optional

from backend.client import BackendClient
from backend.query import Query
from core.exceptions import BackendError
from realtime.events import ChangeEvent, Operation
from .models import NotificationRecord, Toast
from .toasts import ToastCenter


logger = logging.getLogger(__name__)


class NotificationPresenter:
    """
    Notification list state for one user.
    """

    def __init__(
        self,
        user_id: str,
        backend: BackendClient,
        toasts: ToastCenter,
        toast_duration_seconds: float = 6.0,
    ):
        """
        Initialize presenter.

        Args:
            user_id: Owner of the notifications
            backend: Data store for read-flag writes
            toasts: Where acknowledgements and errors are shown
            toast_duration_seconds: Lifetime of notification toasts
        """
        self._user_id = user_id
        self._backend = backend
        self._toasts = toasts
        self._toast_duration = toast_duration_seconds

        self._records: List[NotificationRecord] = []
        self._by_id: Dict[str, NotificationRecord] = {}
        self._unread_count = 0

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def records(self) -> List[NotificationRecord]:
        return list(self._records)

    @property
    def unread_count(self) -> int:
        return self._unread_count

    def get(self, notification_id: str) -> Optional[NotificationRecord]:
        return self._by_id.get(notification_id)

    # --------------------------------------------------------
    # STATE CHANGES
    # --------------------------------------------------------

    def load(self, records: Iterable[NotificationRecord]) -> None:
        """Replace the list with an initial fetch (already newest first)."""
        self._records = []
        self._by_id = {}
        for record in records:
            if record.id in self._by_id:
                continue
            self._records.append(record)
            self._by_id[record.id] = record
        self._unread_count = sum(1 for r in self._records if not r.read)

    def deliver(self, record: NotificationRecord) -> Optional[Toast]:
        """
        Prepend a newly delivered notification and acknowledge it.

        Returns the toast, or None if the id was already present.
        """
        if record.id in self._by_id:
            logger.debug(f"Duplicate notification {record.id} ignored")
            return None

        self._records.insert(0, record)
        self._by_id[record.id] = record
        if not record.read:
            self._unread_count += 1

        return self._toasts.show(
            record.title,
            record.message,
            record.severity,
            duration_seconds=self._toast_duration,
            source_id=record.id,
        )

    async def handle_change(self, event: ChangeEvent) -> None:
        """Router handler: deliver inserted notifications."""
        if event.operation != Operation.INSERT:
            return
        self.deliver(NotificationRecord.from_row(event.record))

    async def mark_read(self, notification_id: str) -> bool:
        """
        Mark one notification read locally and in the data store.

        Returns False for an unknown id.
        """
        record = self._by_id.get(notification_id)
        if record is None:
            return False
        if record.read:
            return True

        record.read = True
        self._unread_count = max(0, self._unread_count - 1)

        try:
            await self._backend.update(
                Query("notifications").eq("id", notification_id),
                {"read": True},
            )
        except BackendError as e:
            logger.error(f"Failed to mark notification {notification_id} read: {e.message}")
            self._toasts.error("Could not mark notification as read")
        return True

    async def mark_all_read(self) -> int:
        """Mark every unread notification read; returns how many changed."""
        unread = [r for r in self._records if not r.read]
        for record in unread:
            record.read = True
        self._unread_count = 0

        if not unread:
            return 0

        try:
            await self._backend.update(
                Query("notifications").eq("user_id", self._user_id).eq("read", False),
                {"read": True},
            )
        except BackendError as e:
            logger.error(f"Failed to mark notifications read for {self._user_id}: {e.message}")
            self._toasts.error("Could not mark notifications as read")
        return len(unread)


__all__ = ["NotificationPresenter"]
