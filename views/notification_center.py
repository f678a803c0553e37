"""
Views - Notification Center.

Latest notifications of a user, kept live through the
user-notifications channel.
"""

import logging
from typing import List, Optional

from notifications.models import NotificationRecord
from notifications.presenter import NotificationPresenter
from notifications.toasts import ToastFormatter
from realtime.events import ChangeEvent, ResourceTable
from realtime.transport import ChannelBinding
from .base import View, ViewContext


logger = logging.getLogger(__name__)


class NotificationCenterView(View):
    """Notification list, unread badge and read actions."""

    def __init__(self, context: ViewContext, user_id: str):
        super().__init__(context)
        self._user_id = user_id
        self.presenter = NotificationPresenter(
            user_id,
            context.backend,
            context.toasts,
            toast_duration_seconds=context.config.notifications.toast_duration_seconds,
        )

    @property
    def channel_key(self) -> str:
        return f"user-notifications-{self._user_id}"

    @property
    def owner_id(self) -> Optional[str]:
        return self._user_id

    def bindings(self) -> List[ChannelBinding]:
        return [ChannelBinding("notifications", "INSERT", f"user_id=eq.{self._user_id}")]

    def tables(self):
        return [ResourceTable.NOTIFICATIONS]

    @property
    def notifications(self) -> List[NotificationRecord]:
        return self.presenter.records

    @property
    def unread_count(self) -> int:
        return self.presenter.unread_count

    @property
    def badge(self) -> str:
        return ToastFormatter.format_badge(self.unread_count)

    async def load(self) -> None:
        records = await self._context.notifications.get_user_notifications(
            self._user_id, self._context.config.notifications.fetch_limit
        )
        self.presenter.load(records)
        logger.info(f"Loaded {len(records)} notification(s) for {self._user_id}")

    async def on_change(self, event: ChangeEvent) -> None:
        await self.presenter.handle_change(event)

    async def mark_read(self, notification_id: str) -> bool:
        result = await self.run_action(self.presenter.mark_read(notification_id))
        return bool(result)

    async def mark_all_read(self) -> int:
        result = await self.run_action(self.presenter.mark_all_read())
        return result or 0


__all__ = ["NotificationCenterView"]
