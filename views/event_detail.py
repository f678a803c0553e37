"""
Views - Event Detail.

============================================================
PURPOSE
============================================================
One event with its tickets and ratings.

The channel is scoped to the event's creator, so the creator is
resolved by the initial load before the route is registered. Changes
are applied to the local snapshot and the event metrics recomputed.

============================================================
"""

import logging
from typing import Any, Dict, List, Optional

from aggregation.models import DerivedMetricSet
from backend.query import Query
from realtime.events import ChangeEvent, Operation, ResourceTable
from realtime.transport import ChannelBinding
from .base import View, ViewContext


logger = logging.getLogger(__name__)


class EventDetailView(View):
    """Live event page."""

    def __init__(self, context: ViewContext, event_id: str):
        super().__init__(context)
        self._event_id = event_id
        self.event: Optional[Dict[str, Any]] = None
        self.tickets: List[Dict[str, Any]] = []
        self.ratings: List[Dict[str, Any]] = []
        self.analytics: List[Dict[str, Any]] = []
        self.metrics: Optional[DerivedMetricSet] = None

    @property
    def channel_key(self) -> str:
        return f"event-{self._event_id}"

    @property
    def owner_id(self) -> Optional[str]:
        if self.event is None:
            return None
        creator = self.event.get("creator_id")
        return str(creator) if creator else None

    def bindings(self) -> List[ChannelBinding]:
        return [
            ChannelBinding("events", "UPDATE", f"id=eq.{self._event_id}"),
            ChannelBinding("tickets", "INSERT", f"event_id=eq.{self._event_id}"),
            ChannelBinding("event_ratings", "INSERT", f"event_id=eq.{self._event_id}"),
        ]

    def tables(self):
        return [ResourceTable.EVENTS, ResourceTable.TICKETS, ResourceTable.RATINGS]

    async def load(self) -> None:
        backend = self._context.backend
        self.event = await backend.single(Query("events").eq("id", self._event_id))
        self.tickets = await backend.select(
            Query("tickets").eq("event_id", self._event_id).order("created_at")
        )
        self.ratings = await backend.select(
            Query("event_ratings").eq("event_id", self._event_id).order("created_at", desc=True)
        )
        self.analytics = await backend.select(
            Query("event_analytics").eq("event_id", self._event_id).eq("metric_type", "view")
        )
        self._recompute()

    async def on_change(self, event: ChangeEvent) -> None:
        row = event.record.model_dump(mode="json", exclude_unset=True)
        if str(row.get("id")) != self._event_id and str(row.get("event_id")) != self._event_id:
            return

        if event.resource_table == ResourceTable.EVENTS:
            if event.operation == Operation.UPDATE and self.event is not None:
                self.event = {**self.event, **row}
        elif event.operation == Operation.INSERT:
            target = self.tickets if event.resource_table == ResourceTable.TICKETS else self.ratings
            if any(str(r.get("id")) == str(row.get("id")) for r in target):
                return
            if event.resource_table == ResourceTable.TICKETS:
                target.append(row)
            else:
                target.insert(0, row)
        else:
            return

        self._recompute()

    def _recompute(self) -> None:
        if self.event is None:
            return
        self.metrics = self._context.engine.event_metrics(
            self.event,
            tickets=self.tickets,
            ratings=self.ratings,
            analytics=self.analytics,
        )

    @property
    def available_tickets(self) -> Optional[int]:
        if self.event is None:
            return None
        available = self.event.get("available_tickets")
        return int(available) if available is not None else None


__all__ = ["EventDetailView"]
