"""
Views - Analytics Dashboard.

============================================================
PURPOSE
============================================================
A creator's dashboard: totals, per-event summaries and the
views / tickets / revenue time series of the selected period.

Every routed change on event_analytics, tickets or event_ratings
recomputes the whole dashboard from a fresh snapshot.

============================================================
"""

import logging
from typing import List, Optional

from analytics.models import DashboardAnalytics
from core.config import VALID_PERIODS
from realtime.events import ChangeEvent, ResourceTable
from realtime.transport import ChannelBinding
from .base import View, ViewContext


logger = logging.getLogger(__name__)


class AnalyticsDashboardView(View):
    """Live creator dashboard."""

    def __init__(self, context: ViewContext, creator_id: str, period: Optional[str] = None):
        super().__init__(context)
        period = period or context.config.aggregation.default_period
        if period not in VALID_PERIODS:
            raise ValueError(f"Unknown period {period!r}, expected one of {VALID_PERIODS}")

        self._creator_id = creator_id
        self._period = period
        self.dashboard: Optional[DashboardAnalytics] = None
        self.refresh_count = 0

    @property
    def channel_key(self) -> str:
        return f"analytics-{self._creator_id}"

    @property
    def owner_id(self) -> Optional[str]:
        return self._creator_id

    @property
    def period(self) -> str:
        return self._period

    def bindings(self) -> List[ChannelBinding]:
        return [
            ChannelBinding("event_analytics"),
            ChannelBinding("tickets"),
            ChannelBinding("event_ratings"),
        ]

    def tables(self):
        return [
            ResourceTable.ANALYTICS_METRIC,
            ResourceTable.TICKETS,
            ResourceTable.RATINGS,
        ]

    async def load(self) -> None:
        self.dashboard = await self._context.analytics.get_dashboard_analytics(
            self._creator_id, self._period
        )
        self.refresh_count += 1

    async def on_change(self, event: ChangeEvent) -> None:
        logger.debug(
            f"Recomputing dashboard {self._creator_id} after "
            f"{event.resource_table.value} {event.operation.value}"
        )
        await self.load()

    async def set_period(self, period: str) -> Optional[DashboardAnalytics]:
        """Switch the trailing period and recompute."""
        if period not in VALID_PERIODS:
            raise ValueError(f"Unknown period {period!r}, expected one of {VALID_PERIODS}")
        self._period = period
        await self.run_action(self.load())
        return self.dashboard


__all__ = ["AnalyticsDashboardView"]
