"""
Views - Habit Dashboard.

A user's habits with per-habit stats and overall metrics, refreshed
from the habit-progress channel.
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from aggregation.models import DerivedMetricSet
from habits.models import Habit, Mood
from realtime.events import ChangeEvent, ResourceTable
from realtime.transport import ChannelBinding
from .base import View, ViewContext


logger = logging.getLogger(__name__)


class HabitDashboardView(View):
    """Live habit dashboard."""

    def __init__(self, context: ViewContext, user_id: str):
        super().__init__(context)
        self._user_id = user_id
        self.habits: List[Habit] = []
        self.stats: Dict[str, DerivedMetricSet] = {}
        self.overall: Optional[DerivedMetricSet] = None

    @property
    def channel_key(self) -> str:
        return f"habit-progress-{self._user_id}"

    @property
    def owner_id(self) -> Optional[str]:
        return self._user_id

    def bindings(self) -> List[ChannelBinding]:
        return [ChannelBinding("habit_progress", "*", f"user_id=eq.{self._user_id}")]

    def tables(self):
        return [ResourceTable.HABIT_PROGRESS]

    @property
    def pending_today(self) -> List[Habit]:
        return self._context.habits.pending_today(self.habits)

    async def load(self) -> None:
        self.habits = await self._context.habits.load_habits(self._user_id)
        self._recompute()

    async def on_change(self, event: ChangeEvent) -> None:
        await self.load()

    def _recompute(self) -> None:
        service = self._context.habits
        self.stats = {habit.id: service.habit_stats(habit) for habit in self.habits}
        self.overall = service.overall_stats(self._user_id, self.habits)

    async def record_progress(
        self,
        habit_id: str,
        completed: bool,
        mood: Optional[Mood] = None,
        rating: Optional[int] = None,
        notes: Optional[str] = None,
        on_date: Optional[date] = None,
    ) -> Optional[Habit]:
        """
        Record a check-in through the habit service.

        Invalid input raises ValueError; backend failures become an
        error toast and None.
        """
        updated = await self.run_action(
            self._context.habits.record_progress(
                habit_id,
                self._user_id,
                completed,
                mood=mood,
                rating=rating,
                notes=notes,
                on_date=on_date,
            ),
            success_message="Progress recorded!",
        )
        if updated is None:
            return None

        self.habits = [updated if h.id == updated.id else h for h in self.habits]
        self._recompute()
        return updated


__all__ = ["HabitDashboardView"]
