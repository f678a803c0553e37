"""
Habit Service.

============================================================
PURPOSE
============================================================
Loads habits with their progress, records daily check-ins and keeps
the stored streak / completion rate in line with the full history.

FLOW (record_progress):
1. Check the habit belongs to the user
2. Insert the habit_progress row
3. Reload the habit's complete progress list
4. Recompute streak and completion rate
5. Write both back to the habits row

============================================================
"""

import logging
from datetime import date
from typing import List, Optional, Sequence, Union

from aggregation.engine import AggregationEngine, completion_rate, streak
from aggregation.models import DerivedMetricSet
from backend.client import BackendClient
from backend.query import Query
from core.exceptions import RecordNotFoundError
from .models import (
    Habit,
    HabitProgressEntry,
    HabitType,
    Mood,
    generate_action_items,
    valid_rating,
)


logger = logging.getLogger(__name__)


class HabitService:
    """
    Habit rows and check-ins.

    Backend failures propagate as QueryError for the calling view.
    """

    def __init__(self, backend: BackendClient, engine: AggregationEngine):
        self._backend = backend
        self._engine = engine

    @property
    def _tz(self):
        return self._engine.clock.tz

    # --------------------------------------------------------
    # HABITS
    # --------------------------------------------------------

    async def load_habits(self, user_id: str) -> List[Habit]:
        """Every habit of a user, with its progress."""
        rows = await self._backend.select(
            Query("habits")
            .select("*, habit_progress(*)")
            .eq("user_id", user_id)
            .order("created_at")
        )
        return [Habit.from_row(row, self._tz) for row in rows]

    async def add_habit(
        self,
        user_id: str,
        name: str,
        habit_type: Union[HabitType, str],
        description: Optional[str] = None,
        category: Optional[str] = None,
        difficulty: str = "medium",
    ) -> Habit:
        """Create a habit with generated action items."""
        if not name or not name.strip():
            raise ValueError("Habit name is required")
        habit_type = HabitType(habit_type) if not isinstance(habit_type, HabitType) else habit_type

        rows = await self._backend.insert("habits", {
            "user_id": user_id,
            "name": name.strip(),
            "description": description,
            "type": habit_type.value,
            "category": category,
            "difficulty": difficulty,
            "action_items": generate_action_items(name.strip(), habit_type),
            "streak": 0,
            "completion_rate": 0,
        })
        habit = Habit.from_row(rows[0], self._tz)
        logger.info(f"Habit created: {habit.name} ({habit.id})")
        return habit

    # --------------------------------------------------------
    # PROGRESS
    # --------------------------------------------------------

    async def record_progress(
        self,
        habit_id: str,
        user_id: str,
        completed: bool,
        mood: Union[Mood, str, None] = None,
        rating: Optional[int] = None,
        notes: Optional[str] = None,
        on_date: Optional[date] = None,
    ) -> Habit:
        """
        Record a check-in and refresh the habit's stored stats.

        Raises:
            ValueError: For a rating outside 1..5 or an unknown mood
            RecordNotFoundError: If the habit does not belong to the user
            QueryError: On backend failure
        """
        if rating is not None and valid_rating(rating) is None:
            raise ValueError(f"Rating must be from 1 to 5, got {rating!r}")
        parsed_mood = Mood.parse(mood)
        if mood is not None and parsed_mood is None:
            raise ValueError(f"Unknown mood {mood!r}")

        entry = HabitProgressEntry(
            habit_id=habit_id,
            owner_user_id=user_id,
            date=on_date or self._engine.today(),
            completed=completed,
            mood=parsed_mood,
            rating=rating,
            notes=notes.strip() if notes and notes.strip() else None,
        )

        owned = await self._backend.maybe_single(
            Query("habits").select("id").eq("id", habit_id).eq("user_id", user_id)
        )
        if owned is None:
            raise RecordNotFoundError(f"Habit {habit_id} not found for user", table="habits")

        await self._backend.insert("habit_progress", entry.to_row())

        progress_rows = await self._backend.select(
            Query("habit_progress")
            .eq("habit_id", habit_id)
            .eq("user_id", user_id)
            .order("date")
        )
        progress = [HabitProgressEntry.from_row(row, self._tz) for row in progress_rows]

        today = self._engine.today()
        updated = await self._backend.update(
            Query("habits").eq("id", habit_id).eq("user_id", user_id),
            {
                "streak": streak(progress, today, self._tz),
                "completion_rate": completion_rate(progress),
            },
        )
        if not updated:
            raise RecordNotFoundError(f"Habit {habit_id} not found for user", table="habits")

        habit = Habit.from_row(updated[0], self._tz)
        habit.progress = progress
        return habit

    # --------------------------------------------------------
    # DERIVED
    # --------------------------------------------------------

    def pending_today(self, habits: Sequence[Habit]) -> List[Habit]:
        """Habits without a check-in today."""
        today = self._engine.today()
        return [h for h in habits if h.entry_on(today) is None]

    def habit_stats(self, habit: Habit) -> DerivedMetricSet:
        return self._engine.habit_metrics(habit, habit.progress)

    def overall_stats(self, user_id: str, habits: Sequence[Habit]) -> DerivedMetricSet:
        return self._engine.overall_habit_metrics(
            user_id,
            [self.habit_stats(h) for h in habits],
        )


__all__ = ["HabitService"]
