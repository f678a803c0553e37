"""
Habits Package.

============================================================
PURPOSE
============================================================
Habit tracking: habits, daily check-ins and their derived stats.

============================================================
"""

from .models import (
    HabitType,
    Mood,
    CATEGORIES,
    generate_action_items,
    HabitProgressEntry,
    Habit,
)

from .service import HabitService


__all__ = [
    "HabitType",
    "Mood",
    "CATEGORIES",
    "generate_action_items",
    "HabitProgressEntry",
    "Habit",
    "HabitService",
]
