"""
Habits - Models.

============================================================
PURPOSE
============================================================
Habits, daily progress entries and the action-item templates used
when a habit is created.

============================================================
"""

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Any, Dict, List, Optional

from core.clock import calendar_date, parse_timestamp


# ============================================================
# ENUMS
# ============================================================

class HabitType(Enum):
    """Whether the user wants to build or break the habit."""

    START = "start"
    STOP = "stop"


class Mood(Enum):
    """Mood recorded with a daily check-in."""

    GREAT = "great"
    GOOD = "good"
    OKAY = "okay"
    DIFFICULT = "difficult"
    MISSED = "missed"

    @classmethod
    def parse(cls, value: Any) -> Optional["Mood"]:
        """None for missing or unknown moods."""
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return None


CATEGORIES = [
    "Health & Fitness",
    "Productivity",
    "Learning",
    "Relationships",
    "Finance",
    "Mindfulness",
    "Creativity",
    "Other",
]


def generate_action_items(name: str, habit_type: HabitType) -> List[str]:
    """Starter action items for a new habit."""
    subject = name.lower()
    if habit_type == HabitType.START:
        return [
            f"Set a specific time each day for {subject}",
            f"Create a reminder or alarm for {subject}",
            "Prepare necessary materials or environment",
            "Start with just 5-10 minutes daily",
            "Track your progress in a visible place",
        ]
    return [
        f"Identify triggers that lead to {subject}",
        "Replace the habit with a positive alternative",
        "Remove temptations from your environment",
        "Find an accountability partner",
        "Reward yourself for each day without the habit",
    ]


def valid_rating(value: Any) -> Optional[int]:
    """A 1-5 integer rating, or None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != int(value) or not 1 <= value <= 5:
        return None
    return int(value)


# ============================================================
# PROGRESS ENTRY
# ============================================================

@dataclass
class HabitProgressEntry:
    """One daily check-in."""

    habit_id: str
    owner_user_id: str
    date: Optional[date]
    completed: bool = False
    mood: Optional[Mood] = None
    rating: Optional[int] = None
    notes: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any], tz: Optional[tzinfo] = None) -> "HabitProgressEntry":
        """Timestamped dates are read as calendar days in `tz`."""
        return cls(
            habit_id=str(row.get("habit_id") or ""),
            owner_user_id=str(row.get("user_id") or ""),
            date=calendar_date(row.get("date"), tz),
            completed=bool(row.get("completed") or False),
            mood=Mood.parse(row.get("mood")),
            rating=valid_rating(row.get("rating")),
            notes=row.get("notes"),
            id=row.get("id"),
            created_at=parse_timestamp(row.get("created_at")),
        )

    def to_row(self) -> Dict[str, Any]:
        row = {
            "habit_id": self.habit_id,
            "user_id": self.owner_user_id,
            "date": self.date.isoformat() if self.date else None,
            "completed": self.completed,
            "mood": self.mood.value if self.mood else None,
            "rating": self.rating,
            "notes": self.notes,
        }
        if self.id is not None:
            row["id"] = self.id
        return row


# ============================================================
# HABIT
# ============================================================

@dataclass
class Habit:
    """A tracked habit with its progress history."""

    id: str
    user_id: str
    name: str
    type: HabitType = HabitType.START
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    action_items: List[str] = field(default_factory=list)
    streak: int = 0
    completion_rate: int = 0
    created_at: Optional[datetime] = None
    progress: List[HabitProgressEntry] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any], tz: Optional[tzinfo] = None) -> "Habit":
        """Build from a habits row, with embedded habit_progress if selected."""
        try:
            habit_type = HabitType(row.get("type") or "start")
        except ValueError:
            habit_type = HabitType.START

        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id") or ""),
            name=row.get("name") or "",
            type=habit_type,
            description=row.get("description"),
            category=row.get("category"),
            difficulty=row.get("difficulty"),
            action_items=[str(item) for item in (row.get("action_items") or []) if item is not None],
            streak=int(row.get("streak") or 0),
            completion_rate=int(row.get("completion_rate") or 0),
            created_at=parse_timestamp(row.get("created_at")),
            progress=[
                HabitProgressEntry.from_row(p, tz) for p in (row.get("habit_progress") or [])
            ],
        )

    def entry_on(self, day: date) -> Optional[HabitProgressEntry]:
        """Latest entry recorded for a calendar day."""
        matches = [p for p in self.progress if p.date == day]
        return matches[-1] if matches else None


__all__ = [
    "HabitType",
    "Mood",
    "CATEGORIES",
    "generate_action_items",
    "valid_rating",
    "HabitProgressEntry",
    "Habit",
]
