"""
Tests for the Habit Service.

Tests cover:
- Loading habits with embedded progress
- Creating habits with generated action items
- Recording check-ins and refreshing stored stats
- Input validation and ownership checks
- Pending-today and derived stats
"""

import pytest
from datetime import date, datetime, timedelta, timezone

from aggregation.engine import AggregationEngine
from backend.memory import InMemoryBackend
from core.clock import MockClock
from core.exceptions import QueryError, RecordNotFoundError
from habits.models import Habit, HabitType, Mood, generate_action_items, valid_rating
from habits.service import HabitService


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return MockClock(NOW)


@pytest.fixture
def backend(clock):
    backend = InMemoryBackend(clock=clock)
    backend.seed("habits", [
        {"id": "h1", "user_id": "u1", "name": "Read", "type": "start",
         "created_at": "2026-03-01T00:00:00+00:00"},
        {"id": "h2", "user_id": "u1", "name": "Smoking", "type": "stop",
         "created_at": "2026-03-02T00:00:00+00:00"},
        {"id": "h3", "user_id": "u2", "name": "Run", "type": "start",
         "created_at": "2026-03-03T00:00:00+00:00"},
    ])
    backend.seed("habit_progress", [
        {"habit_id": "h1", "user_id": "u1", "date": "2026-03-08", "completed": True, "mood": "good"},
        {"habit_id": "h1", "user_id": "u1", "date": "2026-03-09", "completed": True, "mood": "great"},
    ])
    return backend


@pytest.fixture
def service(backend, clock):
    return HabitService(backend, AggregationEngine(clock))


# =============================================================
# TEST: Models
# =============================================================

class TestModels:
    """Test habit helpers."""

    def test_action_items(self):
        start = generate_action_items("Read", HabitType.START)
        stop = generate_action_items("Smoking", HabitType.STOP)

        assert len(start) == 5
        assert start[0] == "Set a specific time each day for read"
        assert stop[0] == "Identify triggers that lead to smoking"

    def test_valid_rating(self):
        assert valid_rating(3) == 3
        assert valid_rating(4.0) == 4
        assert valid_rating(4.5) is None
        assert valid_rating(0) is None
        assert valid_rating(True) is None
        assert valid_rating("3") is None

    def test_mood_parse(self):
        assert Mood.parse("GREAT") == Mood.GREAT
        assert Mood.parse("ecstatic") is None
        assert Mood.parse(None) is None

    def test_habit_from_row_defaults(self):
        habit = Habit.from_row({"id": 5, "type": "sometimes", "action_items": ["a", None]})

        assert habit.id == "5"
        assert habit.type == HabitType.START
        assert habit.action_items == ["a"]
        assert habit.progress == []


# =============================================================
# TEST: Habits
# =============================================================

class TestHabits:
    """Test habit loading and creation."""

    @pytest.mark.asyncio
    async def test_load_habits_with_progress(self, service):
        habits = await service.load_habits("u1")

        assert [h.name for h in habits] == ["Read", "Smoking"]
        assert habits[1].type == HabitType.STOP
        assert [p.date for p in habits[0].progress] == [date(2026, 3, 8), date(2026, 3, 9)]
        assert habits[0].progress[1].mood == Mood.GREAT
        assert habits[1].progress == []

    @pytest.mark.asyncio
    async def test_add_habit(self, service, backend):
        habit = await service.add_habit("u1", "  Meditate ", "start", category="Mindfulness")

        assert habit.name == "Meditate"
        assert habit.streak == 0
        assert habit.action_items == generate_action_items("Meditate", HabitType.START)
        assert backend.rows("habits")[-1]["category"] == "Mindfulness"

    @pytest.mark.asyncio
    async def test_add_habit_validation(self, service):
        with pytest.raises(ValueError):
            await service.add_habit("u1", "   ", HabitType.START)
        with pytest.raises(ValueError):
            await service.add_habit("u1", "Read", "maybe")


# =============================================================
# TEST: Progress
# =============================================================

class TestRecordProgress:
    """Test check-ins."""

    @pytest.mark.asyncio
    async def test_completed_today_extends_streak(self, service, backend):
        habit = await service.record_progress("h1", "u1", True, mood="great", rating=5, notes=" felt good ")

        assert habit.streak == 3
        assert habit.completion_rate == 100
        assert len(habit.progress) == 3

        stored = backend.rows("habits")[0]
        assert stored["streak"] == 3
        assert stored["completion_rate"] == 100

        entry = backend.rows("habit_progress")[-1]
        assert entry["date"] == "2026-03-10"
        assert entry["mood"] == "great"
        assert entry["notes"] == "felt good"

    @pytest.mark.asyncio
    async def test_missed_today_resets_streak(self, service):
        habit = await service.record_progress("h1", "u1", False, mood=Mood.MISSED)

        assert habit.streak == 0
        assert habit.completion_rate == 67

    @pytest.mark.asyncio
    async def test_backdated_entry(self, service):
        habit = await service.record_progress("h2", "u1", True, on_date=date(2026, 3, 9))

        assert habit.streak == 0
        assert habit.completion_rate == 100
        assert habit.progress[0].date == date(2026, 3, 9)

    @pytest.mark.asyncio
    async def test_other_users_habit(self, service, backend):
        with pytest.raises(RecordNotFoundError):
            await service.record_progress("h3", "u1", True)

        # Nothing written for the rejected check-in
        assert len(backend.rows("habit_progress")) == 2
        assert not any(c["op"] == "insert" for c in backend.calls)
        assert backend.rows("habits")[2]["user_id"] == "u2"

    @pytest.mark.parametrize("kwargs", [
        {"rating": 0},
        {"rating": 6},
        {"rating": 2.5},
        {"mood": "ecstatic"},
    ])
    @pytest.mark.asyncio
    async def test_invalid_input(self, service, backend, kwargs):
        with pytest.raises(ValueError):
            await service.record_progress("h1", "u1", True, **kwargs)
        assert len(backend.rows("habit_progress")) == 2

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, service, backend):
        backend.force_next_error(table="habit_progress")

        with pytest.raises(QueryError):
            await service.record_progress("h1", "u1", True)


# =============================================================
# TEST: Derived
# =============================================================

class TestDerived:
    """Test pending-today and stats."""

    @pytest.mark.asyncio
    async def test_pending_today(self, service):
        await service.record_progress("h2", "u1", True)
        habits = await service.load_habits("u1")

        assert [h.id for h in service.pending_today(habits)] == ["h1"]

    @pytest.mark.asyncio
    async def test_stats(self, service):
        habits = await service.load_habits("u1")

        read = service.habit_stats(habits[0])
        overall = service.overall_stats("u1", habits)

        # Nothing recorded today yet
        assert read.count("streak") == 0
        assert read.count("completed_days") == 2
        assert read.average("consistency") == 29
        assert read.modes["mood"] == "good"

        assert overall.count("total_habits") == 2
        assert overall.count("total_check_ins") == 2
        assert overall.average("average_completion_rate") == 50
        assert set(overall.breakdown) == {"h1", "h2"}


# =============================================================
# TEST: Local calendar days
# =============================================================

class TestLocalCalendarDays:
    """Test timestamped check-ins dated in the clock's timezone."""

    EASTERN = timezone(timedelta(hours=-4))

    @pytest.fixture
    def local_clock(self):
        # 2026-03-10 22:00 local
        return MockClock(datetime(2026, 3, 11, 2, 0, tzinfo=timezone.utc), tz=self.EASTERN)

    @pytest.fixture
    def local_backend(self, local_clock):
        backend = InMemoryBackend(clock=local_clock)
        backend.seed("habits", {"id": "h1", "user_id": "u1", "name": "Read"})
        backend.seed("habit_progress", [
            {"habit_id": "h1", "user_id": "u1", "date": "2026-03-09T23:00:00Z", "completed": True},
            {"habit_id": "h1", "user_id": "u1", "date": "2026-03-11T00:00:00Z", "completed": True},
        ])
        return backend

    @pytest.mark.asyncio
    async def test_timestamps_use_local_dates(self, local_backend, local_clock):
        service = HabitService(local_backend, AggregationEngine(local_clock))

        habits = await service.load_habits("u1")

        assert local_clock.today() == date(2026, 3, 10)
        assert [p.date for p in habits[0].progress] == [date(2026, 3, 9), date(2026, 3, 10)]
        assert service.habit_stats(habits[0]).count("streak") == 2
        assert service.pending_today(habits) == []

    @pytest.mark.asyncio
    async def test_recorded_streak_uses_local_dates(self, local_backend, local_clock):
        service = HabitService(local_backend, AggregationEngine(local_clock))

        habit = await service.record_progress("h1", "u1", True)

        assert habit.streak == 2
        assert local_backend.rows("habit_progress")[-1]["date"] == "2026-03-10"
