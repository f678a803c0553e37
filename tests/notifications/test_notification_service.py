"""
Tests for the Notification Service.

Tests cover:
- Creating and fetching notifications
- Fan-out to creators, followers and ticket holders
- Reminder scheduling and cancellation
"""

import asyncio

import pytest
from datetime import datetime, timezone

from backend.memory import InMemoryBackend
from core.clock import MockClock
from core.config import NotificationConfig
from notifications.models import NotificationSeverity
from notifications.service import NotificationService


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return MockClock(NOW)


@pytest.fixture
def backend(clock):
    return InMemoryBackend(clock=clock)


@pytest.fixture
def service(backend, clock):
    return NotificationService(backend, clock, NotificationConfig(fetch_limit=2))


class TestCrud:
    """Test basic notification rows."""

    @pytest.mark.asyncio
    async def test_create(self, service, backend):
        record = await service.create_notification("u1", "Hello", "World", "warning", event_id="e1")

        assert record.owner_user_id == "u1"
        assert record.severity == NotificationSeverity.WARNING
        assert record.read is False
        assert record.related_entity_id == "e1"
        assert backend.rows("notifications")[0]["type"] == "warning"

    @pytest.mark.asyncio
    async def test_create_failure_returns_none(self, service, backend):
        backend.force_next_error()
        assert await service.create_notification("u1", "Hello", "World") is None

    @pytest.mark.asyncio
    async def test_fetch_newest_first_with_limit(self, service, backend):
        backend.seed("notifications", [
            {"id": "old", "user_id": "u1", "created_at": "2026-03-01T00:00:00+00:00"},
            {"id": "new", "user_id": "u1", "created_at": "2026-03-09T00:00:00+00:00"},
            {"id": "mid", "user_id": "u1", "created_at": "2026-03-05T00:00:00+00:00"},
            {"id": "other", "user_id": "u2", "created_at": "2026-03-10T00:00:00+00:00"},
        ])

        records = await service.get_user_notifications("u1")

        assert [r.id for r in records] == ["new", "mid"]

    @pytest.mark.asyncio
    async def test_fetch_failure_is_empty(self, service, backend):
        backend.force_next_error()
        assert await service.get_user_notifications("u1") == []

    @pytest.mark.asyncio
    async def test_mark_all_as_read(self, service, backend):
        backend.seed("notifications", [
            {"id": "n1", "user_id": "u1", "read": False},
            {"id": "n2", "user_id": "u2", "read": False},
        ])

        assert await service.mark_all_as_read("u1") is True
        assert [r["read"] for r in backend.rows("notifications")] == [True, False]


class TestFanOut:
    """Test notifications sent on behalf of events."""

    @pytest.mark.asyncio
    async def test_ticket_purchased(self, service):
        record = await service.notify_ticket_purchased("e1", "Jazz Night", "c1")

        assert record.owner_user_id == "c1"
        assert record.title == "Ticket Sold"
        assert record.message == "Someone purchased a ticket for Jazz Night"
        assert record.severity == NotificationSeverity.SUCCESS

    @pytest.mark.asyncio
    async def test_event_rated(self, service):
        record = await service.notify_event_rated("e1", "Jazz Night", 4, "c1")
        assert record.message == 'Your event "Jazz Night" received a 4-star rating'

    @pytest.mark.asyncio
    async def test_event_created_notifies_followers(self, service, backend):
        backend.seed("user_follows", [
            {"follower_id": "f1", "following_id": "c1"},
            {"follower_id": "f2", "following_id": "c1"},
            {"follower_id": "f3", "following_id": "someone-else"},
        ])

        assert await service.notify_event_created("e1", "Jazz Night", "c1") == 2
        assert sorted(r["user_id"] for r in backend.rows("notifications")) == ["f1", "f2"]

    @pytest.mark.asyncio
    async def test_event_created_without_followers(self, service, backend):
        assert await service.notify_event_created("e1", "Jazz Night", "c1") == 0
        assert backend.rows("notifications") == []

    @pytest.mark.asyncio
    async def test_reminders_go_to_distinct_holders(self, service, backend):
        backend.seed("tickets", [
            {"event_id": "e1", "user_id": "u1"},
            {"event_id": "e1", "user_id": "u1"},
            {"event_id": "e1", "user_id": "u2"},
            {"event_id": "e2", "user_id": "u3"},
        ])

        assert await service.send_event_reminders("e1", "Jazz Night") == 2

        rows = backend.rows("notifications")
        assert sorted(r["user_id"] for r in rows) == ["u1", "u2"]
        assert rows[0]["message"] == "Don't forget! Jazz Night is tomorrow"


class TestReminders:
    """Test reminder scheduling."""

    @pytest.mark.asyncio
    async def test_past_reminder_not_scheduled(self, service):
        # Less than the 24h lead time away
        assert service.schedule_event_reminder("e1", "2026-03-11T06:00:00Z", "Jazz Night") is None
        assert service.schedule_event_reminder("e1", "not a date", "Jazz Night") is None
        assert service.pending_reminders == []

    @pytest.mark.asyncio
    async def test_reminder_fires(self, service, backend):
        backend.seed("tickets", {"event_id": "e1", "user_id": "u1"})

        task = service.schedule_event_reminder("e1", "2026-03-11T12:00:00.020Z", "Jazz Night")
        assert service.pending_reminders == ["e1"]

        assert await asyncio.wait_for(task, timeout=2) == 1
        assert service.pending_reminders == []
        assert backend.rows("notifications")[0]["title"] == "Event Reminder"

    @pytest.mark.asyncio
    async def test_reschedule_replaces(self, service):
        first = service.schedule_event_reminder("e1", "2026-04-01T12:00:00Z", "Jazz Night")
        second = service.schedule_event_reminder("e1", "2026-04-02T12:00:00Z", "Jazz Night")
        await asyncio.sleep(0)

        assert first.cancelled()
        assert service.pending_reminders == ["e1"]

        assert service.cancel_reminder("e1") is True
        assert service.cancel_reminder("e1") is False
        await asyncio.sleep(0)
        assert second.cancelled()

    @pytest.mark.asyncio
    async def test_cancel_all(self, service):
        service.schedule_event_reminder("e1", "2026-04-01T12:00:00Z", "A")
        service.schedule_event_reminder("e2", "2026-04-01T12:00:00Z", "B")

        service.cancel_all_reminders()

        assert service.pending_reminders == []
