"""
Tests for the Notification Presenter.

Tests cover:
- Initial load and unread counting
- Live delivery, ordering and duplicate suppression
- Read transitions and the unread floor
- Write-back failures surfaced as error toasts
"""

import pytest
from datetime import datetime, timezone

from backend.memory import InMemoryBackend
from core.clock import MockClock
from notifications.models import NotificationRecord, NotificationSeverity
from notifications.presenter import NotificationPresenter
from notifications.toasts import ToastCenter
from realtime.events import parse_change


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _record(notification_id, read=False, user_id="u1", severity=NotificationSeverity.INFO):
    return NotificationRecord(
        id=notification_id,
        owner_user_id=user_id,
        title=f"Title {notification_id}",
        message=f"Message {notification_id}",
        severity=severity,
        read=read,
    )


@pytest.fixture
def clock():
    return MockClock(NOW)


@pytest.fixture
def backend(clock):
    return InMemoryBackend(clock=clock)


@pytest.fixture
def toasts(clock):
    return ToastCenter(clock=clock)


@pytest.fixture
def presenter(backend, toasts):
    return NotificationPresenter("u1", backend, toasts, toast_duration_seconds=0)


# =============================================================
# TEST: Loading and delivery
# =============================================================

class TestDelivery:
    """Test list maintenance."""

    def test_load_counts_unread(self, presenter):
        presenter.load([_record("n1"), _record("n2", read=True), _record("n3"), _record("n1")])

        assert [r.id for r in presenter.records] == ["n1", "n2", "n3"]
        assert presenter.unread_count == 2

    def test_deliver_prepends_and_toasts(self, presenter, toasts):
        presenter.load([_record("n1", read=True)])

        toast = presenter.deliver(_record("n2", severity=NotificationSeverity.SUCCESS))

        assert [r.id for r in presenter.records] == ["n2", "n1"]
        assert presenter.unread_count == 1
        assert toast.title == "Title n2"
        assert toast.severity == NotificationSeverity.SUCCESS
        assert toast.source_id == "n2"
        assert toasts.history == [toast]

    def test_duplicate_delivery_ignored(self, presenter, toasts):
        presenter.deliver(_record("n1"))

        assert presenter.deliver(_record("n1")) is None
        assert len(presenter.records) == 1
        assert presenter.unread_count == 1
        assert len(toasts.history) == 1

    def test_read_delivery_does_not_count(self, presenter):
        presenter.deliver(_record("n1", read=True))
        assert presenter.unread_count == 0

    @pytest.mark.asyncio
    async def test_handle_change_inserts_only(self, presenter):
        insert = parse_change({
            "table": "notifications",
            "eventType": "INSERT",
            "new": {"id": "n1", "user_id": "u1", "title": "Ticket Sold", "type": "success"},
        })
        update = parse_change({
            "table": "notifications",
            "eventType": "UPDATE",
            "new": {"id": "n2", "user_id": "u1", "title": "Edited"},
        })

        await presenter.handle_change(insert)
        await presenter.handle_change(update)

        assert [r.id for r in presenter.records] == ["n1"]
        assert presenter.records[0].severity == NotificationSeverity.SUCCESS


# =============================================================
# TEST: Read transitions
# =============================================================

class TestReadTransitions:
    """Test mark_read / mark_all_read."""

    @pytest.mark.asyncio
    async def test_mark_read(self, presenter, backend):
        backend.seed("notifications", [{"id": "n1", "user_id": "u1", "read": False}])
        presenter.load([_record("n1"), _record("n2")])

        assert await presenter.mark_read("n1") is True

        assert presenter.get("n1").read is True
        assert presenter.unread_count == 1
        assert backend.rows("notifications")[0]["read"] is True

    @pytest.mark.asyncio
    async def test_mark_read_twice_is_idempotent(self, presenter, backend):
        presenter.load([_record("n1"), _record("n2")])

        await presenter.mark_read("n1")
        await presenter.mark_read("n1")

        assert presenter.unread_count == 1
        assert len([c for c in backend.calls if c["op"] == "update"]) == 1

    @pytest.mark.asyncio
    async def test_mark_read_unknown(self, presenter, backend):
        assert await presenter.mark_read("missing") is False
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_mark_all_read(self, presenter, backend):
        backend.seed("notifications", [
            {"id": f"n{i}", "user_id": "u1", "read": i > 3} for i in range(1, 6)
        ])
        backend.seed("notifications", {"id": "other", "user_id": "u2", "read": False})
        presenter.load([_record(f"n{i}", read=i > 3) for i in range(1, 6)])
        assert presenter.unread_count == 3

        changed = await presenter.mark_all_read()

        assert changed == 3
        assert presenter.unread_count == 0
        assert all(r.read for r in presenter.records)
        stored = {r["id"]: r["read"] for r in backend.rows("notifications")}
        assert stored == {"n1": True, "n2": True, "n3": True, "n4": True, "n5": True, "other": False}

    @pytest.mark.asyncio
    async def test_mark_all_read_nothing_unread(self, presenter, backend):
        presenter.load([_record("n1", read=True)])

        assert await presenter.mark_all_read() == 0
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_unread_never_negative(self, presenter):
        presenter.load([_record("n1")])
        await presenter.mark_all_read()

        # Record delivered as unread after the counter was reset
        presenter.get("n1").read = False
        await presenter.mark_read("n1")

        assert presenter.unread_count == 0


# =============================================================
# TEST: Write failures
# =============================================================

class TestWriteFailures:
    """Test failed write-backs."""

    @pytest.mark.asyncio
    async def test_mark_read_failure_shows_error(self, presenter, backend, toasts):
        presenter.load([_record("n1")])
        backend.force_next_error("permission denied", table="notifications")

        assert await presenter.mark_read("n1") is True

        # Local state is kept
        assert presenter.get("n1").read is True
        assert presenter.unread_count == 0
        assert toasts.history[-1].severity == NotificationSeverity.ERROR
        assert toasts.history[-1].message == "Could not mark notification as read"

    @pytest.mark.asyncio
    async def test_mark_all_read_failure_shows_error(self, presenter, backend, toasts):
        presenter.load([_record("n1"), _record("n2")])
        backend.force_next_error(table="notifications")

        assert await presenter.mark_all_read() == 2
        assert toasts.history[-1].message == "Could not mark notifications as read"
