"""
Tests for the Toast Center and formatter.
"""

import asyncio

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from core.clock import MockClock
from notifications.models import NotificationRecord, NotificationSeverity
from notifications.toasts import ToastCenter, ToastFormatter


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def center():
    return ToastCenter(clock=MockClock(NOW), default_duration_seconds=0.01, message_duration_seconds=0.01)


class TestToastCenter:
    """Test show, expiry and dismissal."""

    @pytest.mark.asyncio
    async def test_toast_expires(self, center):
        toast = center.show("Ticket Sold", "Someone bought a ticket")

        assert center.active == [toast]
        assert toast.created_at == NOW

        await asyncio.sleep(0.05)

        assert toast.expired is True
        assert center.active == []
        assert center.history == [toast]

    @pytest.mark.asyncio
    async def test_dismiss_before_expiry(self, center):
        toast = center.show("Title", "Message", duration_seconds=10)

        assert center.dismiss(toast.toast_id) is True
        assert toast.dismissed is True
        assert center.active == []
        assert center.dismiss(toast.toast_id) is False

    @pytest.mark.asyncio
    async def test_newest_first(self, center):
        first = center.show("A", "a", duration_seconds=10)
        second = center.show("B", "b", duration_seconds=10)

        assert center.active == [second, first]
        center.clear()
        assert center.active == []

    def test_history_trimmed(self):
        center = ToastCenter(clock=MockClock(NOW), max_history=3)

        toasts = [center.show(f"T{i}", "m", duration_seconds=0) for i in range(5)]

        assert center.history == toasts[2:]
        assert [t.title for t in center.active] == ["T4", "T3", "T2", "T1", "T0"]

    def test_no_loop_no_expiry(self, center):
        toast = center.show("A", "a")
        assert toast.is_visible

    @pytest.mark.asyncio
    async def test_success_and_error(self, center):
        ok = center.success("Progress recorded!")
        bad = center.error("Could not save")

        assert ok.severity == NotificationSeverity.SUCCESS
        assert bad.severity == NotificationSeverity.ERROR
        assert ok.title == ""

    @pytest.mark.asyncio
    async def test_sinks(self, center):
        broken = MagicMock(side_effect=RuntimeError("sink down"))
        sink = MagicMock()
        center.add_sink(broken)
        center.add_sink(sink)

        toast = center.show("A", "a")

        sink.assert_called_once_with(toast)

        center.remove_sink(sink)
        center.show("B", "b")
        assert sink.call_count == 1


class TestToastFormatter:
    """Test text rendering."""

    def test_badge(self):
        assert ToastFormatter.format_badge(0) == ""
        assert ToastFormatter.format_badge(3) == "3"
        assert ToastFormatter.format_badge(9) == "9"
        assert ToastFormatter.format_badge(12) == "9+"

    def test_format_toast(self, center):
        toast = center.show("Ticket Sold", "Someone bought a ticket", NotificationSeverity.SUCCESS)
        assert ToastFormatter.format_toast(toast) == "✓ Ticket Sold: Someone bought a ticket"

        plain = center.show("", "Saved")
        assert ToastFormatter.format_toast(plain) == "ℹ Saved"

    def test_format_notification(self):
        record = NotificationRecord(
            id="n1",
            owner_user_id="u1",
            title="New Rating",
            message="5 stars",
            severity=NotificationSeverity.WARNING,
            created_at=NOW,
        )

        assert ToastFormatter.format_notification(record) == "• ⚠ New Rating - 5 stars (2026-03-10 12:00)"
