"""
Tests for analytics tracking and event ratings.

Tests cover:
- Metric validation and engagement upserts
- Search and page-view rows
- Rating validation, upsert on (event, user) and creator notification
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from analytics.models import MetricType
from analytics.ratings import RatingService, rating_message
from analytics.tracking import TrackingService
from backend.memory import InMemoryBackend
from core.clock import MockClock
from core.exceptions import QueryError
from notifications.service import NotificationService


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return MockClock(NOW)


@pytest.fixture
def backend(clock):
    backend = InMemoryBackend(clock=clock)
    backend.seed("events", {"id": "e1", "creator_id": "c1", "name": "Jazz Night"})
    return backend


@pytest.fixture
def tracking(backend, clock):
    return TrackingService(backend, clock)


@pytest.fixture
def ratings(backend, clock, tracking):
    return RatingService(backend, NotificationService(backend, clock), tracking)


# =============================================================
# TEST: Tracking
# =============================================================

class TestTracking:
    """Test analytics row writes."""

    @pytest.mark.asyncio
    async def test_unknown_metric(self, tracking, backend):
        with pytest.raises(ValueError):
            await tracking.track_event("e1", "like")
        assert backend.rows("event_analytics") == []

    @pytest.mark.asyncio
    async def test_anonymous_view(self, tracking, backend):
        assert await tracking.track_event("e1", "view") is True

        row = backend.rows("event_analytics")[0]
        assert row["metric_type"] == "view"
        assert row["metric_value"] == 1
        assert row["metadata"] == {}
        assert backend.rows("user_engagement") == []

    @pytest.mark.asyncio
    async def test_engagement_upserted_per_user_and_event(self, tracking, backend, clock):
        await tracking.track_event("e1", MetricType.VIEW, user_id="u1")
        clock.advance(minutes=5)
        await tracking.track_event("e1", MetricType.SHARE, user_id="u1", metadata={"via": "link"})

        engagement = backend.rows("user_engagement")
        assert len(engagement) == 1
        assert engagement[0]["last_action"] == "share"
        assert engagement[0]["last_interaction"] == "2026-03-10T12:05:00+00:00"
        assert len(backend.rows("event_analytics")) == 2

    @pytest.mark.asyncio
    async def test_failure_reported_as_false(self, tracking, backend):
        backend.force_next_error(table="event_analytics")
        assert await tracking.track_event("e1", "click") is False

    @pytest.mark.asyncio
    async def test_search_and_page_view(self, tracking, backend):
        assert await tracking.track_search("jazz", 3, user_id="u1") is True
        assert await tracking.track_page_view("/events", session_id="s1") is True

        assert backend.rows("search_analytics")[0]["results_count"] == 3
        assert backend.rows("page_analytics")[0]["timestamp"] == "2026-03-10T12:00:00+00:00"


# =============================================================
# TEST: Ratings
# =============================================================

class TestRatings:
    """Test rating submission."""

    @pytest.mark.parametrize("value", [0, 6, 4.5, "5", True, None])
    @pytest.mark.asyncio
    async def test_invalid_rating(self, ratings, backend, value):
        with pytest.raises(ValueError):
            await ratings.submit_rating("e1", "Jazz Night", "u1", value)
        assert backend.rows("event_ratings") == []

    @pytest.mark.asyncio
    async def test_submit_notifies_creator(self, ratings, backend):
        stored = await ratings.submit_rating("e1", "Jazz Night", "u1", 4, review="  Great  ")

        assert stored["rating"] == 4
        assert stored["review"] == "Great"

        notification = backend.rows("notifications")[0]
        assert notification["user_id"] == "c1"
        assert notification["title"] == "New Event Rating"
        assert notification["message"] == 'Someone rated your event "Jazz Night" 4 stars'

        metric = backend.rows("event_analytics")[0]
        assert metric["metric_type"] == "rating"
        assert metric["metric_value"] == 4

    @pytest.mark.asyncio
    async def test_resubmit_updates(self, ratings, backend):
        await ratings.submit_rating("e1", "Jazz Night", "u1", 2)
        await ratings.submit_rating("e1", "Jazz Night", "u1", 5)

        rows = backend.rows("event_ratings")
        assert len(rows) == 1
        assert rows[0]["rating"] == 5
        assert (await ratings.get_user_rating("e1", "u1"))["rating"] == 5

    @pytest.mark.asyncio
    async def test_creator_rating_own_event(self, ratings, backend):
        await ratings.submit_rating("e1", "Jazz Night", "c1", 5)
        assert backend.rows("notifications") == []

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, ratings, backend):
        backend.force_next_error(table="event_ratings")

        with pytest.raises(QueryError):
            await ratings.submit_rating("e1", "Jazz Night", "u1", 3)
        assert backend.rows("notifications") == []

    @pytest.mark.asyncio
    async def test_without_tracking(self, backend):
        notifications = AsyncMock()
        service = RatingService(backend, notifications)

        await service.submit_rating("e1", "Jazz Night", "u1", 1)

        notifications.create_notification.assert_awaited_once_with(
            "c1",
            "New Event Rating",
            'Someone rated your event "Jazz Night" 1 star',
            event_id="e1",
        )
        assert backend.rows("event_analytics") == []

    @pytest.mark.asyncio
    async def test_ratings_newest_first(self, ratings, backend):
        backend.seed("event_ratings", [
            {"event_id": "e1", "user_id": "a", "rating": 3, "created_at": "2026-03-01T00:00:00+00:00"},
            {"event_id": "e1", "user_id": "b", "rating": 4, "created_at": "2026-03-05T00:00:00+00:00"},
        ])

        rows = await ratings.get_ratings("e1")

        assert [r["user_id"] for r in rows] == ["b", "a"]

    def test_rating_message(self):
        assert rating_message("Gig", 1) == 'Someone rated your event "Gig" 1 star'
        assert rating_message("Gig", 3) == 'Someone rated your event "Gig" 3 stars'
