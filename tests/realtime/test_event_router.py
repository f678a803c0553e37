"""
Tests for the Change Event Router.

Tests cover:
- Owner resolution for every resource table
- Creator lookups and their cache
- Owner-scoped and table-scoped delivery
- Malformed payloads counted, never raised
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from backend.memory import InMemoryBackend
from core.clock import MockClock
from core.exceptions import QueryError
from realtime.events import ResourceTable
from realtime.router import ChangeEventRouter


def _raw(table, new, operation="INSERT"):
    return {"table": table, "eventType": operation, "new": new, "old": {}}


@pytest.fixture
def backend():
    backend = InMemoryBackend(clock=MockClock(datetime(2026, 3, 10, tzinfo=timezone.utc)))
    backend.seed("events", [
        {"id": "e1", "creator_id": "c1", "name": "Gig"},
        {"id": "e2", "creator_id": "c2", "name": "Talk"},
    ])
    return backend


@pytest.fixture
def router(backend):
    return ChangeEventRouter(backend)


# =============================================================
# TEST: Owner resolution
# =============================================================

class TestOwnerResolution:
    """Test affected-owner resolution."""

    @pytest.mark.asyncio
    async def test_user_owned_tables(self, router):
        notification = await router.route(_raw("notifications", {"id": "n1", "user_id": "u1"}))
        progress = await router.route(_raw("habit_progress", {"id": "p1", "habit_id": "h1", "user_id": "u2"}))

        assert notification.affected_owner_id == "u1"
        assert progress.affected_owner_id == "u2"

    @pytest.mark.asyncio
    async def test_event_uses_creator(self, router):
        event = await router.route(_raw("events", {"id": "e9", "creator_id": "c9"}, "UPDATE"))
        assert event.affected_owner_id == "c9"

        # Cached from the payload, no lookup needed
        assert await router.event_creator("e9") == "c9"

    @pytest.mark.asyncio
    async def test_event_without_creator_is_looked_up(self, router):
        event = await router.route(_raw("events", {"id": "e2", "name": "Renamed"}, "UPDATE"))
        assert event.affected_owner_id == "c2"

    @pytest.mark.asyncio
    async def test_children_use_parent_creator(self, router):
        ticket = await router.route(_raw("tickets", {"id": "t1", "event_id": "e1", "user_id": "buyer"}))
        rating = await router.route(_raw("event_ratings", {"id": "r1", "event_id": "e2", "rating": 5}))
        metric = await router.route(_raw("event_analytics", {"id": "a1", "event_id": "e1", "metric_type": "view"}))

        assert ticket.affected_owner_id == "c1"
        assert rating.affected_owner_id == "c2"
        assert metric.affected_owner_id == "c1"

    @pytest.mark.asyncio
    async def test_unknown_parent(self, router):
        ticket = await router.route(_raw("tickets", {"id": "t1", "event_id": "missing"}))
        assert ticket.affected_owner_id is None

    @pytest.mark.asyncio
    async def test_creator_lookup_is_cached(self):
        backend = AsyncMock()
        backend.maybe_single.return_value = {"id": "e1", "creator_id": "c1"}
        router = ChangeEventRouter(backend)

        await router.route(_raw("tickets", {"id": "t1", "event_id": "e1"}))
        await router.route(_raw("tickets", {"id": "t2", "event_id": "e1"}))

        assert backend.maybe_single.await_count == 1

        router.forget_event("e1")
        await router.route(_raw("tickets", {"id": "t3", "event_id": "e1"}))
        assert backend.maybe_single.await_count == 2

    @pytest.mark.asyncio
    async def test_lookup_failure_resolves_to_none(self):
        backend = AsyncMock()
        backend.maybe_single.side_effect = QueryError("down", table="events")
        router = ChangeEventRouter(backend)

        ticket = await router.route(_raw("tickets", {"id": "t1", "event_id": "e1"}))

        assert ticket.affected_owner_id is None


# =============================================================
# TEST: Dispatch
# =============================================================

class TestDispatch:
    """Test owner-scoped delivery."""

    @pytest.mark.asyncio
    async def test_delivers_to_matching_owner(self, router):
        mine, theirs = AsyncMock(), AsyncMock()
        router.add_route("analytics-c1", "c1", mine)
        router.add_route("analytics-c1", "c2", theirs)

        delivered = await router.dispatch("analytics-c1", _raw("tickets", {"id": "t1", "event_id": "e1"}))

        assert delivered == 1
        mine.assert_awaited_once()
        theirs.assert_not_awaited()
        assert mine.await_args.args[0].resource_table == ResourceTable.TICKETS
        assert router.delivered_count == 1

    @pytest.mark.asyncio
    async def test_foreign_owner_is_dropped(self, router):
        handler = AsyncMock()
        router.add_route("analytics-c1", "c1", handler)

        delivered = await router.dispatch("analytics-c1", _raw("tickets", {"id": "t1", "event_id": "e2"}))

        assert delivered == 0
        handler.assert_not_awaited()
        assert router.dropped_count == 1

    @pytest.mark.asyncio
    async def test_table_scope(self, router):
        handler = AsyncMock()
        router.add_route("k", "c1", handler, tables=[ResourceTable.RATINGS])

        await router.dispatch("k", _raw("tickets", {"id": "t1", "event_id": "e1"}))
        await router.dispatch("k", _raw("event_ratings", {"id": "r1", "event_id": "e1", "rating": 4}))

        assert handler.await_count == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_rejected(self, router):
        handler = AsyncMock()
        router.add_route("k", "u1", handler)

        delivered = await router.dispatch("k", {"table": "notifications", "eventType": "INSERT", "new": {}})

        assert delivered == 0
        assert router.rejected_count == 1
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_routes(self, router):
        assert await router.dispatch("nobody", _raw("notifications", {"id": "n1", "user_id": "u1"})) == 0
        assert router.dropped_count == 1

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, router):
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        router.add_route("k", "u1", failing)
        router.add_route("k", "u1", healthy)

        delivered = await router.dispatch("k", _raw("notifications", {"id": "n1", "user_id": "u1"}))

        assert delivered == 1
        healthy.assert_awaited_once()

    def test_remove_route(self, router):
        token = router.add_route("k", "u1", AsyncMock())
        assert router.has_routes("k")

        assert router.remove_route(token) is True
        assert router.has_routes("k") is False
        assert router.remove_route(token) is False
