"""
Tests for the PostgREST client.
"""

import asyncio

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock

from backend.client import RestBackendClient
from backend.query import Query
from core.config import BackendConfig
from core.exceptions import QueryError


def _session(status=200, body=None):
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=body)
    response.text = AsyncMock(return_value="")

    session = MagicMock()
    session.closed = False
    session.request.return_value.__aenter__.return_value = response
    session.request.return_value.__aexit__.return_value = False
    return session


@pytest.fixture
def config():
    return BackendConfig(url="https://demo.supabase.co", anon_key="anon", access_token="jwt")


class TestRestBackendClient:
    """Test request construction and error mapping."""

    @pytest.mark.asyncio
    async def test_select(self, config):
        session = _session(body=[{"id": "n1"}])
        client = RestBackendClient(config, session=session)

        rows = await client.select(Query("notifications").eq("user_id", "u1").limit(5))

        assert rows == [{"id": "n1"}]
        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert method == "GET"
        assert url == "https://demo.supabase.co/rest/v1/notifications"
        assert ("user_id", "eq.u1") in kwargs["params"]
        assert kwargs["headers"]["apikey"] == "anon"
        assert kwargs["headers"]["Authorization"] == "Bearer jwt"

    @pytest.mark.asyncio
    async def test_upsert_headers(self, config):
        session = _session(body=[{"id": "r1"}])
        client = RestBackendClient(config, session=session)

        await client.upsert("event_ratings", {"event_id": "e1", "user_id": "u1"}, on_conflict="event_id,user_id")

        kwargs = session.request.call_args.kwargs
        assert kwargs["params"] == [("on_conflict", "event_id,user_id")]
        assert kwargs["json"] == [{"event_id": "e1", "user_id": "u1"}]
        assert kwargs["headers"]["Prefer"] == "resolution=merge-duplicates,return=representation"

    @pytest.mark.asyncio
    async def test_update_sends_filters_only(self, config):
        session = _session(body=[])
        client = RestBackendClient(config, session=session)

        await client.update(Query("notifications").eq("id", "n1").order("created_at"), {"read": True})

        kwargs = session.request.call_args.kwargs
        assert session.request.call_args.args[0] == "PATCH"
        assert kwargs["params"] == [("id", "eq.n1")]
        assert kwargs["json"] == {"read": True}

    @pytest.mark.asyncio
    async def test_unfiltered_update_never_sent(self, config):
        session = _session()
        client = RestBackendClient(config, session=session)

        with pytest.raises(QueryError):
            await client.update(Query("notifications"), {"read": True})

        session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_error_response(self, config):
        session = _session(
            status=409,
            body={"message": "duplicate key value", "code": "23505", "details": None, "hint": None},
        )
        client = RestBackendClient(config, session=session)

        with pytest.raises(QueryError) as exc_info:
            await client.insert("event_ratings", {"event_id": "e1"})

        assert exc_info.value.status == 409
        assert exc_info.value.code == "23505"
        assert exc_info.value.message == "duplicate key value"

    @pytest.mark.asyncio
    async def test_connection_error(self, config):
        session = MagicMock()
        session.closed = False
        session.request.side_effect = aiohttp.ClientConnectionError("refused")
        client = RestBackendClient(config, session=session)

        with pytest.raises(QueryError) as exc_info:
            await client.select(Query("events"))

        assert exc_info.value.is_transient is False
        assert exc_info.value.context["cause_type"] == "ClientConnectionError"

    @pytest.mark.asyncio
    async def test_timeout_maps_to_query_error(self, config):
        session = _session(body=[])
        response = session.request.return_value.__aenter__.return_value
        response.json = AsyncMock(side_effect=asyncio.TimeoutError())
        client = RestBackendClient(config, session=session)

        with pytest.raises(QueryError) as exc_info:
            await client.select(Query("events"))

        assert exc_info.value.table == "events"
        assert exc_info.value.is_transient is True
        assert exc_info.value.context["cause_type"] == "TimeoutError"

    @pytest.mark.asyncio
    async def test_no_content(self, config):
        session = _session(status=204)
        client = RestBackendClient(config, session=session)

        assert await client.delete(Query("notifications").eq("id", "n1")) == []

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session(self, config):
        session = _session()
        session.close = AsyncMock()
        client = RestBackendClient(config, session=session)

        await client.close()

        session.close.assert_not_awaited()
