"""
Tests for core infrastructure.

Tests cover:
- MockClock manipulation and calendar dates
- Timestamp parsing
- Environment configuration and validation
- Exception context and classification
"""

import pytest
from datetime import date, datetime, timedelta, timezone

from core.clock import MockClock, SystemClock, calendar_date, parse_timestamp, to_iso8601
from core.config import AppConfig, BackendConfig, IntegrationConfig
from core.exceptions import (
    ConfigurationError,
    ErrorClassification,
    QueryError,
    Severity,
    TipGenerationError,
    TransportError,
)


# =============================================================
# TEST: Clock
# =============================================================

class TestMockClock:
    """Test the controllable clock."""

    def test_naive_initial_time_gets_timezone(self):
        clock = MockClock(datetime(2026, 1, 1, 12, 0))
        assert clock.now().tzinfo is timezone.utc

    def test_advance(self):
        clock = MockClock(datetime(2026, 1, 1, 23, 0, tzinfo=timezone.utc))
        clock.advance(hours=2)

        assert clock.today() == date(2026, 1, 2)
        assert clock.days_ago(1) == date(2026, 1, 1)

    def test_freeze_restores(self):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        clock = MockClock(start)

        with clock.freeze(datetime(2030, 5, 5, tzinfo=timezone.utc)):
            assert clock.today() == date(2030, 5, 5)

        assert clock.now() == start

    def test_today_follows_clock_timezone(self):
        tz = timezone(timedelta(hours=-5))
        clock = MockClock(datetime(2026, 1, 2, 2, 0, tzinfo=timezone.utc), tz=tz)
        assert clock.today() == date(2026, 1, 1)

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None


class TestTimestamps:
    """Test timestamp helpers."""

    def test_parse_trailing_z(self):
        parsed = parse_timestamp("2026-03-10T09:00:00Z")
        assert parsed == datetime(2026, 3, 10, 9, tzinfo=timezone.utc)

    def test_parse_date_only(self):
        assert parse_timestamp("2026-03-10") == datetime(2026, 3, 10)

    def test_parse_garbage(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(42) is None

    def test_calendar_date_converts_aware(self):
        tz = timezone(timedelta(hours=9))
        assert calendar_date("2026-03-10T20:00:00+00:00", tz) == date(2026, 3, 11)
        assert calendar_date("2026-03-10T20:00:00+00:00") == date(2026, 3, 10)
        assert calendar_date(date(2026, 1, 1), tz) == date(2026, 1, 1)

    def test_to_iso8601_naive(self):
        assert to_iso8601(datetime(2026, 1, 1)).endswith("+00:00")


# =============================================================
# TEST: Configuration
# =============================================================

class TestConfig:
    """Test configuration loading and validation."""

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
        monkeypatch.setenv("NOTIFICATION_FETCH_LIMIT", "50")
        monkeypatch.setenv("NOTIFICATION_TOAST_HISTORY", "25")
        monkeypatch.setenv("APP_TIMEZONE", "Europe/Berlin")
        monkeypatch.setenv("APP_BASE_URL", "https://app.example.com")

        config = AppConfig.from_env(str(tmp_path / "missing.env"))

        assert config.backend.rest_url == "https://demo.supabase.co/rest/v1"
        assert config.backend.realtime_url.startswith("wss://demo.supabase.co/realtime/v1/websocket")
        assert config.notifications.fetch_limit == 50
        assert config.notifications.toast_history_limit == 25
        assert config.validate() == []
        assert config.integrations.resolve("/api/generate-tips") == "https://app.example.com/api/generate-tips"

    def test_bad_number_raises(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NOTIFICATION_FETCH_LIMIT", "lots")

        with pytest.raises(ConfigurationError) as exc_info:
            AppConfig.from_env(str(tmp_path / "missing.env"))

        assert exc_info.value.context["config_key"] == "NOTIFICATION_FETCH_LIMIT"

    def test_validate_reports_problems(self):
        config = AppConfig()
        config.aggregation.default_period = "1y"
        config.aggregation.timezone_name = "Mars/Olympus"
        config.notifications.toast_history_limit = 0

        errors = config.validate()

        assert "SUPABASE_URL is required" in errors
        assert "SUPABASE_ANON_KEY is required" in errors
        assert any("ANALYTICS_DEFAULT_PERIOD" in e for e in errors)
        assert any("Mars/Olympus" in e for e in errors)
        assert "NOTIFICATION_TOAST_HISTORY must be at least 1" in errors

    def test_validate_without_backend(self):
        assert AppConfig().validate(require_backend=False) == []

    def test_bearer_token_prefers_session(self):
        assert BackendConfig(anon_key="anon").bearer_token == "anon"
        assert BackendConfig(anon_key="anon", access_token="jwt").bearer_token == "jwt"

    def test_resolve_keeps_absolute(self):
        config = IntegrationConfig(base_url="https://app.example.com/")
        assert config.resolve("https://other.example.com/x") == "https://other.example.com/x"
        assert config.resolve("api/x") == "https://app.example.com/api/x"
        assert IntegrationConfig().resolve("/api/x") == "/api/x"


# =============================================================
# TEST: Exceptions
# =============================================================

class TestExceptions:
    """Test exception hierarchy."""

    def test_backend_error_context(self):
        error = QueryError("duplicate key", table="event_ratings", status=409, code="23505")

        data = error.to_dict()
        assert data["type"] == "QueryError"
        assert data["context"] == {"table": "event_ratings", "status": 409, "code": "23505"}
        assert error.code == "23505"

    def test_transient_classification(self):
        assert TransportError("lost").is_transient
        assert TipGenerationError("down", status=500).is_transient
        assert not ConfigurationError("bad", config_key="X").is_transient

    def test_cause_recorded(self):
        cause = ValueError("boom")
        error = TransportError("lost", channel="realtime:x", cause=cause)

        assert error.context["cause_type"] == "ValueError"
        assert error.context["channel"] == "realtime:x"
        assert error.severity == Severity.MEDIUM
        assert error.classification == ErrorClassification.TRANSIENT
