"""
Tests for the command-line surface.
"""

import logging

import pytest

from core.cli import create_parser, setup_logging, validate_args


class TestParser:
    """Test argument parsing and validation."""

    def test_watch_defaults(self):
        args = create_parser().parse_args(["watch", "--user-id", "u1"])

        assert args.command == "watch"
        assert args.view == "notifications"
        assert args.duration == 0
        assert validate_args(args) == []

    def test_event_view_requires_event_id(self):
        args = create_parser().parse_args(["watch", "--user-id", "u1", "--view", "event"])
        assert "--event-id is required for --view event" in validate_args(args)

    def test_period_only_for_analytics(self):
        parser = create_parser()

        ok = parser.parse_args(["watch", "--user-id", "u1", "--view", "analytics", "--period", "7d"])
        bad = parser.parse_args(["watch", "--user-id", "u1", "--period", "7d"])

        assert validate_args(ok) == []
        assert "--period is only valid with --view analytics" in validate_args(bad)

    def test_unknown_period_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["watch", "--user-id", "u1", "--period", "1y"])

    def test_tips_command(self):
        args = create_parser().parse_args(["--log-level", "DEBUG", "tips", "--user-id", "u1"])

        assert args.command == "tips"
        assert args.log_level == "DEBUG"
        assert validate_args(args) == []

    def test_blank_user_rejected(self):
        args = create_parser().parse_args(["tips", "--user-id", "  "])
        assert "--user-id must not be empty" in validate_args(args)


class TestSetupLogging:
    """Test logging configuration."""

    def test_replaces_root_handlers(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            logger = setup_logging("WARNING", "json", session_id="u1")

            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
            assert '"session": "u1"' in root.handlers[0].formatter._fmt
            assert logger.name == "eventhabit"
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)
