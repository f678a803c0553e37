"""
Core - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line surface of the sync layer.

- argparse parser with `watch` and `tips` commands
- Argument validation
- Logging setup (json or text on stdout)

============================================================
USAGE
============================================================
python app.py watch --user-id <uuid> --view notifications
python app.py watch --user-id <uuid> --view event --event-id <uuid>
python app.py watch --user-id <uuid> --view analytics --period 7d
python app.py tips --user-id <uuid>

============================================================
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import VALID_PERIODS


VIEW_CHOICES = ("notifications", "analytics", "habits", "event")


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    session_id: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Log level name
        log_format: "json" or "text"
        session_id: Tag added to every line

    Returns:
        The application logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
                "session": session_id or "",
            })
        )
    else:
        prefix = f"{session_id} | " if session_id else ""
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {prefix}%(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # aiohttp access noise
    logging.getLogger("aiohttp").setLevel(max(log_level, logging.WARNING))

    return logging.getLogger("eventhabit")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="eventhabit-sync",
        description="Realtime notification and analytics sync for events and habits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Views:
  notifications - Live notification list with unread badge
  analytics     - Creator dashboard (totals, per-event, time series)
  habits        - Habit stats and overall metrics
  event         - Single event with tickets and ratings

Examples:
  %(prog)s watch --user-id <uuid> --view notifications
  %(prog)s watch --user-id <uuid> --view analytics --period 7d
  %(prog)s watch --user-id <uuid> --view event --event-id <uuid>
  %(prog)s tips --user-id <uuid>
        """,
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    # --------------------------------------------------------
    # Shared Options
    # --------------------------------------------------------
    parser.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help="Path to a .env file (default: .env in the working directory)",
    )

    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default=None,
        help="Logging format (default: LOG_FORMAT or text)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # --------------------------------------------------------
    # watch
    # --------------------------------------------------------
    watch = subparsers.add_parser("watch", help="Mount a view and follow its changes")

    watch.add_argument("--user-id", type=str, required=True, help="Signed-in user id")

    watch.add_argument(
        "--view",
        type=str,
        choices=VIEW_CHOICES,
        default="notifications",
        help="View to mount (default: notifications)",
    )

    watch.add_argument("--event-id", type=str, help="Event id (required for --view event)")

    watch.add_argument(
        "--period",
        type=str,
        choices=VALID_PERIODS,
        default=None,
        help="Dashboard period (default: ANALYTICS_DEFAULT_PERIOD or 30d)",
    )

    watch.add_argument(
        "--duration",
        type=float,
        default=0,
        metavar="SECONDS",
        help="Stop after this many seconds (default: 0 = until interrupted)",
    )

    # --------------------------------------------------------
    # tips
    # --------------------------------------------------------
    tips = subparsers.add_parser("tips", help="Generate AI habit tips for a user")

    tips.add_argument("--user-id", type=str, required=True, help="User id")

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Returns:
        List of validation errors
    """
    errors = []

    if not (args.user_id or "").strip():
        errors.append("--user-id must not be empty")

    if args.command == "watch":
        if args.view == "event" and not args.event_id:
            errors.append("--event-id is required for --view event")
        if args.event_id and args.view != "event":
            errors.append("--event-id is only valid with --view event")
        if args.period and args.view != "analytics":
            errors.append("--period is only valid with --view analytics")
        if args.duration < 0:
            errors.append("--duration must not be negative")

    return errors


def print_banner(args: argparse.Namespace) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  EVENTHABIT SYNC")
    print("=" * 60)
    print(f"  Command:    {args.command}")
    print(f"  User:       {args.user_id}")
    if args.command == "watch":
        print(f"  View:       {args.view}")
        if args.event_id:
            print(f"  Event:      {args.event_id}")
        if args.period:
            print(f"  Period:     {args.period}")
    print("=" * 60)
    print()


__all__ = [
    "VIEW_CHOICES",
    "setup_logging",
    "create_parser",
    "validate_args",
    "print_banner",
]
