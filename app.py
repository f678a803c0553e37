#!/usr/bin/env python3
"""
EventHabit Sync - Application Entry Point.

============================================================
COMPOSITION ROOT
============================================================
Application builds every collaborator exactly once and passes them
down explicitly:

    config -> clock -> backend -> transport
           -> ChannelRegistry -> ChangeEventRouter
           -> AggregationEngine -> ToastCenter
           -> services -> views

There is no module-level singleton; tests build an Application over
the in-memory backend and transport.

============================================================
USAGE
============================================================
    python app.py watch --user-id <uuid> --view notifications
    python app.py watch --user-id <uuid> --view analytics --period 7d
    python app.py tips --user-id <uuid>

Environment (or .env):
    SUPABASE_URL, SUPABASE_ANON_KEY, APP_TIMEZONE, LOG_LEVEL, ...

============================================================
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from aggregation.engine import AggregationEngine
from analytics.ratings import RatingService
from analytics.service import EventAnalyticsService
from analytics.tracking import TrackingService
from backend.client import BackendClient, RestBackendClient
from backend.memory import InMemoryBackend
from core.cli import create_parser, print_banner, setup_logging, validate_args
from core.clock import ClockProtocol, SystemClock
from core.config import AppConfig
from core.exceptions import ConfigurationError, SyncError
from habits.service import HabitService
from integrations.ai_tips import TipGenerator
from integrations.payments import PaymentClient, format_price
from notifications.service import NotificationService
from notifications.toasts import ToastCenter, ToastFormatter
from realtime.memory import LocalTransport
from realtime.registry import ChannelRegistry
from realtime.router import ChangeEventRouter
from realtime.transport import PhoenixTransport, Transport
from views.analytics_dashboard import AnalyticsDashboardView
from views.base import View, ViewContext
from views.event_detail import EventDetailView
from views.habit_dashboard import HabitDashboardView
from views.notification_center import NotificationCenterView


logger = logging.getLogger(__name__)


# ============================================================
# APPLICATION
# ============================================================

class Application:
    """
    Owns the session-wide collaborators and the mounted views.
    """

    def __init__(
        self,
        config: AppConfig,
        clock: Optional[ClockProtocol] = None,
        backend: Optional[BackendClient] = None,
        transport: Optional[Transport] = None,
    ):
        self.config = config
        self.clock = clock or SystemClock(config.aggregation.tz)
        self.backend = backend or RestBackendClient(config.backend)
        self.transport = transport or PhoenixTransport(config.backend, config.realtime)

        self.registry = ChannelRegistry(self.transport)
        self.router = ChangeEventRouter(self.backend)
        self.engine = AggregationEngine(
            self.clock,
            consistency_window_days=config.aggregation.consistency_window_days,
        )
        self.toasts = ToastCenter(
            self.clock,
            default_duration_seconds=config.notifications.toast_duration_seconds,
            message_duration_seconds=config.notifications.message_duration_seconds,
            max_history=config.notifications.toast_history_limit,
        )

        # Services
        self.notifications = NotificationService(self.backend, self.clock, config.notifications)
        self.tracking = TrackingService(self.backend, self.clock)
        self.analytics = EventAnalyticsService(self.backend, self.engine)
        self.ratings = RatingService(self.backend, self.notifications, self.tracking)
        self.habits = HabitService(self.backend, self.engine)
        self.tips = TipGenerator(self.backend, self.clock, config.integrations, config.aggregation)
        self.payments = PaymentClient(config.integrations)

        self.context = ViewContext(
            config=config,
            clock=self.clock,
            backend=self.backend,
            registry=self.registry,
            router=self.router,
            engine=self.engine,
            toasts=self.toasts,
            notifications=self.notifications,
            analytics=self.analytics,
            habits=self.habits,
        )
        self._views: List[View] = []
        self._closed = False

    @classmethod
    def in_memory(
        cls,
        config: Optional[AppConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> "Application":
        """Application over the in-memory backend and local transport."""
        config = config or AppConfig.for_testing()
        clock = clock or SystemClock(config.aggregation.tz)
        transport = LocalTransport(config.backend.schema)
        backend = InMemoryBackend(clock=clock, transport=transport)
        return cls(config, clock=clock, backend=backend, transport=transport)

    @property
    def views(self) -> List[View]:
        return list(self._views)

    # --------------------------------------------------------
    # VIEWS
    # --------------------------------------------------------

    def create_view(
        self,
        kind: str,
        user_id: str,
        event_id: Optional[str] = None,
        period: Optional[str] = None,
    ) -> View:
        """Build (but do not mount) a view."""
        if kind == "notifications":
            return NotificationCenterView(self.context, user_id)
        if kind == "analytics":
            return AnalyticsDashboardView(self.context, user_id, period)
        if kind == "habits":
            return HabitDashboardView(self.context, user_id)
        if kind == "event":
            if not event_id:
                raise ValueError("event_id is required for the event view")
            return EventDetailView(self.context, event_id)
        raise ValueError(f"Unknown view {kind!r}")

    async def open_view(
        self,
        kind: str,
        user_id: str,
        event_id: Optional[str] = None,
        period: Optional[str] = None,
    ) -> View:
        """Build and mount a view."""
        view = self.create_view(kind, user_id, event_id, period)
        await view.mount()
        self._views.append(view)
        return view

    async def close_view(self, view: View) -> None:
        await view.unmount()
        if view in self._views:
            self._views.remove(view)

    # --------------------------------------------------------
    # SHUTDOWN
    # --------------------------------------------------------

    async def close(self) -> None:
        """Unmount every view and release network resources."""
        if self._closed:
            return
        self._closed = True

        for view in list(self._views):
            await self.close_view(view)
        await self.registry.unsubscribe_all()
        self.notifications.cancel_all_reminders()
        self.toasts.clear()

        await self.tips.close()
        await self.payments.close()
        await self.transport.close()
        await self.backend.close()
        logger.info("Application closed")


# ============================================================
# RENDERING
# ============================================================

def render_view(view: View, currency: str = "USD") -> List[str]:
    """Console lines describing a view's current state."""
    lines = []

    if view.error is not None:
        lines.append(f"Error: {view.error.message}")

    if isinstance(view, NotificationCenterView):
        badge = view.badge
        lines.append(f"Notifications ({view.unread_count} unread){' [' + badge + ']' if badge else ''}")
        for record in view.notifications:
            lines.append(f"  {ToastFormatter.format_notification(record)}")

    elif isinstance(view, AnalyticsDashboardView) and view.dashboard is not None:
        summary = view.dashboard.summary
        lines.append(f"Dashboard ({view.period})")
        lines.append(f"  Views:    {summary['total_views']}")
        lines.append(f"  Tickets:  {summary['total_tickets']}")
        lines.append(f"  Revenue:  {format_price(summary['total_revenue'], currency)}")
        lines.append(f"  Rating:   {summary['average_rating']}")
        for row in view.dashboard.event_summaries():
            lines.append(
                f"  - {row['name']}: {row['views']} views, {row['tickets']} tickets, "
                f"{format_price(row['revenue'], currency)}"
            )

    elif isinstance(view, EventDetailView) and view.metrics is not None:
        metrics = view.metrics
        lines.append(f"Event {view.event.get('name') if view.event else ''}")
        lines.append(f"  Tickets sold: {metrics.count('tickets_sold')}")
        lines.append(f"  Revenue:      {format_price(metrics.amount('revenue'), currency)}")
        lines.append(f"  Rating:       {metrics.average('average_rating')} ({metrics.count('ratings')})")

    elif isinstance(view, HabitDashboardView) and view.overall is not None:
        overall = view.overall
        lines.append(f"Habits ({overall.count('total_habits')})")
        lines.append(f"  Longest streak:  {overall.count('longest_streak')}")
        lines.append(f"  Avg completion:  {overall.average('average_completion_rate')}%")
        for habit in view.habits:
            stats = view.stats.get(habit.id)
            if stats is None:
                continue
            lines.append(
                f"  - {habit.name}: streak {stats.count('streak')}, "
                f"{stats.average('completion_rate')}% complete"
            )

    return lines


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace, config: AppConfig) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    app = Application(config)
    app.toasts.add_sink(lambda toast: print(ToastFormatter.format_toast(toast)))

    try:
        if args.command == "tips":
            tips = await app.tips.generate_personalized_tips(args.user_id)
            for tip in tips:
                print(f"[{tip.type.value}] {tip.content}")
            return 0 if tips else 1

        view = await app.open_view(args.view, args.user_id, args.event_id, args.period)
        for line in render_view(view, config.integrations.currency):
            print(line)
        if view.error is not None:
            return 1

        if args.duration > 0:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
        return 0

    except SyncError as e:
        logger.error(f"Fatal error: {e.message}", exc_info=True)
        return 1
    finally:
        await app.close()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    try:
        config = AppConfig.from_env(args.env_file)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    config.log_level = args.log_level or config.log_level
    config.log_format = args.log_format or config.log_format

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(config.log_level, config.log_format, session_id=args.user_id)
    print_banner(args)

    try:
        return asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
