"""
Views - Lifecycle Base.

============================================================
RESPONSIBILITY
============================================================
Mount / unmount lifecycle shared by every realtime view.

mount():
1. Open a ViewScope for the view's async work
2. Load the initial snapshot
3. Register an owner-scoped route on the router
4. Subscribe the channel key through the registry

unmount():
1. Close the scope (cancel in-flight work, discard late results)
2. Remove the view's route
3. Unsubscribe the key once no other view routes it

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Iterable, List, Optional, Set, TypeVar

from aggregation.engine import AggregationEngine
from analytics.service import EventAnalyticsService
from backend.client import BackendClient
from core.clock import ClockProtocol
from core.config import AppConfig
from core.exceptions import SyncError, ViewClosedError
from habits.service import HabitService
from notifications.service import NotificationService
from notifications.toasts import ToastCenter
from realtime.events import ChangeEvent, ResourceTable
from realtime.registry import ChannelRegistry, SubscriptionHandle
from realtime.router import ChangeEventRouter
from realtime.transport import ChannelBinding


logger = logging.getLogger(__name__)


T = TypeVar("T")


# ============================================================
# VIEW CONTEXT
# ============================================================

@dataclass
class ViewContext:
    """Collaborators a view needs, built by the composition root."""

    config: AppConfig
    clock: ClockProtocol
    backend: BackendClient
    registry: ChannelRegistry
    router: ChangeEventRouter
    engine: AggregationEngine
    toasts: ToastCenter
    notifications: NotificationService
    analytics: EventAnalyticsService
    habits: HabitService


# ============================================================
# VIEW SCOPE
# ============================================================

class ViewScope:
    """
    Owns the tasks started on behalf of one mounted view.

    After close(), pending tasks are cancelled and run() raises
    ViewClosedError instead of handing back a result.
    """

    def __init__(self, name: str):
        self._name = name
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[T]) -> "asyncio.Task[T]":
        """Start a task tied to this scope."""
        if self._closed:
            if asyncio.iscoroutine(coro):
                coro.close()
            raise ViewClosedError(f"{self._name} is closed")

        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self, coro: Awaitable[T]) -> T:
        """
        Await work inside the scope.

        Raises:
            ViewClosedError: If the scope closed before the result arrived
        """
        task = self.spawn(coro)
        try:
            result = await task
        except asyncio.CancelledError:
            if self._closed:
                raise ViewClosedError(f"{self._name} closed during request")
            raise
        if self._closed:
            raise ViewClosedError(f"{self._name} closed, result discarded")
        return result

    def close(self) -> int:
        """Cancel pending work. Returns the number of cancelled tasks."""
        self._closed = True
        cancelled = 0
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                cancelled += 1
        return cancelled


# ============================================================
# VIEW BASE
# ============================================================

class View(ABC):
    """
    A screen that keeps derived state in sync with a change feed.
    """

    def __init__(self, context: ViewContext):
        self._context = context
        self._scope: Optional[ViewScope] = None
        self._route_token: Optional[int] = None
        self._handle: Optional[SubscriptionHandle] = None

        self.error: Optional[SyncError] = None

    # --------------------------------------------------------
    # TO IMPLEMENT
    # --------------------------------------------------------

    @property
    @abstractmethod
    def channel_key(self) -> str:
        """Registry key of the view's channel."""

    @property
    @abstractmethod
    def owner_id(self) -> Optional[str]:
        """Owner whose changes the view receives."""

    @abstractmethod
    def bindings(self) -> List[ChannelBinding]:
        """Change-feed bindings of the channel."""

    def tables(self) -> Optional[Iterable[ResourceTable]]:
        """Resource tables the view accepts; None for all."""
        return None

    @abstractmethod
    async def load(self) -> None:
        """Fetch the initial snapshot and compute derived state."""

    @abstractmethod
    async def on_change(self, event: ChangeEvent) -> None:
        """Apply one routed change."""

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def is_mounted(self) -> bool:
        return self._scope is not None and not self._scope.closed

    @property
    def subscription(self) -> Optional[SubscriptionHandle]:
        return self._handle

    @property
    def scope(self) -> ViewScope:
        if self._scope is None:
            raise ViewClosedError(f"{type(self).__name__} is not mounted")
        return self._scope

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def mount(self) -> bool:
        """
        Load and subscribe.

        Returns False if the initial load failed; the view then stays
        mounted without a subscription and `error` holds the cause.
        """
        if self.is_mounted:
            return True

        self._scope = ViewScope(f"{type(self).__name__}({self.channel_key})")
        self.error = None

        try:
            await self._scope.run(self.load())
        except ViewClosedError:
            return False
        except SyncError as e:
            self.error = e
            logger.error(f"Initial load of {self.channel_key} failed: {e.message}")
            self._context.toasts.error(e.message)
            return False

        owner = self.owner_id
        if owner is None:
            logger.warning(f"No owner for {self.channel_key}, not subscribing")
            return False

        router = self._context.router
        self._route_token = router.add_route(
            self.channel_key, owner, self._handle_change, self.tables()
        )

        key = self.channel_key
        self._handle = await self._context.registry.subscribe(
            key,
            self.bindings(),
            on_change=lambda raw: router.dispatch(key, raw),
            on_error=self._on_subscription_error,
        )

        if not self.is_mounted:
            # Unmounted while joining
            await self._release()
        return True

    async def unmount(self) -> None:
        """Cancel in-flight work and release the subscription."""
        if self._scope is None:
            return
        cancelled = self._scope.close()
        if cancelled:
            logger.debug(f"Cancelled {cancelled} task(s) of {self.channel_key}")
        await self._release()

    async def _release(self) -> None:
        router = self._context.router
        if self._route_token is not None:
            router.remove_route(self._route_token)
            self._route_token = None
        if not router.has_routes(self.channel_key):
            await self._context.registry.unsubscribe(self.channel_key)
        self._handle = None

    # --------------------------------------------------------
    # CALLBACKS
    # --------------------------------------------------------

    async def _handle_change(self, event: ChangeEvent) -> None:
        if not self.is_mounted:
            return
        try:
            await self.scope.run(self.on_change(event))
        except ViewClosedError:
            return
        except SyncError as e:
            self.error = e
            logger.error(f"{self.channel_key} failed to apply change: {e.message}")

    def _on_subscription_error(self, error: SyncError) -> None:
        self.error = error
        logger.error(f"Subscription {self.channel_key} error: {error.message}")

    async def run_action(self, coro: Awaitable[T], success_message: Optional[str] = None) -> Optional[T]:
        """
        Run a user action inside the scope.

        Backend failures become an error toast and None.
        """
        if not self.is_mounted:
            if asyncio.iscoroutine(coro):
                coro.close()
            return None
        try:
            result = await self.scope.run(coro)
        except ViewClosedError:
            return None
        except SyncError as e:
            self._context.toasts.error(e.message)
            return None
        if success_message:
            self._context.toasts.success(success_message)
        return result


__all__ = [
    "ViewContext",
    "ViewScope",
    "View",
]
