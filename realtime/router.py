"""
Realtime - Change Event Router.

============================================================
RESPONSIBILITY
============================================================
Turns raw channel payloads into typed ChangeEvents and delivers them
to the views whose scope they affect.

- Normalizes payloads at the boundary (PayloadError if malformed)
- Resolves the affected owner per table
- Delivers only to routes whose owner matches
- Never raises into the transport

============================================================
OWNER RESOLUTION
============================================================
notifications     -> record.user_id
habit_progress    -> record.user_id
events            -> record.creator_id
tickets           -> parent event's creator_id
ratings           -> parent event's creator_id
analytics_metric  -> parent event's creator_id

Parent lookups are awaited before relevance is decided and cached
per event id.

============================================================
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional

from backend.client import BackendClient
from backend.query import Query
from core.exceptions import BackendError, PayloadError
from .events import ChangeEvent, ResourceTable, parse_change


logger = logging.getLogger(__name__)


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


_USER_OWNED = (ResourceTable.NOTIFICATIONS, ResourceTable.HABIT_PROGRESS)
_EVENT_CHILDREN = (ResourceTable.TICKETS, ResourceTable.RATINGS, ResourceTable.ANALYTICS_METRIC)


@dataclass
class Route:
    """A handler registered for one channel key and one owner scope."""

    token: int
    key: str
    owner_id: str
    handler: ChangeHandler
    tables: Optional[FrozenSet[ResourceTable]] = None

    def accepts(self, event: ChangeEvent) -> bool:
        if self.tables is not None and event.resource_table not in self.tables:
            return False
        return event.affected_owner_id == self.owner_id


# ============================================================
# CHANGE EVENT ROUTER
# ============================================================

class ChangeEventRouter:
    """
    Routes change events to owner-scoped handlers.
    """

    def __init__(self, backend: BackendClient):
        self._backend = backend
        self._routes: Dict[str, Dict[int, Route]] = {}
        self._tokens = itertools.count(1)
        self._creator_cache: Dict[str, str] = {}

        # Statistics
        self.delivered_count = 0
        self.dropped_count = 0
        self.rejected_count = 0

    # --------------------------------------------------------
    # ROUTES
    # --------------------------------------------------------

    def add_route(
        self,
        key: str,
        owner_id: str,
        handler: ChangeHandler,
        tables: Optional[Iterable[ResourceTable]] = None,
    ) -> int:
        """Register a handler; returns a token for remove_route()."""
        token = next(self._tokens)
        self._routes.setdefault(key, {})[token] = Route(
            token=token,
            key=key,
            owner_id=owner_id,
            handler=handler,
            tables=frozenset(tables) if tables is not None else None,
        )
        return token

    def remove_route(self, token: int) -> bool:
        for key, routes in list(self._routes.items()):
            if token in routes:
                del routes[token]
                if not routes:
                    del self._routes[key]
                return True
        return False

    def has_routes(self, key: str) -> bool:
        return bool(self._routes.get(key))

    def routes_for(self, key: str) -> List[Route]:
        return list(self._routes.get(key, {}).values())

    # --------------------------------------------------------
    # ROUTING
    # --------------------------------------------------------

    async def route(self, raw: Any) -> ChangeEvent:
        """
        Parse a raw payload and resolve its affected owner.

        Raises:
            PayloadError: If the payload is malformed
        """
        event = parse_change(raw)
        event.affected_owner_id = await self._resolve_owner(event)
        return event

    async def dispatch(self, key: str, raw: Any) -> int:
        """
        Route a payload received on channel `key` and deliver it.

        Returns the number of handlers the event was delivered to.
        """
        if not self.has_routes(key):
            logger.debug(f"No routes for {key}, dropping change")
            self.dropped_count += 1
            return 0

        try:
            event = await self.route(raw)
        except PayloadError as e:
            self.rejected_count += 1
            logger.warning(f"Rejected change on {key}: {e.message}")
            return 0

        delivered = 0
        for route in self.routes_for(key):
            if not route.accepts(event):
                continue
            try:
                await route.handler(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Handler for {key} failed on "
                    f"{event.resource_table.value} {event.operation.value}: {e}"
                )

        if delivered:
            self.delivered_count += 1
        else:
            self.dropped_count += 1
            logger.debug(
                f"Dropped {event.resource_table.value} change on {key} "
                f"(owner {event.affected_owner_id})"
            )
        return delivered

    # --------------------------------------------------------
    # OWNER RESOLUTION
    # --------------------------------------------------------

    async def _resolve_owner(self, event: ChangeEvent) -> Optional[str]:
        record = event.record
        table = event.resource_table

        if table in _USER_OWNED:
            return getattr(record, "user_id", None)

        if table == ResourceTable.EVENTS:
            creator_id = getattr(record, "creator_id", None)
            if creator_id:
                self._creator_cache[record.id] = creator_id
                return creator_id
            return await self.event_creator(record.id)

        if table in _EVENT_CHILDREN:
            return await self.event_creator(getattr(record, "event_id", None))

        return None

    async def event_creator(self, event_id: Optional[str]) -> Optional[str]:
        """Creator of an event, from cache or the events table."""
        if not event_id:
            return None
        if event_id in self._creator_cache:
            return self._creator_cache[event_id]

        try:
            row = await self._backend.maybe_single(
                Query("events").select("id, creator_id").eq("id", event_id)
            )
        except BackendError as e:
            logger.warning(f"Creator lookup failed for event {event_id}: {e.message}")
            return None

        creator_id = row.get("creator_id") if row else None
        if creator_id:
            self._creator_cache[event_id] = creator_id
        return creator_id

    def forget_event(self, event_id: Optional[str] = None) -> None:
        """Drop cached creators (all when event_id is None)."""
        if event_id is None:
            self._creator_cache.clear()
        else:
            self._creator_cache.pop(event_id, None)


__all__ = [
    "ChangeHandler",
    "Route",
    "ChangeEventRouter",
]
