"""
Realtime - Channel Registry.

============================================================
RESPONSIBILITY
============================================================
Owns every open change-feed subscription of a session.

- One live channel per logical key
- Subscribing a live key returns the existing handle
- Join, close and live channel failures go to an error path, never
  to the caller

============================================================
DESIGN PRINCIPLES
============================================================
- Constructed explicitly by the composition root and passed down
- The handle is registered before any await, so two concurrent
  subscribers to one key share a single join
- Changes are dropped once a handle is closed

============================================================
USAGE
============================================================
```python
registry = ChannelRegistry(transport)
handle = await registry.subscribe(
    f"user-notifications-{user_id}",
    [ChannelBinding("notifications", "INSERT", f"user_id=eq.{user_id}")],
    on_change=lambda raw: router.dispatch(key, raw),
)
await registry.unsubscribe(handle.key)
```

============================================================
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from core.exceptions import SyncError, TransportError
from .transport import ChangeCallback, Channel, ChannelBinding, Transport


logger = logging.getLogger(__name__)


ErrorCallback = Callable[[SyncError], Any]


# ============================================================
# SUBSCRIPTION HANDLE
# ============================================================

class SubscriptionState(Enum):
    """Subscription lifecycle."""

    OPENING = "OPENING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"
    CLOSED = "CLOSED"


@dataclass(eq=False)
class SubscriptionHandle:
    """A registered subscription and its underlying channel."""

    key: str
    bindings: List[ChannelBinding]
    on_change: ChangeCallback
    on_error: Optional[ErrorCallback] = None
    channel: Optional[Channel] = None
    state: SubscriptionState = SubscriptionState.OPENING
    error: Optional[SyncError] = None
    _ready: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def is_active(self) -> bool:
        return self.state == SubscriptionState.ACTIVE

    @property
    def is_live(self) -> bool:
        return self.state in (SubscriptionState.OPENING, SubscriptionState.ACTIVE)

    async def wait_ready(self) -> None:
        """Wait until the join succeeded or failed."""
        await self._ready.wait()


# ============================================================
# CHANNEL REGISTRY
# ============================================================

class ChannelRegistry:
    """
    Deduplicating subscription registry on top of a Transport.
    """

    def __init__(self, transport: Transport):
        self._transport = transport
        self._subscriptions: Dict[str, SubscriptionHandle] = {}

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def keys(self) -> List[str]:
        return list(self._subscriptions)

    def get(self, key: str) -> Optional[SubscriptionHandle]:
        return self._subscriptions.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    # --------------------------------------------------------
    # SUBSCRIBE
    # --------------------------------------------------------

    async def subscribe(
        self,
        key: str,
        bindings: Sequence[ChannelBinding],
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> SubscriptionHandle:
        """
        Open (or reuse) the channel for `key`.

        A live key returns its existing handle without a new connection.
        A failed join is reported through on_error and the returned handle
        is left in FAILED state.
        """
        existing = self._subscriptions.get(key)
        if existing is not None and existing.is_live:
            await existing.wait_ready()
            return existing

        handle = SubscriptionHandle(
            key=key,
            bindings=list(bindings),
            on_change=on_change,
            on_error=on_error,
        )
        self._subscriptions[key] = handle

        async def deliver(raw: Dict[str, Any]) -> None:
            if handle.is_active:
                await handle.on_change(raw)

        async def channel_failed(error: TransportError) -> None:
            await self._fail(handle, error)

        try:
            channel = await self._transport.open_channel(
                key, handle.bindings, deliver, on_error=channel_failed
            )
        except TransportError as e:
            handle.state = SubscriptionState.FAILED
            handle.error = e
            if self._subscriptions.get(key) is handle:
                del self._subscriptions[key]
            handle._ready.set()
            await self._report(handle, e)
            return handle

        handle.channel = channel
        if handle.state == SubscriptionState.CLOSED:
            # Unsubscribed while the join was in flight
            await self._close_channel(handle)
        else:
            handle.state = SubscriptionState.ACTIVE
            logger.info(f"Subscribed: {key}")

        handle._ready.set()
        return handle

    # --------------------------------------------------------
    # UNSUBSCRIBE
    # --------------------------------------------------------

    async def unsubscribe(self, key: str) -> None:
        """Close and remove a subscription. Unknown keys are ignored."""
        handle = self._subscriptions.pop(key, None)
        if handle is None:
            return

        handle.state = SubscriptionState.CLOSED
        if handle.channel is not None:
            await self._close_channel(handle)
        logger.info(f"Unsubscribed: {key}")

    async def unsubscribe_all(self) -> None:
        """Close every subscription."""
        for key in list(self._subscriptions):
            await self.unsubscribe(key)

    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------

    async def _close_channel(self, handle: SubscriptionHandle) -> None:
        try:
            await self._transport.close_channel(handle.channel)
        except TransportError as e:
            await self._report(handle, e)

    async def _fail(self, handle: SubscriptionHandle, error: TransportError) -> None:
        """A live channel died: drop the handle so the key can be resubscribed."""
        if not handle.is_active:
            return
        handle.state = SubscriptionState.FAILED
        handle.error = error
        if self._subscriptions.get(handle.key) is handle:
            del self._subscriptions[handle.key]
        if handle.channel is not None:
            await self._close_channel(handle)
        logger.warning(f"Subscription {handle.key} lost its channel: {error.message}")
        await self._report(handle, error)

    async def _report(self, handle: SubscriptionHandle, error: SyncError) -> None:
        if handle.on_error is None:
            logger.error(f"Subscription {handle.key} failed: {error.message}")
            return
        try:
            result = handle.on_error(error)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error callback for {handle.key} raised: {e}")


__all__ = [
    "ErrorCallback",
    "SubscriptionState",
    "SubscriptionHandle",
    "ChannelRegistry",
]
