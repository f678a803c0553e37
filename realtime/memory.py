"""
Realtime - Local Transport.

============================================================
PURPOSE
============================================================
In-process change-feed transport for tests and demos.

FEATURES:
- Same channel/binding semantics as the websocket transport
- Row filters evaluated locally ("col=eq.value", "col=in.(a,b)")
- Callbacks awaited one at a time in publish order
- Join failure and live channel failure injection
- Open/close counters for connection-sharing assertions

============================================================
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.exceptions import ChannelJoinError, TransportError
from .transport import (
    ChangeCallback,
    Channel,
    ChannelBinding,
    ChannelErrorCallback,
    ChannelState,
    Transport,
)


logger = logging.getLogger(__name__)


class LocalTransport(Transport):
    """
    Transport that delivers changes published in-process.

    Pair with InMemoryBackend: every backend write calls publish().
    """

    def __init__(self, schema: str = "public"):
        self._schema = schema
        self._channels: List[Channel] = []

        self._fail_joins: Optional[TransportError] = None
        self._closed = False

        # Counters
        self.opened_count = 0
        self.closed_count = 0
        self.published: List[Dict[str, Any]] = []

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def channels(self) -> List[Channel]:
        return [c for c in self._channels if c.is_open]

    def channel(self, name: str) -> Optional[Channel]:
        for c in self._channels:
            if c.name == name and c.is_open:
                return c
        return None

    # --------------------------------------------------------
    # ERROR INJECTION
    # --------------------------------------------------------

    def fail_joins(self, message: str = "Join refused") -> None:
        """Make every subsequent join fail until allow_joins()."""
        self._fail_joins = ChannelJoinError(message)

    def allow_joins(self) -> None:
        self._fail_joins = None

    async def fail_channel(self, name: str, message: str = "Channel error from server") -> bool:
        """Fail a joined channel as the server would; False if none is open."""
        channel = self.channel(name)
        if channel is None:
            return False
        await channel.fail(TransportError(message, channel=channel.topic))
        return True

    async def drop_connection(self) -> None:
        """Fail every open channel as a lost connection would."""
        for channel in self.channels:
            await channel.fail(TransportError("Connection lost", channel=channel.topic))

    # --------------------------------------------------------
    # TRANSPORT
    # --------------------------------------------------------

    async def open_channel(
        self,
        name: str,
        bindings: List[ChannelBinding],
        callback: ChangeCallback,
        on_error: Optional[ChannelErrorCallback] = None,
    ) -> Channel:
        if self._closed:
            raise TransportError("Transport closed", channel=name)
        if self._fail_joins is not None:
            raise ChannelJoinError(self._fail_joins.message, channel=f"realtime:{name}")

        channel = Channel(
            name=name,
            bindings=list(bindings),
            callback=callback,
            on_error=on_error,
            state=ChannelState.JOINED,
            join_ref=str(self.opened_count + 1),
        )
        self._channels.append(channel)
        self.opened_count += 1
        logger.debug(f"Local channel joined: {channel.topic}")
        return channel

    async def close_channel(self, channel: Channel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)
            self.closed_count += 1
        channel.state = ChannelState.CLOSED

    async def close(self) -> None:
        for channel in list(self._channels):
            await self.close_channel(channel)
        self._closed = True

    # --------------------------------------------------------
    # DELIVERY
    # --------------------------------------------------------

    async def publish(
        self,
        table: str,
        operation: str,
        new: Optional[Dict[str, Any]],
        old: Optional[Dict[str, Any]],
    ) -> None:
        """Deliver a row change to every channel with a matching binding."""
        payload = {
            "schema": self._schema,
            "table": table,
            "commit_timestamp": datetime.now(timezone.utc).isoformat(),
            "eventType": operation,
            "new": new or {},
            "old": old or {},
            "errors": None,
        }
        self.published.append(payload)

        row = new if operation != "DELETE" else old
        for channel in list(self._channels):
            if not channel.is_open:
                continue
            if any(binding_matches(b, table, operation, row or {}) for b in channel.bindings):
                await self._deliver(channel, payload)

    async def emit(self, name: str, raw: Any) -> None:
        """Deliver an arbitrary raw payload to a named channel."""
        channel = self.channel(name)
        if channel is not None:
            await self._deliver(channel, raw)

    async def _deliver(self, channel: Channel, payload: Any) -> None:
        try:
            await channel.callback(payload)
        except Exception as e:
            logger.error(f"Change callback error for {channel.topic}: {e}")


# ============================================================
# BINDING EVALUATION
# ============================================================

def binding_matches(
    binding: ChannelBinding,
    table: str,
    operation: str,
    row: Dict[str, Any],
) -> bool:
    """Check a row change against a binding's table, event and filter."""
    if binding.table != table:
        return False
    if binding.event not in ("*", operation):
        return False
    if not binding.filter:
        return True

    column, _, expression = binding.filter.partition("=")
    op, _, value = expression.partition(".")
    actual = row.get(column)
    if actual is None:
        return False

    if op == "eq":
        return str(actual) == value
    if op == "neq":
        return str(actual) != value
    if op == "in":
        options = [v.strip().strip('"') for v in value.strip("()").split(",")]
        return str(actual) in options

    logger.warning(f"Unsupported filter operator in binding: {binding.filter}")
    return False
