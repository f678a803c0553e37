"""
Realtime - Transport.

============================================================
PURPOSE
============================================================
Persistent connection delivering row-level change feeds.

FEATURES:
- One websocket shared by all channels
- Channel join scoped by table / operation / row filter
- Heartbeat to keep the socket alive
- Automatic reconnection with exponential backoff
- Rejoin of every open channel after reconnection

============================================================
PROTOCOL (Phoenix channels, vsn 1.0.0)
============================================================
- Join:      {topic: "realtime:<name>", event: "phx_join",
              payload: {config: {postgres_changes: [...]}}, ref}
- Reply:     {event: "phx_reply", payload: {status: "ok"|"error"}, ref}
- Change:    {event: "postgres_changes", payload: {data: {...}}}
- Heartbeat: {topic: "phoenix", event: "heartbeat", payload: {}, ref}
- Leave:     {event: "phx_leave"}

============================================================
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from core.config import BackendConfig, RealtimeConfig
from core.exceptions import ChannelJoinError, TransportError


logger = logging.getLogger(__name__)


ChangeCallback = Callable[[Dict[str, Any]], Awaitable[None]]
ChannelErrorCallback = Callable[[TransportError], Awaitable[None]]


# ============================================================
# CHANNEL TYPES
# ============================================================

@dataclass(frozen=True)
class ChannelBinding:
    """
    One change-feed scope inside a channel.

    filter uses the provider syntax, e.g. "user_id=eq.abc".
    """

    table: str
    event: str = "*"
    filter: Optional[str] = None
    schema: str = "public"

    def to_config(self) -> Dict[str, str]:
        config = {"event": self.event, "schema": self.schema, "table": self.table}
        if self.filter:
            config["filter"] = self.filter
        return config


class ChannelState(Enum):
    """Channel lifecycle states."""

    JOINING = "JOINING"
    JOINED = "JOINED"
    ERRORED = "ERRORED"
    CLOSED = "CLOSED"


@dataclass(eq=False)
class Channel:
    """
    Handle for an open change-feed channel.

    Compared by identity: two handles are equal only if they are the
    same open channel.
    """

    name: str
    bindings: List[ChannelBinding]
    callback: ChangeCallback
    on_error: Optional[ChannelErrorCallback] = None
    state: ChannelState = ChannelState.JOINING
    join_ref: Optional[str] = None
    opened_at: float = field(default_factory=time.time)

    @property
    def topic(self) -> str:
        return f"realtime:{self.name}"

    @property
    def is_open(self) -> bool:
        return self.state in (ChannelState.JOINING, ChannelState.JOINED)

    async def fail(self, error: TransportError, state: ChannelState = ChannelState.ERRORED) -> None:
        """Mark the channel dead and hand the error to its owner."""
        self.state = state
        logger.warning(f"Channel {self.topic} failed: {error.message}")
        if self.on_error is None:
            return
        try:
            await self.on_error(error)
        except Exception as e:
            logger.error(f"Channel error callback for {self.topic} raised: {e}")


# ============================================================
# TRANSPORT INTERFACE
# ============================================================

class Transport(ABC):
    """Abstract change-feed transport."""

    @abstractmethod
    async def open_channel(
        self,
        name: str,
        bindings: List[ChannelBinding],
        callback: ChangeCallback,
        on_error: Optional[ChannelErrorCallback] = None,
    ) -> Channel:
        """
        Open a channel and start delivering its changes to callback.

        Failures after a successful join are passed to on_error.

        Raises:
            TransportError: If the connection or join fails
        """
        pass

    @abstractmethod
    async def close_channel(self, channel: Channel) -> None:
        """Stop delivery for a channel."""
        pass

    async def close(self) -> None:
        """Close the underlying connection."""
        return None


# ============================================================
# CONNECTION STATE
# ============================================================

class ConnectionState(Enum):
    """WebSocket connection states."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    RECONNECTING = "RECONNECTING"
    CLOSING = "CLOSING"


# ============================================================
# PHOENIX TRANSPORT
# ============================================================

class PhoenixTransport(Transport):
    """
    Realtime transport over an aiohttp websocket.

    Provides:
    - Connection lifecycle management
    - Join/leave with reply correlation by ref
    - Heartbeat handling
    - Reconnection with backoff and channel rejoin
    """

    def __init__(
        self,
        backend_config: BackendConfig,
        config: Optional[RealtimeConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize transport.

        Args:
            backend_config: Project URL, keys and schema
            config: Heartbeat/reconnect settings
            session: Optional pre-built session
        """
        self._backend = backend_config
        self._config = config or RealtimeConfig()

        # Connection state
        self._state = ConnectionState.DISCONNECTED
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._connect_lock = asyncio.Lock()

        # Reconnection
        self._reconnect_count = 0
        self._reconnect_task: Optional[asyncio.Task] = None

        # Tasks
        self._receive_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._last_message_time = 0.0

        # Protocol
        self._ref = 0
        self._pending: Dict[str, asyncio.Future] = {}
        self._channels: Dict[str, Channel] = {}

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._ws is not None

    @property
    def channels(self) -> List[Channel]:
        return list(self._channels.values())

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """
        Establish the websocket connection.

        Raises:
            TransportError: If connection fails
        """
        async with self._connect_lock:
            if self.is_connected:
                return

            self._state = ConnectionState.CONNECTING
            try:
                if self._session is None or self._session.closed:
                    self._session = aiohttp.ClientSession()
                    self._owns_session = True

                self._ws = await self._session.ws_connect(self._backend.realtime_url)
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                self._state = ConnectionState.DISCONNECTED
                logger.error(f"Realtime connection failed: {e}")
                raise TransportError(f"Realtime connection failed: {e}", cause=e)

            self._state = ConnectionState.CONNECTED
            self._reconnect_count = 0
            self._last_message_time = time.time()

            logger.info("Realtime socket connected")

            self._receive_task = asyncio.create_task(self._receive_loop())
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def close(self) -> None:
        """Close every channel and the socket."""
        self._state = ConnectionState.CLOSING

        for task in (self._reconnect_task, self._receive_task, self._heartbeat_task):
            if task and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._reconnect_task = None
        self._receive_task = None
        self._heartbeat_task = None

        self._fail_pending(TransportError("Transport closed"))

        for channel in self._channels.values():
            channel.state = ChannelState.CLOSED
        self._channels.clear()

        if self._ws and not self._ws.closed:
            await self._ws.close()
        self._ws = None

        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

        self._state = ConnectionState.DISCONNECTED
        logger.info("Realtime socket closed")

    def _schedule_reconnect(self) -> bool:
        """Start the reconnect loop; False when reconnection is disabled."""
        if not self._config.reconnect or self._state == ConnectionState.CLOSING:
            return False
        if self._reconnect_task and not self._reconnect_task.done():
            return True
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())
        return True

    async def _reconnect_loop(self) -> None:
        """Reconnect with exponential backoff, then rejoin channels."""
        while self._state != ConnectionState.CLOSING:
            if self._reconnect_count >= self._config.max_reconnect_attempts:
                logger.error("Max reconnection attempts reached")
                await self._fail_channels(TransportError("Max reconnection attempts reached"))
                return

            self._state = ConnectionState.RECONNECTING
            self._reconnect_count += 1

            delay = min(
                self._config.reconnect_interval_seconds * (2 ** (self._reconnect_count - 1)),
                self._config.max_reconnect_interval_seconds,
            )
            logger.info(f"Reconnecting in {delay:.1f}s (attempt {self._reconnect_count})")
            await asyncio.sleep(delay)

            try:
                await self.connect()
            except TransportError:
                continue

            await self._rejoin_all()
            return

    async def _rejoin_all(self) -> None:
        for channel in list(self._channels.values()):
            try:
                await self._join(channel)
            except TransportError as e:
                logger.error(f"Rejoin failed for {channel.topic}: {e.message}")
                await channel.fail(e)

    # --------------------------------------------------------
    # CHANNELS
    # --------------------------------------------------------

    async def open_channel(
        self,
        name: str,
        bindings: List[ChannelBinding],
        callback: ChangeCallback,
        on_error: Optional[ChannelErrorCallback] = None,
    ) -> Channel:
        await self.connect()

        channel = Channel(name=name, bindings=list(bindings), callback=callback, on_error=on_error)
        self._channels[channel.topic] = channel

        try:
            await self._join(channel)
        except TransportError:
            self._channels.pop(channel.topic, None)
            channel.state = ChannelState.ERRORED
            raise

        return channel

    async def close_channel(self, channel: Channel) -> None:
        if self._channels.get(channel.topic) is channel:
            del self._channels[channel.topic]

        was_open = channel.is_open
        channel.state = ChannelState.CLOSED

        if was_open and self.is_connected:
            try:
                await self._send({
                    "topic": channel.topic,
                    "event": "phx_leave",
                    "payload": {},
                    "ref": self._next_ref(),
                    "join_ref": channel.join_ref,
                })
            except TransportError as e:
                logger.warning(f"Leave failed for {channel.topic}: {e.message}")

        logger.debug(f"Channel closed: {channel.topic}")

    async def _join(self, channel: Channel) -> None:
        ref = self._next_ref()
        channel.join_ref = ref
        channel.state = ChannelState.JOINING

        future = asyncio.get_running_loop().create_future()
        self._pending[ref] = future

        await self._send({
            "topic": channel.topic,
            "event": "phx_join",
            "payload": {
                "config": {
                    "broadcast": {"self": False},
                    "presence": {"key": ""},
                    "postgres_changes": [
                        {**b.to_config(), "schema": b.schema or self._backend.schema}
                        for b in channel.bindings
                    ],
                },
                "access_token": self._backend.bearer_token,
            },
            "ref": ref,
            "join_ref": ref,
        })

        try:
            reply = await asyncio.wait_for(future, timeout=self._config.join_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ChannelJoinError(
                f"Join timed out after {self._config.join_timeout_seconds}s",
                channel=channel.topic,
                cause=e,
            )
        finally:
            self._pending.pop(ref, None)

        if reply.get("status") != "ok":
            reason = reply.get("response", {}).get("reason") or reply.get("status")
            raise ChannelJoinError(f"Join refused: {reason}", channel=channel.topic)

        channel.state = ChannelState.JOINED
        logger.info(f"Channel joined: {channel.topic}")

    # --------------------------------------------------------
    # SENDING
    # --------------------------------------------------------

    async def _send(self, message: Dict[str, Any]) -> None:
        if not self.is_connected:
            raise TransportError("Not connected", channel=message.get("topic"))
        try:
            await self._ws.send_json(message)
        except (ConnectionResetError, RuntimeError, aiohttp.ClientError) as e:
            raise TransportError(f"Send failed: {e}", channel=message.get("topic"), cause=e)

    # --------------------------------------------------------
    # MESSAGE HANDLING
    # --------------------------------------------------------

    async def _receive_loop(self) -> None:
        """Main receive loop; changes are handled one at a time in arrival order."""
        try:
            async for msg in self._ws:
                self._last_message_time = time.time()

                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_message(msg.data)

                elif msg.type == aiohttp.WSMsgType.CLOSE:
                    logger.warning(f"Realtime socket closed by server: {msg.data}")
                    break

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"Realtime socket error: {self._ws.exception()}")
                    break

        except asyncio.CancelledError:
            return

        except Exception as e:
            logger.error(f"Error in receive loop: {e}")

        if self._state == ConnectionState.CONNECTED:
            self._state = ConnectionState.DISCONNECTED
            self._fail_pending(TransportError("Connection lost"))
            if self._schedule_reconnect():
                for channel in self._channels.values():
                    channel.state = ChannelState.JOINING
            else:
                await self._fail_channels(TransportError("Connection lost"))

    async def _handle_message(self, data: str) -> None:
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"Non-JSON realtime frame: {data[:100]}")
            return

        event = message.get("event")
        payload = message.get("payload") or {}

        if event == "phx_reply":
            future = self._pending.get(str(message.get("ref")))
            if future and not future.done():
                future.set_result(payload)
            return

        channel = self._channels.get(message.get("topic", ""))
        if channel is None:
            return

        if event == "postgres_changes":
            change = payload.get("data", payload)
            try:
                await channel.callback(change)
            except Exception as e:
                logger.error(f"Change callback error for {channel.topic}: {e}")

        elif event == "phx_error":
            await channel.fail(TransportError("Channel error from server", channel=channel.topic))

        elif event == "phx_close":
            await channel.fail(
                TransportError("Channel closed by server", channel=channel.topic),
                state=ChannelState.CLOSED,
            )

        elif event == "system":
            logger.debug(f"System message on {channel.topic}: {payload}")

    def _fail_pending(self, error: TransportError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def _fail_channels(self, error: TransportError) -> None:
        for channel in list(self._channels.values()):
            if channel.is_open:
                await channel.fail(error)

    # --------------------------------------------------------
    # HEARTBEAT
    # --------------------------------------------------------

    async def _heartbeat_loop(self) -> None:
        while self._state == ConnectionState.CONNECTED:
            try:
                await asyncio.sleep(self._config.heartbeat_interval_seconds)
                if not self.is_connected:
                    break
                await self._send({
                    "topic": "phoenix",
                    "event": "heartbeat",
                    "payload": {},
                    "ref": self._next_ref(),
                })
            except asyncio.CancelledError:
                break
            except TransportError as e:
                logger.error(f"Heartbeat error: {e.message}")
                break


__all__ = [
    "ChangeCallback",
    "ChannelErrorCallback",
    "ChannelBinding",
    "ChannelState",
    "Channel",
    "Transport",
    "ConnectionState",
    "PhoenixTransport",
]
