"""
Realtime Package.

============================================================
PURPOSE
============================================================
Row-level change feeds and their delivery to views.

COMPONENTS:
- ChannelRegistry: Deduplicated subscriptions per logical key
- ChangeEventRouter: Typed parsing, owner resolution, delivery
- PhoenixTransport: Websocket change feed
- LocalTransport: In-process change feed for tests

============================================================
"""

from .events import (
    ResourceTable,
    Operation,
    ChangeEvent,
    EventChange,
    TicketChange,
    RatingChange,
    NotificationChange,
    AnalyticsMetricChange,
    HabitProgressChange,
    parse_change,
)

from .transport import (
    ChannelBinding,
    ChannelState,
    Channel,
    Transport,
    PhoenixTransport,
)

from .memory import (
    LocalTransport,
    binding_matches,
)

from .registry import (
    SubscriptionState,
    SubscriptionHandle,
    ChannelRegistry,
)

from .router import (
    Route,
    ChangeEventRouter,
)


__all__ = [
    "ResourceTable",
    "Operation",
    "ChangeEvent",
    "EventChange",
    "TicketChange",
    "RatingChange",
    "NotificationChange",
    "AnalyticsMetricChange",
    "HabitProgressChange",
    "parse_change",
    "ChannelBinding",
    "ChannelState",
    "Channel",
    "Transport",
    "PhoenixTransport",
    "LocalTransport",
    "binding_matches",
    "SubscriptionState",
    "SubscriptionHandle",
    "ChannelRegistry",
    "Route",
    "ChangeEventRouter",
]
