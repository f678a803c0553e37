"""
Realtime - Change Events.

============================================================
PURPOSE
============================================================
Typed representation of row-level change notifications.

Raw provider payloads are parsed once, at the boundary, into one
ChangeEvent subclass per resource table. Everything downstream of
parse_change() works with validated records only.

ACCEPTED PAYLOAD SHAPES:
- Client-library shape: {table, eventType, new, old}
- Wire shape:           {table, type, record, old_record}
- Wire envelope:        {data: {...wire shape...}, ids: [...]}

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Type

from pydantic import ValidationError

from core.exceptions import PayloadError
from .schemas import (
    BaseRow,
    EventRow,
    TicketRow,
    RatingRow,
    NotificationRow,
    AnalyticsMetricRow,
    HabitProgressRow,
)


# ============================================================
# ENUMS
# ============================================================

class ResourceTable(Enum):
    """Resources carried by the change feed."""

    EVENTS = "events"
    TICKETS = "tickets"
    RATINGS = "ratings"
    NOTIFICATIONS = "notifications"
    ANALYTICS_METRIC = "analytics_metric"
    HABIT_PROGRESS = "habit_progress"

    @property
    def backend_table(self) -> str:
        """Name of the table in the data store."""
        return _BACKEND_TABLES[self]

    @classmethod
    def from_backend_table(cls, table: str) -> "ResourceTable":
        for resource, name in _BACKEND_TABLES.items():
            if name == table:
                return resource
        raise PayloadError(f"Unsupported table in change payload: {table}", table=table)


_BACKEND_TABLES: Dict[ResourceTable, str] = {
    ResourceTable.EVENTS: "events",
    ResourceTable.TICKETS: "tickets",
    ResourceTable.RATINGS: "event_ratings",
    ResourceTable.NOTIFICATIONS: "notifications",
    ResourceTable.ANALYTICS_METRIC: "event_analytics",
    ResourceTable.HABIT_PROGRESS: "habit_progress",
}


class Operation(Enum):
    """Row operations. WILDCARD only appears in subscription bindings."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    WILDCARD = "*"

    @classmethod
    def parse(cls, value: Any) -> "Operation":
        try:
            operation = cls(str(value).upper())
        except ValueError:
            raise PayloadError(f"Unknown change operation: {value!r}")
        if operation == cls.WILDCARD:
            raise PayloadError("Wildcard is not a concrete change operation")
        return operation


# ============================================================
# CHANGE EVENTS
# ============================================================

@dataclass
class ChangeEvent:
    """
    A single row change.

    affected_owner_id is resolved by the router; it is None until then.
    """

    operation: Operation
    record: BaseRow
    old_record: Dict[str, Any] = field(default_factory=dict)
    affected_owner_id: Optional[str] = None
    commit_timestamp: Optional[str] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    resource_table = None  # type: Optional[ResourceTable]
    row_model = BaseRow  # type: Type[BaseRow]

    @property
    def record_id(self) -> Optional[str]:
        return self.record.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_table": self.resource_table.value if self.resource_table else None,
            "operation": self.operation.value,
            "record": self.record.as_row(),
            "old_record": self.old_record,
            "affected_owner_id": self.affected_owner_id,
            "commit_timestamp": self.commit_timestamp,
        }


@dataclass
class EventChange(ChangeEvent):
    record: EventRow = None
    resource_table = ResourceTable.EVENTS
    row_model = EventRow


@dataclass
class TicketChange(ChangeEvent):
    record: TicketRow = None
    resource_table = ResourceTable.TICKETS
    row_model = TicketRow


@dataclass
class RatingChange(ChangeEvent):
    record: RatingRow = None
    resource_table = ResourceTable.RATINGS
    row_model = RatingRow


@dataclass
class NotificationChange(ChangeEvent):
    record: NotificationRow = None
    resource_table = ResourceTable.NOTIFICATIONS
    row_model = NotificationRow


@dataclass
class AnalyticsMetricChange(ChangeEvent):
    record: AnalyticsMetricRow = None
    resource_table = ResourceTable.ANALYTICS_METRIC
    row_model = AnalyticsMetricRow


@dataclass
class HabitProgressChange(ChangeEvent):
    record: HabitProgressRow = None
    resource_table = ResourceTable.HABIT_PROGRESS
    row_model = HabitProgressRow


CHANGE_TYPES: Dict[ResourceTable, Type[ChangeEvent]] = {
    ResourceTable.EVENTS: EventChange,
    ResourceTable.TICKETS: TicketChange,
    ResourceTable.RATINGS: RatingChange,
    ResourceTable.NOTIFICATIONS: NotificationChange,
    ResourceTable.ANALYTICS_METRIC: AnalyticsMetricChange,
    ResourceTable.HABIT_PROGRESS: HabitProgressChange,
}


# ============================================================
# PARSING
# ============================================================

def parse_change(raw: Any) -> ChangeEvent:
    """
    Normalize a provider payload into a ChangeEvent.

    Raises:
        PayloadError: Missing table/operation or a record that fails validation
    """
    if not isinstance(raw, dict):
        raise PayloadError(f"Change payload must be an object, got {type(raw).__name__}")

    payload = raw.get("data") if isinstance(raw.get("data"), dict) else raw

    table = payload.get("table")
    if not table:
        raise PayloadError("Change payload has no table")

    resource = ResourceTable.from_backend_table(table)
    operation = Operation.parse(payload.get("eventType") or payload.get("type"))

    new = _first_mapping(payload, "new", "record")
    old = _first_mapping(payload, "old", "old_record")

    # Deletes only carry the old row
    source = old if operation == Operation.DELETE else new
    if not source:
        raise PayloadError(
            f"{operation.value} payload for {table} has no record",
            table=table,
        )

    change_type = CHANGE_TYPES[resource]
    try:
        record = change_type.row_model.model_validate(source)
    except ValidationError as e:
        raise PayloadError(
            f"Invalid {table} record: {e.errors()[0].get('msg', 'validation failed')}",
            table=table,
            cause=e,
        )

    return change_type(
        operation=operation,
        record=record,
        old_record=dict(old or {}),
        commit_timestamp=payload.get("commit_timestamp"),
    )


def _first_mapping(payload: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, dict) and value:
            return value
    return {}


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
    "CHANGE_TYPES",
    "parse_change",
]
