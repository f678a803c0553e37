"""
Pydantic row schemas for change-feed payloads.

Every schema accepts unknown columns so that backend schema additions
never break the feed.
"""
from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, field_validator

# =======================
# COMMON
# =======================

class BaseRow(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _blank_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def as_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

# =======================
# EVENT TICKETING
# =======================

class EventRow(BaseRow):
    id: str
    name: Optional[str] = None
    creator_id: Optional[str] = None
    date: Optional[str] = None
    price: Optional[float] = None
    max_tickets: Optional[int] = None
    available_tickets: Optional[int] = None
    average_rating: Optional[float] = None
    total_ratings: Optional[int] = None

class TicketRow(BaseRow):
    event_id: str
    user_id: Optional[str] = None
    price_paid: Optional[float] = None
    ticket_type: Optional[str] = None
    status: Optional[str] = None

class RatingRow(BaseRow):
    event_id: str
    user_id: Optional[str] = None
    rating: Optional[int] = None
    review: Optional[str] = None

class AnalyticsMetricRow(BaseRow):
    event_id: str
    metric_type: str
    metric_value: float = 1
    user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("metric_value", mode="before")
    @classmethod
    def _null_value(cls, value: Any) -> Any:
        return 0 if value is None else value

# =======================
# NOTIFICATIONS
# =======================

class NotificationRow(BaseRow):
    id: str
    user_id: str
    title: str = ""
    message: str = ""
    type: str = "info"  # info, success, warning, error
    read: bool = False
    event_id: Optional[str] = None

    @field_validator("read", mode="before")
    @classmethod
    def _null_read(cls, value: Any) -> Any:
        return False if value is None else value

# =======================
# HABITS
# =======================

class HabitProgressRow(BaseRow):
    habit_id: str
    user_id: str
    date: Optional[str] = None
    completed: bool = False
    mood: Optional[str] = None
    rating: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("completed", mode="before")
    @classmethod
    def _null_completed(cls, value: Any) -> Any:
        return False if value is None else value
