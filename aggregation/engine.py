"""
Aggregation Engine.

============================================================
PURPOSE
============================================================
Derives counts, money totals, averages, modes and time series from
raw backend rows.

============================================================
DESIGN PRINCIPLES
============================================================
- Pure functions over rows; no I/O
- Never raise for empty or partially-populated input
  (missing optional fields count as neutral values)
- Round half up, never banker's rounding
- Money is summed as Decimal
- "Today" always comes from the injected clock

============================================================
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta, tzinfo
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from core.clock import ClockProtocol, calendar_date
from .models import DerivedMetricSet, Number, TimeSeriesPoint


logger = logging.getLogger(__name__)


PERIOD_DAYS: Dict[str, int] = {"7d": 7, "30d": 30, "90d": 90}

SUCCEEDED = "succeeded"
NON_SETTLED_STATUSES = frozenset({"pending", "failed", "canceled", "cancelled", "refunded"})


# ============================================================
# FIELD ACCESS
# ============================================================

def field_value(record: Any, name: str, default: Any = None) -> Any:
    """Read a field from a row dict or a model object."""
    if isinstance(record, dict):
        value = record.get(name, default)
    else:
        value = getattr(record, name, default)
    return default if value is None else value


def to_decimal(value: Any) -> Decimal:
    """Decimal for a numeric value; 0 for missing or non-numeric."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def round_half_up(value: Any, places: int = 0) -> Decimal:
    """Round half away from zero to `places` decimals."""
    quantum = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


# ============================================================
# EVENT METRICS
# ============================================================

def average_rating(ratings: Iterable[Any]) -> float:
    """
    Mean of positive ratings rounded half up to one decimal; 0 when none.

    Missing, non-numeric and non-positive ratings are ignored.
    """
    values = [to_decimal(r) for r in ratings if _is_number(r) and r > 0]
    if not values:
        return 0.0
    mean = sum(values, Decimal("0")) / len(values)
    return float(round_half_up(mean, 1))


def is_settled(record: Any) -> bool:
    """A row counts toward revenue unless its status marks it unsettled."""
    status = field_value(record, "status")
    if status is None:
        return True
    status = str(status).lower()
    return status == SUCCEEDED or status not in NON_SETTLED_STATUSES


def revenue(records: Iterable[Any], amount_field: str = "price_paid") -> Decimal:
    """
    Sum of `amount_field` over settled records.

    Null amounts count as 0, so adding settled rows never lowers the total.
    """
    total = Decimal("0")
    for record in records:
        if not is_settled(record):
            continue
        amount = to_decimal(field_value(record, amount_field))
        if amount > 0:
            total += amount
    return total


# ============================================================
# TIME SERIES
# ============================================================

@dataclass
class MetricSource:
    """
    Rows feeding one time-series metric.

    Each matching row adds 1 (value_field None) or the Decimal of its
    value_field to the bucket of its timestamp's calendar date.
    """

    name: str
    records: Sequence[Any]
    timestamp_field: str = "created_at"
    value_field: Optional[str] = None
    predicate: Optional[Callable[[Any], bool]] = None

    @property
    def zero(self) -> Number:
        return 0 if self.value_field is None else Decimal("0")

    def amount(self, record: Any) -> Number:
        if self.value_field is None:
            return 1
        return to_decimal(field_value(record, self.value_field))


def period_days(period: str) -> int:
    """Length in days of a dashboard period."""
    try:
        return PERIOD_DAYS[period]
    except KeyError:
        raise ValueError(f"Unknown period {period!r}, expected one of {', '.join(PERIOD_DAYS)}")


def window_dates(today: date, days: int) -> List[date]:
    """`days` ascending contiguous dates ending with today."""
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def bucket_time_series(
    today: date,
    days: int,
    sources: Sequence[MetricSource],
    tz: Optional[tzinfo] = None,
) -> List[TimeSeriesPoint]:
    """
    Bucket rows into exactly `days` zero-initialized daily points.

    Rows outside the window or with unparseable timestamps are skipped.
    """
    if days <= 0:
        return []

    points = [
        TimeSeriesPoint(date=d, metrics={s.name: s.zero for s in sources})
        for d in window_dates(today, days)
    ]
    by_date = {p.date: p for p in points}

    for source in sources:
        for record in source.records:
            if source.predicate is not None and not source.predicate(record):
                continue
            day = calendar_date(field_value(record, source.timestamp_field), tz)
            point = by_date.get(day)
            if point is None:
                continue
            point.metrics[source.name] += source.amount(record)

    return points


# ============================================================
# HABIT METRICS
# ============================================================

def _entry_date(entry: Any, tz: Optional[tzinfo] = None) -> Optional[date]:
    return calendar_date(field_value(entry, "date"), tz)


def _completed(entry: Any) -> bool:
    return bool(field_value(entry, "completed", False))


def streak(entries: Iterable[Any], today: date, tz: Optional[tzinfo] = None) -> int:
    """
    Consecutive completed days ending today.

    Stops at the first day that has no entry or is not completed; a
    missing or incomplete today yields 0. With several entries on one
    day, the last one wins.
    """
    completed_by_day: Dict[date, bool] = {}
    for entry in entries:
        day = _entry_date(entry, tz)
        if day is not None:
            completed_by_day[day] = _completed(entry)

    count = 0
    day = today
    while completed_by_day.get(day):
        count += 1
        day -= timedelta(days=1)
    return count


def completion_rate(entries: Iterable[Any]) -> int:
    """Percent of entries completed, rounded half up; 0 when empty."""
    entries = list(entries)
    if not entries:
        return 0
    completed = sum(1 for e in entries if _completed(e))
    return int(round_half_up(Decimal(100 * completed) / Decimal(len(entries))))


def consistency(
    entries: Iterable[Any],
    today: date,
    window_days: int = 7,
    tz: Optional[tzinfo] = None,
) -> int:
    """Percent of the last `window_days` calendar days having any entry."""
    if window_days <= 0:
        return 0
    window = set(window_dates(today, window_days))
    days_with_entries = {_entry_date(e, tz) for e in entries} & window
    return int(round_half_up(Decimal(100 * len(days_with_entries)) / Decimal(window_days)))


def most_common(values: Iterable[Any]) -> Optional[Any]:
    """Mode of the non-empty values; ties go to the first seen."""
    counts: Dict[Any, int] = {}
    for value in values:
        if value is None or value == "":
            continue
        counts[value] = counts.get(value, 0) + 1

    best = None
    best_count = 0
    for value, count in counts.items():
        if count > best_count:
            best, best_count = value, count
    return best


# ============================================================
# AGGREGATION ENGINE
# ============================================================

class AggregationEngine:
    """
    Builds DerivedMetricSets for views.

    Every call recomputes from the rows it is given.
    """

    def __init__(
        self,
        clock: ClockProtocol,
        consistency_window_days: int = 7,
    ):
        self._clock = clock
        self._consistency_window = consistency_window_days

    @property
    def clock(self) -> ClockProtocol:
        return self._clock

    def today(self) -> date:
        return self._clock.today()

    # --------------------------------------------------------
    # EVENTS
    # --------------------------------------------------------

    def event_metrics(
        self,
        event: Dict[str, Any],
        tickets: Sequence[Any] = (),
        ratings: Sequence[Any] = (),
        analytics: Sequence[Any] = (),
        payments: Optional[Sequence[Any]] = None,
    ) -> DerivedMetricSet:
        """Metrics for a single event."""
        rating_values = [field_value(r, "rating") for r in ratings]
        views = sum(
            (to_decimal(field_value(a, "metric_value")) for a in analytics
             if field_value(a, "metric_type") == "view"),
            Decimal("0"),
        )

        metrics = DerivedMetricSet(
            scope=str(field_value(event, "id", "")),
            counts={
                "tickets_sold": len(tickets),
                "ratings": sum(1 for r in rating_values if _is_number(r) and r > 0),
                "views": int(views),
            },
            amounts={"revenue": revenue(tickets, "price_paid")},
            averages={"average_rating": average_rating(rating_values)},
            computed_at=self._clock.now(),
        )
        if payments is not None:
            metrics.amounts["payment_revenue"] = revenue(payments, "amount")
        return metrics

    def dashboard_metrics(
        self,
        creator_id: str,
        events: Sequence[Dict[str, Any]],
        analytics: Sequence[Any] = (),
        tickets: Sequence[Any] = (),
        ratings: Sequence[Any] = (),
        period: str = "30d",
    ) -> DerivedMetricSet:
        """Creator dashboard: totals, per-event breakdown and daily series."""
        days = period_days(period)

        breakdown = {}
        for event in events:
            event_id = field_value(event, "id")
            breakdown[str(event_id)] = self.event_metrics(
                event,
                tickets=[t for t in tickets if field_value(t, "event_id") == event_id],
                ratings=[r for r in ratings if field_value(r, "event_id") == event_id],
                analytics=[a for a in analytics if field_value(a, "event_id") == event_id],
            )

        time_series = bucket_time_series(
            self.today(),
            days,
            [
                MetricSource(
                    "views",
                    analytics,
                    value_field="metric_value",
                    predicate=lambda a: field_value(a, "metric_type") == "view",
                ),
                MetricSource("tickets", tickets),
                MetricSource("revenue", tickets, value_field="price_paid", predicate=is_settled),
            ],
            tz=self._clock.tz,
        )

        window_start = time_series[0].date
        created_in_window = [
            e for e in events
            if (calendar_date(field_value(e, "created_at"), self._clock.tz) or date.min) >= window_start
        ]

        rating_values = [field_value(r, "rating") for r in ratings]
        return DerivedMetricSet(
            scope=creator_id,
            counts={
                "total_views": sum(m.count("views") for m in breakdown.values()),
                "total_tickets": len(tickets),
                "total_ratings": sum(m.count("ratings") for m in breakdown.values()),
                "events_created": len(created_in_window),
            },
            amounts={"total_revenue": revenue(tickets, "price_paid")},
            averages={"average_rating": average_rating(rating_values)},
            time_series=time_series,
            breakdown=breakdown,
            computed_at=self._clock.now(),
        )

    # --------------------------------------------------------
    # HABITS
    # --------------------------------------------------------

    def habit_metrics(self, habit: Any, entries: Sequence[Any]) -> DerivedMetricSet:
        """Per-habit stats from its progress entries."""
        today = self.today()
        tz = self._clock.tz
        entries = list(entries)

        return DerivedMetricSet(
            scope=str(field_value(habit, "id", "")),
            counts={
                "total_days": len(entries),
                "completed_days": sum(1 for e in entries if _completed(e)),
                "streak": streak(entries, today, tz),
            },
            averages={
                "completion_rate": completion_rate(entries),
                "average_rating": average_rating(field_value(e, "rating") for e in entries),
                "consistency": consistency(entries, today, self._consistency_window, tz),
            },
            modes={"mood": most_common(_mood_value(e) for e in entries)},
            computed_at=self._clock.now(),
        )

    def overall_habit_metrics(
        self,
        user_id: str,
        habit_sets: Sequence[DerivedMetricSet],
    ) -> DerivedMetricSet:
        """Roll per-habit sets up into user-level metrics."""
        rates = [m.average("completion_rate") for m in habit_sets]
        average_completion = (
            int(round_half_up(Decimal(sum(rates)) / Decimal(len(rates)))) if rates else 0
        )

        return DerivedMetricSet(
            scope=user_id,
            counts={
                "total_habits": len(habit_sets),
                "active_habits": sum(1 for m in habit_sets if m.count("streak") > 0),
                "longest_streak": max((m.count("streak") for m in habit_sets), default=0),
                "total_check_ins": sum(m.count("total_days") for m in habit_sets),
            },
            averages={"average_completion_rate": average_completion},
            breakdown={m.scope: m for m in habit_sets},
            computed_at=self._clock.now(),
        )


def _mood_value(entry: Any) -> Optional[str]:
    mood = field_value(entry, "mood")
    # Enum members carry their wire value
    return getattr(mood, "value", mood)


__all__ = [
    "PERIOD_DAYS",
    "MetricSource",
    "field_value",
    "to_decimal",
    "round_half_up",
    "average_rating",
    "is_settled",
    "revenue",
    "period_days",
    "window_dates",
    "bucket_time_series",
    "streak",
    "completion_rate",
    "consistency",
    "most_common",
    "AggregationEngine",
]
