"""
Aggregation Package.

============================================================
PURPOSE
============================================================
Derived metrics for events, creator dashboards and habits.

All metrics are recomputed from raw rows on every change; nothing here
is authoritative or persisted.

============================================================
"""

from .models import (
    TimeSeriesPoint,
    DerivedMetricSet,
)

from .engine import (
    PERIOD_DAYS,
    MetricSource,
    field_value,
    round_half_up,
    average_rating,
    revenue,
    period_days,
    bucket_time_series,
    streak,
    completion_rate,
    consistency,
    most_common,
    AggregationEngine,
)


__all__ = [
    "TimeSeriesPoint",
    "DerivedMetricSet",
    "PERIOD_DAYS",
    "MetricSource",
    "field_value",
    "round_half_up",
    "average_rating",
    "revenue",
    "period_days",
    "bucket_time_series",
    "streak",
    "completion_rate",
    "consistency",
    "most_common",
    "AggregationEngine",
]
