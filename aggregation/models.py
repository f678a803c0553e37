"""
Aggregation - Derived Metric Models.

Derived metrics are caches: each set is recomputed wholesale from raw
rows and replaced, never patched.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union


Number = Union[int, float, Decimal]


# ============================================================
# TIME SERIES
# ============================================================

@dataclass
class TimeSeriesPoint:
    """One calendar-day bucket."""

    date: date
    metrics: Dict[str, Number] = field(default_factory=dict)

    def get(self, name: str, default: Number = 0) -> Number:
        return self.metrics.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            **{k: _jsonable(v) for k, v in self.metrics.items()},
        }


# ============================================================
# DERIVED METRIC SET
# ============================================================

@dataclass
class DerivedMetricSet:
    """
    Derived metrics for one scope (an event, a creator, a habit, a user).

    counts:      integer tallies
    amounts:     money totals
    averages:    means and percentages
    modes:       most common categorical values
    time_series: ascending contiguous day buckets
    breakdown:   per-child metric sets (e.g. per event on a dashboard)
    """

    scope: str
    counts: Dict[str, int] = field(default_factory=dict)
    amounts: Dict[str, Decimal] = field(default_factory=dict)
    averages: Dict[str, float] = field(default_factory=dict)
    modes: Dict[str, Optional[str]] = field(default_factory=dict)
    time_series: List[TimeSeriesPoint] = field(default_factory=list)
    breakdown: Dict[str, "DerivedMetricSet"] = field(default_factory=dict)
    computed_at: Optional[datetime] = None

    def count(self, name: str) -> int:
        return self.counts.get(name, 0)

    def amount(self, name: str) -> Decimal:
        return self.amounts.get(name, Decimal("0"))

    def average(self, name: str) -> float:
        return self.averages.get(name, 0)

    def series(self, name: str) -> List[Number]:
        """Values of one metric across the time series."""
        return [point.get(name) for point in self.time_series]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "counts": dict(self.counts),
            "amounts": {k: _jsonable(v) for k, v in self.amounts.items()},
            "averages": dict(self.averages),
            "modes": dict(self.modes),
            "time_series": [p.to_dict() for p in self.time_series],
            "breakdown": {k: v.to_dict() for k, v in self.breakdown.items()},
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


__all__ = [
    "Number",
    "TimeSeriesPoint",
    "DerivedMetricSet",
]
