"""
Backend - In-Memory Data Store.

============================================================
PURPOSE
============================================================
In-process stand-in for the hosted backend.

FEATURES:
- Evaluates the same Query objects as the REST client
- Nested one-to-many relations through a foreign key map
- Upsert on conflict columns
- Publishes every write to a change-feed transport
- Error injection for write-failure paths

============================================================
USAGE
============================================================
```python
transport = LocalTransport()
backend = InMemoryBackend(clock=clock, transport=transport)
backend.seed("events", [{"id": "e1", "creator_id": "u1"}])
```

============================================================
"""

import copy
import logging
import uuid
from typing import Any, Dict, List, Optional, Protocol

from core.clock import ClockProtocol, SystemClock
from core.exceptions import QueryError
from .client import BackendClient, Row, Rows, as_row_list
from .query import Filter, FilterOp, Query, parse_select


logger = logging.getLogger(__name__)


DEFAULT_FOREIGN_KEYS: Dict[str, str] = {
    "event_analytics": "event_id",
    "tickets": "event_id",
    "event_ratings": "event_id",
    "payment_transactions": "event_id",
    "habit_progress": "habit_id",
}
"""Child table -> column referencing the parent row's id."""


class ChangePublisher(Protocol):
    """Anything that can fan a row change out to subscribers."""

    async def publish(
        self,
        table: str,
        operation: str,
        new: Optional[Row],
        old: Optional[Row],
    ) -> None:
        ...


# ============================================================
# IN-MEMORY BACKEND
# ============================================================

class InMemoryBackend(BackendClient):
    """
    Dictionary-backed data store.

    Rows are deep-copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(
        self,
        clock: Optional[ClockProtocol] = None,
        transport: Optional[ChangePublisher] = None,
        foreign_keys: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize in-memory backend.

        Args:
            clock: Source of created_at timestamps
            transport: Receives a publish() for every write
            foreign_keys: Child table -> parent id column, for embeds
        """
        self._clock = clock or SystemClock()
        self._transport = transport
        self._foreign_keys = dict(DEFAULT_FOREIGN_KEYS if foreign_keys is None else foreign_keys)

        self._tables: Dict[str, List[Row]] = {}

        # Error injection
        self._force_next_error: Optional[QueryError] = None
        self._force_error_table: Optional[str] = None

        # Call log for assertions
        self.calls: List[Dict[str, Any]] = []

    # --------------------------------------------------------
    # TEST HELPERS
    # --------------------------------------------------------

    def attach_transport(self, transport: ChangePublisher) -> None:
        self._transport = transport

    def seed(self, table: str, rows: Rows) -> List[Row]:
        """Load rows without publishing change events."""
        stored = [self._prepare(row) for row in as_row_list(rows)]
        self._tables.setdefault(table, []).extend(stored)
        return copy.deepcopy(stored)

    def rows(self, table: str) -> List[Row]:
        """Snapshot of a table."""
        return copy.deepcopy(self._tables.get(table, []))

    def force_next_error(
        self,
        message: str = "Injected failure",
        table: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        """Make the next call (optionally only on `table`) raise QueryError."""
        self._force_next_error = QueryError(message, table=table, status=500, code=code)
        self._force_error_table = table

    def _check_error(self, table: str) -> None:
        if self._force_next_error is None:
            return
        if self._force_error_table and self._force_error_table != table:
            return
        error = self._force_next_error
        self._force_next_error = None
        self._force_error_table = None
        raise error

    def _prepare(self, row: Row) -> Row:
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("created_at", self._clock.now().isoformat())
        return stored

    async def _publish(self, table: str, operation: str, new: Optional[Row], old: Optional[Row]) -> None:
        if self._transport is None:
            return
        await self._transport.publish(
            table,
            operation,
            copy.deepcopy(new) if new is not None else None,
            copy.deepcopy(old) if old is not None else None,
        )

    # --------------------------------------------------------
    # OPERATIONS
    # --------------------------------------------------------

    async def select(self, query: Query) -> List[Row]:
        self.calls.append({"op": "select", "table": query.table})
        self._check_error(query.table)

        rows = [r for r in self._tables.get(query.table, []) if _matches(r, query.filters)]

        # Stable sorts applied last-key-first give multi-column ordering
        for ordering in reversed(query.orderings):
            present = [r for r in rows if r.get(ordering.column) is not None]
            missing = [r for r in rows if r.get(ordering.column) is None]
            present.sort(key=lambda r: _sort_key(r[ordering.column]), reverse=ordering.desc)
            # PostgREST default: nulls last ascending, first descending
            rows = missing + present if ordering.desc else present + missing

        if query.row_limit is not None:
            rows = rows[: query.row_limit]

        return [self._project(row, query.columns) for row in rows]

    async def insert(self, table: str, rows: Rows) -> List[Row]:
        self.calls.append({"op": "insert", "table": table})
        self._check_error(table)

        inserted = []
        for row in as_row_list(rows):
            stored = self._prepare(row)
            self._tables.setdefault(table, []).append(stored)
            inserted.append(copy.deepcopy(stored))

        for row in inserted:
            await self._publish(table, "INSERT", row, None)
        return inserted

    async def update(self, query: Query, values: Row) -> List[Row]:
        self.calls.append({"op": "update", "table": query.table})
        self._check_error(query.table)
        if not query.filters:
            raise QueryError(f"Refusing unfiltered update on {query.table}", table=query.table)

        changes = []
        for row in self._tables.get(query.table, []):
            if _matches(row, query.filters):
                old = copy.deepcopy(row)
                row.update(copy.deepcopy(values))
                changes.append((copy.deepcopy(row), old))

        for new, old in changes:
            await self._publish(query.table, "UPDATE", new, old)
        return [new for new, _ in changes]

    async def upsert(
        self,
        table: str,
        rows: Rows,
        on_conflict: Optional[str] = None,
    ) -> List[Row]:
        self.calls.append({"op": "upsert", "table": table})
        self._check_error(table)

        conflict_columns = [c.strip() for c in (on_conflict or "id").split(",") if c.strip()]
        stored_rows = self._tables.setdefault(table, [])

        results = []
        events = []
        for row in as_row_list(rows):
            existing = None
            if all(c in row for c in conflict_columns):
                existing = next(
                    (s for s in stored_rows if all(s.get(c) == row[c] for c in conflict_columns)),
                    None,
                )

            if existing is not None:
                old = copy.deepcopy(existing)
                existing.update(copy.deepcopy(row))
                results.append(copy.deepcopy(existing))
                events.append(("UPDATE", copy.deepcopy(existing), old))
            else:
                stored = self._prepare(row)
                stored_rows.append(stored)
                results.append(copy.deepcopy(stored))
                events.append(("INSERT", copy.deepcopy(stored), None))

        for operation, new, old in events:
            await self._publish(table, operation, new, old)
        return results

    async def delete(self, query: Query) -> List[Row]:
        self.calls.append({"op": "delete", "table": query.table})
        self._check_error(query.table)
        if not query.filters:
            raise QueryError(f"Refusing unfiltered delete on {query.table}", table=query.table)

        stored_rows = self._tables.get(query.table, [])
        removed = [r for r in stored_rows if _matches(r, query.filters)]
        self._tables[query.table] = [r for r in stored_rows if not _matches(r, query.filters)]

        for row in removed:
            await self._publish(query.table, "DELETE", None, row)
        return copy.deepcopy(removed)

    # --------------------------------------------------------
    # PROJECTION
    # --------------------------------------------------------

    def _project(self, row: Row, columns: str) -> Row:
        plain, embeds = parse_select(columns)

        if not plain or "*" in plain:
            result = copy.deepcopy(row)
        else:
            result = {c: copy.deepcopy(row.get(c)) for c in plain}

        for embed in embeds:
            fk = self._foreign_keys.get(embed.relation)
            if fk is None:
                raise QueryError(
                    f"Unknown relation {embed.relation}",
                    table=embed.relation,
                    code="PGRST200",
                )
            children = [
                c for c in self._tables.get(embed.relation, [])
                if c.get(fk) == row.get("id")
            ]
            result[embed.relation] = [self._project(c, embed.columns) for c in children]

        return result


# ============================================================
# FILTER EVALUATION
# ============================================================

def _normalize(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _sort_key(value: Any) -> Any:
    value = _normalize(value)
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value))


def _compare(left: Any, right: Any) -> int:
    left_key, right_key = _sort_key(left), _sort_key(right)
    if left_key[0] != right_key[0]:
        # Mixed number/string: compare textually
        left_key, right_key = (1, str(_normalize(left))), (1, str(_normalize(right)))
    if left_key < right_key:
        return -1
    if left_key > right_key:
        return 1
    return 0


def _matches_one(row: Row, f: Filter) -> bool:
    value = row.get(f.column)

    if f.op == FilterOp.IS:
        return value is f.value or value == f.value
    if f.op == FilterOp.IN:
        return any(_normalize(value) == _normalize(v) for v in f.value)
    if f.op == FilterOp.EQ:
        return value is not None and _normalize(value) == _normalize(f.value)
    if f.op == FilterOp.NEQ:
        return value is not None and _normalize(value) != _normalize(f.value)

    if value is None or f.value is None:
        return False

    result = _compare(value, f.value)
    if f.op == FilterOp.GT:
        return result > 0
    if f.op == FilterOp.GTE:
        return result >= 0
    if f.op == FilterOp.LT:
        return result < 0
    if f.op == FilterOp.LTE:
        return result <= 0
    return False


def _matches(row: Row, filters) -> bool:
    return all(_matches_one(row, f) for f in filters)
