"""
Backend - Query Builder.

============================================================
PURPOSE
============================================================
Immutable description of a scoped record query.

Both backend implementations consume the same Query:
- RestBackendClient renders it to PostgREST parameters
- InMemoryBackend evaluates it against stored rows

============================================================
USAGE
============================================================
```python
query = (
    Query("notifications")
    .eq("user_id", user_id)
    .order("created_at", desc=True)
    .limit(20)
)
rows = await backend.select(query)
```

============================================================
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple


# ============================================================
# FILTER OPERATORS
# ============================================================

class FilterOp(Enum):
    """Supported comparison operators."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    IS = "is"


@dataclass(frozen=True)
class Filter:
    """A single column filter."""

    column: str
    op: FilterOp
    value: Any

    def to_param(self) -> Tuple[str, str]:
        """Render as a PostgREST query parameter."""
        if self.op == FilterOp.IN:
            values = ",".join(_render_scalar(v, quote=True) for v in self.value)
            return self.column, f"in.({values})"
        return self.column, f"{self.op.value}.{_render_scalar(self.value)}"


@dataclass(frozen=True)
class Ordering:
    """Sort order for one column."""

    column: str
    desc: bool = False

    def to_param(self) -> str:
        return f"{self.column}.{'desc' if self.desc else 'asc'}"


# ============================================================
# QUERY
# ============================================================

@dataclass(frozen=True)
class Query:
    """
    Scoped record query.

    Builder methods return new Query instances.
    """

    table: str
    columns: str = "*"
    filters: Tuple[Filter, ...] = field(default_factory=tuple)
    orderings: Tuple[Ordering, ...] = field(default_factory=tuple)
    row_limit: Optional[int] = None

    def select(self, columns: str) -> "Query":
        """Select columns, optionally with nested relations: `id, tickets(price_paid)`."""
        return replace(self, columns=" ".join(columns.split()))

    def _with_filter(self, column: str, op: FilterOp, value: Any) -> "Query":
        return replace(self, filters=self.filters + (Filter(column, op, value),))

    def eq(self, column: str, value: Any) -> "Query":
        return self._with_filter(column, FilterOp.EQ, value)

    def neq(self, column: str, value: Any) -> "Query":
        return self._with_filter(column, FilterOp.NEQ, value)

    def gt(self, column: str, value: Any) -> "Query":
        return self._with_filter(column, FilterOp.GT, value)

    def gte(self, column: str, value: Any) -> "Query":
        return self._with_filter(column, FilterOp.GTE, value)

    def lt(self, column: str, value: Any) -> "Query":
        return self._with_filter(column, FilterOp.LT, value)

    def lte(self, column: str, value: Any) -> "Query":
        return self._with_filter(column, FilterOp.LTE, value)

    def in_(self, column: str, values: Sequence[Any]) -> "Query":
        return self._with_filter(column, FilterOp.IN, tuple(values))

    def is_(self, column: str, value: Optional[bool]) -> "Query":
        return self._with_filter(column, FilterOp.IS, value)

    def order(self, column: str, desc: bool = False) -> "Query":
        return replace(self, orderings=self.orderings + (Ordering(column, desc),))

    def limit(self, count: int) -> "Query":
        return replace(self, row_limit=count)

    def to_params(self) -> List[Tuple[str, str]]:
        """Render the query as PostgREST query parameters."""
        params = [("select", self.columns)]
        params.extend(f.to_param() for f in self.filters)
        if self.orderings:
            params.append(("order", ",".join(o.to_param() for o in self.orderings)))
        if self.row_limit is not None:
            params.append(("limit", str(self.row_limit)))
        return params


# ============================================================
# SELECT LIST PARSING
# ============================================================

@dataclass(frozen=True)
class Embed:
    """A nested relation in a select list."""

    relation: str
    columns: str


def parse_select(columns: str) -> Tuple[List[str], List[Embed]]:
    """
    Split a select list into plain columns and embedded relations.

    `"id, name, tickets(price_paid, created_at)"` →
    `(["id", "name"], [Embed("tickets", "price_paid, created_at")])`
    """
    plain: List[str] = []
    embeds: List[Embed] = []

    depth = 0
    current = ""
    parts: List[str] = []
    for char in columns:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        parts.append(current.strip())

    for part in parts:
        if "(" in part and part.endswith(")"):
            name, inner = part.split("(", 1)
            embeds.append(Embed(relation=name.strip(), columns=inner[:-1].strip()))
        elif part:
            plain.append(part)

    return plain, embeds


def _render_scalar(value: Any, quote: bool = False) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "isoformat"):
        value = value.isoformat()
    text = str(value)
    if quote and any(c in text for c in ',()"'):
        return '"' + text.replace('"', '\\"') + '"'
    return text
