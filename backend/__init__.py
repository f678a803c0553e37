"""
Backend Package.

============================================================
PURPOSE
============================================================
Access to the hosted data store.

AVAILABLE CLIENTS:
- RestBackendClient: PostgREST over aiohttp
- InMemoryBackend: For tests and local demos

QUERIES:
- Query: Immutable filter/sort/limit/select description

============================================================
"""

from .query import (
    FilterOp,
    Filter,
    Ordering,
    Query,
    Embed,
    parse_select,
)

from .client import (
    BackendClient,
    RestBackendClient,
    Row,
)

from .memory import (
    InMemoryBackend,
    DEFAULT_FOREIGN_KEYS,
)


__all__ = [
    "FilterOp",
    "Filter",
    "Ordering",
    "Query",
    "Embed",
    "parse_select",
    "BackendClient",
    "RestBackendClient",
    "Row",
    "InMemoryBackend",
    "DEFAULT_FOREIGN_KEYS",
]
