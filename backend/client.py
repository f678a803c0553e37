"""
Backend - Data Store Client.

============================================================
PURPOSE
============================================================
Minimal contract the sync layer needs from the hosted data store,
plus the REST implementation.

OPERATIONS:
- Scoped queries with filter/sort/limit and nested relations
- Insert / update / delete by filter match
- Upsert by conflict columns

============================================================
WIRE CONVENTIONS (PostgREST)
============================================================
- GET    /rest/v1/{table}?select=...&col=eq.value&order=col.desc
- POST   /rest/v1/{table}            (insert / upsert)
- PATCH  /rest/v1/{table}?col=eq.v   (update)
- DELETE /rest/v1/{table}?col=eq.v   (delete)
- Prefer: return=representation so writes echo the rows

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import aiohttp

from core.config import BackendConfig
from core.exceptions import ErrorClassification, QueryError, RecordNotFoundError
from .query import Query


logger = logging.getLogger(__name__)


Row = Dict[str, Any]
Rows = Union[Row, Sequence[Row]]


# ============================================================
# CLIENT INTERFACE
# ============================================================

class BackendClient(ABC):
    """
    Abstract data store client.

    All methods are coroutines; failures raise QueryError.
    """

    @abstractmethod
    async def select(self, query: Query) -> List[Row]:
        """Run a query and return matching rows."""
        pass

    @abstractmethod
    async def insert(self, table: str, rows: Rows) -> List[Row]:
        """Insert one or more rows, returning them as stored."""
        pass

    @abstractmethod
    async def update(self, query: Query, values: Row) -> List[Row]:
        """Update rows matching the query's filters."""
        pass

    @abstractmethod
    async def upsert(
        self,
        table: str,
        rows: Rows,
        on_conflict: Optional[str] = None,
    ) -> List[Row]:
        """Insert or merge rows on the given conflict columns."""
        pass

    @abstractmethod
    async def delete(self, query: Query) -> List[Row]:
        """Delete rows matching the query's filters."""
        pass

    async def maybe_single(self, query: Query) -> Optional[Row]:
        """First matching row or None."""
        rows = await self.select(query.limit(1))
        return rows[0] if rows else None

    async def single(self, query: Query) -> Row:
        """Exactly one row; raises RecordNotFoundError when none match."""
        row = await self.maybe_single(query)
        if row is None:
            raise RecordNotFoundError(
                f"No {query.table} row matched",
                table=query.table,
            )
        return row

    async def close(self) -> None:
        """Release network resources."""
        return None


def as_row_list(rows: Rows) -> List[Row]:
    """Normalize a row or a sequence of rows into a list."""
    if isinstance(rows, dict):
        return [rows]
    return list(rows)


# ============================================================
# REST CLIENT
# ============================================================

class RestBackendClient(BackendClient):
    """
    PostgREST client over aiohttp.

    One HTTP session is shared by all calls and closed by close().
    """

    def __init__(
        self,
        config: BackendConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize REST client.

        Args:
            config: Backend connection settings
            session: Optional pre-built session (tests)
        """
        self._config = config
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.request_timeout_seconds),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self._config.anon_key,
            "Authorization": f"Bearer {self._config.bearer_token}",
            "Content-Type": "application/json",
            "Accept-Profile": self._config.schema,
            "Content-Profile": self._config.schema,
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    # --------------------------------------------------------
    # OPERATIONS
    # --------------------------------------------------------

    async def select(self, query: Query) -> List[Row]:
        return await self._request("GET", query.table, params=query.to_params())

    async def insert(self, table: str, rows: Rows) -> List[Row]:
        return await self._request(
            "POST",
            table,
            json=as_row_list(rows),
            prefer="return=representation",
        )

    async def update(self, query: Query, values: Row) -> List[Row]:
        self._require_filters(query, "update")
        return await self._request(
            "PATCH",
            query.table,
            params=[f.to_param() for f in query.filters],
            json=values,
            prefer="return=representation",
        )

    async def upsert(
        self,
        table: str,
        rows: Rows,
        on_conflict: Optional[str] = None,
    ) -> List[Row]:
        params = [("on_conflict", on_conflict)] if on_conflict else []
        return await self._request(
            "POST",
            table,
            params=params,
            json=as_row_list(rows),
            prefer="resolution=merge-duplicates,return=representation",
        )

    async def delete(self, query: Query) -> List[Row]:
        self._require_filters(query, "delete")
        return await self._request(
            "DELETE",
            query.table,
            params=[f.to_param() for f in query.filters],
            prefer="return=representation",
        )

    # --------------------------------------------------------
    # TRANSPORT
    # --------------------------------------------------------

    @staticmethod
    def _require_filters(query: Query, operation: str) -> None:
        # PostgREST rejects unfiltered writes; fail before the round trip
        if not query.filters:
            raise QueryError(
                f"Refusing unfiltered {operation} on {query.table}",
                table=query.table,
            )

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[List[Tuple[str, str]]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> List[Row]:
        url = f"{self._config.rest_url}/{table}"
        session = await self._get_session()

        try:
            async with session.request(
                method,
                url,
                params=params or [],
                json=json,
                headers=self._headers(prefer),
            ) as response:
                if response.status >= 400:
                    raise await self._error_from_response(response, table)

                if response.status == 204:
                    return []

                body = await response.json(content_type=None)

        except aiohttp.ClientError as e:
            logger.error(f"Backend request failed: {method} {table}: {e}")
            raise QueryError(
                f"Backend request failed: {e}",
                table=table,
                cause=e,
            ) from e
        except asyncio.TimeoutError as e:
            logger.error(f"Backend request timed out: {method} {table}")
            raise QueryError(
                "Backend request timed out",
                table=table,
                classification=ErrorClassification.TRANSIENT,
                cause=e,
            ) from e

        if body is None:
            return []
        if isinstance(body, dict):
            return [body]
        return list(body)

    @staticmethod
    async def _error_from_response(
        response: aiohttp.ClientResponse,
        table: str,
    ) -> QueryError:
        try:
            payload = await response.json(content_type=None)
        except ValueError:
            payload = {"message": await response.text()}

        if not isinstance(payload, dict):
            payload = {"message": str(payload)}

        message = payload.get("message") or f"HTTP {response.status}"
        logger.warning(
            f"Backend error on {table}: {response.status} "
            f"{payload.get('code', '')} {message}"
        )
        return QueryError(
            message,
            table=table,
            status=response.status,
            code=payload.get("code"),
            context={"details": payload.get("details"), "hint": payload.get("hint")},
        )
