import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from dotenv import load_dotenv
from postgrest.exceptions import APIError
from supabase import Client, create_client

load_dotenv()

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"

_client: Optional[Client] = None
_gateway: Optional["StorageGateway"] = None


class StorageError(Exception):
    """
    Any failure reported by the backend (network, PostgREST, Postgres).
    `code` carries the Postgres/PostgREST error code when there is one.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION

    @property
    def is_foreign_key_violation(self) -> bool:
        return self.code == FOREIGN_KEY_VIOLATION


def get_client() -> Client:
    global _client
    if _client is None:
        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_KEY")
        if not url:
            raise RuntimeError("SUPABASE_URL is not set in the environment")
        if not key:
            raise RuntimeError("SUPABASE_KEY is not set in the environment")
        _client = create_client(url, key)
    return _client


def get_gateway() -> "StorageGateway":
    global _gateway
    if _gateway is None:
        _gateway = StorageGateway(get_client(), os.getenv("SCHEMA") or "public")
    return _gateway


class StorageGateway:
    """
    Row-oriented access to the Supabase tables.

    Filters:
      - eq:   {"col": value}            -> col = value
      - gte:  {"col": value}            -> col >= value
      - lte:  {"col": value}            -> col <= value
      - in_:  {"col": [v1, v2, ...]}    -> col in (...)
      - like: {"col": "PO-20260305-%"}  -> col like pattern

    Every method raises StorageError on failure.
    """

    def __init__(self, client: Client, schema: str = "public"):
        self.client = client
        self.schema = schema

    def _db(self):
        return self.client.schema(self.schema)

    @staticmethod
    def _apply_filters(
            query,
            eq: Optional[Dict[str, Any]] = None,
            gte: Optional[Dict[str, Any]] = None,
            lte: Optional[Dict[str, Any]] = None,
            in_: Optional[Dict[str, Iterable[Any]]] = None,
            like: Optional[Dict[str, str]] = None,
    ):
        for col, val in (eq or {}).items():
            query = query.eq(col, val)
        for col, val in (gte or {}).items():
            query = query.gte(col, val)
        for col, val in (lte or {}).items():
            query = query.lte(col, val)
        for col, vals in (in_ or {}).items():
            query = query.in_(col, list(vals))
        for col, pattern in (like or {}).items():
            query = query.like(col, pattern)
        return query

    @staticmethod
    def _execute(query, action: str):
        try:
            resp = query.execute()
        except APIError as e:
            raise StorageError(f"{action} failed: {e.message}", code=e.code) from e
        except Exception as e:
            raise StorageError(f"{action} failed: {e}") from e

        if getattr(resp, "error", None):
            raise StorageError(f"{action} failed: {resp.error}")
        return resp

    def select(
            self,
            table: str,
            columns: str = "*",
            *,
            eq: Optional[Dict[str, Any]] = None,
            gte: Optional[Dict[str, Any]] = None,
            lte: Optional[Dict[str, Any]] = None,
            in_: Optional[Dict[str, Iterable[Any]]] = None,
            like: Optional[Dict[str, str]] = None,
            order: Union[str, Sequence[str], None] = None,
            desc: bool = False,
            limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = self._db().table(table).select(columns)
        query = self._apply_filters(query, eq, gte, lte, in_, like)

        if order:
            for col in [order] if isinstance(order, str) else order:
                query = query.order(col, desc=desc)
        if limit is not None:
            query = query.limit(limit)

        resp = self._execute(query, f"Fetch {table}")
        return list(resp.data or [])

    def select_one(self, table: str, columns: str = "*", **filters) -> Optional[Dict[str, Any]]:
        rows = self.select(table, columns, limit=1, **filters)
        return rows[0] if rows else None

    def insert(
            self,
            table: str,
            rows: Union[Dict[str, Any], List[Dict[str, Any]]],
    ) -> List[Dict[str, Any]]:
        """
        Insert a single row or a batch of rows.
        Returns the inserted rows as stored by the backend.
        """
        if isinstance(rows, list) and not rows:
            return []
        query = self._db().table(table).insert(rows)
        resp = self._execute(query, f"Insert {table}")
        return list(resp.data or [])

    def update(
            self,
            table: str,
            values: Dict[str, Any],
            *,
            eq: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        if not eq:
            raise ValueError("update requires at least one equality filter")
        query = self._apply_filters(self._db().table(table).update(values), eq=eq)
        resp = self._execute(query, f"Update {table}")
        return list(resp.data or [])

    def delete(
            self,
            table: str,
            *,
            eq: Optional[Dict[str, Any]] = None,
            in_: Optional[Dict[str, Iterable[Any]]] = None,
    ) -> List[Dict[str, Any]]:
        if not eq and not in_:
            raise ValueError("delete requires a filter")
        query = self._apply_filters(self._db().table(table).delete(), eq=eq, in_=in_)
        resp = self._execute(query, f"Delete {table}")
        return list(resp.data or [])

    def rpc(self, fn: str, params: Dict[str, Any]) -> Any:
        resp = self._execute(self._db().rpc(fn, params), f"RPC {fn}")
        return resp.data


# ---------------------------------------------------------------------------
# Lookup helpers for select boxes
# ---------------------------------------------------------------------------

def fetch_column_w_id(
        db: StorageGateway,
        table_name: str,
        col_name: str = "name",
) -> Tuple[bool, str, dict]:
    """
    Returns (ok, message, {value: id}) ordered by value.
    """
    try:
        rows = db.select(table_name, f"id, {col_name}", order=col_name)
    except StorageError as e:
        logger.warning("Lookup %s failed: %s", table_name, e)
        return False, e.message, {}

    if not rows:
        return True, "No rows found", {}

    return True, "Fetched", {row[col_name]: row["id"] for row in rows}


def is_exist(db: StorageGateway, table_name: str, col_name: str, val: Any,
             exclude_id: Optional[Any] = None) -> bool:
    """
    Case-insensitive existence check on the trimmed value.
    """
    needle = str(val).strip().casefold()
    rows = db.select(table_name, f"id, {col_name}")
    return any(
        str(row.get(col_name) or "").strip().casefold() == needle
        for row in rows
        if exclude_id is None or row.get("id") != exclude_id
    )
