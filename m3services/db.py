"""Tenant-scoped JSON record store with a small query language."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from .errors import bad_request, internal_server_error
from .query import Query, TokenType, parse

log = logging.getLogger(__name__)

ID_KEY = "id"
DEFAULT_LIMIT = 25
MAX_LIMIT = 1000

_TABLE_RE = re.compile(r"[a-zA-Z0-9_]*")
_CREATE_TABLE = (
    'CREATE TABLE IF NOT EXISTS "{0}" ('
    "id TEXT NOT NULL PRIMARY KEY, data TEXT, created_at TEXT, updated_at TEXT)"
)

_OPERATORS = {
    TokenType.EQUALS: "=",
    TokenType.GREATER_THAN: ">",
    TokenType.GREATER_THAN_EQUALS: ">=",
    TokenType.LESS_THAN: "<",
    TokenType.LESS_THAN_EQUALS: "<=",
    TokenType.NOT_EQUALS: "!=",
}


def correct_field_name(name: str) -> str:
    """Map a field name to its jsonb accessor expression."""
    if name == ID_KEY:
        return name
    return "data" + "".join(f" ->> '{part}'" for part in name.split("."))


def table_name(tenant: str | None = None, table: str = "") -> str:
    """Resolve the physical table name for a tenant's table."""
    tenant = "micro" if tenant is None else tenant
    tenant = tenant.replace("/", "_").replace("-", "_")
    return f"{tenant}_{table or 'default'}"


def _value_type(value: object) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "int"
    return "text"


def build_conditions(queries: list[Query]) -> list[tuple[str, object]]:
    """Render parsed queries as jsonb where clauses with their bound values."""
    return [
        (
            f"({correct_field_name(q.field)})::{_value_type(q.value)} {_OPERATORS.get(q.op, '')} ?",
            q.value,
        )
        for q in queries
    ]


def _json_path(name: str) -> str:
    return "$" + "".join(f'."{part}"' for part in name.split("."))


def _sqlite_field(name: str) -> tuple[str, list]:
    if name == ID_KEY:
        return ID_KEY, []
    return "json_extract(data, ?)", [_json_path(name)]


def _sqlite_condition(query: Query) -> tuple[str, list]:
    expr, params = _sqlite_field(query.field)
    kind = _value_type(query.value)
    if kind == "int":
        expr = f"CAST({expr} AS INTEGER)"
    elif kind == "text":
        expr = f"CAST({expr} AS TEXT)"
    op = _OPERATORS.get(query.op)
    if op is None:
        raise bad_request("db.read", f"missing operator for field '{query.field}'")
    return f"{expr} {op} ?", [*params, query.value]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Stores JSON records in per-tenant tables of an SQLite database."""

    def __init__(self, path: str = ":memory:") -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._lock = threading.Lock()
        self._tables: set[str] = set()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _guard(self, error_id: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as exc:
                raise internal_server_error(error_id, str(exc)) from exc

    def _ensure_table(self, conn: sqlite3.Connection, name: str) -> None:
        if name in self._tables:
            return
        log.info("Creating table '%s'", name)
        conn.execute(_CREATE_TABLE.format(name))
        self._tables.add(name)

    @staticmethod
    def _table(tenant: str | None, table: str, error_id: str) -> str:
        name = table_name(tenant, table)
        if not _TABLE_RE.fullmatch(name):
            raise bad_request(error_id, f"table name {table or 'default'} is invalid")
        return name

    def create(self, record: dict, table: str = "", tenant: str | None = None) -> str:
        """Insert a record and return its id, generating one if absent."""
        if not record:
            raise bad_request("db.create", "missing record")
        name = self._table(tenant, table, "db.create")
        log.info("Inserting into table '%s'", name)

        data = dict(record)
        record_id = data.get(ID_KEY)
        if not isinstance(record_id, str):
            record_id = str(uuid.uuid4())
            data[ID_KEY] = record_id

        now = _now()
        with self._guard("db.create") as conn:
            self._ensure_table(conn, name)
            conn.execute(
                f'INSERT INTO "{name}" (id, data, created_at, updated_at) VALUES (?, ?, ?, ?)',
                (record_id, json.dumps(data), now, now),
            )
        return record_id

    def update(
        self,
        record: dict,
        table: str = "",
        id: str = "",
        tenant: str | None = None,
    ) -> str:
        """Merge fields into an existing record and return its id."""
        if not record:
            raise bad_request("db.update", "missing record")
        name = self._table(tenant, table, "db.create")
        log.info("Updating table '%s'", name)

        record_id = id
        if not record_id:
            record_id = record.get(ID_KEY)
            if not isinstance(record_id, str):
                raise internal_server_error("db.update", "update failed: missing id")

        with self._guard("db.update") as conn:
            row = conn.execute(
                f'SELECT data FROM "{name}" WHERE id = ?', (record_id,)
            ).fetchone()
            if row is None:
                raise internal_server_error("db.update", "update failed: not found")
            merged = json.loads(row[0]) if row[0] else {}
            merged.update(record)
            conn.execute(
                f'UPDATE "{name}" SET data = ?, updated_at = ? WHERE id = ?',
                (json.dumps(merged), _now(), record_id),
            )
        return record_id

    def read(
        self,
        query: str = "",
        table: str = "",
        limit: int = 0,
        offset: int = 0,
        order_by: str = "",
        order: str = "",
        tenant: str | None = None,
    ) -> list[dict]:
        """Return records matching the query, ordered and paginated."""
        queries = parse(query)
        name = self._table(tenant, table, "db.read")
        log.info("Reading table '%s'", name)

        with self._guard("db.read") as conn:
            self._ensure_table(conn, name)
            if limit > MAX_LIMIT:
                raise bad_request(
                    "db.read", f"limit over 1000 is invalid, you specified {limit}"
                )
            limit = limit or DEFAULT_LIMIT

            clauses: list[str] = []
            params: list = []
            for q in queries:
                log.info("Query field: %s, op: %s, type: %s", q.field, q.op, q.value)
                clause, clause_params = _sqlite_condition(q)
                clauses.append(clause)
                params.extend(clause_params)

            order_expr, order_params = _sqlite_field(order_by or "created_at")
            direction = "asc"
            if order:
                lowered = order.lower()
                if lowered not in ("asc", "desc"):
                    raise bad_request("db.read", "invalid ordering: " + order)
                direction = lowered

            sql = f'SELECT id, data FROM "{name}"'
            if clauses:
                sql += " WHERE " + " AND ".join(clauses)
            sql += f" ORDER BY {order_expr} {direction}, rowid asc LIMIT ? OFFSET ?"
            rows = conn.execute(sql, [*params, *order_params, limit, offset]).fetchall()

        results = []
        for record_id, raw in rows:
            data = json.loads(raw) if raw else {}
            data[ID_KEY] = record_id
            results.append(data)
        return results

    def delete(self, id: str, table: str = "", tenant: str | None = None) -> None:
        """Delete a record by id."""
        if not id:
            raise bad_request("db.delete", "missing id")
        name = self._table(tenant, table, "db.create")
        log.info("Deleting from table '%s'", name)
        with self._guard("db.delete") as conn:
            conn.execute(f'DELETE FROM "{name}" WHERE id = ?', (id,))

    def truncate(self, table: str = "", tenant: str | None = None) -> None:
        """Remove every record from a table."""
        name = self._table(tenant, table, "db.create")
        log.info("Truncating table '%s'", name)
        with self._guard("db.truncate") as conn:
            conn.execute(f'DELETE FROM "{name}"')