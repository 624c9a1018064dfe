"""
Database-backed Profile Store for production use (Postgres).

Why: Profiles must survive restarts and be shared across instances. This store
persists one row per uid in `public.user_profiles` and keeps the role column
as free text; interpretation happens in `domain.parse_role`.

Security:
- Use an environment-specific login role; the table should be readable only
  by the application role.
- Table identifiers are validated and composed via `psycopg.sql`.

Note: This module uses psycopg3 (sync API). Calls run in a worker thread via
`asyncio.to_thread` so the event loop never blocks on I/O.
"""
from __future__ import annotations

from typing import Optional
import asyncio
import os
import re

import psycopg
from psycopg import sql

from .profiles import ProfileRecord

_COLUMNS = ("uid", "email", "display_name", "role", "roll_number", "department", "year", "class_id")
_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


class DBProfileStore:
    """Postgres-backed profile store.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Defaults to `DATABASE_URL`.
    table:
        Table name, optionally schema-qualified. Defaults to `public.user_profiles`.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.user_profiles") -> None:
        self._dsn = dsn or os.getenv("DATABASE_URL", "")
        if not self._dsn:
            raise RuntimeError("No database DSN provided for DBProfileStore")
        if not _TABLE_RE.match(table or ""):
            raise ValueError("Invalid table name")
        if "." in table:
            self._schema, self._name = table.split(".", 1)
        else:
            self._schema, self._name = "public", table

    def _table(self) -> sql.Composed:
        return sql.SQL("{}.{}").format(sql.Identifier(self._schema), sql.Identifier(self._name))

    def _select(self, where_column: str) -> sql.Composed:
        return sql.SQL("select {} from {} where {} = %s limit 1").format(
            sql.SQL(", ").join(sql.Identifier(c) for c in _COLUMNS),
            self._table(),
            sql.Identifier(where_column),
        )

    @staticmethod
    def _to_record(row) -> Optional[ProfileRecord]:
        if not row:
            return None
        return ProfileRecord(*[None if v is None else str(v) for v in row])

    def _fetch_one(self, stmt: sql.Composed, value: str) -> Optional[ProfileRecord]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, (value,))
                return self._to_record(cur.fetchone())

    def _upsert(self, record: ProfileRecord) -> None:
        updates = sql.SQL(", ").join(
            sql.SQL("{} = excluded.{}").format(sql.Identifier(c), sql.Identifier(c)) for c in _COLUMNS[1:]
        )
        stmt = sql.SQL("insert into {} ({}) values ({}) on conflict (uid) do update set {}").format(
            self._table(),
            sql.SQL(", ").join(sql.Identifier(c) for c in _COLUMNS),
            sql.SQL(", ").join(sql.Placeholder() for _ in _COLUMNS),
            updates,
        )
        values = tuple(getattr(record, c) for c in _COLUMNS)
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, values)

    async def get(self, uid: str) -> Optional[ProfileRecord]:
        return await asyncio.to_thread(self._fetch_one, self._select("uid"), uid)

    async def find_by_roll_number(self, roll_number: str) -> Optional[ProfileRecord]:
        needle = (roll_number or "").strip()
        if not needle:
            return None
        return await asyncio.to_thread(self._fetch_one, self._select("roll_number"), needle)

    async def put(self, record: ProfileRecord) -> None:
        await asyncio.to_thread(self._upsert, record)

    def _any_with_role(self, role: str) -> bool:
        stmt = sql.SQL("select 1 from {} where lower(btrim({})) = %s limit 1").format(
            self._table(),
            sql.Identifier("role"),
        )
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, ((role or "").strip().lower(),))
                return cur.fetchone() is not None

    async def exists_with_role(self, role: str) -> bool:
        return await asyncio.to_thread(self._any_with_role, role)
