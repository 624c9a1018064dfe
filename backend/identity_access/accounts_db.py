"""
Database-backed Account Store for production use (Postgres).

Why: Accounts must outlive the process. Profiles are keyed by the account
uid, so an in-memory directory would orphan every profile on restart. This
store keeps one row per account in `public.user_accounts` (email unique,
bcrypt hash only; plaintext passwords never reach the database).

Note: Same conventions as `profiles_db.DBProfileStore`: psycopg3 sync API,
identifiers composed via `psycopg.sql`, calls run in a worker thread.
"""
from __future__ import annotations

from typing import Optional
import asyncio
import os
import re

import psycopg
from psycopg import sql

from .identity import AccountRecord

_COLUMNS = ("uid", "email", "display_name", "password_hash")
_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


class DBAccountStore:
    def __init__(self, dsn: str | None = None, table: str = "public.user_accounts") -> None:
        self._dsn = dsn or os.getenv("DATABASE_URL", "")
        if not self._dsn:
            raise RuntimeError("No database DSN provided for DBAccountStore")
        if not _TABLE_RE.match(table or ""):
            raise ValueError("Invalid table name")
        if "." in table:
            self._schema, self._name = table.split(".", 1)
        else:
            self._schema, self._name = "public", table

    def _table(self) -> sql.Composed:
        return sql.SQL("{}.{}").format(sql.Identifier(self._schema), sql.Identifier(self._name))

    def _fetch_by_email(self, email: str) -> Optional[AccountRecord]:
        stmt = sql.SQL("select {} from {} where {} = %s limit 1").format(
            sql.SQL(", ").join(sql.Identifier(c) for c in _COLUMNS),
            self._table(),
            sql.Identifier("email"),
        )
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, (email,))
                row = cur.fetchone()
        if not row:
            return None
        return AccountRecord(*[str(v) if v is not None else "" for v in row])

    def _insert(self, record: AccountRecord) -> None:
        stmt = sql.SQL("insert into {} ({}) values ({}) on conflict (email) do update set {} = excluded.{}, {} = excluded.{}").format(
            self._table(),
            sql.SQL(", ").join(sql.Identifier(c) for c in _COLUMNS),
            sql.SQL(", ").join(sql.Placeholder() for _ in _COLUMNS),
            sql.Identifier("display_name"),
            sql.Identifier("display_name"),
            sql.Identifier("password_hash"),
            sql.Identifier("password_hash"),
        )
        values = tuple(getattr(record, c) for c in _COLUMNS)
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, values)

    async def get_by_email(self, email: str) -> Optional[AccountRecord]:
        return await asyncio.to_thread(self._fetch_by_email, email)

    async def put(self, record: AccountRecord) -> None:
        await asyncio.to_thread(self._insert, record)
