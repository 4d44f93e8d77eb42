"""SQL-backed cache backend (Postgres in production)."""

from __future__ import annotations

import logging
import time
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session as SASession

from kvsession.errors import BackendUnavailable

logger = logging.getLogger(__name__)

_UNAVAILABLE = (OperationalError, InterfaceError)


class SqlCacheBackend:
    """Relational table used as an expiring key-value store.

    Creates the schema (Postgres only) and table on first use. Expired rows
    are ignored on read and removed lazily.
    """

    def __init__(self, url: str, schema: str | None = "kvsession"):
        if not url or not url.strip():
            raise ValueError(
                "SQL cache backend requires POSTGRES_URL. "
                "Set it in .env or backend.url in kvsession.yaml."
            )
        self._url = url.strip()
        self._engine = create_engine(self._url)
        self._schema = schema if (schema and self._engine.dialect.name == "postgresql") else None
        self._table = f"{self._schema}.session_entry" if self._schema else "session_entry"
        try:
            self._ensure_schema()
        except _UNAVAILABLE as err:
            raise self._fail("schema setup", err) from err

    def _fail(self, op: str, err: Exception) -> BackendUnavailable:
        logger.warning("SQL cache backend %s failed: %s", op, err)
        return BackendUnavailable(f"SQL cache backend {op} failed: {err}")

    def _ensure_schema(self) -> None:
        """Create schema and table if they do not exist."""
        create_table = text(f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at DOUBLE PRECISION NOT NULL
            )
        """)
        with self._engine.connect() as conn:
            if self._schema:
                conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {self._schema}"))
            conn.execute(create_table)
            conn.commit()

    def _execute(self, op: str, sql: str, params: dict[str, Any]) -> list[Any]:
        try:
            with SASession(self._engine) as session:
                result = session.execute(text(sql), params)
                rows = result.fetchall() if result.returns_rows else []
                session.commit()
                return rows
        except _UNAVAILABLE as err:
            raise self._fail(op, err) from err

    def get(self, key: str) -> str | None:
        rows = self._execute(
            "get",
            f"SELECT value, expires_at FROM {self._table} WHERE key = :key",
            {"key": key},
        )
        if not rows:
            return None
        value, expires_at = rows[0]
        if expires_at <= time.time():
            self.delete(key)
            return None
        return value

    def set(self, key: str, value: str, ttl: int) -> None:
        self._execute(
            "set",
            f"""
                INSERT INTO {self._table} (key, value, expires_at)
                VALUES (:key, :value, :expires_at)
                ON CONFLICT (key) DO UPDATE SET
                    value = excluded.value,
                    expires_at = excluded.expires_at
            """,
            {"key": key, "value": value, "expires_at": time.time() + ttl},
        )

    def delete(self, key: str) -> None:
        self._execute("delete", f"DELETE FROM {self._table} WHERE key = :key", {"key": key})

    def list_keys(self) -> list[str]:
        rows = self._execute(
            "list",
            f"SELECT key FROM {self._table} WHERE expires_at > :now ORDER BY key",
            {"now": time.time()},
        )
        return [row[0] for row in rows]
