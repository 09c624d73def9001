from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator

from fastapi import HTTPException
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .errors import ConfigurationError

_logger = logging.getLogger(__name__)


class Database:
    """
    Thin wrapper over a psycopg connection pool.

    Constructed explicitly and owned by whoever opens it (the API lifespan or a CLI);
    there is no process-wide pool.
    """

    def __init__(self, dsn: str, *, max_size: int = 6) -> None:
        if not dsn:
            raise ConfigurationError("COUNCIL_DB_DSN not configured")
        self._dsn = dsn
        self._max_size = max(1, min(int(max_size), 32))
        self._pool: ConnectionPool | None = None

    @classmethod
    def from_env(cls) -> "Database | None":
        dsn = os.environ.get("COUNCIL_DB_DSN")
        if not dsn:
            return None
        return cls(dsn, max_size=int(os.environ.get("COUNCIL_DB_POOL_MAX", "6")))

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self) -> None:
        if self._pool is not None:
            return
        pool = ConnectionPool(
            conninfo=self._dsn,
            min_size=1,
            max_size=self._max_size,
            open=False,
            kwargs={"autocommit": True},
        )
        try:
            pool.open()
        except Exception:
            try:
                pool.close()
            except Exception:
                _logger.debug("Failed to close DB pool after init failure.", exc_info=True)
            raise
        self._pool = pool

    def close(self) -> None:
        if self._pool is None:
            return
        self._pool.close()
        self._pool = None

    def __enter__(self) -> "Database":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _pool_or_503(self) -> ConnectionPool:
        if self._pool is None:
            raise HTTPException(
                status_code=503,
                detail="Database is not ready (check Postgres and COUNCIL_DB_DSN).",
            )
        return self._pool

    def fetch_one(self, sql: str, params: tuple[Any, ...] = ()) -> dict[str, Any] | None:
        pool = self._pool_or_503()
        with pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
                return dict(row) if row else None

    def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        pool = self._pool_or_503()
        with pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(sql, params)
                return [dict(r) for r in cur.fetchall()]

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Executes a statement and returns the affected row count."""
        pool = self._pool_or_503()
        with pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.rowcount

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """
        Yields a dict-row cursor inside a single transaction.

        The transaction commits when the block exits cleanly and rolls back otherwise.
        """
        pool = self._pool_or_503()
        with pool.connection() as conn:
            with conn.transaction():
                with conn.cursor(row_factory=dict_row) as cur:
                    yield cur

    def ping(self) -> bool:
        """
        Best-effort DB connectivity check.

        Returns `True` when the DB is reachable and can execute a trivial query.
        """
        if self._pool is None:
            return False
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
            return True
        except Exception:
            _logger.debug("DB ping failed.", exc_info=True)
            return False
