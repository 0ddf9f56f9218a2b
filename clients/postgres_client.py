"""
PostgreSQL client with connection pooling for the auth tables.

Uses psycopg2 with ThreadedConnectionPool. Every execute call runs on its own
pooled connection and commits before returning, so a single statement
(including multi-step CTEs) is one atomic unit. Callers that need
match-and-replace semantics express them as one statement rather than
read-modify-write across calls, or take a row lock inside transaction()
when a statement has to see rows committed by a concurrent writer.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

# UUID adaptation is process-global in psycopg2
_uuid_registered = False


class Transaction:
    """Cursor wrapper handed out by PostgresClient.transaction()."""

    def __init__(self, cursor, convert_params: Callable[[Tuple | Dict | None], Tuple | Dict | None]):
        self._cursor = cursor
        self._convert_params = convert_params

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute within the transaction; return row dicts (empty if none)."""
        self._cursor.execute(query, self._convert_params(params))
        if not self._cursor.description:
            return []
        return [dict(row) for row in self._cursor.fetchall()]


class PostgresClient:
    """
    PostgreSQL client returning rows as plain dicts.

    Usage:
        db = PostgresClient(database_url)
        row = db.execute_single("SELECT * FROM users WHERE id = %s", (user_id,))
        rows = db.execute_returning("UPDATE users SET ... RETURNING id", (...))
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, min_connections: int = 2, max_connections: int = 20):
        self._database_url = database_url
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._min_connections,
                    maxconn=self._max_connections,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _uuid_registered
                if not _uuid_registered:
                    psycopg2.extras.register_uuid()
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _uuid_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """Borrow a pooled connection; rolls back on error, always returns it."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")
            yield conn
        except Exception:
            if conn is not None and not conn.closed:
                conn.rollback()
            raise
        finally:
            if conn:
                pool.putconn(conn)

    def _convert_params(self, params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query and commit, return list of row dicts (empty if none)."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
            conn.commit()
            return rows

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE/DELETE with RETURNING, commit, return rows."""
        return self.execute(query, params)

    @contextmanager
    def transaction(self):
        """
        Run several statements on one connection, committed together.

        Usage:
            with db.transaction() as tx:
                tx.execute("SELECT id FROM users WHERE id = %s FOR UPDATE", (user_id,))
                tx.execute("INSERT INTO refresh_tokens ...", params)

        Rolls back if the block raises.
        """
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                yield Transaction(cur, self._convert_params)
            conn.commit()

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
