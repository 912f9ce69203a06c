import sqlite3
import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Protocol

from . import config

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Minimal persistence contract: JSON-serialisable values under string keys."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store. Values are round-tripped through JSON like SQLiteStore."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        return default if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class ConnectionPool:
    """
    One SQLite connection per thread, with nested transaction tracking.

    SQLite connections must not be shared across threads, so each thread gets
    its own; `get_db()` uses the per-thread depth to make only the outermost
    context commit or roll back.
    """

    def __init__(self, db_path):
        self._db_path = db_path
        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}
        self._transaction_depth: dict[int, int] = {}

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    def get_connection(self) -> sqlite3.Connection:
        thread_id = threading.get_ident()
        with self._lock:
            conn = self._connections.get(thread_id)
            if conn is None:
                conn = self._create_connection()
                self._connections[thread_id] = conn
                self._transaction_depth[thread_id] = 0
                logger.debug(f"Created connection for thread {thread_id} (pool size: {len(self._connections)})")
            return conn

    def get_transaction_depth(self) -> int:
        return self._transaction_depth.get(threading.get_ident(), 0)

    def increment_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            self._transaction_depth[thread_id] = self._transaction_depth.get(thread_id, 0) + 1

    def decrement_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            depth = self._transaction_depth.get(thread_id, 1)
            self._transaction_depth[thread_id] = max(0, depth - 1)

    def close_all(self):
        """Close all connections (call on application shutdown)."""
        with self._lock:
            for thread_id, conn in list(self._connections.items()):
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection for thread {thread_id}: {e}")

            self._connections.clear()
            self._transaction_depth.clear()
            logger.debug("Connection pool closed")


# Global pool instance
_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> ConnectionPool:
    """Get or create the global connection pool."""
    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                config.DB_PATH.parent.mkdir(exist_ok=True, parents=True)
                _pool = ConnectionPool(config.DB_PATH)
    return _pool


@contextmanager
def get_db(read_only: bool = False):
    """
    Get database connection with proper transaction handling.

    Args:
        read_only: If True, skip commit on exit (optimization for read operations)

    Handles nested calls correctly:
    - Only the outermost context commits/rollbacks
    - Inner contexts are no-ops for transaction control
    """
    pool = _get_pool()
    conn = pool.get_connection()

    is_outermost = pool.get_transaction_depth() == 0
    pool.increment_transaction_depth()

    try:
        yield conn

        if is_outermost and not read_only:
            conn.commit()

    except Exception:
        if is_outermost:
            conn.rollback()
        raise

    finally:
        pool.decrement_transaction_depth()


def init_db() -> None:
    config.DB_PATH.parent.mkdir(exist_ok=True, parents=True)
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,     -- JSON
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_kv_updated ON kv_store(updated_at);
        """)


def close_pool():
    """Close the connection pool. Call on application shutdown."""
    global _pool
    if _pool is not None:
        _pool.close_all()
        _pool = None


def load_json(val, default: Any = None):
    """Safely load JSON from db field."""
    if not val:
        return default
    try:
        return json.loads(val)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON '{str(val)[:50]}...': {e}")
        return default


class SQLiteStore:
    """KeyValueStore over the pooled `kv_store` table."""

    def __init__(self, ensure_schema: bool = True):
        if ensure_schema:
            init_db()

    def get(self, key: str, default: Any = None) -> Any:
        with get_db(read_only=True) as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return load_json(row['value'], default)

    def set(self, key: str, value: Any) -> None:
        with get_db() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), datetime.now().isoformat()),
            )

    def delete(self, key: str) -> None:
        with get_db() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self, prefix: str = "") -> list[str]:
        with get_db(read_only=True) as conn:
            rows = conn.execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (_escape_like(prefix) + "%",),
            ).fetchall()
        return [row['key'] for row in rows]


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
