"""
SQLite durable cache store.

The evaluation core opens the database read-only; only loaders (and tests)
open it writable to create the schema and upsert entries.
"""

import json
import sqlite3
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..errors import CacheUnavailable
from ..schemas import CacheCategory, CacheEntry

logger = logging.getLogger("tirds.cache.sqlite_store")

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS cache_entries (
        key TEXT PRIMARY KEY,
        category TEXT NOT NULL,
        value_json TEXT NOT NULL,
        source TEXT NOT NULL,
        symbol TEXT,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_cache_category ON cache_entries(category)",
    "CREATE INDEX IF NOT EXISTS idx_cache_symbol ON cache_entries(symbol)",
    "CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache_entries(expires_at)",
)

_COLUMNS = "key, category, value_json, source, symbol, created_at, expires_at, updated_at"


def _parse_ts(raw: str) -> datetime:
    ts = datetime.fromisoformat(raw)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _format_ts(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _escape_like(prefix: str) -> str:
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqliteCacheStore:
    """
    Key/value access to the ``cache_entries`` table.

    One connection per thread; durable reads are issued from worker threads
    by the cache reader. Every sqlite3 failure surfaces as CacheUnavailable.
    """

    def __init__(self, db_path: str, read_only: bool = True):
        self.db_path = db_path
        self.read_only = read_only
        self._local = threading.local()
        self._conns: list[sqlite3.Connection] = []
        self._conns_lock = threading.Lock()
        self.reads = 0

    def _connect(self) -> sqlite3.Connection:
        path = Path(self.db_path)
        if self.read_only:
            if not path.exists():
                raise CacheUnavailable(f"cache database not found: {self.db_path}")
            uri = f"{path.resolve().as_uri()}?mode=ro"
            conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _get_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                conn = self._connect()
            except sqlite3.Error as e:
                raise CacheUnavailable(f"cannot open cache database {self.db_path}: {e}") from e
            self._local.conn = conn
            with self._conns_lock:
                self._conns.append(conn)
        return conn

    def _query(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        conn = self._get_connection()
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Cache read failed on {self.db_path}: {e}")
            raise CacheUnavailable(f"cache read failed: {e}") from e
        self.reads += 1
        return rows

    def _row_to_entry(self, row: sqlite3.Row) -> Optional[CacheEntry]:
        try:
            value = json.loads(row["value_json"])
            return CacheEntry(
                key=row["key"],
                category=CacheCategory(row["category"]),
                value=value,
                source=row["source"],
                symbol=row["symbol"],
                created_at=_parse_ts(row["created_at"]),
                expires_at=_parse_ts(row["expires_at"]),
                updated_at=_parse_ts(row["updated_at"]),
            )
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Skipping malformed cache row {row['key']}: {e}")
            return None

    def initialize(self) -> None:
        """Create the schema. Requires a writable store."""
        if self.read_only:
            raise CacheUnavailable("cannot initialize a read-only cache store")
        conn = self._get_connection()
        try:
            for stmt in SCHEMA_STATEMENTS:
                conn.execute(stmt)
            conn.commit()
        except sqlite3.Error as e:
            raise CacheUnavailable(f"cache schema creation failed: {e}") from e
        logger.info(f"Cache store initialized at {self.db_path}")

    def upsert(self, entry: CacheEntry) -> None:
        if self.read_only:
            raise CacheUnavailable("cannot write to a read-only cache store")
        conn = self._get_connection()
        try:
            conn.execute(
                f"""
                INSERT INTO cache_entries ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    category = excluded.category,
                    value_json = excluded.value_json,
                    source = excluded.source,
                    symbol = excluded.symbol,
                    created_at = excluded.created_at,
                    expires_at = excluded.expires_at,
                    updated_at = excluded.updated_at
                """,
                (
                    entry.key,
                    entry.category.value,
                    json.dumps(entry.value),
                    entry.source,
                    entry.symbol,
                    _format_ts(entry.created_at),
                    _format_ts(entry.expires_at),
                    _format_ts(entry.updated_at),
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise CacheUnavailable(f"cache write failed: {e}") from e

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry regardless of expiry, or None."""
        rows = self._query(f"SELECT {_COLUMNS} FROM cache_entries WHERE key = ?", (key,))
        if not rows:
            return None
        return self._row_to_entry(rows[0])

    def get_by_symbol(self, symbol: str, now: datetime) -> list[CacheEntry]:
        rows = self._query(
            f"SELECT {_COLUMNS} FROM cache_entries WHERE symbol = ? ORDER BY key", (symbol,)
        )
        return self._live(rows, now)

    def get_by_prefix(self, prefix: str, now: datetime) -> list[CacheEntry]:
        rows = self._query(
            f"SELECT {_COLUMNS} FROM cache_entries WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
            (_escape_like(prefix) + "%",),
        )
        return self._live(rows, now)

    def _live(self, rows: list[sqlite3.Row], now: datetime) -> list[CacheEntry]:
        entries = []
        for row in rows:
            entry = self._row_to_entry(row)
            if entry is not None and not entry.is_expired(now):
                entries.append(entry)
        return entries

    def close(self) -> None:
        with self._conns_lock:
            for conn in self._conns:
                conn.close()
            self._conns.clear()
        self._local = threading.local()
