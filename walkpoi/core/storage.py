from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


# ──────────────────────────────────────────────────────────────
# Connections
# ──────────────────────────────────────────────────────────────

def connect_sqlite(path: str) -> sqlite3.Connection:
    """
    Open a RW SQLite connection with sane pragmas.

    IMPORTANT:
    - SQLite will NOT create parent directories.
    - WAL mode requires the directory to be writable (creates -wal/-shm).
    """
    if path != ":memory:":
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)

    # isolation_level=None: we issue BEGIN/COMMIT ourselves in CacheDB.transaction
    conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


class CacheDB:
    """
    The shared cache connection.

    One sqlite3 connection is shared by request threads and refill workers;
    sqlite3 connections are not safe for interleaved use, so every statement
    and every transaction runs under `lock`. Transactions are the unit of
    atomicity: nothing written inside one is visible until COMMIT.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.lock = threading.RLock()

    @classmethod
    def open(cls, path: str) -> "CacheDB":
        db = cls(connect_sqlite(path))
        ensure_schema(db)
        return db

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        with self.lock:
            yield self.conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self.lock:
            if self.conn.in_transaction:
                # nested: the outer transaction owns COMMIT/ROLLBACK
                yield self.conn
                return
            self.conn.execute("BEGIN IMMEDIATE;")
            try:
                yield self.conn
            except BaseException:
                self.conn.execute("ROLLBACK;")
                raise
            else:
                self.conn.execute("COMMIT;")

    def close(self) -> None:
        with self.lock:
            self.conn.close()


# ──────────────────────────────────────────────────────────────
# Schema
# ──────────────────────────────────────────────────────────────

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS poi_cache (
  poi_id     TEXT PRIMARY KEY,      -- provider-qualified: 'overpass:node:123'
  provider   TEXT NOT NULL,
  name       TEXT NOT NULL,
  category   TEXT NOT NULL,         -- configured category ('restaurants')
  kind       TEXT,                  -- matched provider tag value ('cafe')
  lat        REAL NOT NULL,
  lng        REAL NOT NULL,
  tags_json  BLOB NOT NULL,         -- orjson dump of provider tags
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_poi_cache_cat_updated ON poi_cache(category, updated_at);
CREATE INDEX IF NOT EXISTS idx_poi_cache_lat ON poi_cache(lat);
CREATE INDEX IF NOT EXISTS idx_poi_cache_lng ON poi_cache(lng);

CREATE TABLE IF NOT EXISTS cache_coverage (
  id        INTEGER PRIMARY KEY AUTOINCREMENT,
  category  TEXT NOT NULL,
  minLng    REAL NOT NULL,
  minLat    REAL NOT NULL,
  maxLng    REAL NOT NULL,
  maxLat    REAL NOT NULL,
  geom_wkb  BLOB NOT NULL,          -- queried footprint, lng/lat (EPSG:4326)
  poi_count INTEGER NOT NULL,
  cached_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_cache_coverage_cat_cached ON cache_coverage(category, cached_at);
"""


def ensure_schema(db: CacheDB) -> None:
    with db.lock:
        db.conn.executescript(_SCHEMA_SQL)
