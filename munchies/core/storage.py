from __future__ import annotations

import sqlite3
from pathlib import Path


# ──────────────────────────────────────────────────────────────
# Connections
# ──────────────────────────────────────────────────────────────

def connect_sqlite(path: str, *, busy_timeout_ms: int = 5000) -> sqlite3.Connection:
    """
    Read/write connection for the cache DB or the local places DB.

    Shared across FastAPI's threadpool, so check_same_thread is off.
    The parent directory is created here; WAL needs it writable for -wal/-shm.
    """
    in_memory = path == ":memory:"
    if not in_memory:
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, check_same_thread=False)
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)};")
    if not in_memory:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


# ──────────────────────────────────────────────────────────────
# Schema
# ──────────────────────────────────────────────────────────────

def ensure_schema(conn: sqlite3.Connection) -> None:
    # Fourthwall products, one row per product
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS products_cache (
            product_id TEXT PRIMARY KEY,
            product_json BLOB NOT NULL,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL
        );
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_products_cache_expires ON products_cache(expires_at);")

    # YouTube episodes, one row per batch
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS episodes_cache (
            cache_key TEXT PRIMARY KEY,
            episodes_json BLOB NOT NULL,
            episode_count INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL
        );
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_episodes_cache_expires ON episodes_cache(expires_at);")

    conn.commit()
