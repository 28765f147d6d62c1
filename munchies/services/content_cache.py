from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

import orjson
from fastapi.concurrency import run_in_threadpool

from munchies.core.contracts import CacheStats, Episode, Product
from munchies.core.errors import QueryFailed
from munchies.core.time import expires_at_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

EPISODES_CACHE_KEY = "youtube_episodes"


class _ExpiringCache:
    """
    Rows carry created_at / expires_at as fixed-width UTC ISO strings, so the
    validity check (expires_at > now) runs in SQL as a text comparison.
    """

    table: str = ""

    def __init__(self, *, conn: sqlite3.Connection, ttl_s: int, clock: Clock = utc_now):
        self.conn = conn
        self.ttl_s = int(ttl_s)
        self._clock = clock

    def _now_iso(self) -> str:
        return to_iso(self._clock())

    def _expires_iso(self) -> str:
        return expires_at_iso(self._clock(), self.ttl_s)

    def clear_expired(self) -> int:
        try:
            cur = self.conn.execute(f"DELETE FROM {self.table} WHERE expires_at <= ?;", (self._now_iso(),))
            self.conn.commit()
        except sqlite3.Error as e:
            raise QueryFailed(f"{self.table}_clear_expired_failed: {e}") from e
        n = cur.rowcount or 0
        if n:
            logger.info("[cache] %s cleared %d expired rows", self.table, n)
        return n

    def clear_all(self) -> int:
        try:
            cur = self.conn.execute(f"DELETE FROM {self.table};")
            self.conn.commit()
        except sqlite3.Error as e:
            raise QueryFailed(f"{self.table}_clear_failed: {e}") from e
        logger.info("[cache] %s cleared", self.table)
        return cur.rowcount or 0

    def _base_stats(self) -> CacheStats:
        now = self._now_iso()
        try:
            valid, expired, oldest, newest = self.conn.execute(
                f"""
                SELECT
                  COALESCE(SUM(expires_at > ?), 0),
                  COALESCE(SUM(expires_at <= ?), 0),
                  MIN(created_at),
                  MAX(created_at)
                FROM {self.table};
                """,
                (now, now),
            ).fetchone()
        except sqlite3.Error as e:
            raise QueryFailed(f"{self.table}_stats_failed: {e}") from e
        return CacheStats(
            validCached=int(valid),
            expiredCached=int(expired),
            oldestCache=oldest,
            newestCache=newest,
        )


# ──────────────────────────────────────────────────────────────
# Products: one row per product
# ──────────────────────────────────────────────────────────────

class ProductsCache(_ExpiringCache):
    table = "products_cache"

    def get(self) -> Optional[List[Product]]:
        try:
            rows = self.conn.execute(
                "SELECT product_json FROM products_cache WHERE expires_at > ? ORDER BY created_at DESC, rowid ASC;",
                (self._now_iso(),),
            ).fetchall()
        except sqlite3.Error as e:
            logger.error("[cache] products read failed, treating as miss: %s", e)
            return None
        if not rows:
            return None
        return [Product.model_validate(orjson.loads(r[0])) for r in rows]

    def put(self, products: List[Product]) -> None:
        self.clear_expired()
        now = self._now_iso()
        expires = self._expires_iso()
        try:
            self.conn.executemany(
                """
                INSERT INTO products_cache (product_id, product_json, created_at, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(product_id) DO UPDATE SET
                  product_json=excluded.product_json,
                  created_at=excluded.created_at,
                  expires_at=excluded.expires_at;
                """,
                [(p.id, orjson.dumps(p.model_dump()), now, expires) for p in products],
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise QueryFailed(f"products_cache_put_failed: {e}") from e
        logger.info("[cache] products cached=%d expires_at=%s", len(products), expires)

    def stats(self) -> CacheStats:
        s = self._base_stats()
        s.itemsCached = s.validCached
        return s

    async def force_refresh(self, fetch: Callable[[], Awaitable[List[Product]]]) -> List[Product]:
        """Drop every row, fetch live, cache the result. Cache I/O runs in the threadpool."""
        await run_in_threadpool(self.clear_all)
        products = await fetch()
        await run_in_threadpool(self.put, products)
        return products


# ──────────────────────────────────────────────────────────────
# Episodes: one row per batch
# ──────────────────────────────────────────────────────────────

class EpisodesCache(_ExpiringCache):
    table = "episodes_cache"

    def get(self) -> Optional[List[Episode]]:
        try:
            row = self.conn.execute(
                """
                SELECT episodes_json FROM episodes_cache
                WHERE cache_key = ? AND expires_at > ?
                ORDER BY created_at DESC LIMIT 1;
                """,
                (EPISODES_CACHE_KEY, self._now_iso()),
            ).fetchone()
        except sqlite3.Error as e:
            logger.error("[cache] episodes read failed, treating as miss: %s", e)
            return None
        if not row:
            return None
        return [Episode.model_validate(e) for e in orjson.loads(row[0])]

    def put(self, episodes: List[Episode]) -> None:
        now = self._now_iso()
        expires = self._expires_iso()
        try:
            self.conn.execute("DELETE FROM episodes_cache;")
            self.conn.execute(
                """
                INSERT INTO episodes_cache (cache_key, episodes_json, episode_count, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    EPISODES_CACHE_KEY,
                    orjson.dumps([e.model_dump() for e in episodes]),
                    len(episodes),
                    now,
                    expires,
                ),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise QueryFailed(f"episodes_cache_put_failed: {e}") from e
        logger.info("[cache] episodes cached=%d expires_at=%s", len(episodes), expires)

    def stats(self) -> CacheStats:
        s = self._base_stats()
        try:
            row = self.conn.execute(
                "SELECT episode_count FROM episodes_cache WHERE expires_at > ? ORDER BY created_at DESC LIMIT 1;",
                (self._now_iso(),),
            ).fetchone()
        except sqlite3.Error as e:
            raise QueryFailed(f"episodes_cache_stats_failed: {e}") from e
        s.itemsCached = int(row[0]) if row else 0
        return s
