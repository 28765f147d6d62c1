from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence, TypeVar

from fastapi import BackgroundTasks
from fastapi.concurrency import run_in_threadpool

from munchies.core.contracts import Episode, Product
from munchies.services.content_cache import EpisodesCache, ProductsCache
from munchies.services.fourthwall import FourthwallProducts
from munchies.services.youtube import YouTubeEpisodes

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Episodes are fetched (and cached) as a full page, then sliced per request.
EPISODES_FETCH_SIZE = 50


def _populate(put: Callable[[List[T]], None], items: List[T], label: str) -> None:
    """Background cache write. Failures are logged, never raised."""
    try:
        put(items)
    except Exception as e:
        logger.error("[feeds] %s cache population failed: %s", label, e)


def _schedule(
    background: Optional[BackgroundTasks],
    put: Callable[[List[T]], None],
    items: List[T],
    label: str,
) -> None:
    if background is not None:
        background.add_task(_populate, put, items, label)
    else:
        _populate(put, items, label)


def filter_products(products: Sequence[Product], category: Optional[str], limit: int) -> List[Product]:
    out = list(products)
    if category and category != "All":
        out = [p for p in out if p.category == category]
    return out[: max(0, int(limit))]


class ProductFeed:
    def __init__(self, *, adapter: FourthwallProducts, cache: ProductsCache):
        self.adapter = adapter
        self.cache = cache

    async def get_products(
        self,
        *,
        category: Optional[str] = None,
        limit: int = 50,
        refresh: bool = False,
        background: Optional[BackgroundTasks] = None,
    ) -> List[Product]:
        if refresh:
            logger.info("[feeds] products refresh requested")
            products = await self.cache.force_refresh(self.adapter.fetch_products)
            return filter_products(products, category, limit)

        cached = await run_in_threadpool(self.cache.get)
        if cached is not None:
            logger.info("[feeds] products served from cache (%d)", len(cached))
            return filter_products(cached, category, limit)

        products = await self.adapter.fetch_products()
        _schedule(background, self.cache.put, products, "products")
        return filter_products(products, category, limit)


class EpisodeFeed:
    def __init__(self, *, adapter: YouTubeEpisodes, cache: EpisodesCache):
        self.adapter = adapter
        self.cache = cache

    async def get_episodes(
        self,
        *,
        limit: int = 10,
        background: Optional[BackgroundTasks] = None,
    ) -> List[Episode]:
        n = max(1, int(limit))

        cached = await run_in_threadpool(self.cache.get)
        if cached is not None:
            logger.info("[feeds] episodes served from cache (%d)", len(cached))
            return cached[:n]

        episodes = await self.adapter.fetch_episodes(max(n, EPISODES_FETCH_SIZE))
        _schedule(background, self.cache.put, episodes, "episodes")
        return episodes[:n]
