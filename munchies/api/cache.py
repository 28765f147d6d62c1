from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from munchies.core.contracts import CacheClearResponse, CacheStatsResponse, CacheType
from munchies.core.errors import QueryFailed, server_error
from munchies.services.content_cache import EpisodesCache, ProductsCache

router = APIRouter(prefix="/cache")


def get_products_cache() -> ProductsCache:
    raise RuntimeError("ProductsCache must be provided by app dependency override")


def get_episodes_cache() -> EpisodesCache:
    raise RuntimeError("EpisodesCache must be provided by app dependency override")


@router.post("/clear", response_model=CacheClearResponse)
def clear_cache(
    cache_type: CacheType = Query(default="products", alias="type"),
    products: ProductsCache = Depends(get_products_cache),
    episodes: EpisodesCache = Depends(get_episodes_cache),
) -> CacheClearResponse:
    cleared: list[str] = []
    try:
        if cache_type in ("products", "all"):
            products.clear_all()
            cleared.append("products")
        if cache_type in ("episodes", "all"):
            episodes.clear_all()
            cleared.append("episodes")
    except QueryFailed as e:
        server_error("cache_clear_failed", str(e))

    return CacheClearResponse(
        success=True,
        cleared=cleared,
        message=f"{' and '.join(c.capitalize() for c in cleared)} cache cleared successfully",
    )


@router.get("/stats", response_model=CacheStatsResponse)
def cache_stats(
    products: ProductsCache = Depends(get_products_cache),
    episodes: EpisodesCache = Depends(get_episodes_cache),
) -> CacheStatsResponse:
    try:
        return CacheStatsResponse(products=products.stats(), episodes=episodes.stats())
    except QueryFailed as e:
        server_error("cache_stats_failed", str(e))
