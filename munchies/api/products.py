from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from munchies.core.contracts import Product
from munchies.core.errors import ConfigError, QueryFailed, UpstreamError, bad_gateway, server_error
from munchies.services.feeds import ProductFeed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fourthwall")


def get_product_feed() -> ProductFeed:
    raise RuntimeError("ProductFeed must be provided by app dependency override")


@router.get("/products", response_model=List[Product])
async def list_products(
    background: BackgroundTasks,
    category: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=250),
    refresh: bool = Query(default=False),
    feed: ProductFeed = Depends(get_product_feed),
) -> List[Product]:
    try:
        return await feed.get_products(category=category, limit=limit, refresh=refresh, background=background)
    except ConfigError as e:
        server_error("fourthwall_unconfigured", str(e))
    except UpstreamError as e:
        logger.error("fourthwall products failed: %s", e)
        bad_gateway("fourthwall_failed", "Failed to fetch products")
    except QueryFailed as e:
        logger.error("products cache refresh failed: %s", e)
        server_error("products_cache_failed", "Failed to refresh products cache")
