from __future__ import annotations

from fastapi import APIRouter

from .health import router as health_router
from .places import router as places_router
from .ingest import router as ingest_router
from .admin import router as admin_router
from .products import router as products_router
from .episodes import router as episodes_router
from .cache import router as cache_router
from .webhook import router as webhook_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(places_router)
api_router.include_router(ingest_router)
api_router.include_router(admin_router)
api_router.include_router(products_router)
api_router.include_router(episodes_router)
api_router.include_router(cache_router)
api_router.include_router(webhook_router)
