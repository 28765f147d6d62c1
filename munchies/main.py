# munchies/main.py
from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

# Load <repo>/.env (main.py is <repo>/munchies/main.py)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

from munchies.core.settings import Settings, settings as default_settings
from munchies.core.storage import connect_sqlite, ensure_schema
from munchies.core.places_db import PlacesDB, create_places_db
from munchies.api import api_router

from munchies.services.places import PlacesService
from munchies.services.snapshot import PlacesSnapshot
from munchies.services.content_cache import EpisodesCache, ProductsCache
from munchies.services.fourthwall import FourthwallProducts
from munchies.services.youtube import YouTubeEpisodes
from munchies.services.feeds import EpisodeFeed, ProductFeed
from munchies.services.webhooks import FourthwallWebhooks

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
    logging.getLogger("httpx").setLevel(logging.INFO)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# ──────────────────────────────────────────────────────────────
# Resources (built once per process, closed at shutdown)
# ──────────────────────────────────────────────────────────────

@dataclass
class AppResources:
    settings: Settings
    places_db: PlacesDB
    cache_conn: sqlite3.Connection
    http: httpx.AsyncClient
    places: PlacesService
    snapshot: PlacesSnapshot
    products_cache: ProductsCache
    episodes_cache: EpisodesCache
    product_feed: ProductFeed
    episode_feed: EpisodeFeed
    webhooks: FourthwallWebhooks

    async def aclose(self) -> None:
        logger.info("[app] Shutting down, closing connections")
        try:
            self.places_db.close()
        except Exception as e:
            logger.warning("[app] Error closing places DB: %s", e)
        try:
            self.cache_conn.close()
        except sqlite3.Error as e:
            logger.warning("[app] Error closing cache DB: %s", e)
        await self.http.aclose()


def build_resources(
    cfg: Settings,
    *,
    places_db: Optional[PlacesDB] = None,
    cache_conn: Optional[sqlite3.Connection] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> AppResources:
    # Cache DB (rw): SQLite, local to the instance
    if cache_conn is None:
        cache_conn = connect_sqlite(cfg.cache_db_path)
    ensure_schema(cache_conn)

    # Places: Supabase in production, SQLite for local dev
    if places_db is None:
        places_db = create_places_db(
            backend=cfg.places_backend,
            sqlite_conn=connect_sqlite(cfg.places_db_path) if cfg.places_backend == "sqlite" else None,
            supabase_url=cfg.supabase_url,
            supabase_anon_key=cfg.supabase_anon_key,
            supabase_service_role_key=cfg.supabase_service_role_key,
            timeout_s=cfg.supabase_timeout_s,
        )

    # One outbound client for Fourthwall + YouTube
    if http is None:
        http = httpx.AsyncClient(
            timeout=httpx.Timeout(cfg.http_timeout_s, connect=cfg.http_connect_timeout_s),
            follow_redirects=True,
            transport=httpx.AsyncHTTPTransport(retries=1),
        )

    places = PlacesService(db=places_db)
    products_cache = ProductsCache(conn=cache_conn, ttl_s=cfg.products_cache_ttl_s)
    episodes_cache = EpisodesCache(conn=cache_conn, ttl_s=cfg.episodes_cache_ttl_s)

    fourthwall = FourthwallProducts(
        client=http,
        shop_url=cfg.fw_shop_url,
        storefront_api_url=cfg.fw_storefront_api_url,
        storefront_token=cfg.fw_storefront_token,
        collection_slug=cfg.fw_collection_slug,
        currency=cfg.fw_currency,
        user_agent=cfg.http_user_agent,
    )
    youtube = YouTubeEpisodes(client=http, rss_url=cfg.youtube_rss_url, user_agent=cfg.http_user_agent)

    return AppResources(
        settings=cfg,
        places_db=places_db,
        cache_conn=cache_conn,
        http=http,
        places=places,
        snapshot=PlacesSnapshot(service=places, ttl_s=cfg.snapshot_ttl_s),
        products_cache=products_cache,
        episodes_cache=episodes_cache,
        product_feed=ProductFeed(adapter=fourthwall, cache=products_cache),
        episode_feed=EpisodeFeed(adapter=youtube, cache=episodes_cache),
        webhooks=FourthwallWebhooks(secret=cfg.fw_webhook_secret, products_cache=products_cache),
    )


# ──────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────

def create_app(settings: Optional[Settings] = None, resources: Optional[AppResources] = None) -> FastAPI:
    """
    resources=None → built in the lifespan handler and closed at shutdown.
    Prebuilt resources (tests) are used as-is and left to the caller to close.
    """
    cfg = settings or (resources.settings if resources else default_settings)
    configure_logging(cfg.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if resources is not None:
            yield
            return
        res = build_resources(cfg)
        app.state.resources = res
        logger.info("[app] Ready (places backend: %s)", cfg.places_backend)
        try:
            yield
        finally:
            await res.aclose()

    app = FastAPI(title="Michigan Munchies Backend", version="1.0.0", lifespan=lifespan)
    if resources is not None:
        app.state.resources = resources

    # ── Compression (must be added before CORS) ──
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origin_list(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ──────────────────────────────────────────────────────────
    # Dependency providers
    # ──────────────────────────────────────────────────────────

    def _res() -> AppResources:
        return app.state.resources

    def provide_settings() -> Settings:
        return cfg

    def provide_ingest_key() -> str | None:
        return cfg.ingest_api_key

    def provide_places_service() -> PlacesService:
        return _res().places

    def provide_snapshot() -> PlacesSnapshot:
        return _res().snapshot

    def provide_product_feed() -> ProductFeed:
        return _res().product_feed

    def provide_episode_feed() -> EpisodeFeed:
        return _res().episode_feed

    def provide_products_cache() -> ProductsCache:
        return _res().products_cache

    def provide_episodes_cache() -> EpisodesCache:
        return _res().episodes_cache

    def provide_webhooks() -> FourthwallWebhooks:
        return _res().webhooks

    # ──────────────────────────────────────────────────────────
    # Dependency overrides
    # ──────────────────────────────────────────────────────────

    from munchies.api import admin as admin_api
    from munchies.api import auth as auth_api
    from munchies.api import cache as cache_api
    from munchies.api import episodes as episodes_api
    from munchies.api import health as health_api
    from munchies.api import ingest as ingest_api
    from munchies.api import places as places_api
    from munchies.api import products as products_api
    from munchies.api import webhook as webhook_api

    # Config
    app.dependency_overrides[health_api.get_settings] = provide_settings
    app.dependency_overrides[auth_api.get_ingest_key] = provide_ingest_key

    # Places
    app.dependency_overrides[places_api.get_places_service] = provide_places_service
    app.dependency_overrides[ingest_api.get_places_service] = provide_places_service
    app.dependency_overrides[admin_api.get_places_service] = provide_places_service

    # Snapshot
    app.dependency_overrides[places_api.get_snapshot] = provide_snapshot
    app.dependency_overrides[ingest_api.get_snapshot] = provide_snapshot
    app.dependency_overrides[admin_api.get_snapshot] = provide_snapshot

    # Feeds + caches
    app.dependency_overrides[products_api.get_product_feed] = provide_product_feed
    app.dependency_overrides[episodes_api.get_episode_feed] = provide_episode_feed
    app.dependency_overrides[cache_api.get_products_cache] = provide_products_cache
    app.dependency_overrides[cache_api.get_episodes_cache] = provide_episodes_cache

    # Webhook
    app.dependency_overrides[webhook_api.get_webhooks] = provide_webhooks

    # Routes
    app.include_router(api_router)

    return app


app = create_app()
