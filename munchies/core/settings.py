from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore", populate_by_name=True)

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS (comma-separated)
    cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="CORS_ORIGINS",
    )

    # Places store: SQLite for local dev/tests, Supabase (PostgREST + RPC) in production
    places_backend: Literal["sqlite", "supabase"] = Field(default="sqlite", alias="PLACES_BACKEND")
    places_db_path: str = Field(default="data/munchies_places.db", alias="PLACES_DB_PATH")

    # Cache DB (rw): SQLite, local to the instance
    cache_db_path: str = Field(default="data/munchies_cache.db", alias="CACHE_DB_PATH")

    # Supabase
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_anon_key: str | None = Field(default=None, alias="SUPABASE_ANON_KEY")
    supabase_service_role_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_ROLE_KEY")
    supabase_timeout_s: float = Field(default=20.0, alias="SUPABASE_TIMEOUT_S")

    # Shared secret for /ingest and /admin
    ingest_api_key: str | None = Field(default=None, alias="INGEST_API_KEY")

    # ──────────────────────────────────────────────────────────────
    # Fourthwall (merch)
    # ──────────────────────────────────────────────────────────────
    fw_shop_url: str = Field(default="https://shop.fourthwall.com", alias="FW_SHOP_URL")
    fw_storefront_token: str | None = Field(default=None, alias="FW_STOREFRONT_TOKEN")
    fw_storefront_api_url: str = Field(
        default="https://storefront-api.fourthwall.com",
        alias="FW_STOREFRONT_API_URL",
    )
    fw_collection_slug: str = Field(default="all", alias="FW_COLLECTION_SLUG")
    fw_currency: str = Field(default="USD", alias="FW_CURRENCY")
    fw_webhook_secret: str | None = Field(default=None, alias="FW_WEBHOOK_SECRET")

    # ──────────────────────────────────────────────────────────────
    # YouTube (episodes)
    # ──────────────────────────────────────────────────────────────
    youtube_rss_url: str | None = Field(default=None, alias="YOUTUBE_RSS_URL")

    # Outbound HTTP
    http_timeout_s: float = Field(default=10.0, alias="HTTP_TIMEOUT_S")
    http_connect_timeout_s: float = Field(default=5.0, alias="HTTP_CONNECT_TIMEOUT_S")
    http_user_agent: str = Field(default="munchies/1.0", alias="HTTP_USER_AGENT")

    # Cache TTLs
    products_cache_ttl_s: int = Field(default=60 * 60, alias="PRODUCTS_CACHE_TTL_S")  # 1h
    episodes_cache_ttl_s: int = Field(default=60 * 60 * 6, alias="EPISODES_CACHE_TTL_S")  # 6h
    snapshot_ttl_s: int = Field(default=60 * 60 * 2, alias="SNAPSHOT_TTL_S")  # 2h

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
