from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from munchies.core.settings import Settings
from munchies.core.time import utc_now_iso

router = APIRouter()


def get_settings() -> Settings:
    raise RuntimeError("Settings must be provided by app dependency override")


def _flag(v: Any) -> str:
    return "Set" if v else "Missing"


@router.get("/health")
def health(cfg: Settings = Depends(get_settings)) -> Dict[str, Any]:
    return {
        "status": "OK",
        "timestamp": utc_now_iso(),
        "environment": {
            "placesBackend": cfg.places_backend,
            "supabaseUrl": _flag(cfg.supabase_url),
            "supabaseAnonKey": _flag(cfg.supabase_anon_key),
            "serviceRoleKey": _flag(cfg.supabase_service_role_key),
            "fourthwallToken": _flag(cfg.fw_storefront_token),
            "fourthwallWebhookSecret": _flag(cfg.fw_webhook_secret),
            "youtubeRss": _flag(cfg.youtube_rss_url),
            "ingestKey": _flag(cfg.ingest_api_key),
        },
    }
