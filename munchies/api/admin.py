from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from munchies.api.auth import require_ingest_key
from munchies.core.contracts import DashboardStats, ImportResult, Place, PlaceUpsert
from munchies.core.errors import bad_request, not_found, server_error, service_unavailable
from munchies.services.importer import import_csv
from munchies.services.places import PlacesService
from munchies.services.snapshot import PlacesSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_ingest_key)])


def get_places_service() -> PlacesService:
    raise RuntimeError("PlacesService must be provided by app dependency override")


def get_snapshot() -> PlacesSnapshot:
    raise RuntimeError("PlacesSnapshot must be provided by app dependency override")


@router.get("/stats", response_model=DashboardStats)
def dashboard_stats(places: PlacesService = Depends(get_places_service)) -> DashboardStats:
    res = places.get_dashboard_stats()
    if res.is_error:
        service_unavailable("stats_failed", res.reason or "stats failed")
    return res.data


@router.put("/places", response_model=Place)
def upsert_place(
    req: PlaceUpsert,
    places: PlacesService = Depends(get_places_service),
    snapshot: PlacesSnapshot = Depends(get_snapshot),
) -> Place:
    res = places.upsert_place(req)
    if not res.is_ok:
        server_error("upsert_failed", res.reason or "Failed to save place")
    snapshot.invalidate()
    return res.data


@router.delete("/places/{place_id}")
def delete_place(
    place_id: str,
    places: PlacesService = Depends(get_places_service),
    snapshot: PlacesSnapshot = Depends(get_snapshot),
) -> Dict[str, Any]:
    res = places.delete_place(place_id)
    if res.is_error:
        server_error("delete_failed", res.reason or "Failed to delete place")
    if not res.data:
        not_found("place_missing", f"no place with id {place_id}")
    snapshot.invalidate()
    return {"success": True, "id": place_id}


@router.post("/import", response_model=ImportResult)
async def import_places(
    request: Request,
    places: PlacesService = Depends(get_places_service),
    snapshot: PlacesSnapshot = Depends(get_snapshot),
) -> ImportResult:
    raw = await request.body()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        bad_request("bad_csv", "CSV body must be UTF-8")
    if not text.strip():
        bad_request("bad_csv", "CSV body is empty")

    result = await run_in_threadpool(import_csv, places, text)
    if result.imported:
        snapshot.invalidate()
    return result
