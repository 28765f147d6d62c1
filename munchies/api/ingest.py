from __future__ import annotations

import logging
from typing import Any, Dict

import orjson
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from munchies.api.auth import require_ingest_key
from munchies.core.contracts import IngestResponse, PlaceUpsert
from munchies.core.errors import bad_request, server_error
from munchies.services.places import PlacesService
from munchies.services.snapshot import PlacesSnapshot

logger = logging.getLogger(__name__)

router = APIRouter()

REQUIRED_FIELDS = ("name", "location")


def get_places_service() -> PlacesService:
    raise RuntimeError("PlacesService must be provided by app dependency override")


def get_snapshot() -> PlacesSnapshot:
    raise RuntimeError("PlacesSnapshot must be provided by app dependency override")


def build_upsert(body: Dict[str, Any]) -> PlaceUpsert:
    """
    Ingest payload → PlaceUpsert. Falsy optional values fall back to the
    model defaults (state MI, price_level 2, status published, ...).
    location may be GeoJSON or {lng, lat}.
    """
    data = {k: v for k, v in body.items() if v not in (None, "", [], {}) and v is not False}
    data.pop("created_at", None)
    data.pop("updated_at", None)
    if data.get("price_level") == 0:
        data.pop("price_level")
    return PlaceUpsert.model_validate(data)


@router.post("/ingest", response_model=IngestResponse, dependencies=[Depends(require_ingest_key)])
async def ingest_place(
    request: Request,
    places: PlacesService = Depends(get_places_service),
    snapshot: PlacesSnapshot = Depends(get_snapshot),
) -> IngestResponse:
    raw = await request.body()
    try:
        body = orjson.loads(raw or b"null")
    except orjson.JSONDecodeError:
        bad_request("bad_json", "Request body must be JSON")

    if not isinstance(body, dict):
        bad_request("bad_ingest_request", "Request body must be a JSON object")

    missing = [f for f in REQUIRED_FIELDS if not body.get(f)]
    if missing:
        bad_request("missing_fields", f"Missing required fields: {', '.join(missing)}")

    try:
        upsert = build_upsert(body)
    except ValidationError as e:
        bad_request("bad_ingest_request", "; ".join(err["msg"] for err in e.errors()))

    res = await run_in_threadpool(places.upsert_place, upsert)
    if not res.is_ok:
        server_error("ingest_failed", "Failed to save place")

    snapshot.invalidate()
    logger.info("ingest ok slug=%s", res.data.slug)
    return IngestResponse(success=True, data=res.data)
