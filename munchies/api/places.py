from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from munchies.core.contracts import MapFilters, NearbyPlacesResponse, Place, PlacesResponse
from munchies.core.errors import InvalidBoundsError, QueryFailed, bad_request, not_found, service_unavailable
from munchies.core.result import QueryResult
from munchies.services.places import DEFAULT_BOUNDS_LIMIT, DEFAULT_SEARCH_LIMIT, PlacesService
from munchies.services.snapshot import PlacesSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/places")


def get_places_service() -> PlacesService:
    raise RuntimeError("PlacesService must be provided by app dependency override")


def get_snapshot() -> PlacesSnapshot:
    raise RuntimeError("PlacesSnapshot must be provided by app dependency override")


# ──────────────────────────────────────────────────────────────
# Param helpers
# ──────────────────────────────────────────────────────────────

def _csv_list(raw: Optional[str]) -> List[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


def _parse_bbox(raw: str) -> tuple[float, float, float, float]:
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 4:
        bad_request("bad_bbox", "bbox must be minLng,minLat,maxLng,maxLat")
    try:
        min_lng, min_lat, max_lng, max_lat = (float(p) for p in parts)
    except ValueError:
        bad_request("bad_bbox", f"bbox values must be numbers: {raw}")
    return min_lng, min_lat, max_lng, max_lat


def _rows_or_503(res: QueryResult, what: str):
    if res.is_error:
        service_unavailable("places_query_failed", f"{what} failed: {res.reason}")
    return res.unwrap_or([])


# ──────────────────────────────────────────────────────────────
# GET /places  (bbox map query or search)
# ──────────────────────────────────────────────────────────────

@router.get("", response_model=PlacesResponse)
def list_places(
    bbox: Optional[str] = Query(default=None, description="minLng,minLat,maxLng,maxLat"),
    search: Optional[str] = Query(default=None),
    counties: Optional[str] = Query(default=None),
    cuisines: Optional[str] = Query(default=None),
    tags: Optional[str] = Query(default=None),
    priceMin: int = Query(default=1),
    priceMax: int = Query(default=4),
    minRating: float = Query(default=0.0),
    featured: bool = Query(default=False),
    verified: bool = Query(default=False),
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    places: PlacesService = Depends(get_places_service),
) -> PlacesResponse:
    if bbox:
        min_lng, min_lat, max_lng, max_lat = _parse_bbox(bbox)
        try:
            res = places.get_places_in_bounds(
                min_lng, min_lat, max_lng, max_lat, limit or DEFAULT_BOUNDS_LIMIT
            )
        except InvalidBoundsError as e:
            bad_request("bad_bbox", str(e))
        return PlacesResponse(data=_rows_or_503(res, "bounds query"))

    try:
        filters = MapFilters(
            counties=_csv_list(counties),
            cuisines=_csv_list(cuisines),
            tags=_csv_list(tags),
            priceRange=(priceMin, priceMax),
            rating=minRating,
            featured=featured,
            verified=verified,
        )
    except ValidationError as e:
        bad_request("bad_filters", "; ".join(err["msg"] for err in e.errors()))

    res = places.search_places(search or "", filters, limit or DEFAULT_SEARCH_LIMIT)
    return PlacesResponse(data=_rows_or_503(res, "search"))


# ──────────────────────────────────────────────────────────────
# GET /places/nearby
# ──────────────────────────────────────────────────────────────

@router.get("/nearby", response_model=NearbyPlacesResponse)
def nearby_places(
    lng: float = Query(..., ge=-180, le=180),
    lat: float = Query(..., ge=-90, le=90),
    radius: float = Query(default=5.0, gt=0, le=500),
    limit: int = Query(default=10, ge=1, le=200),
    places: PlacesService = Depends(get_places_service),
) -> NearbyPlacesResponse:
    res = places.get_nearby_places(lng, lat, radius, limit)
    return NearbyPlacesResponse(data=_rows_or_503(res, "nearby query"))


# ──────────────────────────────────────────────────────────────
# GET /places/snapshot
# ──────────────────────────────────────────────────────────────

@router.get("/snapshot", response_model=PlacesResponse)
async def places_snapshot(snapshot: PlacesSnapshot = Depends(get_snapshot)) -> PlacesResponse:
    try:
        data = await snapshot.get()
    except QueryFailed as e:
        service_unavailable("snapshot_failed", str(e))
    return PlacesResponse(data=data)


# ──────────────────────────────────────────────────────────────
# GET /places/{slug}
# ──────────────────────────────────────────────────────────────

@router.get("/{slug}", response_model=Place)
def place_by_slug(slug: str, places: PlacesService = Depends(get_places_service)) -> Place:
    res = places.get_place_by_slug(slug)
    if res.is_error:
        service_unavailable("places_query_failed", f"slug lookup failed: {res.reason}")
    if res.data is None:
        not_found("place_missing", f"no published place with slug {slug!r}")
    return res.data
