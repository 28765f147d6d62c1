from __future__ import annotations

import logging
from typing import List, Optional

from munchies.core.contracts import DashboardStats, MapFilters, NearbyPlace, Place, PlaceUpsert
from munchies.core.errors import QueryFailed
from munchies.core.geo import validate_bbox
from munchies.core.places_db import PlacesDB
from munchies.core.query import PlaceQuery
from munchies.core.result import QueryResult

logger = logging.getLogger(__name__)

DEFAULT_BOUNDS_LIMIT = 200
DEFAULT_SEARCH_LIMIT = 50
DEFAULT_NEARBY_RADIUS_MI = 5.0
DEFAULT_NEARBY_LIMIT = 10


class PlacesService:
    """
    Places data access.

    Reads and writes go to whichever PlacesDB backend the app was built with.
    Every call returns a QueryResult so callers can tell "no rows" from
    "the store failed". Invalid rectangles are rejected up front with
    InvalidBoundsError (raised, not wrapped).
    """

    def __init__(self, *, db: PlacesDB):
        self.db = db

    # ──────────────────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────────────────

    def get_places_in_bounds(
        self,
        min_lng: float,
        min_lat: float,
        max_lng: float,
        max_lat: float,
        limit: int = DEFAULT_BOUNDS_LIMIT,
    ) -> QueryResult[List[Place]]:
        bbox = validate_bbox(min_lng, min_lat, max_lng, max_lat)
        try:
            rows = self.db.places_in_bounds(bbox, max(1, int(limit)))
        except QueryFailed as e:
            logger.error("places_in_bounds_failed bbox=%s err=%s", bbox.model_dump(), e)
            return QueryResult.failed(str(e))
        return QueryResult.from_rows(rows)

    def search_places(
        self,
        search_term: str = "",
        filters: Optional[MapFilters] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> QueryResult[List[Place]]:
        query = PlaceQuery.for_search(search_term, filters or MapFilters(), limit)
        try:
            rows = self.db.search(query)
        except QueryFailed as e:
            logger.error("search_places_failed term=%r err=%s", search_term, e)
            return QueryResult.failed(str(e))
        return QueryResult.from_rows(rows)

    def get_place_by_slug(self, slug: str) -> QueryResult[Place]:
        try:
            place = self.db.get_by_slug(slug)
        except QueryFailed as e:
            logger.error("get_place_by_slug_failed slug=%s err=%s", slug, e)
            return QueryResult.failed(str(e))
        return QueryResult.ok(place) if place else QueryResult.empty()

    def get_nearby_places(
        self,
        lng: float,
        lat: float,
        radius_miles: float = DEFAULT_NEARBY_RADIUS_MI,
        limit: int = DEFAULT_NEARBY_LIMIT,
    ) -> QueryResult[List[NearbyPlace]]:
        try:
            rows = self.db.nearby(lng, lat, float(radius_miles), max(1, int(limit)))
        except QueryFailed as e:
            logger.error("get_nearby_places_failed lng=%s lat=%s err=%s", lng, lat, e)
            return QueryResult.failed(str(e))
        return QueryResult.from_rows(rows)

    def get_dashboard_stats(self) -> QueryResult[DashboardStats]:
        try:
            return QueryResult.ok(self.db.dashboard_stats())
        except QueryFailed as e:
            logger.error("dashboard_stats_failed err=%s", e)
            return QueryResult.failed(str(e))

    # ──────────────────────────────────────────────────────────
    # Writes
    # ──────────────────────────────────────────────────────────

    def upsert_place(self, data: PlaceUpsert) -> QueryResult[Place]:
        try:
            place = self.db.upsert(data)
        except QueryFailed as e:
            logger.error("upsert_place_failed slug=%s err=%s", data.slug, e)
            return QueryResult.failed(str(e))
        logger.info("upsert_place ok id=%s slug=%s", place.id, place.slug)
        return QueryResult.ok(place)

    def delete_place(self, place_id: str) -> QueryResult[bool]:
        try:
            deleted = self.db.delete(place_id)
        except QueryFailed as e:
            logger.error("delete_place_failed id=%s err=%s", place_id, e)
            return QueryResult.failed(str(e))
        if deleted:
            logger.info("delete_place ok id=%s", place_id)
            return QueryResult.ok(True)
        return QueryResult.empty(False)
