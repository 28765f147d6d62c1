"""
munchies/core/places_db.py

Unified interface for the places table.

Two backends:
  - SqlitePlacesDB    local dev + tests (json1 arrays, bbox prefilter + haversine)
  - SupabasePlacesDB  production (PostgREST filters, PostGIS RPCs)

Factory function `create_places_db()` auto-selects based on config.

Backends raise QueryFailed on any store error; deciding what "failed"
means to a caller is the service layer's job.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import httpx
import orjson

from munchies.core.contracts import BBox4, DashboardStats, NearbyPlace, Place, PlaceUpsert
from munchies.core.errors import ConfigError, QueryFailed
from munchies.core.geo import bounding_box_from_center, haversine_distance
from munchies.core.query import PlaceQuery
from munchies.core.time import utc_now_iso

logger = logging.getLogger(__name__)

_JSON_COLUMNS = ("cuisines", "tags", "hours")
_BOOL_COLUMNS = ("is_featured", "is_verified")

# Columns written on upsert (id + created_at are handled separately)
_WRITE_COLUMNS = (
    "slug", "name", "address", "city", "county", "state", "zip",
    "lng", "lat",
    "cuisines", "tags", "price_level", "rating",
    "website", "menu_url", "phone", "ig_url",
    "hours", "hero_image_url",
    "is_featured", "is_verified", "status",
    "updated_at",
)


# ── Row shaping ──────────────────────────────────────────────────────

def _row_to_place(row: Dict[str, Any]) -> Place:
    """
    Accepts rows from either backend:
      - location as GeoJSON dict / JSON string
      - or generated lng/lat columns (PostGIS geography serializes as hex)
    """
    r = dict(row)

    loc = r.get("location")
    if isinstance(loc, str) and loc.lstrip().startswith("{"):
        loc = orjson.loads(loc)
    if not isinstance(loc, dict) or not loc.get("coordinates"):
        loc = {"type": "Point", "coordinates": [float(r["lng"]), float(r["lat"])]}
    r["location"] = loc

    for col in _JSON_COLUMNS:
        v = r.get(col)
        if isinstance(v, (str, bytes)):
            r[col] = orjson.loads(v) if v else None
    r["cuisines"] = r.get("cuisines") or []
    r["tags"] = r.get("tags") or []
    r["hours"] = r.get("hours") or {}

    for col in _BOOL_COLUMNS:
        r[col] = bool(r.get(col))

    for col in ("id", "created_at", "updated_at"):
        if r.get(col) is not None:
            r[col] = str(r[col])

    r.pop("lng", None)
    r.pop("lat", None)
    r.pop("distance_miles", None)
    return Place.model_validate(r)


def _json_text(v: Any) -> str:
    # sqlite json_each() rejects BLOBs, so store text
    return orjson.dumps(v).decode("utf-8")


# ── Abstract interface ───────────────────────────────────────────────

class PlacesDB(ABC):
    """Read/write interface for the places table."""

    @abstractmethod
    def places_in_bounds(self, bbox: BBox4, limit: int = 200) -> List[Place]:
        ...

    @abstractmethod
    def search(self, query: PlaceQuery) -> List[Place]:
        ...

    @abstractmethod
    def get_by_slug(self, slug: str) -> Optional[Place]:
        ...

    @abstractmethod
    def nearby(self, lng: float, lat: float, radius_miles: float, limit: int) -> List[NearbyPlace]:
        ...

    @abstractmethod
    def upsert(self, data: PlaceUpsert) -> Place:
        ...

    @abstractmethod
    def delete(self, place_id: str) -> bool:
        ...

    @abstractmethod
    def dashboard_stats(self) -> DashboardStats:
        ...

    @abstractmethod
    def close(self) -> None:
        ...


# ── SQLite backend (local dev) ───────────────────────────────────────

_SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS places (
  id             TEXT PRIMARY KEY,
  slug           TEXT NOT NULL UNIQUE,
  name           TEXT NOT NULL,
  address        TEXT,
  city           TEXT,
  county         TEXT,
  state          TEXT NOT NULL DEFAULT 'MI',
  zip            TEXT,
  lng            REAL NOT NULL,
  lat            REAL NOT NULL,
  cuisines       TEXT NOT NULL DEFAULT '[]',   -- JSON array
  tags           TEXT NOT NULL DEFAULT '[]',   -- JSON array
  price_level    INTEGER NOT NULL DEFAULT 2,
  rating         REAL,
  website        TEXT,
  menu_url       TEXT,
  phone          TEXT,
  ig_url         TEXT,
  hours          TEXT NOT NULL DEFAULT '{}',   -- JSON object
  hero_image_url TEXT,
  is_featured    INTEGER NOT NULL DEFAULT 0,
  is_verified    INTEGER NOT NULL DEFAULT 0,
  status         TEXT NOT NULL DEFAULT 'published'
                 CHECK (status IN ('draft', 'published', 'archived')),
  created_at     TEXT NOT NULL,
  updated_at     TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_places_lat ON places(lat);
CREATE INDEX IF NOT EXISTS idx_places_lng ON places(lng);
CREATE INDEX IF NOT EXISTS idx_places_status ON places(status);
CREATE INDEX IF NOT EXISTS idx_places_county ON places(county);
"""


class SqlitePlacesDB(PlacesDB):
    """
    Places table in a local SQLite file (or :memory:).
    cuisines/tags are JSON arrays; overlap filters go through json_each().
    """

    def __init__(self, conn: sqlite3.Connection, *, clock: Callable[[], str] = utc_now_iso):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self._clock = clock

    def ensure_schema(self) -> None:
        self.conn.executescript(_SQLITE_SCHEMA)
        self.conn.commit()

    def _select(self, query: PlaceQuery, *, unlimited: bool = False) -> List[Place]:
        where, params, order = query.to_sql("places")
        sql = f"SELECT * FROM places WHERE {where} ORDER BY {order}"
        if not unlimited:
            sql += " LIMIT ?"
            params = [*params, query.limit]
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise QueryFailed(f"sqlite_select_failed: {e}") from e
        return [_row_to_place(dict(r)) for r in rows]

    def places_in_bounds(self, bbox: BBox4, limit: int = 200) -> List[Place]:
        return self._select(PlaceQuery.in_bounds(bbox, limit))

    def search(self, query: PlaceQuery) -> List[Place]:
        return self._select(query)

    def get_by_slug(self, slug: str) -> Optional[Place]:
        rows = self._select(PlaceQuery.by_slug(slug))
        return rows[0] if rows else None

    def nearby(self, lng: float, lat: float, radius_miles: float, limit: int) -> List[NearbyPlace]:
        # bbox prefilter then haversine filter
        box = bounding_box_from_center(lat, lng, radius_miles)
        pre = self._select(PlaceQuery.in_bounds(box), unlimited=True)

        out: List[NearbyPlace] = []
        for p in pre:
            d = haversine_distance(lat, lng, p.location.lat, p.location.lng)
            if d <= radius_miles:
                out.append(NearbyPlace(**p.model_dump(), distance_miles=d))

        out.sort(key=lambda p: p.distance_miles)
        return out[: max(1, int(limit))]

    def upsert(self, data: PlaceUpsert) -> Place:
        now = self._clock()
        values: Dict[str, Any] = {
            "slug": data.slug,
            "name": data.name,
            "address": data.address,
            "city": data.city,
            "county": data.county,
            "state": data.state,
            "zip": data.zip,
            "lng": data.location.lng,
            "lat": data.location.lat,
            "cuisines": _json_text(data.cuisines),
            "tags": _json_text(data.tags),
            "price_level": data.price_level,
            "rating": data.rating,
            "website": data.website,
            "menu_url": data.menu_url,
            "phone": data.phone,
            "ig_url": data.ig_url,
            "hours": _json_text(data.hours),
            "hero_image_url": data.hero_image_url,
            "is_featured": 1 if data.is_featured else 0,
            "is_verified": 1 if data.is_verified else 0,
            "status": data.status,
            "updated_at": now,
        }

        # Keyed on id when the caller has one, otherwise on the unique slug.
        conflict_col = "id" if data.id else "slug"
        place_id = data.id or str(uuid.uuid4())

        cols = ["id", *_WRITE_COLUMNS, "created_at"]
        params = [place_id, *(values[c] for c in _WRITE_COLUMNS), now]
        updates = ",\n          ".join(f"{c}=excluded.{c}" for c in _WRITE_COLUMNS)

        sql = f"""
        INSERT INTO places ({", ".join(cols)})
        VALUES ({", ".join("?" for _ in cols)})
        ON CONFLICT({conflict_col}) DO UPDATE SET
          {updates}
        """
        try:
            self.conn.execute(sql, params)
            self.conn.commit()
            row = self.conn.execute("SELECT * FROM places WHERE slug = ?", (data.slug,)).fetchone()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise QueryFailed(f"sqlite_upsert_failed slug={data.slug}: {e}") from e

        if row is None:
            raise QueryFailed(f"sqlite_upsert_failed slug={data.slug}: row missing after write")
        return _row_to_place(dict(row))

    def delete(self, place_id: str) -> bool:
        try:
            cur = self.conn.execute("DELETE FROM places WHERE id = ?", (place_id,))
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise QueryFailed(f"sqlite_delete_failed id={place_id}: {e}") from e
        return (cur.rowcount or 0) > 0

    def dashboard_stats(self) -> DashboardStats:
        sql = """
        SELECT
          COUNT(*),
          COALESCE(SUM(status = 'published'), 0),
          COALESCE(SUM(status = 'draft'), 0),
          COALESCE(SUM(is_featured = 1), 0)
        FROM places
        """
        try:
            total, published, draft, featured = self.conn.execute(sql).fetchone()
        except sqlite3.Error as e:
            raise QueryFailed(f"sqlite_stats_failed: {e}") from e
        return DashboardStats(
            totalPlaces=int(total),
            publishedPlaces=int(published),
            draftPlaces=int(draft),
            featuredPlaces=int(featured),
        )

    def close(self) -> None:
        self.conn.close()


# ── Supabase backend (production) ────────────────────────────────────

def _parse_content_range_total(header: Optional[str]) -> int:
    # "0-24/573" or "*/573"
    if not header or "/" not in header:
        return 0
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else 0


class SupabasePlacesDB(PlacesDB):
    """
    Supabase over REST:
      - reads with the anon key (RLS restricts to published rows)
      - writes + stats with the service role key (bypasses RLS)
      - bbox + nearby through the get_places_in_bounds / get_nearby_places RPCs
    """

    def __init__(
        self,
        *,
        base_url: str,
        anon_key: str,
        service_role_key: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout_s: float = 20.0,
    ) -> None:
        if not base_url or not anon_key:
            raise ConfigError("Supabase not configured (SUPABASE_URL / SUPABASE_ANON_KEY)")
        self.base = base_url.rstrip("/")
        self.anon_key = anon_key
        self.admin_key = service_role_key or anon_key
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_s)

    def _headers(self, *, admin: bool = False) -> dict[str, str]:
        key = self.admin_key if admin else self.anon_key
        return {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        admin: bool = False,
        params: Any = None,
        json: Any = None,
        extra_headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        headers = self._headers(admin=admin)
        if extra_headers:
            headers.update(extra_headers)
        url = f"{self.base}/rest/v1/{path}"
        try:
            resp = self._client.request(method, url, headers=headers, params=params, json=json)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as e:
            body = (e.response.text or "")[:800]
            raise QueryFailed(
                f"supabase_{method.lower()}_failed path={path} status={e.response.status_code} body={body}"
            ) from e
        except httpx.HTTPError as e:
            raise QueryFailed(f"supabase_{method.lower()}_failed path={path} err={e!r}") from e

    def _rows(self, resp: httpx.Response) -> List[Dict[str, Any]]:
        try:
            data = resp.json()
        except ValueError as e:
            raise QueryFailed(f"supabase_bad_json: {e}") from e
        if not isinstance(data, list):
            raise QueryFailed(f"supabase_unexpected_body: {type(data).__name__}")
        return data

    def places_in_bounds(self, bbox: BBox4, limit: int = 200) -> List[Place]:
        resp = self._request(
            "POST",
            "rpc/get_places_in_bounds",
            json={
                "min_lng": bbox.minLng,
                "min_lat": bbox.minLat,
                "max_lng": bbox.maxLng,
                "max_lat": bbox.maxLat,
                "limit_count": int(limit),
            },
        )
        return [_row_to_place(r) for r in self._rows(resp)]

    def search(self, query: PlaceQuery) -> List[Place]:
        resp = self._request("GET", "places", params=query.to_postgrest())
        return [_row_to_place(r) for r in self._rows(resp)]

    def get_by_slug(self, slug: str) -> Optional[Place]:
        rows = self.search(PlaceQuery.by_slug(slug))
        return rows[0] if rows else None

    def nearby(self, lng: float, lat: float, radius_miles: float, limit: int) -> List[NearbyPlace]:
        resp = self._request(
            "POST",
            "rpc/get_nearby_places",
            json={
                "lng": lng,
                "lat": lat,
                "radius_miles": radius_miles,
                "limit_count": int(limit),
            },
        )
        out: List[NearbyPlace] = []
        for r in self._rows(resp):
            place = _row_to_place(r)
            d = r.get("distance_miles")
            if d is None:
                d = haversine_distance(lat, lng, place.location.lat, place.location.lng)
            out.append(NearbyPlace(**place.model_dump(), distance_miles=float(d)))
        out.sort(key=lambda p: p.distance_miles)
        return out

    def upsert(self, data: PlaceUpsert) -> Place:
        row = data.model_dump(exclude={"location"}, exclude_none=False)
        if not data.id:
            row.pop("id", None)
        row["location"] = f"SRID=4326;POINT({data.location.lng} {data.location.lat})"
        row["updated_at"] = utc_now_iso()

        conflict = "id" if data.id else "slug"
        resp = self._request(
            "POST",
            "places",
            admin=True,
            params={"on_conflict": conflict},
            json=row,
            extra_headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        rows = self._rows(resp)
        if not rows:
            raise QueryFailed(f"supabase_upsert_failed slug={data.slug}: empty representation")
        return _row_to_place(rows[0])

    def delete(self, place_id: str) -> bool:
        resp = self._request(
            "DELETE",
            "places",
            admin=True,
            params={"id": f"eq.{place_id}"},
            extra_headers={"Prefer": "return=representation"},
        )
        return len(self._rows(resp)) > 0

    def _count(self, filters: Optional[dict[str, str]] = None) -> int:
        params = {"select": "id", **(filters or {})}
        resp = self._request(
            "HEAD",
            "places",
            admin=True,
            params=params,
            extra_headers={"Prefer": "count=exact"},
        )
        return _parse_content_range_total(resp.headers.get("content-range"))

    def dashboard_stats(self) -> DashboardStats:
        return DashboardStats(
            totalPlaces=self._count(),
            publishedPlaces=self._count({"status": "eq.published"}),
            draftPlaces=self._count({"status": "eq.draft"}),
            featuredPlaces=self._count({"is_featured": "eq.true"}),
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


# ── Postgres schema (applied by scripts/apply_supabase_schema.py) ────

POSTGRES_SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS postgis;

CREATE TABLE IF NOT EXISTS places (
  id             uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  slug           text NOT NULL UNIQUE,
  name           text NOT NULL,
  address        text,
  city           text,
  county         text,
  state          text NOT NULL DEFAULT 'MI',
  zip            text,
  location       geography(Point, 4326) NOT NULL,
  lng            double precision GENERATED ALWAYS AS (ST_X(location::geometry)) STORED,
  lat            double precision GENERATED ALWAYS AS (ST_Y(location::geometry)) STORED,
  cuisines       text[] NOT NULL DEFAULT '{}',
  tags           text[] NOT NULL DEFAULT '{}',
  price_level    smallint NOT NULL DEFAULT 2 CHECK (price_level BETWEEN 1 AND 4),
  rating         real CHECK (rating BETWEEN 0 AND 5),
  website        text,
  menu_url       text,
  phone          text,
  ig_url         text,
  hours          jsonb NOT NULL DEFAULT '{}'::jsonb,
  hero_image_url text,
  is_featured    boolean NOT NULL DEFAULT false,
  is_verified    boolean NOT NULL DEFAULT false,
  status         text NOT NULL DEFAULT 'published'
                 CHECK (status IN ('draft', 'published', 'archived')),
  created_at     timestamptz NOT NULL DEFAULT now(),
  updated_at     timestamptz NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS places_location_gix ON places USING gist (location);
CREATE INDEX IF NOT EXISTS places_status_idx ON places (status);
CREATE INDEX IF NOT EXISTS places_county_idx ON places (county);
CREATE INDEX IF NOT EXISTS places_cuisines_gin ON places USING gin (cuisines);
CREATE INDEX IF NOT EXISTS places_tags_gin ON places USING gin (tags);

CREATE OR REPLACE FUNCTION places_set_updated_at() RETURNS trigger
LANGUAGE plpgsql AS $$
BEGIN
  NEW.updated_at = now();
  RETURN NEW;
END
$$;

DROP TRIGGER IF EXISTS places_updated_at ON places;
CREATE TRIGGER places_updated_at BEFORE UPDATE ON places
  FOR EACH ROW EXECUTE FUNCTION places_set_updated_at();

ALTER TABLE places ENABLE ROW LEVEL SECURITY;
DROP POLICY IF EXISTS places_public_read ON places;
CREATE POLICY places_public_read ON places FOR SELECT USING (status = 'published');

CREATE OR REPLACE FUNCTION get_places_in_bounds(
  min_lng double precision,
  min_lat double precision,
  max_lng double precision,
  max_lat double precision,
  limit_count integer DEFAULT 200
) RETURNS SETOF places
LANGUAGE sql STABLE AS $$
  SELECT *
  FROM places
  WHERE status = 'published'
    AND location::geometry && ST_MakeEnvelope(min_lng, min_lat, max_lng, max_lat, 4326)
  ORDER BY is_featured DESC, rating DESC NULLS LAST, name ASC
  LIMIT limit_count;
$$;

CREATE OR REPLACE FUNCTION get_nearby_places(
  lng double precision,
  lat double precision,
  radius_miles double precision DEFAULT 5,
  limit_count integer DEFAULT 10
) RETURNS SETOF jsonb
LANGUAGE sql STABLE AS $$
  SELECT to_jsonb(p) || jsonb_build_object(
           'distance_miles',
           ST_Distance(p.location, ST_SetSRID(ST_MakePoint(lng, lat), 4326)::geography) / 1609.344
         )
  FROM places p
  WHERE p.status = 'published'
    AND ST_DWithin(p.location, ST_SetSRID(ST_MakePoint(lng, lat), 4326)::geography, radius_miles * 1609.344)
  ORDER BY ST_Distance(p.location, ST_SetSRID(ST_MakePoint(lng, lat), 4326)::geography) ASC
  LIMIT limit_count;
$$;
"""


# ── Factory ──────────────────────────────────────────────────────────

def create_places_db(
    *,
    backend: str,
    sqlite_conn: sqlite3.Connection | None = None,
    supabase_url: str | None = None,
    supabase_anon_key: str | None = None,
    supabase_service_role_key: str | None = None,
    timeout_s: float = 20.0,
) -> PlacesDB:
    """
    Select the places backend.

      "supabase" → SupabasePlacesDB (needs URL + anon key)
      "sqlite"   → SqlitePlacesDB on the given connection
    """
    if backend == "supabase":
        logger.info("[places] Using Supabase backend: %s", supabase_url)
        return SupabasePlacesDB(
            base_url=supabase_url or "",
            anon_key=supabase_anon_key or "",
            service_role_key=supabase_service_role_key,
            timeout_s=timeout_s,
        )

    if backend == "sqlite":
        if sqlite_conn is None:
            raise ConfigError("sqlite places backend needs an open connection")
        db = SqlitePlacesDB(sqlite_conn)
        db.ensure_schema()
        logger.info("[places] Using SQLite backend")
        return db

    raise ConfigError(f"unknown PLACES_BACKEND: {backend!r}")
