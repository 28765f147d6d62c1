from typing import Any, Callable, Dict, List

import httpx
import orjson
import pytest

from munchies.core.contracts import BBox4, MapFilters
from munchies.core.errors import QueryFailed
from munchies.core.places_db import SupabasePlacesDB
from munchies.core.query import PlaceQuery

from conftest import make_place

BASE = "https://proj.supabase.co"
PLACE_ID = "0b6e8c1e-3f0a-4b8e-9a55-2f3c0d1e9a10"


def _row(name: str = "Lov-A Burger", slug: str = "lov-a-burger", lng: float = -82.84, lat: float = 42.67, **kw: Any):
    row = {
        "id": PLACE_ID,
        "slug": slug,
        "name": name,
        # geography columns come back as EWKB hex; lng/lat are the generated columns
        "location": "0101000020E6100000F6285C8FC2B554C0F6285C8FC2554540",
        "lng": lng,
        "lat": lat,
        "cuisines": ["Burgers"],
        "tags": [],
        "hours": {},
        "price_level": 2,
        "rating": 4.5,
        "is_featured": True,
        "is_verified": False,
        "status": "published",
        "created_at": "2024-06-01T12:00:00+00:00",
        "updated_at": "2024-06-01T12:00:00+00:00",
    }
    row.update(kw)
    return row


class Recorder:
    def __init__(self, reply: Callable[[httpx.Request], httpx.Response]):
        self.reply = reply
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.reply(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def _db(reply: Callable[[httpx.Request], httpx.Response]):
    rec = Recorder(reply)
    client = httpx.Client(transport=httpx.MockTransport(rec))
    db = SupabasePlacesDB(base_url=BASE, anon_key="anon", service_role_key="service", client=client)
    return db, rec


def _body(request: httpx.Request) -> Dict[str, Any]:
    return orjson.loads(request.content)


class TestReads:
    def test_search_sends_bare_filter_values(self):
        db, rec = _db(lambda req: httpx.Response(200, json=[_row()]))

        out = db.search(PlaceQuery.for_search("", MapFilters(featured=True), limit=5))

        req = rec.last
        assert req.method == "GET"
        assert req.url.path == "/rest/v1/places"
        assert req.url.params["status"] == "eq.published"
        assert req.url.params["is_featured"] == "eq.true"
        assert req.url.params["limit"] == "5"
        assert req.headers["apikey"] == "anon"
        assert req.headers["authorization"] == "Bearer anon"

        assert [p.slug for p in out] == ["lov-a-burger"]
        assert out[0].location.coordinates == [-82.84, 42.67]
        assert out[0].is_featured is True

    def test_get_by_slug(self):
        db, rec = _db(lambda req: httpx.Response(200, json=[_row()]))
        place = db.get_by_slug("lov-a-burger")
        assert place is not None and place.id == PLACE_ID
        assert rec.last.url.params["slug"] == "eq.lov-a-burger"
        assert rec.last.url.params["status"] == "eq.published"

    def test_get_by_slug_missing(self):
        db, _ = _db(lambda req: httpx.Response(200, json=[]))
        assert db.get_by_slug("nope") is None

    def test_bounds_rpc(self):
        db, rec = _db(lambda req: httpx.Response(200, json=[_row()]))
        out = db.places_in_bounds(BBox4(minLng=-85, minLat=41, maxLng=-81, maxLat=45), limit=50)

        assert rec.last.method == "POST"
        assert rec.last.url.path == "/rest/v1/rpc/get_places_in_bounds"
        assert _body(rec.last) == {
            "min_lng": -85.0,
            "min_lat": 41.0,
            "max_lng": -81.0,
            "max_lat": 45.0,
            "limit_count": 50,
        }
        assert len(out) == 1

    def test_nearby_rpc_fills_missing_distance(self):
        rows = [
            _row(name="Far", slug="far", distance_miles=2.5),
            _row(name="Here", slug="here"),  # no distance_miles in the reply
        ]
        db, rec = _db(lambda req: httpx.Response(200, json=rows))

        out = db.nearby(-82.84, 42.67, 5.0, 10)

        assert rec.last.url.path == "/rest/v1/rpc/get_nearby_places"
        assert _body(rec.last) == {"lng": -82.84, "lat": 42.67, "radius_miles": 5.0, "limit_count": 10}
        assert [p.slug for p in out] == ["here", "far"]
        assert out[0].distance_miles == pytest.approx(0.0)
        assert out[1].distance_miles == 2.5


class TestWrites:
    def test_upsert_without_id_conflicts_on_slug(self):
        db, rec = _db(lambda req: httpx.Response(201, json=[_row()]))

        place = db.upsert(make_place("Lov-A Burger", -82.84, 42.67))

        req = rec.last
        assert req.method == "POST"
        assert req.url.path == "/rest/v1/places"
        assert req.url.params["on_conflict"] == "slug"
        assert req.headers["prefer"] == "resolution=merge-duplicates,return=representation"
        assert req.headers["authorization"] == "Bearer service"

        body = _body(req)
        assert "id" not in body
        assert body["location"] == "SRID=4326;POINT(-82.84 42.67)"
        assert body["slug"] == "lov-a-burger"
        assert body["updated_at"]
        assert place.id == PLACE_ID

    def test_upsert_with_id_conflicts_on_id(self):
        db, rec = _db(lambda req: httpx.Response(201, json=[_row()]))
        db.upsert(make_place("Lov-A Burger", id=PLACE_ID))
        assert rec.last.url.params["on_conflict"] == "id"
        assert _body(rec.last)["id"] == PLACE_ID

    def test_upsert_empty_representation_fails(self):
        db, _ = _db(lambda req: httpx.Response(201, json=[]))
        with pytest.raises(QueryFailed):
            db.upsert(make_place())

    def test_delete(self):
        db, rec = _db(lambda req: httpx.Response(200, json=[_row()]))
        assert db.delete(PLACE_ID) is True
        assert rec.last.method == "DELETE"
        assert rec.last.url.params["id"] == f"eq.{PLACE_ID}"
        assert rec.last.headers["prefer"] == "return=representation"

    def test_delete_missing(self):
        db, _ = _db(lambda req: httpx.Response(200, json=[]))
        assert db.delete("missing") is False


def test_dashboard_stats_uses_exact_counts():
    totals = {None: "*/7", "eq.published": "0-4/5", "eq.draft": "*/2"}

    def reply(req: httpx.Request) -> httpx.Response:
        key = req.url.params.get("status")
        if "is_featured" in req.url.params:
            return httpx.Response(200, headers={"content-range": "*/3"})
        return httpx.Response(200, headers={"content-range": totals[key]})

    db, rec = _db(reply)
    stats = db.dashboard_stats()

    assert stats.model_dump() == {"totalPlaces": 7, "publishedPlaces": 5, "draftPlaces": 2, "featuredPlaces": 3}
    assert {r.method for r in rec.requests} == {"HEAD"}
    assert all(r.headers["prefer"] == "count=exact" for r in rec.requests)
    assert any(r.url.params.get("is_featured") == "eq.true" for r in rec.requests)


class TestFailures:
    def test_non_2xx_raises(self):
        db, _ = _db(lambda req: httpx.Response(500, text="boom"))
        with pytest.raises(QueryFailed, match="status=500"):
            db.search(PlaceQuery.published(10))

    def test_transport_error_raises(self):
        def reply(req: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=req)

        db, _ = _db(reply)
        with pytest.raises(QueryFailed):
            db.get_by_slug("x")

    def test_unexpected_body_raises(self):
        db, _ = _db(lambda req: httpx.Response(200, json={"message": "not a list"}))
        with pytest.raises(QueryFailed, match="unexpected_body"):
            db.places_in_bounds(BBox4(minLng=-85, minLat=41, maxLng=-81, maxLat=45))
