import orjson
import pytest

from munchies.core.contracts import Product
from munchies.services.webhooks import sign

from conftest import TEST_INGEST_KEY, TEST_RSS_URL, TEST_SHOP_URL, TEST_WEBHOOK_SECRET, make_place

AUTH = {"X-Ingest-Key": TEST_INGEST_KEY}


@pytest.fixture
def seeded_client(client, places_db):
    places_db.upsert(make_place("Lov-A Burger Grill & Cafe", -82.84, 42.67, county="Macomb",
                                cuisines=["Burgers"], is_featured=True, rating=4.5))
    places_db.upsert(make_place("Shelby Pizza", -83.03, 42.67, county="Macomb", cuisines=["Pizza"], price_level=1))
    places_db.upsert(make_place("Secret Draft Spot", -83.05, 42.33, status="draft"))
    return client


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    env = r.json()["environment"]
    assert env["youtubeRss"] == "Set"
    assert env["fourthwallToken"] == "Missing"


class TestPlacesApi:
    def test_bbox(self, seeded_client):
        r = seeded_client.get("/places", params={"bbox": "-85,41,-81,45"})
        assert r.status_code == 200
        assert [p["name"] for p in r.json()["data"]] == ["Lov-A Burger Grill & Cafe", "Shelby Pizza"]

    def test_bad_bbox(self, seeded_client):
        assert seeded_client.get("/places", params={"bbox": "-81,41,-85,45"}).status_code == 400
        assert seeded_client.get("/places", params={"bbox": "1,2,3"}).status_code == 400

    def test_search_and_filters(self, seeded_client):
        r = seeded_client.get("/places", params={"search": "pizza", "counties": "Macomb"})
        assert [p["slug"] for p in r.json()["data"]] == ["shelby-pizza"]

        r = seeded_client.get("/places", params={"cuisines": "Burgers,Pizza", "priceMin": 2, "priceMax": 4})
        assert [p["slug"] for p in r.json()["data"]] == ["lov-a-burger-grill-cafe"]

    def test_invalid_filters(self, seeded_client):
        assert seeded_client.get("/places", params={"priceMin": 3, "priceMax": 2}).status_code == 400
        assert seeded_client.get("/places", params={"priceMin": 0}).status_code == 400
        assert seeded_client.get("/places", params={"minRating": 6}).status_code == 400

    def test_no_matches_is_200_empty(self, seeded_client):
        r = seeded_client.get("/places", params={"search": "sushi"})
        assert r.status_code == 200
        assert r.json() == {"data": []}

    def test_slug(self, seeded_client):
        assert seeded_client.get("/places/shelby-pizza").json()["name"] == "Shelby Pizza"
        assert seeded_client.get("/places/secret-draft-spot").status_code == 404

    def test_nearby(self, seeded_client):
        r = seeded_client.get("/places/nearby", params={"lng": -82.84, "lat": 42.67, "radius": 5})
        data = r.json()["data"]
        assert [p["slug"] for p in data] == ["lov-a-burger-grill-cafe"]
        assert data[0]["distance_miles"] == pytest.approx(0.0)

    def test_snapshot(self, seeded_client):
        r = seeded_client.get("/places/snapshot")
        assert r.status_code == 200
        assert len(r.json()["data"]) == 2

    def test_store_failure_is_503(self, client, places_db):
        places_db.conn.execute("DROP TABLE places")
        r = client.get("/places", params={"search": "pizza"})
        assert r.status_code == 503
        assert r.json()["detail"]["code"] == "places_query_failed"


class TestIngest:
    BODY = {"name": "Royal Oak Tacos", "location": {"lng": -83.14, "lat": 42.49}, "price_level": 0, "cuisines": None}

    def test_requires_key(self, client):
        assert client.post("/ingest", json=self.BODY).status_code == 401
        assert client.post("/ingest", json=self.BODY, headers={"X-Ingest-Key": "wrong"}).status_code == 401

    def test_missing_fields(self, client):
        r = client.post("/ingest", json={"name": "No Location"}, headers=AUTH)
        assert r.status_code == 400
        assert "location" in r.json()["detail"]["message"]

    def test_bad_location(self, client):
        r = client.post("/ingest", json={"name": "X", "location": {"lng": 500, "lat": 0}}, headers=AUTH)
        assert r.status_code == 400

    def test_success_applies_defaults(self, client):
        r = client.post("/ingest", json=self.BODY, headers=AUTH)
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        place = body["data"]
        assert place["slug"] == "royal-oak-tacos"
        assert place["state"] == "MI"
        assert place["price_level"] == 2
        assert place["status"] == "published"
        assert place["location"]["coordinates"] == [-83.14, 42.49]

    def test_ingest_twice_updates_in_place(self, client):
        first = client.post("/ingest", json=self.BODY, headers=AUTH).json()["data"]
        second = client.post("/ingest", json={**self.BODY, "rating": 4.0}, headers=AUTH).json()["data"]
        assert first["id"] == second["id"]
        assert second["rating"] == 4.0


class TestAdmin:
    def test_requires_key(self, client):
        assert client.get("/admin/stats").status_code == 401

    def test_stats_and_delete(self, seeded_client):
        stats = seeded_client.get("/admin/stats", headers=AUTH).json()
        assert stats == {"totalPlaces": 3, "publishedPlaces": 2, "draftPlaces": 1, "featuredPlaces": 1}

        pid = seeded_client.get("/places/shelby-pizza").json()["id"]
        assert seeded_client.delete(f"/admin/places/{pid}", headers=AUTH).status_code == 200
        assert seeded_client.delete(f"/admin/places/{pid}", headers=AUTH).status_code == 404
        assert seeded_client.get("/places/shelby-pizza").status_code == 404

    def test_csv_import(self, client):
        csv_text = (
            "name,latitude,longitude,cuisines\n"
            'Fort Gratiot Fries,43.08,-82.48,"American, Fries"\n'
            "Nowhere,abc,-82.0,\n"
        )
        r = client.post("/admin/import", content=csv_text.encode(), headers={**AUTH, "Content-Type": "text/csv"})
        assert r.status_code == 200
        body = r.json()
        assert body["imported"] == 1
        assert body["errors"] == ["Row 3: latitude/longitude must be numbers"]


class TestFeedsApi:
    FEED = {"products": [
        {"id": 1, "title": "Tee", "handle": "tee", "price": "20", "product_type": "Shirts"},
        {"id": 2, "title": "Mug", "handle": "mug", "price": "12", "product_type": "Drinkware"},
    ]}

    def test_products_served_then_cached(self, client, http_router):
        http_router.add(f"{TEST_SHOP_URL}/products.json", 200, json=self.FEED)

        r = client.get("/fourthwall/products", params={"category": "Shirts"})
        assert r.status_code == 200
        assert [p["name"] for p in r.json()] == ["Tee"]

        # second call comes from the cache populated in the background
        r = client.get("/fourthwall/products")
        assert {p["name"] for p in r.json()} == {"Tee", "Mug"}
        assert len(http_router.seen) == 1

        stats = client.get("/cache/stats").json()
        assert stats["products"]["validCached"] == 2

        r = client.get("/fourthwall/products", params={"refresh": "true"})
        assert r.status_code == 200
        assert len(http_router.seen) == 2

    def test_products_upstream_failure(self, client):
        assert client.get("/fourthwall/products").status_code == 502

    def test_episodes(self, client, http_router):
        http_router.add(
            TEST_RSS_URL.split("?")[0],
            200,
            text=(
                "<rss><channel>"
                "<item><title>A</title><link>https://www.youtube.com/watch?v=aaa</link>"
                "<pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate></item>"
                "<item><title>B</title><link>https://www.youtube.com/watch?v=bbb</link>"
                "<pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate></item>"
                "</channel></rss>"
            ),
        )
        r = client.get("/episodes", params={"limit": 1})
        assert r.status_code == 200
        assert [e["videoId"] for e in r.json()] == ["bbb"]

    def test_episodes_upstream_failure(self, client):
        assert client.get("/episodes").status_code == 502

    def test_cache_clear(self, client):
        r = client.post("/cache/clear", params={"type": "all"})
        assert r.status_code == 200
        assert r.json()["cleared"] == ["products", "episodes"]
        assert client.post("/cache/clear", params={"type": "bogus"}).status_code == 422


class TestWebhookApi:
    def _post(self, client, payload, signature=None, raw=None):
        body = raw if raw is not None else orjson.dumps(payload)
        headers = {"Content-Type": "application/json"}
        if signature is not None:
            headers["x-fourthwall-signature"] = signature
        return client.post("/fourthwall/webhook", content=body, headers=headers)

    def test_liveness(self, client):
        assert "active" in client.get("/fourthwall/webhook").json()["message"]

    def test_missing_and_invalid_signature(self, client, resources, monkeypatch):
        called = []
        monkeypatch.setattr(resources.webhooks, "dispatch", lambda payload: called.append(payload))

        assert self._post(client, {"type": "order.created"}).status_code == 401
        assert self._post(client, {"type": "order.created"}, signature="sha256=deadbeef").status_code == 401
        # latin-1 header bytes arrive as non-ASCII text
        assert self._post(client, {"type": "order.created"}, signature=b"sha256=\xe9").status_code == 401
        assert called == []

    def test_valid_signature_dispatches(self, client, resources, monkeypatch):
        called = []
        monkeypatch.setattr(resources.webhooks, "dispatch", lambda payload: called.append(payload))

        body = orjson.dumps({"type": "product.updated", "data": {"id": "1"}})
        r = self._post(client, None, signature=sign(body, TEST_WEBHOOK_SECRET), raw=body)
        assert r.status_code == 200
        assert r.json() == {"success": True}
        assert called == [{"type": "product.updated", "data": {"id": "1"}}]

    def test_product_update_clears_products_cache(self, client, resources):
        resources.products_cache.put([Product(id="1", name="Tee", checkoutUrl=f"{TEST_SHOP_URL}/products/tee")])

        body = orjson.dumps({"type": "product.updated", "data": {"id": "1"}})
        r = self._post(client, None, signature=sign(body, TEST_WEBHOOK_SECRET), raw=body)

        assert r.status_code == 200
        assert resources.products_cache.get() is None

    def test_malformed_json(self, client):
        body = b"{not json"
        r = self._post(client, None, signature=sign(body, TEST_WEBHOOK_SECRET), raw=body)
        assert r.status_code == 400

    def test_unconfigured_secret(self, client, resources):
        resources.webhooks.secret = None
        assert self._post(client, {"type": "order.created"}, signature="sha256=x").status_code == 500
