from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

from munchies.core.contracts import PlaceUpsert
from munchies.core.places_db import SqlitePlacesDB
from munchies.core.settings import Settings
from munchies.core.storage import connect_sqlite, ensure_schema
from munchies.core.time import to_iso
from munchies.main import build_resources, create_app


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def iso(self) -> str:
        return to_iso(self.now)

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def places_db(clock: FakeClock) -> SqlitePlacesDB:
    db = SqlitePlacesDB(connect_sqlite(":memory:"), clock=clock.iso)
    db.ensure_schema()
    yield db
    db.close()


@pytest.fixture
def cache_conn():
    conn = connect_sqlite(":memory:")
    ensure_schema(conn)
    yield conn
    conn.close()


def make_place(name: str = "Lov-A Burger Grill & Cafe", lng: float = -82.84, lat: float = 42.67, **kw: Any) -> PlaceUpsert:
    data: Dict[str, Any] = {"name": name, "location": {"type": "Point", "coordinates": [lng, lat]}}
    data.update(kw)
    return PlaceUpsert.model_validate(data)


@pytest.fixture
def place_factory() -> Callable[..., PlaceUpsert]:
    return make_place


# ──────────────────────────────────────────────────────────────
# HTTP fakes
# ──────────────────────────────────────────────────────────────

class Router:
    """
    Minimal MockTransport handler: exact URL (no query) → response factory.
    Records every request it sees.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.seen: List[httpx.Request] = []

    def add(self, url: str, status: int = 200, **kwargs: Any) -> None:
        self.routes[url] = lambda req: httpx.Response(status, **kwargs)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.seen.append(request)
        key = str(request.url).split("?", 1)[0]
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, text="not found")
        return handler(request)

    @property
    def seen_urls(self) -> List[str]:
        return [str(r.url).split("?", 1)[0] for r in self.seen]


@pytest.fixture
def http_router() -> Router:
    return Router()


@pytest.fixture
def async_http(http_router: Router) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(http_router))


# ──────────────────────────────────────────────────────────────
# App
# ──────────────────────────────────────────────────────────────

TEST_INGEST_KEY = "test-ingest-key"
TEST_WEBHOOK_SECRET = "test-webhook-secret"
TEST_SHOP_URL = "https://shop.example.com"
TEST_RSS_URL = "https://www.youtube.com/feeds/videos.xml?channel_id=UC123"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        LOG_LEVEL="WARNING",
        PLACES_BACKEND="sqlite",
        INGEST_API_KEY=TEST_INGEST_KEY,
        FW_WEBHOOK_SECRET=TEST_WEBHOOK_SECRET,
        FW_SHOP_URL=TEST_SHOP_URL,
        FW_STOREFRONT_TOKEN=None,
        YOUTUBE_RSS_URL=TEST_RSS_URL,
    )


@pytest.fixture
def resources(settings: Settings, places_db: SqlitePlacesDB, cache_conn, async_http: httpx.AsyncClient):
    return build_resources(settings, places_db=places_db, cache_conn=cache_conn, http=async_http)


@pytest.fixture
def client(settings: Settings, resources) -> TestClient:
    app = create_app(settings=settings, resources=resources)
    with TestClient(app) as c:
        yield c
