import asyncio

import pytest

from munchies.core.errors import QueryFailed
from munchies.core.result import QueryResult
from munchies.services.snapshot import MICHIGAN_BBOX, SNAPSHOT_LIMIT, PlacesSnapshot

from conftest import make_place


class FakeService:
    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    def get_places_in_bounds(self, *args):
        self.calls.append(args)
        return self.results.pop(0)


class Tick:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


def _snapshot(results, ttl_s=60):
    tick = Tick()
    service = FakeService(results)
    return PlacesSnapshot(service=service, ttl_s=ttl_s, clock=tick), service, tick


@pytest.mark.asyncio
async def test_loads_michigan_rectangle_once_within_ttl(places_db):
    place = places_db.upsert(make_place())
    snap, service, tick = _snapshot([QueryResult.ok([place]), QueryResult.ok([])])

    assert await snap.get() == [place]
    tick.t = 59
    assert await snap.get() == [place]
    assert service.calls == [(*MICHIGAN_BBOX, SNAPSHOT_LIMIT)]

    tick.t = 61
    assert await snap.get() == []
    assert len(service.calls) == 2


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_load():
    snap, service, _ = _snapshot([QueryResult.ok([])])
    a, b = await asyncio.gather(snap.get(), snap.get())
    assert a == b == []
    assert len(service.calls) == 1


@pytest.mark.asyncio
async def test_failure_without_previous_snapshot_raises():
    snap, _, _ = _snapshot([QueryResult.failed("boom")])
    with pytest.raises(QueryFailed):
        await snap.get()


@pytest.mark.asyncio
async def test_failed_reload_serves_stale(places_db):
    place = places_db.upsert(make_place())
    snap, service, _ = _snapshot([QueryResult.ok([place]), QueryResult.failed("boom")])

    await snap.get()
    snap.invalidate()
    assert not snap.is_fresh()
    assert await snap.get() == [place]
    assert len(service.calls) == 2
