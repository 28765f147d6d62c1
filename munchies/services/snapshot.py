from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from fastapi.concurrency import run_in_threadpool

from munchies.core.contracts import Place
from munchies.core.errors import QueryFailed
from munchies.services.places import PlacesService

logger = logging.getLogger(__name__)

# minLng, minLat, maxLng, maxLat
MICHIGAN_BBOX = (-85.0, 41.0, -81.0, 45.0)
SNAPSHOT_LIMIT = 1000


class PlacesSnapshot:
    """
    All published places in the Michigan-wide rectangle, held in memory for
    ttl_s seconds. Callers arriving while a load is running await that same
    load instead of starting another one.

    A failed reload keeps serving the previous snapshot if there is one.
    """

    def __init__(
        self,
        *,
        service: PlacesService,
        ttl_s: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service = service
        self.ttl_s = float(ttl_s)
        self._clock = clock
        self._places: Optional[List[Place]] = None
        self._loaded_at: Optional[float] = None
        self._inflight: Optional[asyncio.Future] = None

    def is_fresh(self) -> bool:
        if self._places is None or self._loaded_at is None:
            return False
        return (self._clock() - self._loaded_at) < self.ttl_s

    def invalidate(self) -> None:
        self._loaded_at = None

    async def get(self) -> List[Place]:
        if self.is_fresh():
            return self._places or []

        if self._inflight is not None:
            return await asyncio.shield(self._inflight)

        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight = fut
        try:
            places = await self._load()
        except asyncio.CancelledError:
            fut.cancel()
            raise
        except Exception as e:
            fut.set_exception(e)
            fut.exception()  # retrieved; waiters re-raise it from await
            raise
        else:
            fut.set_result(places)
            return places
        finally:
            self._inflight = None

    async def _load(self) -> List[Place]:
        min_lng, min_lat, max_lng, max_lat = MICHIGAN_BBOX
        res = await run_in_threadpool(
            self.service.get_places_in_bounds,
            min_lng,
            min_lat,
            max_lng,
            max_lat,
            SNAPSHOT_LIMIT,
        )
        if res.is_error:
            if self._places is not None:
                logger.warning("[snapshot] reload failed, serving stale snapshot: %s", res.reason)
                return self._places
            raise QueryFailed(res.reason or "snapshot load failed")

        places = res.unwrap_or([])
        self._places = places
        self._loaded_at = self._clock()
        logger.info("[snapshot] loaded %d places", len(places))
        return places
