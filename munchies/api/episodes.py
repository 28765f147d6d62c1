from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from munchies.core.contracts import Episode
from munchies.core.errors import ConfigError, UpstreamError, bad_gateway, server_error
from munchies.services.feeds import EpisodeFeed

logger = logging.getLogger(__name__)

router = APIRouter()


def get_episode_feed() -> EpisodeFeed:
    raise RuntimeError("EpisodeFeed must be provided by app dependency override")


@router.get("/episodes", response_model=List[Episode])
async def list_episodes(
    background: BackgroundTasks,
    limit: int = Query(default=10, ge=1, le=50),
    feed: EpisodeFeed = Depends(get_episode_feed),
) -> List[Episode]:
    try:
        return await feed.get_episodes(limit=limit, background=background)
    except ConfigError as e:
        server_error("youtube_unconfigured", str(e))
    except UpstreamError as e:
        logger.error("youtube episodes failed: %s", e)
        bad_gateway("youtube_failed", "Failed to fetch episodes")
