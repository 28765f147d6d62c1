"""
YouTube episode adapter.

Reads a channel/playlist feed (YouTube serves Atom; plain RSS 2.0 also works)
and normalizes each entry into core.contracts.Episode, newest first.

No mock data: an unset feed URL is a ConfigError, a feed that cannot be
fetched/parsed or has no entries is an UpstreamError.
"""
from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import List, Optional

import httpx

from munchies.core.contracts import Episode
from munchies.core.errors import ConfigError, UpstreamError
from munchies.core.text import clean_description, clean_html_text
from munchies.core.time import parse_iso, to_iso

logger = logging.getLogger(__name__)

_WATCH_ID_RE = re.compile(r"[?&]v=([A-Za-z0-9_-]+)")
_SHORT_ID_RE = re.compile(r"youtu\.be/([A-Za-z0-9_-]+)")

THUMBNAIL_URL = "https://img.youtube.com/vi/{video_id}/hqdefault.jpg"


# ──────────────────────────────────────────────────────────────
# XML helpers (namespace-agnostic)
# ──────────────────────────────────────────────────────────────

def _localname(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _child(el: ET.Element, name: str) -> Optional[ET.Element]:
    for c in el:
        if _localname(c.tag) == name:
            return c
    return None


def _child_text(el: ET.Element, name: str) -> Optional[str]:
    c = _child(el, name)
    if c is None:
        return None
    txt = (c.text or "").strip()
    return txt or None


def _descendant(el: ET.Element, name: str) -> Optional[ET.Element]:
    for c in el.iter():
        if c is not el and _localname(c.tag) == name:
            return c
    return None


def _link(el: ET.Element) -> str:
    # RSS: <link>url</link>   Atom: <link rel="alternate" href="url"/>
    for c in el:
        if _localname(c.tag) != "link":
            continue
        href = c.get("href")
        if href and c.get("rel", "alternate") == "alternate":
            return href.strip()
        if (c.text or "").strip():
            return c.text.strip()
    return ""


# ──────────────────────────────────────────────────────────────
# Field extraction
# ──────────────────────────────────────────────────────────────

def extract_video_id(link: str) -> Optional[str]:
    """
    >>> extract_video_id("https://www.youtube.com/watch?v=abc123")
    'abc123'
    >>> extract_video_id("https://youtu.be/xyz_9")
    'xyz_9'
    """
    for rx in (_WATCH_ID_RE, _SHORT_ID_RE):
        m = rx.search(link or "")
        if m:
            return m.group(1)
    return None


def _parse_published(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    dt = parse_iso(raw)
    if dt is not None:
        return dt
    try:
        return parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None


def _description(entry: ET.Element) -> str:
    # description → media:group/media:description → summary → content
    group = _child(entry, "group")
    candidates = [
        _child_text(entry, "description"),
        _child_text(group, "description") if group is not None else None,
        _child_text(entry, "summary"),
        _child_text(entry, "content"),
    ]
    for raw in candidates:
        if raw:
            return clean_description(raw)
    return ""


def _view_count(entry: ET.Element) -> Optional[int]:
    stats = _descendant(entry, "statistics")
    if stats is None:
        return None
    try:
        return int(stats.get("views", ""))
    except ValueError:
        return None


def parse_feed(xml_text: str) -> List[Episode]:
    """
    Parse RSS <item>s or Atom <entry>s. Entries come back newest first;
    entries without a parseable date sort last.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise UpstreamError(f"youtube feed is not valid XML: {e}") from e

    entries = [el for el in root.iter() if _localname(el.tag) in ("item", "entry")]

    dated: List[tuple[Optional[datetime], Episode]] = []
    for i, entry in enumerate(entries):
        link = _link(entry)
        video_id = _child_text(entry, "videoId") or extract_video_id(link) or f"video-{i}"
        published = _parse_published(
            _child_text(entry, "pubDate") or _child_text(entry, "published") or _child_text(entry, "updated")
        )

        dated.append(
            (
                published,
                Episode(
                    id=video_id,
                    title=clean_html_text(_child_text(entry, "title")) or "Untitled Episode",
                    description=_description(entry),
                    thumbnail=THUMBNAIL_URL.format(video_id=video_id),
                    publishedAt=to_iso(published) if published else None,
                    videoId=video_id,
                    viewCount=_view_count(entry),
                ),
            )
        )

    dated.sort(key=lambda pair: (pair[0] is not None, pair[0].timestamp() if pair[0] else 0.0), reverse=True)
    return [ep for _, ep in dated]


# ──────────────────────────────────────────────────────────────
# Adapter
# ──────────────────────────────────────────────────────────────

class YouTubeEpisodes:
    def __init__(self, *, client: httpx.AsyncClient, rss_url: Optional[str], user_agent: str = "munchies/1.0"):
        self.client = client
        self.rss_url = rss_url
        self.headers = {"User-Agent": user_agent}

    async def fetch_episodes(self, limit: int = 10) -> List[Episode]:
        if not self.rss_url:
            raise ConfigError("YOUTUBE_RSS_URL is not configured")

        try:
            r = await self.client.get(self.rss_url, headers=self.headers)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamError(f"youtube feed fetch failed: {e}") from e

        episodes = parse_feed(r.text)
        if not episodes:
            raise UpstreamError("youtube feed has no entries")

        logger.info("youtube feed ok entries=%d", len(episodes))
        return episodes[: max(1, int(limit))]
