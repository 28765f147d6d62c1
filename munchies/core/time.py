from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

# Fixed-width so ISO strings stored in SQLite compare correctly as text.
_ISO_FMT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(_ISO_FMT)


def utc_now_iso() -> str:
    return to_iso(utc_now())


def parse_iso(s: Optional[str]) -> Optional[datetime]:
    if not s:
        return None
    try:
        t = str(s).strip()
        if not t:
            return None
        if t.endswith("Z"):
            t = t[:-1] + "+00:00"
        dt = datetime.fromisoformat(t)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        return None


def expires_at_iso(now: datetime, ttl_s: int) -> str:
    return to_iso(now + timedelta(seconds=int(ttl_s)))
