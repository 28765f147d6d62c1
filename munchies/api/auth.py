from __future__ import annotations

import hmac
import logging

from fastapi import Depends, Security
from fastapi.security import APIKeyHeader

from munchies.core.errors import server_error, unauthorized

logger = logging.getLogger(__name__)

INGEST_KEY_HEADER = "X-Ingest-Key"

ingest_key_header = APIKeyHeader(name=INGEST_KEY_HEADER, auto_error=False)


def get_ingest_key() -> str | None:
    raise RuntimeError("ingest key must be provided by app dependency override")


def require_ingest_key(
    api_key: str | None = Security(ingest_key_header),
    expected: str | None = Depends(get_ingest_key),
) -> None:
    """Shared-secret check for /ingest and /admin (constant-time compare)."""
    if not expected:
        logger.error("INGEST_API_KEY not configured; rejecting request")
        server_error("ingest_key_unconfigured", "INGEST_API_KEY is not configured")
    if not api_key:
        logger.warning("request missing %s header", INGEST_KEY_HEADER)
        unauthorized("unauthorized", "Missing or invalid ingest key")
    if not hmac.compare_digest(api_key.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("invalid ingest key attempt")
        unauthorized("unauthorized", "Missing or invalid ingest key")
