"""
Fourthwall webhook verification + dispatch.

Signature: header `x-fourthwall-signature: sha256=<hex>` where hex is
HMAC-SHA256(secret, raw request body). Verification happens on the raw bytes
before any JSON parsing; nothing is dispatched for an unverified request.

Event handlers are looked up by payload["type"]. A handler that raises is
logged and the webhook is still acknowledged.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Callable, Dict, Optional

from munchies.services.content_cache import ProductsCache

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-fourthwall-signature"
SIGNATURE_PREFIX = "sha256="

Handler = Callable[[Dict[str, Any]], None]


def sign(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, header: Optional[str], secret: str) -> bool:
    if not header or not secret:
        return False
    header = header.strip()
    if not header.startswith(SIGNATURE_PREFIX):
        return False
    return hmac.compare_digest(header.lower().encode("utf-8"), sign(body, secret).encode("utf-8"))


class FourthwallWebhooks:
    def __init__(self, *, secret: Optional[str], products_cache: ProductsCache):
        self.secret = secret
        self.products_cache = products_cache
        self.handlers: Dict[str, Handler] = {
            "order.created": self._on_order,
            "order.updated": self._on_order,
            "product.created": self._on_product_changed,
            "product.updated": self._on_product_changed,
        }

    @property
    def configured(self) -> bool:
        return bool(self.secret)

    def verify(self, body: bytes, header: Optional[str]) -> bool:
        return verify_signature(body, header, self.secret or "")

    def dispatch(self, payload: Dict[str, Any]) -> Optional[str]:
        """Run the handler for payload['type']. Returns the type handled (or None)."""
        event_type = payload.get("type")
        handler = self.handlers.get(event_type) if isinstance(event_type, str) else None
        if handler is None:
            logger.info("[webhook] unknown event type: %r", event_type)
            return None

        try:
            handler(payload)
        except Exception as e:
            logger.error("[webhook] handler for %s failed: %s", event_type, e)
        return event_type

    # ──────────────────────────────────────────────────────────
    # Handlers
    # ──────────────────────────────────────────────────────────

    def _on_order(self, payload: Dict[str, Any]) -> None:
        data = payload.get("data") or {}
        order_id = data.get("id") if isinstance(data, dict) else None
        logger.info("[webhook] %s order_id=%s", payload.get("type"), order_id)

    def _on_product_changed(self, payload: Dict[str, Any]) -> None:
        data = payload.get("data") or {}
        product_id = data.get("id") if isinstance(data, dict) else None
        n = self.products_cache.clear_all()
        logger.info(
            "[webhook] %s product_id=%s, products cache cleared (%d rows)",
            payload.get("type"),
            product_id,
            n,
        )
