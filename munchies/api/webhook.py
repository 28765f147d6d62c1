from __future__ import annotations

import logging
from typing import Any, Dict

import orjson
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from munchies.core.contracts import WebhookAck
from munchies.core.errors import bad_request, server_error, unauthorized
from munchies.core.time import utc_now_iso
from munchies.services.webhooks import SIGNATURE_HEADER, FourthwallWebhooks

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fourthwall")


def get_webhooks() -> FourthwallWebhooks:
    raise RuntimeError("FourthwallWebhooks must be provided by app dependency override")


@router.post("/webhook", response_model=WebhookAck)
async def fourthwall_webhook(
    request: Request,
    hooks: FourthwallWebhooks = Depends(get_webhooks),
) -> WebhookAck:
    if not hooks.configured:
        server_error("webhook_unconfigured", "Webhook secret not configured")

    # Verify against the exact bytes received, before parsing.
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        unauthorized("missing_signature", "Missing signature")
    if not hooks.verify(body, signature):
        logger.warning("[webhook] invalid signature")
        unauthorized("invalid_signature", "Invalid signature")

    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError:
        bad_request("bad_json", "Webhook body must be JSON")
    if not isinstance(payload, dict):
        bad_request("bad_webhook", "Webhook body must be a JSON object")

    # handlers may touch the sqlite cache
    await run_in_threadpool(hooks.dispatch, payload)
    return WebhookAck(success=True)


@router.get("/webhook")
def webhook_liveness() -> Dict[str, Any]:
    return {"message": "Fourthwall webhook endpoint is active", "timestamp": utc_now_iso()}
