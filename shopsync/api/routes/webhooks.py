"""Shopify webhook ingress.

Every delivery that passes signature verification is answered with 200 so
Shopify does not retry it; problems after verification are reported in the
body instead.
"""

import json
import logging

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse

from shopsync.api.routes.deps import get_engine
from shopsync.core.data_objects import SyncTrigger, kind_for_topic
from shopsync.core.engine import Engine
from shopsync.core.exceptions import SignatureVerificationError
from shopsync.core.queue import JobPriority, JobType
from shopsync.core.webhooks import extract_resource_id, normalize_topic, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("")
async def receive_webhook(
    request: Request,
    x_shopify_topic: str | None = Header(default=None),
    engine: Engine = Depends(get_engine),
):
    """Webhook with the topic in the X-Shopify-Topic header."""
    if not x_shopify_topic:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing X-Shopify-Topic header"},
        )
    return await handle_webhook(request, normalize_topic(x_shopify_topic), engine)


@router.post("/{topic}")
async def receive_topic_webhook(
    topic: str,
    request: Request,
    engine: Engine = Depends(get_engine),
):
    """Webhook with the topic in the path (``orders-create``)."""
    return await handle_webhook(request, normalize_topic(topic), engine)


async def handle_webhook(request: Request, topic: str, engine: Engine) -> JSONResponse:
    body = await request.body()

    secret = engine.settings.webhook_secret
    if secret:
        try:
            verify_signature(body, request.headers.get("X-Shopify-Hmac-Sha256"), secret)
        except SignatureVerificationError as e:
            logger.warning(f"Rejected webhook for {topic}: {e}")
            return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": str(e)})
    else:
        logger.warning("No webhook secret configured, skipping verification")

    try:
        kind = kind_for_topic(engine.data_objects, topic)
        if kind is None:
            logger.info(f"Ignoring webhook for unknown topic {topic}")
            return _ignored(f"Unknown topic: {topic}")

        config = engine.data_objects[kind]
        if not config.enabled:
            return _ignored(f"{kind.value} is disabled")
        if config.trigger != SyncTrigger.WEBHOOK:
            return _ignored(f"{kind.value} is not webhook triggered")

        data = json.loads(body or b"{}")
        remote_id = extract_resource_id(topic, data)
        event_id = engine.webhook_events.store(topic, remote_id, data)
        handle = engine.queue.enqueue(
            kind,
            JobType.WEBHOOK,
            priority=JobPriority.HIGH,
            payload={"event_id": event_id, "topic": topic, "remote_id": remote_id, "data": data},
        )
        logger.info(f"Webhook {topic} stored as event {event_id}, job {handle.id}")
        return JSONResponse(content={
            "received": True,
            "processed": True,
            "event_id": event_id,
            "job_id": handle.id,
        })
    except Exception as e:
        logger.error(f"Error handling webhook {topic}: {e}", exc_info=True)
        return JSONResponse(content={"received": True, "processed": False, "error": str(e)})


def _ignored(reason: str) -> JSONResponse:
    return JSONResponse(content={"received": True, "processed": False, "reason": reason})
