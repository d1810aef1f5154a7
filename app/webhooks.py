"""
File: app/webhooks.py
Path: app/webhooks.py

Project: Evolution WhatsApp Console

Purpose:
Inbound Evolution webhook handler (unauthenticated; network access is
restricted to the gateway).

POST /webhooks/evolution
    body: {event, instance, data}

Notes:
- Always 200 {"received": true}, except for an unparseable body
  (500 {"error": ...}), so the gateway never retry-storms on business misses
- All event handling is delegated to WebhookIngestor, off the event loop
"""

import json
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.db import get_db
from app.services.webhook_ingestor import WebhookEvent, WebhookIngestor, summarise

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger("webhooks")

RECEIVED = {"received": True}


@router.post("/evolution")
async def evolution_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    # ---- Parse payload ----
    try:
        body = json.loads(await request.body())
    except ValueError as e:
        logger.error("[Webhook] Error: unparseable payload (%s)", e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": f"Invalid JSON payload: {e}"},
        )

    event = WebhookEvent.from_body(body)
    if event is None:
        logger.info("[Webhook] Missing instance or event")
        return RECEIVED

    try:
        result = await run_in_threadpool(WebhookIngestor(db).ingest, event)
    except Exception:
        logger.exception("[Webhook] Failed to apply %s for %s", event.event_type, event.instance_name)
        db.rollback()
        return RECEIVED

    logger.info("[Webhook] Processed %s", summarise(result))
    return RECEIVED
