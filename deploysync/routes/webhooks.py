"""Render webhook route for deploysync."""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from pydantic import ValidationError

from deploysync.handlers.reconcile import handle_deploy_event
from deploysync.schemas.events import DeploymentEvent, WebhookResponse
from deploysync.security import verify_webhook_signature

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

DEPLOY_EVENT_TYPES = frozenset({"deploy_ended", "deploy_succeeded", "deploy"})


@router.post("/webhook", response_model=WebhookResponse)
async def render_webhook(request: Request, background_tasks: BackgroundTasks) -> WebhookResponse:
    """Receive a deploy event from Render.

    Verifies the signature against the raw body, acknowledges immediately and
    reconciles in the background. Unsupported event types are acknowledged
    with an informational message so Render does not redeliver them.
    """
    settings = request.app.state.settings
    body = await request.body()
    delivery_id = request.headers.get("webhook-id")

    if settings.webhook_secret:
        valid = verify_webhook_signature(
            body,
            request.headers.get("webhook-signature"),
            delivery_id,
            request.headers.get("webhook-timestamp"),
            settings.webhook_secret,
        )
        if not valid:
            logger.warning("Invalid webhook signature for delivery %s", delivery_id)
            raise HTTPException(status_code=401, detail="Invalid signature")
    else:
        logger.warning("DEPLOYSYNC_WEBHOOK_SECRET not set — skipping signature verification")

    try:
        payload = json.loads(body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.error("Failed to parse webhook payload: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    event_type = payload.get("type")
    if event_type not in DEPLOY_EVENT_TYPES:
        logger.info("Ignoring webhook type %s (delivery %s)", event_type, delivery_id)
        return WebhookResponse(
            status="ignored",
            message=f"Unsupported event type: {event_type}",
            delivery_id=delivery_id,
        )

    try:
        event = DeploymentEvent.model_validate(payload)
    except ValidationError as exc:
        logger.error("Invalid deploy event payload: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid deploy event payload")

    background_tasks.add_task(handle_deploy_event, request.app.state.orchestrator, event)
    logger.info("Accepted %s for deploy %s (delivery %s)", event_type, event.deploy_id, delivery_id)
    return WebhookResponse(status="accepted", deploy_id=event.deploy_id, delivery_id=delivery_id)
