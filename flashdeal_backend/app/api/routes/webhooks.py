"""
Webhook Routes

Pix payment notifications from the gateway (Asaas-style). Authenticated
with the pre-shared `asaas-access-token` header.

Status codes drive the gateway's redelivery: 2xx stops it, 5xx retries.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_container
from app.core.container import ServiceContainer
from app.core.redis_client import pix_event_handled, record_pix_event
from app.services.payment_webhook import WebhookOutcome, parse_payment_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

WEBHOOK_TOKEN_HEADER = "asaas-access-token"

# Outcomes after which a redelivery of the same event has nothing left to do
_TERMINAL_OUTCOMES = {
    WebhookOutcome.CONFIRMED,
    WebhookOutcome.DUPLICATE,
    WebhookOutcome.LATE_PAYMENT,
}


@router.post("/pix")
async def pix_webhook(
    request: Request,
    container: ServiceContainer = Depends(get_container),
):
    """
    Handle a Pix payment event.

    The Redis marker keyed by the event id short-circuits redeliveries
    across instances; the reservation's `finalized` flag stays the
    authoritative replay guard when Redis is unavailable.
    """
    body = await request.body()
    token = request.headers.get(WEBHOOK_TOKEN_HEADER)
    processor = container.webhooks

    event_id = None
    if processor.authenticate(token):
        event = parse_payment_event(body)
        event_id = event.event_id if event else None
        if event_id and await pix_event_handled(event_id):
            logger.info(f"Pix webhook event {event_id} already processed, skipping")
            return JSONResponse(status_code=200, content={"status": WebhookOutcome.DUPLICATE.value})

    result = await processor.handle_payment_event(body, token)

    if event_id and result.outcome in _TERMINAL_OUTCOMES:
        await record_pix_event(event_id)

    return JSONResponse(status_code=result.http_status, content={"status": result.outcome.value})
