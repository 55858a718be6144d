"""Provider webhook receiver.

The provider authenticates by the secret embedded in the registered URL.
Deliveries for unknown accounts and repeated deliveries are acknowledged
with 200 so the provider stops retrying them.
"""

import json
import logging

from fastapi import APIRouter, Depends, Request

from bankfeed.api.deps import get_webhook_service, get_webhook_status_service
from bankfeed.core.exceptions import InvalidWebhookPayload
from bankfeed.schemas.webhook import WebhookAck, WebhookStatusResponse
from bankfeed.services.webhook import WebhookOutcome, WebhookService, WebhookStatusService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bank/webhooks", tags=["webhooks"])

_ACK_MESSAGES = {
    WebhookOutcome.PROCESSED: "Transaction processed",
    WebhookOutcome.ALREADY_PROCESSED: "Already processed",
    WebhookOutcome.UNKNOWN_ACCOUNT: "Unknown account",
}


@router.get(
    "/status",
    response_model=WebhookStatusResponse,
    summary="Webhook delivery health",
)
async def get_webhook_status(
    service: WebhookStatusService = Depends(get_webhook_status_service),
) -> WebhookStatusResponse:
    """Recent deliveries, failure counts and the latest delivery per account."""
    return await service.get_status()


@router.post(
    "/{provider}/{secret}",
    response_model=WebhookAck,
    summary="Receive a provider webhook",
    responses={
        400: {"description": "Malformed payload"},
        403: {"description": "Invalid secret"},
        404: {"description": "Unsupported provider"},
        500: {"description": "Processing failed; the provider retries"},
    },
)
async def receive_webhook(
    provider: str,
    secret: str,
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
) -> WebhookAck:
    service.authenticate(
        provider, secret, client_ip=request.client.host if request.client else None
    )

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidWebhookPayload(details={"reason": "body is not JSON"}) from exc

    payload = service.parse_payload(body)
    outcome = await service.handle_transaction_created(payload)
    return WebhookAck(message=_ACK_MESSAGES[outcome])
