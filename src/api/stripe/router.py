"""Stripe webhook endpoint."""

import orjson
import stripe  # type: ignore
from fastapi import APIRouter, Request, status

from src.api.core.dependencies import EventIngestionServiceDep
from src.api.core.exceptions.base import MetricsException
from src.api.core.messages import APIResponse, MessageCode
from src.api.stripe.schemas import WebhookReceipt
from src.utils.logger import get_logger
from src.utils.settings.stripe import StripeSettings

logger = get_logger(__name__)

router = APIRouter(prefix="/stripe", tags=["stripe"])

MAX_PAYLOAD_BYTES = 1024 * 1024


def verify_webhook(payload: bytes, signature: str) -> dict:
    """Check the Stripe signature and return the event as plain JSON."""
    try:
        stripe.Webhook.construct_event(
            payload,
            signature,
            StripeSettings().STRIPE_WEBHOOK_SECRET,
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("Webhook signature verification failed", error=str(e))
        raise MetricsException(
            MessageCode.INVALID_WEBHOOK,
            status.HTTP_400_BAD_REQUEST,
            details={"description": "Invalid webhook signature"},
        ) from e
    return orjson.loads(payload)


@router.post("/webhook", response_model=APIResponse[WebhookReceipt])
async def stripe_webhook(
    request: Request,
    ingestion: EventIngestionServiceDep,
) -> APIResponse[WebhookReceipt]:
    """Store a signed lifecycle event once; duplicates are acknowledged."""
    payload = await request.body()

    if not payload:
        raise MetricsException(
            MessageCode.BAD_REQUEST,
            status.HTTP_400_BAD_REQUEST,
            details={"description": "Empty webhook payload"},
        )

    if len(payload) > MAX_PAYLOAD_BYTES:
        raise MetricsException(
            MessageCode.BAD_REQUEST,
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            details={"description": "Webhook payload too large"},
        )

    signature = request.headers.get("stripe-signature")
    if not signature:
        raise MetricsException(
            MessageCode.BAD_REQUEST,
            status.HTTP_400_BAD_REQUEST,
            details={"description": "Missing stripe-signature header"},
        )

    event = verify_webhook(payload, signature)
    logger.info("Received webhook", event_type=event.get("type"), event_id=event.get("id"))

    result = await ingestion.ingest(event)

    return APIResponse.success(
        message_code=MessageCode.WEBHOOK_RECEIVED,
        data=WebhookReceipt(
            received=True,
            status=result.status.value,
            event_type=result.event_type,
            ms_member_id=result.member_id,
            reason=result.reason,
        ),
    )
