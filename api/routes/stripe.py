"""Stripe webhook route handler."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.middleware.signature_validation import validate_stripe_signature
from api.models.stripe_webhook import StripePaymentEvent, StripeWebhookEvent
from shared.redis_client import PAYMENT_EVENTS_CHANNEL, publish_to_channel
from shared.stripe_client import STRIPE_EVENT_OUTCOMES

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
async def receive_stripe_webhook(
    request: Request,
    event: dict[str, Any] = Depends(validate_stripe_signature),
) -> JSONResponse:
    """
    Receive Stripe webhook events.

    Only Checkout Session outcome events are processed. Valid events are
    enqueued to the Redis 'payment_events' channel and applied by the
    payment processor worker.

    Args:
        request: FastAPI request object
        event: Validated Stripe event dict (from signature validation)

    Returns:
        JSONResponse with 200 OK status

    Raises:
        HTTPException: 400 if the session carries no transaction id
    """
    try:
        webhook_event = StripeWebhookEvent.model_validate(event)
    except ValidationError as e:
        logger.error(f"Malformed Stripe event: {e}")
        raise HTTPException(status_code=400, detail="Malformed Stripe event") from e

    if webhook_event.type not in STRIPE_EVENT_OUTCOMES:
        logger.debug(f"Ignoring Stripe event type: {webhook_event.type}")
        return JSONResponse(status_code=200, content={"status": "ignored"})

    checkout_session = webhook_event.data.get("object", {})
    transaction_id = checkout_session.get("client_reference_id") or checkout_session.get(
        "metadata", {}
    ).get("transaction_id")

    try:
        payment_event = StripePaymentEvent(
            event_id=webhook_event.id,
            event_type=webhook_event.type,
            transaction_id=transaction_id,
            checkout_session_id=checkout_session.get("id"),
            payment_intent=checkout_session.get("payment_intent"),
            amount_total=checkout_session.get("amount_total"),
            currency=checkout_session.get("currency"),
            payment_status=checkout_session.get("payment_status"),
        )
    except ValidationError as e:
        logger.error(
            f"Missing transaction id in Stripe event {webhook_event.id}: type={webhook_event.type}"
        )
        raise HTTPException(status_code=400, detail="Missing transaction id") from e

    await publish_to_channel(PAYMENT_EVENTS_CHANNEL, payment_event.model_dump())

    logger.info(
        f"Stripe event enqueued: type={webhook_event.type}, "
        f"transaction_id={payment_event.transaction_id}",
        extra={"transaction_id": payment_event.transaction_id},
    )

    return JSONResponse(status_code=200, content={"status": "received"})
