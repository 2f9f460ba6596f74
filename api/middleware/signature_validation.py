"""Dependency for Stripe webhook signature validation."""

import json
import logging
from typing import Any

import stripe
from fastapi import HTTPException, Request
from stripe import SignatureVerificationError

from shared.config import get_settings

logger = logging.getLogger(__name__)


async def validate_stripe_signature(request: Request) -> dict[str, Any]:
    """
    Validate the Stripe-Signature header and return the event as a plain dict.

    The signature is checked by ``stripe.Webhook.construct_event``; the event
    handed to routes is the JSON body itself, so handlers never depend on
    StripeObject behaviour.

    Raises:
        HTTPException: 401 if the header is missing or verification fails,
            400 if the verified body is not a JSON object
    """
    settings = get_settings()
    body = await request.body()

    signature_header: str | None = request.headers.get("Stripe-Signature")
    if not signature_header:
        logger.warning("Stripe webhook received without signature header")
        raise HTTPException(status_code=401, detail="Invalid Stripe signature")

    try:
        stripe.Webhook.construct_event(
            payload=body,
            sig_header=signature_header,
            secret=settings.STRIPE_WEBHOOK_SECRET,
        )
    except SignatureVerificationError as e:
        logger.warning(f"Stripe signature verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid Stripe signature") from e
    except ValueError as e:
        logger.warning(f"Stripe webhook body is not valid JSON: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload") from e

    event = json.loads(body)
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    logger.debug(f"Stripe signature validated: event_type={event.get('type')} event_id={event.get('id')}")
    return event
