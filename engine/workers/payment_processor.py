"""
Payment Processor Worker - Applies Stripe webhook events to payments and bookings.

This worker subscribes to the Redis `payment_events` channel, where the Stripe
webhook route publishes signature-verified events, and hands each Checkout
Session event to the payment callback service.

Webhook Events Processed:
- checkout.session.completed / async_payment_succeeded: payment success
- checkout.session.async_payment_failed: payment failure
- checkout.session.expired: payment cancelled

The webhook route lifts our transaction id out of the session's
``client_reference_id``. Duplicate deliveries are absorbed by the callback
service's idempotency rules, so the worker never de-duplicates events itself.
"""

import asyncio
import json
import logging
from typing import Any

from engine.services.payment_callback_service import PaymentCallbackService
from shared.errors import OperationResult
from shared.logging_config import configure_logging
from shared.redis_client import PAYMENT_EVENTS_CHANNEL, get_redis_client
from shared.stripe_client import STRIPE_EVENT_OUTCOMES

logger = logging.getLogger(__name__)


async def process_payment_event(
    event_data: dict[str, Any],
    service: PaymentCallbackService | None = None,
) -> OperationResult | None:
    """
    Apply one payment event.

    Args:
        event_data: StripePaymentEvent dict as published by the webhook route
            (event_id, event_type, transaction_id, checkout_session_id, ...)
        service: Callback service (injected in tests)

    Returns:
        The callback service result, or None for event types we ignore
    """
    event_type = event_data.get("event_type")
    outcome = STRIPE_EVENT_OUTCOMES.get(event_type)
    if outcome is None:
        logger.warning(f"Unhandled payment event type: {event_type}")
        return None

    service = service or PaymentCallbackService()
    result = await service.apply_gateway_event(outcome, event_data)

    if result.success:
        logger.info(
            f"Payment event applied | type={event_type} | event_id={event_data.get('event_id')} | "
            f"payment_status={result.data['payment_status']} | "
            f"already_processed={result.data['already_processed']} | "
            f"inconsistent={result.data['inconsistent']}",
            extra={"transaction_id": result.data["transaction_id"]},
        )
    else:
        logger.error(
            f"Payment event rejected | type={event_type} | event_id={event_data.get('event_id')} | "
            f"error_code={result.error_code.value} | {result.error_message}"
        )
    return result


async def run_payment_processor():
    """
    Main worker loop - subscribes to Redis payment_events channel.

    Runs continuously until cancelled. A failing event is logged and the loop
    moves on to the next one.
    """
    redis_client = get_redis_client()
    pubsub = redis_client.pubsub()
    service = PaymentCallbackService()

    logger.info("Payment processor worker starting...")
    logger.info(f"Subscribing to Redis channel: {PAYMENT_EVENTS_CHANNEL}")

    await pubsub.subscribe(PAYMENT_EVENTS_CHANNEL)

    try:
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                event_data = json.loads(message["data"])
                logger.info(
                    f"Received payment event | type={event_data.get('event_type')} | "
                    f"event_id={event_data.get('event_id')}"
                )
                await process_payment_event(event_data, service)
            except json.JSONDecodeError as e:
                logger.error(f"Failed to decode payment event JSON: {e}")
            except Exception as e:
                logger.exception(f"Error processing payment event: {e}")

    except asyncio.CancelledError:
        logger.info("Payment processor worker shutting down...")
        await pubsub.unsubscribe(PAYMENT_EVENTS_CHANNEL)
        await pubsub.close()
    except Exception as e:
        logger.exception(f"Fatal error in payment processor worker: {e}")
        raise


if __name__ == "__main__":
    configure_logging()
    logger.info("Starting payment processor worker...")

    try:
        asyncio.run(run_payment_processor())
    except KeyboardInterrupt:
        logger.info("Payment processor worker stopped by user")
