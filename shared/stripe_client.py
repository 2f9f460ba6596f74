"""
Stripe API client for payment processing.

Creates hosted Checkout Sessions for bookings. The tourist is redirected to the
session URL; Stripe sends them back to our success/cancel callback routes with
the booking's transaction id (plus the Checkout Session id on success, which
is checked against Stripe before a payment is marked paid), and webhook events
carry the same transaction id in ``client_reference_id``.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Protocol
from urllib.parse import urlencode

import pybreaker
import stripe

from shared.circuit_breaker import call_with_breaker, payment_gateway_breaker
from shared.config import get_settings
from shared.errors import GatewayError

logger = logging.getLogger(__name__)

# Replaced by Stripe with the Checkout Session id in success_url
CHECKOUT_SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


@dataclass(frozen=True)
class PaymentContact:
    """Tourist contact details forwarded to the gateway."""

    name: str
    email: str
    phone_number: str
    address: str


class PaymentGateway(Protocol):
    """Outbound gateway contract used by the booking transaction."""

    async def initiate(
        self,
        *,
        amount: Decimal,
        transaction_id: str,
        contact: PaymentContact,
        booking_id: str,
        description: str,
    ) -> str:
        """Start a payment and return the redirect URL."""
        ...

    async def confirm_checkout(self, *, session_id: str, transaction_id: str) -> bool:
        """Return True when the gateway reports the checkout as paid for this transaction."""
        ...


def build_callback_url(outcome: str, transaction_id: str) -> str:
    """Build the URL the gateway redirects the browser to after checkout."""
    settings = get_settings()
    base = settings.API_PUBLIC_URL.rstrip("/")
    return f"{base}/api/payment/{outcome}?{urlencode({'transactionId': transaction_id})}"


class StripePaymentGateway:
    """
    Payment gateway backed by Stripe Checkout.

    Every call is bounded by PAYMENT_GATEWAY_TIMEOUT_SECONDS and guarded by the
    payment gateway circuit breaker. All failure modes surface as GatewayError.
    """

    def __init__(self, timeout_seconds: float | None = None):
        settings = get_settings()
        stripe.api_key = settings.STRIPE_SECRET_KEY
        self.currency = settings.PAYMENT_CURRENCY
        self.timeout_seconds = timeout_seconds or settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS

    async def initiate(
        self,
        *,
        amount: Decimal,
        transaction_id: str,
        contact: PaymentContact,
        booking_id: str,
        description: str,
    ) -> str:
        """
        Create a Checkout Session and return its hosted URL.

        Args:
            amount: Amount to charge in major currency units
            transaction_id: Our transaction id (sent as client_reference_id)
            contact: Tourist contact info
            booking_id: Booking UUID as string (metadata)
            description: Line item description (tour title)

        Returns:
            Checkout Session URL

        Raises:
            GatewayError: On Stripe error, timeout, or open circuit
        """
        # Stripe uses the smallest currency unit
        amount_cents = int((amount * 100).to_integral_value())

        params = {
            "mode": "payment",
            "client_reference_id": transaction_id,
            "customer_email": contact.email or None,
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "unit_amount": amount_cents,
                        "product_data": {"name": description},
                    },
                    "quantity": 1,
                }
            ],
            "metadata": {
                "booking_id": booking_id,
                "transaction_id": transaction_id,
                "customer_name": contact.name,
                "customer_phone": contact.phone_number,
                "customer_address": contact.address,
            },
            # Stripe substitutes the literal placeholder, so it must not be urlencoded
            "success_url": (
                f"{build_callback_url('success', transaction_id)}&session_id={CHECKOUT_SESSION_PLACEHOLDER}"
            ),
            "cancel_url": build_callback_url("cancel", transaction_id),
        }

        logger.info(
            f"Creating Stripe Checkout Session for booking {booking_id}, "
            f"amount: {amount} ({amount_cents} cents)",
            extra={"booking_id": booking_id, "transaction_id": transaction_id},
        )

        session = await self._call_stripe(stripe.checkout.Session.create, transaction_id, **params)

        if not session.url:
            raise GatewayError("Payment gateway returned no redirect URL")

        logger.info(
            f"Checkout Session created successfully: {session.id}",
            extra={"booking_id": booking_id, "transaction_id": transaction_id},
        )
        return session.url

    async def confirm_checkout(self, *, session_id: str, transaction_id: str) -> bool:
        """
        Check with Stripe that a Checkout Session was paid for this transaction.

        The success redirect is only a browser navigation, so its fields are
        not trusted: the session is retrieved from Stripe and must report
        ``payment_status == "paid"`` with our transaction id as its
        ``client_reference_id``.

        Raises:
            GatewayError: On Stripe error, timeout, or open circuit
        """
        session = await self._call_stripe(stripe.checkout.Session.retrieve, transaction_id, session_id)

        if session.client_reference_id != transaction_id:
            logger.warning(
                f"Checkout Session {session_id} belongs to {session.client_reference_id}, "
                f"not {transaction_id}",
                extra={"transaction_id": transaction_id},
            )
            return False
        if session.payment_status != "paid":
            logger.info(
                f"Checkout Session {session_id} payment_status={session.payment_status}",
                extra={"transaction_id": transaction_id},
            )
            return False
        return True

    async def _call_stripe(self, method: Callable, transaction_id: str, *args, **kwargs):
        try:
            return await call_with_breaker(
                payment_gateway_breaker,
                self._run_blocking,
                method,
                *args,
                **kwargs,
            )
        except pybreaker.CircuitBreakerError as e:
            raise GatewayError("Payment gateway temporarily unavailable", e) from e
        except asyncio.TimeoutError as e:
            logger.error(
                f"Stripe call timed out after {self.timeout_seconds}s",
                extra={"transaction_id": transaction_id},
            )
            raise GatewayError("Payment gateway timed out", e) from e
        except stripe.StripeError as e:
            logger.error(
                f"Stripe API error: {e}",
                extra={"transaction_id": transaction_id},
            )
            raise GatewayError(f"Payment gateway error: {e.user_message or e}", e) from e

    async def _run_blocking(self, method: Callable, *args, **kwargs):
        return await asyncio.wait_for(
            asyncio.to_thread(method, *args, **kwargs),
            timeout=self.timeout_seconds,
        )


# Checkout Session webhook events and the payment outcome each one reports
STRIPE_EVENT_OUTCOMES = {
    "checkout.session.completed": "success",
    "checkout.session.async_payment_succeeded": "success",
    "checkout.session.async_payment_failed": "fail",
    "checkout.session.expired": "cancel",
}
