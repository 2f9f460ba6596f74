"""
Payment gateway redirect callbacks.

After checkout the gateway sends the browser to
``/api/payment/{success|fail|cancel}`` with our transaction id, either in the
query string (GET) or as a form/JSON body (POST). The outcome is applied
through the payment callback service and the browser is redirected on to
the frontend with a short summary.

A success redirect is applied only after the Checkout Session it names has
been confirmed as paid with Stripe. Otherwise the payment is left for the
signed webhook to settle.
"""

import json
import logging
from typing import Annotated, Any, Literal
from urllib.parse import parse_qsl, urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from engine.services import PaymentCallbackService, resolve_transaction_id
from shared.config import get_settings
from shared.errors import GatewayError
from shared.stripe_client import PaymentGateway, StripePaymentGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment")

Outcome = Literal["success", "fail", "cancel"]

OUTCOME_MESSAGES = {
    "success": "Payment completed successfully",
    "fail": "Payment failed",
    "cancel": "Payment was cancelled",
}

PENDING_MESSAGE = "Payment is being confirmed"


def get_callback_service() -> PaymentCallbackService:
    return PaymentCallbackService()


def get_payment_gateway() -> PaymentGateway:
    return StripePaymentGateway()


CallbackServiceDep = Annotated[PaymentCallbackService, Depends(get_callback_service)]
PaymentGatewayDep = Annotated[PaymentGateway, Depends(get_payment_gateway)]


async def collect_callback_fields(request: Request) -> dict[str, Any]:
    """Merge query parameters with a form or JSON body. Body fields win."""
    fields: dict[str, Any] = dict(request.query_params)
    if request.method != "POST":
        return fields

    body = await request.body()
    if not body:
        return fields

    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            parsed = json.loads(body)
        except ValueError:
            logger.warning(f"Ignoring malformed JSON body on {request.url.path}")
            return fields
        if isinstance(parsed, dict):
            fields.update(parsed)
    else:
        fields.update(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
    return fields


async def success_confirmed(fields: dict[str, Any], gateway: PaymentGateway) -> bool:
    """True when the redirect names a Checkout Session Stripe reports as paid."""
    transaction_id = resolve_transaction_id(fields)
    session_id = str(fields.get("session_id") or "").strip()
    if not transaction_id or not session_id:
        return False

    try:
        return await gateway.confirm_checkout(session_id=session_id, transaction_id=transaction_id)
    except GatewayError as e:
        logger.warning(
            f"Could not confirm checkout session {session_id}: {e.message}",
            extra={"transaction_id": transaction_id},
        )
        return False


def frontend_url(outcome: str) -> str:
    settings = get_settings()
    return {
        "success": settings.PAYMENT_SUCCESS_FRONTEND_URL,
        "fail": settings.PAYMENT_FAIL_FRONTEND_URL,
        "cancel": settings.PAYMENT_CANCEL_FRONTEND_URL,
    }[outcome]


def redirect_to(target: str, params: dict[str, Any]) -> RedirectResponse:
    return RedirectResponse(url=f"{frontend_url(target)}?{urlencode(params)}", status_code=303)


@router.api_route("/{outcome}", methods=["GET", "POST"])
async def payment_callback(
    outcome: Outcome,
    request: Request,
    service: CallbackServiceDep,
    gateway: PaymentGatewayDep,
) -> RedirectResponse:
    fields = await collect_callback_fields(request)

    if outcome == "success" and not await success_confirmed(fields, gateway):
        logger.info(
            "Unconfirmed success redirect, leaving payment status to the webhook",
            extra={"request_path": request.url.path},
        )
        return redirect_to(
            "success",
            {
                "transactionId": resolve_transaction_id(fields) or "",
                "message": PENDING_MESSAGE,
                "amount": "",
                "status": "PENDING",
            },
        )

    result = await service.apply_gateway_event(outcome, fields)

    if result.success:
        target = outcome
        params = {
            "transactionId": result.data["transaction_id"],
            "message": OUTCOME_MESSAGES[outcome],
            "amount": result.data["amount"],
            "status": result.data["payment_status"],
        }
        if result.data["inconsistent"]:
            # Payment already settled differently; show the recorded status
            params["message"] = f"Payment is already {result.data['payment_status'].lower()}"
            target = "success" if result.data["payment_status"] == "PAID" else "fail"
    else:
        target = "fail" if outcome == "success" else outcome
        params = {
            "transactionId": resolve_transaction_id(fields) or "",
            "message": result.error_message,
            "amount": "",
            "status": result.error_code.value,
        }
        logger.warning(
            f"Payment {outcome} callback rejected: {result.error_code.value} {result.error_message}",
            extra={"request_path": request.url.path},
        )

    return redirect_to(target, params)
