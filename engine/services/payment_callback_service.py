"""
Payment Callback Service - applies inbound gateway outcomes to payments and bookings.

Gateway notifications arrive through several transports (browser redirects,
Stripe webhooks relayed by the payment processor worker) and may be
duplicated or out of order. Handling is idempotent and serialised per payment:

- The payment row is locked (SELECT ... FOR UPDATE) for the whole unit of work
- Same status already recorded: no-op success, nothing written
- A different final status already recorded: first write wins, the event is
  reported as an inconsistency and nothing is written
- Otherwise payment and booking statuses are updated together and the raw
  event is appended to payment.gateway_data["events"]

FAILED is final for fail/cancel events but a success event may still
promote it: the compensating FAILED write after a gateway timeout can race a
checkout the tourist actually completed.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select

from database.connection import get_async_session
from database.models import Booking, Payment, PaymentStatus
from engine.fsm import BookingStatusMachine
from engine.utils import Clock, utc_now
from shared.errors import BookingError, ErrorCode, OperationResult

logger = logging.getLogger(__name__)

# Field names gateways use for our transaction id, in lookup order
TRANSACTION_ID_ALIASES = (
    "transactionId",
    "transaction_id",
    "tran_id",
    "tranId",
    "tranID",
    "client_reference_id",
)

FINAL_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.REFUNDED}
)

OUTCOME_TARGETS = {
    "success": PaymentStatus.PAID,
    "fail": PaymentStatus.FAILED,
    "cancel": PaymentStatus.CANCELLED,
}


def resolve_transaction_id(event: Mapping[str, Any]) -> str | None:
    """
    Return the transaction id carried by an inbound event, or None.

    Example:
        >>> resolve_transaction_id({"tran_id": "TXN-1-abc123"})
        'TXN-1-abc123'
        >>> resolve_transaction_id({"transactionId": "", "tranId": "TXN-2-def456"})
        'TXN-2-def456'
    """
    for alias in TRANSACTION_ID_ALIASES:
        value = event.get(alias)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value
    return None


def _json_safe(event: Mapping[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(dict(event), default=str))


def _can_apply(current: PaymentStatus, target: PaymentStatus) -> bool:
    if current not in FINAL_PAYMENT_STATUSES:
        return True
    return current == PaymentStatus.FAILED and target == PaymentStatus.PAID


class PaymentCallbackService:
    """
    Reconciles gateway success/fail/cancel notifications.

    Example:
        >>> result = await PaymentCallbackService().on_success({"tran_id": "TXN-1760882400123-9f2c1a"})
        >>> result.data["payment_status"]
        'PAID'
    """

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    async def on_success(self, event: Mapping[str, Any]) -> OperationResult:
        return await self._apply("success", PaymentStatus.PAID, event)

    async def on_fail(self, event: Mapping[str, Any]) -> OperationResult:
        return await self._apply("fail", PaymentStatus.FAILED, event)

    async def on_cancel(self, event: Mapping[str, Any]) -> OperationResult:
        return await self._apply("cancel", PaymentStatus.CANCELLED, event)

    async def apply_gateway_event(self, outcome: str, event: Mapping[str, Any]) -> OperationResult:
        """Dispatch by outcome name ("success", "fail", "cancel")."""
        target = OUTCOME_TARGETS.get(outcome)
        if target is None:
            return OperationResult.fail(
                BookingError(ErrorCode.VALIDATION_ERROR, f"Unknown payment outcome: {outcome}")
            )
        return await self._apply(outcome, target, event)

    async def _apply(
        self,
        outcome: str,
        target: PaymentStatus,
        event: Mapping[str, Any],
    ) -> OperationResult:
        transaction_id = resolve_transaction_id(event)
        if transaction_id is None:
            logger.warning(
                f"Payment {outcome} callback without transaction id: fields={sorted(event.keys())}"
            )
            return OperationResult.fail(
                BookingError(
                    ErrorCode.VALIDATION_ERROR,
                    "Transaction id is required",
                    {"accepted_fields": list(TRANSACTION_ID_ALIASES)},
                )
            )

        log_extra = {"transaction_id": transaction_id}
        logger.info(f"Payment {outcome} callback received: transaction_id={transaction_id}", extra=log_extra)

        async with get_async_session() as session:
            result = await session.execute(
                select(Payment).where(Payment.transaction_id == transaction_id).with_for_update()
            )
            payment = result.scalar_one_or_none()
            if payment is None:
                logger.warning(f"Payment {outcome} callback for unknown transaction_id={transaction_id}", extra=log_extra)
                return OperationResult.fail(
                    BookingError(
                        ErrorCode.NOT_FOUND,
                        "Payment not found",
                        {"transaction_id": transaction_id},
                    )
                )

            current = payment.status
            if current == target:
                logger.info(
                    f"Duplicate payment {outcome} callback ignored: transaction_id={transaction_id}",
                    extra=log_extra,
                )
                return self._result(payment, None, already_processed=True, inconsistent=False)

            if not _can_apply(current, target):
                logger.warning(
                    f"Payment callback inconsistency: transaction_id={transaction_id} "
                    f"status={current.value} incoming={target.value}, keeping {current.value}",
                    extra=log_extra,
                )
                return self._result(payment, None, already_processed=False, inconsistent=True)

            result = await session.execute(
                select(Booking).where(Booking.id == payment.booking_id).with_for_update()
            )
            booking = result.scalar_one_or_none()

            now = self.clock()
            events = list(payment.gateway_data.get("events", []))
            events.append({"type": outcome, "received_at": now.isoformat(), "payload": _json_safe(event)})
            # New dict object so the JSONB column is flagged dirty
            payment.gateway_data = {**payment.gateway_data, "events": events}
            payment.status = target
            payment.updated_at = now

            inconsistent = False
            booking_target = BookingStatusMachine.callback_target(target)
            if booking is None:
                logger.error(
                    f"Payment {transaction_id} has no booking {payment.booking_id}",
                    extra=log_extra,
                )
                inconsistent = True
            elif BookingStatusMachine.is_terminal(booking.status):
                logger.warning(
                    f"Booking {booking.id} is {booking.status.value}, not moving to {booking_target.value} "
                    f"for transaction_id={transaction_id}",
                    extra={**log_extra, "booking_id": str(booking.id)},
                )
                inconsistent = True
            else:
                booking.status = booking_target
                booking.updated_at = now

            await session.commit()

        logger.info(
            f"Payment {transaction_id} {current.value} -> {target.value}",
            extra={**log_extra, "payment_id": str(payment.id)},
        )
        return self._result(payment, booking, already_processed=False, inconsistent=inconsistent)

    @staticmethod
    def _result(
        payment: Payment,
        booking: Booking | None,
        *,
        already_processed: bool,
        inconsistent: bool,
    ) -> OperationResult:
        return OperationResult.ok(
            transaction_id=payment.transaction_id,
            payment_id=str(payment.id),
            booking_id=str(payment.booking_id),
            payment_status=payment.status.value,
            booking_status=booking.status.value if booking is not None else None,
            amount=str(payment.amount),
            already_processed=already_processed,
            inconsistent=inconsistent,
        )
