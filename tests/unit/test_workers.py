"""
Unit tests for background workers.

Tests coverage:
- process_payment_event(): Stripe event types routed to callback outcomes
- find_expired_booking_ids(): cutoff derived from the payment timeout
- expire_unpaid_bookings(): counts cancellations, skips changed bookings,
  disabled when the timeout is 0
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from engine.workers.booking_expiration import expire_unpaid_bookings, find_expired_booking_ids
from engine.workers.payment_processor import process_payment_event
from shared.errors import BookingError, ErrorCode, OperationResult
from tests.factories import FIXED_NOW, make_session

TRANSACTION_ID = "TXN-1760864400000-abc123"


def _stripe_event(event_type: str) -> dict:
    return {
        "event_id": "evt_1",
        "event_type": event_type,
        "transaction_id": TRANSACTION_ID,
        "checkout_session_id": "cs_test_1",
        "payment_intent": "pi_1",
        "amount_total": 10000,
        "currency": "usd",
        "payment_status": "paid",
    }


def _applied_result() -> OperationResult:
    return OperationResult.ok(
        transaction_id=TRANSACTION_ID,
        payment_id=str(uuid4()),
        booking_id=str(uuid4()),
        payment_status="PAID",
        booking_status="PAID",
        amount="100.00",
        already_processed=False,
        inconsistent=False,
    )


class TestProcessPaymentEvent:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "event_type,outcome",
        [
            ("checkout.session.completed", "success"),
            ("checkout.session.async_payment_succeeded", "success"),
            ("checkout.session.async_payment_failed", "fail"),
            ("checkout.session.expired", "cancel"),
        ],
    )
    async def test_event_types_map_to_outcomes(self, event_type, outcome):
        service = MagicMock()
        service.apply_gateway_event = AsyncMock(return_value=_applied_result())
        event = _stripe_event(event_type)

        result = await process_payment_event(event, service)

        assert result.success is True
        service.apply_gateway_event.assert_awaited_once_with(outcome, event)

    @pytest.mark.asyncio
    async def test_unknown_event_type_ignored(self):
        service = MagicMock()
        service.apply_gateway_event = AsyncMock()

        result = await process_payment_event(_stripe_event("payment_intent.created"), service)

        assert result is None
        service.apply_gateway_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_event_returned(self):
        service = MagicMock()
        service.apply_gateway_event = AsyncMock(
            return_value=OperationResult.fail(BookingError(ErrorCode.NOT_FOUND, "Payment not found"))
        )

        result = await process_payment_event(_stripe_event("checkout.session.completed"), service)

        assert result.error_code == ErrorCode.NOT_FOUND


class TestFindExpiredBookingIds:
    @pytest.mark.asyncio
    async def test_cutoff_uses_payment_timeout(self):
        booking_ids = [uuid4(), uuid4()]
        session = make_session()
        result = MagicMock()
        result.scalars.return_value.all.return_value = booking_ids
        session.execute.return_value = result
        settings = MagicMock(BOOKING_PAYMENT_TIMEOUT_MINUTES=30)

        with patch("engine.workers.booking_expiration.get_settings", return_value=settings), \
             patch("engine.workers.booking_expiration.get_async_session") as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            found = await find_expired_booking_ids(lambda: FIXED_NOW)

        assert found == booking_ids
        statement = session.execute.await_args.args[0]
        params = statement.compile().params
        assert FIXED_NOW - timedelta(minutes=30) in params.values()


class TestExpireUnpaidBookings:
    @pytest.mark.asyncio
    async def test_counts_only_successful_cancellations(self):
        expired, paid_meanwhile = uuid4(), uuid4()
        service = MagicMock()
        service.cancel_expired_booking = AsyncMock(
            side_effect=[
                OperationResult.ok(booking={"id": str(expired)}, previous_status="PENDING"),
                OperationResult.fail(BookingError(ErrorCode.VALIDATION_ERROR, "Payment is PAID")),
            ]
        )
        settings = MagicMock(BOOKING_PAYMENT_TIMEOUT_MINUTES=30)

        with patch("engine.workers.booking_expiration.get_settings", return_value=settings), \
             patch(
                 "engine.workers.booking_expiration.find_expired_booking_ids",
                 AsyncMock(return_value=[expired, paid_meanwhile]),
             ):
            count = await expire_unpaid_bookings(lambda: FIXED_NOW, service)

        assert count == 1
        assert service.cancel_expired_booking.await_count == 2

    @pytest.mark.asyncio
    async def test_zero_timeout_disables_expiration(self):
        service = MagicMock()
        service.cancel_expired_booking = AsyncMock()
        settings = MagicMock(BOOKING_PAYMENT_TIMEOUT_MINUTES=0)

        with patch("engine.workers.booking_expiration.get_settings", return_value=settings), \
             patch("engine.workers.booking_expiration.find_expired_booking_ids") as mock_find:
            count = await expire_unpaid_bookings(lambda: FIXED_NOW, service)

        assert count == 0
        mock_find.assert_not_called()
        service.cancel_expired_booking.assert_not_awaited()
