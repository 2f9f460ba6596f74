"""
Booking Transaction Handler.

This module creates a booking together with its payment record and drives the
outbound payment gateway call:
- Business rule validation (tourist profile, tour availability, group size)
- Booking + Payment persisted in one database transaction (source of truth)
- Gateway call AFTER commit, bounded by a timeout
- Compensating write (payment FAILED) when the gateway call fails

Key architectural point:
- The database is committed FIRST
- The gateway is an external system with no part in our transaction, so a
  gateway failure never rolls back the booking. The booking stays PENDING and
  the tourist retries through init_payment(), which issues a fresh
  transaction id and calls the gateway again.
"""

import logging
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database.connection import get_async_session
from database.models import Booking, BookingStatus, Payment, PaymentStatus, Tour, User
from engine.actors import Actor
from engine.fsm import BookingStatusMachine
from engine.serializers import serialize_booking
from engine.utils import (
    Clock,
    TransactionIdFactory,
    calculate_price_breakdown,
    generate_transaction_id,
    utc_now,
)
from engine.validators import (
    validate_guest_count,
    validate_tour_bookable,
    validate_tourist_profile,
)
from shared.config import get_settings
from shared.errors import BookingError, ErrorCode, GatewayError, OperationResult
from shared.stripe_client import PaymentContact, PaymentGateway, StripePaymentGateway

logger = logging.getLogger(__name__)


def _raise_if_invalid(check: dict[str, Any], trace_id: str) -> None:
    if check["valid"]:
        return
    details = {k: v for k, v in check.items() if k not in ("valid", "error_code", "error_message")}
    logger.warning(
        f"[{trace_id}] Validation failed: {check['error_message']}",
        extra={"trace_id": trace_id},
    )
    raise BookingError(ErrorCode(check["error_code"]), check["error_message"], details)


class BookingTransaction:
    """
    Atomic transaction handler for creating bookings and (re)initiating payment.

    Flow for create_booking():
    1. Validate tourist profile, tour availability and guest count
    2. Compute total price and commission split
    3. Insert Booking (PENDING) and Payment (UNPAID), link them, commit
    4. Call the payment gateway for a redirect URL (outside the transaction)
    5. On gateway failure mark the Payment FAILED and return GATEWAY_ERROR

    Collaborators are injected so tests can pin time and transaction ids.
    """

    def __init__(
        self,
        gateway: PaymentGateway | None = None,
        clock: Clock = utc_now,
        transaction_id_factory: TransactionIdFactory | None = None,
    ):
        self.gateway = gateway if gateway is not None else StripePaymentGateway()
        self.clock = clock
        self.transaction_id_factory = transaction_id_factory or (
            lambda: generate_transaction_id(self.clock)
        )

    async def create_booking(
        self,
        tourist_id: UUID,
        tour_id: UUID,
        guest_count: int,
    ) -> OperationResult:
        """
        Create a booking and its payment, then request a gateway redirect URL.

        Args:
            tourist_id: Requesting tourist UUID
            tour_id: Tour UUID
            guest_count: Number of guests (1..tour.max_group_size)

        Returns:
            OperationResult. On success ``data`` holds:
                {
                    "booking": dict (with nested payment summary),
                    "payment_url": str
                }

            On failure error_code is one of VALIDATION_ERROR, NOT_FOUND,
            GATEWAY_ERROR or CONFLICT. GATEWAY_ERROR results still carry the
            persisted booking in ``details`` so the client can retry payment.

        Example:
            >>> result = await BookingTransaction().create_booking(tourist_id, tour_id, 3)
            >>> if result.success:
            ...     redirect_to(result.data["payment_url"])
        """
        trace_id = f"{tourist_id}_{tour_id}"
        logger.info(
            f"[{trace_id}] Starting booking transaction",
            extra={"trace_id": trace_id, "guest_count": guest_count},
        )

        try:
            booking, payment, tourist, tour = await self._persist_booking(
                trace_id, tourist_id, tour_id, guest_count
            )
        except BookingError as e:
            return OperationResult.fail(e)
        except IntegrityError as e:
            # transaction_id or payment uniqueness violated by a concurrent writer
            logger.error(
                f"[{trace_id}] Integrity error while creating booking: {e}",
                extra={"trace_id": trace_id},
            )
            return OperationResult.fail(
                BookingError(ErrorCode.CONFLICT, "Booking could not be created, please retry")
            )
        except SQLAlchemyError as e:
            logger.error(
                f"[{trace_id}] Database error while creating booking: {e}",
                extra={"trace_id": trace_id},
                exc_info=True,
            )
            raise

        logger.info(
            f"[{trace_id}] Booking {booking.id} committed with payment {payment.transaction_id}",
            extra={
                "trace_id": trace_id,
                "booking_id": str(booking.id),
                "payment_id": str(payment.id),
                "transaction_id": payment.transaction_id,
            },
        )

        return await self._request_payment_url(trace_id, booking, payment, tourist, tour)

    async def init_payment(self, booking_id: UUID, actor: Actor) -> OperationResult:
        """
        Re-initiate payment for a booking that is not yet paid.

        Issues a fresh transaction id (the previous one stops matching
        callbacks), resets the payment to UNPAID, moves a FAILED booking back
        to PENDING and calls the gateway again with the same compensation
        rule as create_booking().

        Args:
            booking_id: Booking UUID
            actor: Caller; must be the booking's tourist or an admin

        Returns:
            OperationResult with ``booking`` and ``payment_url`` on success
        """
        trace_id = f"{booking_id}_init"
        logger.info(
            f"[{trace_id}] Re-initiating payment",
            extra={"trace_id": trace_id, "booking_id": str(booking_id), "actor_id": str(actor.id)},
        )

        try:
            booking, payment, tourist, tour = await self._reset_payment(trace_id, booking_id, actor)
        except BookingError as e:
            return OperationResult.fail(e)
        except IntegrityError as e:
            logger.error(
                f"[{trace_id}] Integrity error while resetting payment: {e}",
                extra={"trace_id": trace_id},
            )
            return OperationResult.fail(
                BookingError(ErrorCode.CONFLICT, "Payment could not be re-initiated, please retry")
            )

        return await self._request_payment_url(trace_id, booking, payment, tourist, tour)

    # ------------------------------------------------------------------
    # Database phase
    # ------------------------------------------------------------------

    async def _persist_booking(
        self,
        trace_id: str,
        tourist_id: UUID,
        tour_id: UUID,
        guest_count: int,
    ) -> tuple[Booking, Payment, User, Tour]:
        settings = get_settings()

        async with get_async_session() as session:
            tourist = await session.get(User, tourist_id)
            _raise_if_invalid(validate_tourist_profile(tourist), trace_id)

            # Shared lock keeps price and capacity stable until commit
            result = await session.execute(
                select(Tour).where(Tour.id == tour_id).with_for_update(read=True)
            )
            tour = result.scalar_one_or_none()
            _raise_if_invalid(validate_tour_bookable(tour), trace_id)
            _raise_if_invalid(validate_guest_count(guest_count, tour), trace_id)

            breakdown = calculate_price_breakdown(tour.price, guest_count, settings.COMMISSION_RATE)
            transaction_id = self.transaction_id_factory()
            now = self.clock()

            booking = Booking(
                id=uuid4(),
                tourist_id=tourist.id,
                tour_id=tour.id,
                guide_id=tour.guide_id,
                guest_count=guest_count,
                total_price=breakdown.total_price,
                commission_amount=breakdown.commission_amount,
                guide_earnings=breakdown.guide_earnings,
                status=BookingStatus.PENDING,
                is_active=True,
                is_deleted=False,
                created_at=now,
                updated_at=now,
            )
            session.add(booking)
            await session.flush()

            payment = Payment(
                id=uuid4(),
                booking_id=booking.id,
                transaction_id=transaction_id,
                amount=breakdown.total_price,
                status=PaymentStatus.UNPAID,
                gateway_data={"events": []},
                created_at=now,
                updated_at=now,
            )
            session.add(payment)
            await session.flush()

            booking.payment_id = payment.id
            await session.commit()

        return booking, payment, tourist, tour

    async def _reset_payment(
        self,
        trace_id: str,
        booking_id: UUID,
        actor: Actor,
    ) -> tuple[Booking, Payment, User, Tour]:
        async with get_async_session() as session:
            booking = await session.get(Booking, booking_id)
            if booking is None or booking.is_deleted:
                raise BookingError(ErrorCode.NOT_FOUND, "Booking not found", {"booking_id": str(booking_id)})

            if not (actor.is_admin or actor.is_tourist_of(booking)):
                logger.warning(
                    f"[{trace_id}] Actor {actor.id} ({actor.role.value}) may not pay for booking {booking_id}",
                    extra={"trace_id": trace_id, "actor_id": str(actor.id)},
                )
                raise BookingError(ErrorCode.FORBIDDEN, "You are not allowed to pay for this booking")

            result = await session.execute(
                select(Payment).where(Payment.booking_id == booking.id).with_for_update()
            )
            payment = result.scalar_one_or_none()
            if payment is None:
                raise BookingError(ErrorCode.NOT_FOUND, "Payment not found", {"booking_id": str(booking_id)})

            # Lock order matches the callback path: payment, then booking
            await session.refresh(booking, with_for_update=True)

            if payment.status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
                raise BookingError(
                    ErrorCode.VALIDATION_ERROR,
                    "Booking is already paid",
                    {"payment_status": payment.status.value},
                )
            if booking.status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
                raise BookingError(
                    ErrorCode.VALIDATION_ERROR,
                    f"Cannot pay for a {booking.status.value.lower()} booking",
                    {"booking_status": booking.status.value},
                )

            tourist = await session.get(User, booking.tourist_id)
            _raise_if_invalid(validate_tourist_profile(tourist), trace_id)
            tour = await session.get(Tour, booking.tour_id)
            if tour is None:
                raise BookingError(ErrorCode.NOT_FOUND, "Tour not found", {"tour_id": str(booking.tour_id)})

            now = self.clock()
            previous_ids = list(payment.gateway_data.get("previous_transaction_ids", []))
            previous_ids.append(payment.transaction_id)

            payment.transaction_id = self.transaction_id_factory()
            payment.status = PaymentStatus.UNPAID
            payment.payment_url = None
            # New dict object so the JSONB column is flagged dirty
            payment.gateway_data = {**payment.gateway_data, "previous_transaction_ids": previous_ids}
            payment.updated_at = now

            if booking.status == BookingStatus.FAILED:
                BookingStatusMachine.ensure_transition(booking.status, BookingStatus.PENDING)
                booking.status = BookingStatus.PENDING
                booking.updated_at = now

            await session.commit()

        logger.info(
            f"[{trace_id}] Payment reset with new transaction id {payment.transaction_id}",
            extra={
                "trace_id": trace_id,
                "booking_id": str(booking.id),
                "payment_id": str(payment.id),
                "transaction_id": payment.transaction_id,
            },
        )
        return booking, payment, tourist, tour

    # ------------------------------------------------------------------
    # Gateway phase (outside the transaction)
    # ------------------------------------------------------------------

    async def _request_payment_url(
        self,
        trace_id: str,
        booking: Booking,
        payment: Payment,
        tourist: User,
        tour: Tour,
    ) -> OperationResult:
        contact = PaymentContact(
            name=tourist.name,
            email=tourist.email,
            phone_number=tourist.phone_number or "",
            address=tourist.address or "",
        )

        try:
            payment_url = await self.gateway.initiate(
                amount=payment.amount,
                transaction_id=payment.transaction_id,
                contact=contact,
                booking_id=str(booking.id),
                description=tour.title,
            )
        except Exception as e:
            gateway_error = e if isinstance(e, GatewayError) else GatewayError(str(e), e)
            logger.error(
                f"[{trace_id}] Payment gateway call failed: {gateway_error.message}",
                extra={"trace_id": trace_id, "transaction_id": payment.transaction_id},
                exc_info=not isinstance(e, GatewayError),
            )
            if await self._mark_payment_failed(trace_id, payment):
                payment.status = PaymentStatus.FAILED
            return OperationResult.fail(
                BookingError(
                    ErrorCode.GATEWAY_ERROR,
                    gateway_error.message,
                    {"booking": serialize_booking(booking, payment)},
                )
            )

        await self._store_payment_url(trace_id, payment, payment_url)
        payment.payment_url = payment_url

        logger.info(
            f"[{trace_id}] Booking transaction completed successfully",
            extra={"trace_id": trace_id, "booking_id": str(booking.id)},
        )
        return OperationResult.ok(
            booking=serialize_booking(booking, payment),
            payment_url=payment_url,
        )

    async def _mark_payment_failed(self, trace_id: str, payment: Payment) -> bool:
        """
        Compensating write after a gateway failure.

        Conditional on the payment still being UNPAID under the same
        transaction id, so a callback or retry that got there first wins.
        Returns True when the row was updated.
        """
        try:
            async with get_async_session() as session:
                result = await session.execute(
                    update(Payment)
                    .where(
                        Payment.id == payment.id,
                        Payment.transaction_id == payment.transaction_id,
                        Payment.status == PaymentStatus.UNPAID,
                    )
                    .values(status=PaymentStatus.FAILED, updated_at=self.clock())
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(
                f"[{trace_id}] Compensating write failed for payment {payment.id}: {e}",
                extra={"trace_id": trace_id, "payment_id": str(payment.id)},
                exc_info=True,
            )
            return False

        updated = result.rowcount == 1
        if updated:
            logger.info(
                f"[{trace_id}] Payment {payment.transaction_id} marked FAILED after gateway error",
                extra={"trace_id": trace_id, "transaction_id": payment.transaction_id},
            )
        else:
            logger.warning(
                f"[{trace_id}] Payment {payment.transaction_id} changed before compensation, left as is",
                extra={"trace_id": trace_id, "transaction_id": payment.transaction_id},
            )
        return updated

    async def _store_payment_url(self, trace_id: str, payment: Payment, payment_url: str) -> None:
        try:
            async with get_async_session() as session:
                await session.execute(
                    update(Payment)
                    .where(
                        Payment.id == payment.id,
                        Payment.transaction_id == payment.transaction_id,
                    )
                    .values(payment_url=payment_url, updated_at=self.clock())
                )
                await session.commit()
        except SQLAlchemyError as e:
            # The redirect URL is still returned; only the stored copy is missing
            logger.error(
                f"[{trace_id}] Failed to store payment URL for {payment.transaction_id}: {e}",
                extra={"trace_id": trace_id, "transaction_id": payment.transaction_id},
            )
