"""
Status Transition Service - manual and system-driven booking status changes.

Every status write here is an optimistic compare-and-set:

    UPDATE bookings SET status = :target
    WHERE id = :id AND status = :observed

When the row changed between read and write (e.g. a payment callback landed),
the update matches zero rows, the booking is re-read and the transition is
re-validated against the table. After STATUS_UPDATE_MAX_ATTEMPTS the caller
gets CONFLICT.

When a booking moves to CANCELLED its payment is cancelled in the same
transaction, unless the payment is already PAID (refunds are handled by an
administrator) or otherwise closed.
"""

import logging
from collections.abc import Callable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm.attributes import set_committed_value

from database.connection import get_async_session
from database.models import Booking, BookingStatus, Payment, PaymentStatus
from engine.actors import Actor
from engine.fsm import BookingStatusMachine
from engine.serializers import serialize_booking
from engine.utils import Clock, utc_now
from shared.config import get_settings
from shared.errors import BookingError, ErrorCode, OperationResult

logger = logging.getLogger(__name__)

Authorizer = Callable[[Booking], None]
StatusCheck = Callable[[BookingStatus], None]
PaymentCheck = Callable[[Payment | None], None]


def _not_found(booking_id: UUID) -> BookingError:
    return BookingError(ErrorCode.NOT_FOUND, "Booking not found", {"booking_id": str(booking_id)})


class StatusTransitionService:
    """
    Applies booking status transitions with authorization and optimistic checks.

    Example:
        >>> service = StatusTransitionService()
        >>> result = await service.update_booking_status(booking_id, actor, BookingStatus.CONFIRMED)
        >>> result.success, result.data["booking"]["status"]
        (True, 'CONFIRMED')
    """

    def __init__(self, clock: Clock = utc_now, max_attempts: int | None = None):
        self.clock = clock
        self.max_attempts = max_attempts or get_settings().STATUS_UPDATE_MAX_ATTEMPTS

    async def update_booking_status(
        self,
        booking_id: UUID,
        actor: Actor,
        new_status: BookingStatus,
    ) -> OperationResult:
        """
        Manually move a booking to ``new_status``.

        Only an admin, or the guide who owns the booking, may call this.
        PAID is rejected for every role: only the payment callback path sets it.

        Returns:
            OperationResult with ``booking`` and ``previous_status`` on success.
            Errors: FORBIDDEN, NOT_FOUND, INVALID_TRANSITION, CONFLICT.
        """
        logger.info(
            f"Status update requested: booking_id={booking_id} target={new_status.value} "
            f"actor_id={actor.id} role={actor.role.value}",
            extra={"booking_id": str(booking_id), "actor_id": str(actor.id)},
        )

        try:
            BookingStatusMachine.ensure_manual_target(new_status)
        except BookingError as e:
            logger.warning(f"Manual PAID transition rejected: booking_id={booking_id} actor_id={actor.id}")
            return OperationResult.fail(e)

        def authorize(booking: Booking) -> None:
            if not (actor.is_admin or actor.is_guide_of(booking)):
                raise BookingError(
                    ErrorCode.FORBIDDEN,
                    "Only an administrator or the tour's guide can update this booking",
                )

        return await self._run(
            booking_id,
            new_status,
            authorize=authorize,
            check_status=lambda observed: BookingStatusMachine.ensure_transition(observed, new_status),
        )

    async def cancel_booking(self, booking_id: UUID, actor: Actor) -> OperationResult:
        """
        Cancel a booking on behalf of its tourist, its guide, or an admin.

        COMPLETED and CANCELLED bookings cannot be cancelled
        (INVALID_TRANSITION). The payment is cancelled with the booking.
        """
        logger.info(
            f"Cancellation requested: booking_id={booking_id} actor_id={actor.id} role={actor.role.value}",
            extra={"booking_id": str(booking_id), "actor_id": str(actor.id)},
        )

        def authorize(booking: Booking) -> None:
            if not (actor.is_admin or actor.is_tourist_of(booking) or actor.is_guide_of(booking)):
                raise BookingError(ErrorCode.FORBIDDEN, "You are not allowed to cancel this booking")

        return await self._run(
            booking_id,
            BookingStatus.CANCELLED,
            authorize=authorize,
            check_status=BookingStatusMachine.ensure_cancellable,
        )

    async def cancel_expired_booking(self, booking_id: UUID) -> OperationResult:
        """
        System cancellation of a booking whose payment window elapsed.

        Only PENDING/FAILED bookings whose payment is still UNPAID or FAILED
        qualify. Re-checked under lock, so a payment that succeeded in the
        meantime is left alone (VALIDATION_ERROR, nothing written).
        """

        def check_status(observed: BookingStatus) -> None:
            if observed not in (BookingStatus.PENDING, BookingStatus.FAILED):
                raise BookingError(
                    ErrorCode.INVALID_TRANSITION,
                    f"Booking is {observed.value}, not awaiting payment",
                    {"current_status": observed.value},
                )

        def check_payment(payment: Payment | None) -> None:
            if payment is not None and payment.status not in (PaymentStatus.UNPAID, PaymentStatus.FAILED):
                raise BookingError(
                    ErrorCode.VALIDATION_ERROR,
                    f"Payment is {payment.status.value}, booking not expired",
                    {"payment_status": payment.status.value},
                )

        return await self._run(
            booking_id,
            BookingStatus.CANCELLED,
            authorize=lambda booking: None,
            check_status=check_status,
            check_payment=check_payment,
        )

    async def toggle_booking_active(self, booking_id: UUID, actor: Actor) -> OperationResult:
        """Flip the administrative ``is_active`` flag. Admin only; status untouched."""
        return await self._set_admin_flag(
            booking_id,
            actor,
            lambda booking: {"is_active": not booking.is_active},
        )

    async def soft_delete_booking(self, booking_id: UUID, actor: Actor) -> OperationResult:
        """Mark a booking deleted. Admin only; the row and its payment are kept."""
        return await self._set_admin_flag(
            booking_id,
            actor,
            lambda booking: {"is_deleted": True},
        )

    # ------------------------------------------------------------------

    async def _run(
        self,
        booking_id: UUID,
        target: BookingStatus,
        *,
        authorize: Authorizer,
        check_status: StatusCheck,
        check_payment: PaymentCheck | None = None,
    ) -> OperationResult:
        try:
            return await self._compare_and_set(
                booking_id,
                target,
                authorize=authorize,
                check_status=check_status,
                check_payment=check_payment,
            )
        except BookingError as e:
            logger.info(
                f"Transition rejected: booking_id={booking_id} target={target.value} code={e.code.value}",
                extra={"booking_id": str(booking_id)},
            )
            return OperationResult.fail(e)

    async def _compare_and_set(
        self,
        booking_id: UUID,
        target: BookingStatus,
        *,
        authorize: Authorizer,
        check_status: StatusCheck,
        check_payment: PaymentCheck | None,
    ) -> OperationResult:
        for attempt in range(1, self.max_attempts + 1):
            async with get_async_session() as session:
                booking = await session.get(Booking, booking_id, populate_existing=True)
                if booking is None or booking.is_deleted:
                    raise _not_found(booking_id)

                authorize(booking)
                observed = booking.status
                check_status(observed)

                payment = None
                if target == BookingStatus.CANCELLED or check_payment is not None:
                    # Lock order matches the callback path: payment, then booking
                    result = await session.execute(
                        select(Payment).where(Payment.booking_id == booking.id).with_for_update()
                    )
                    payment = result.scalar_one_or_none()
                    if check_payment is not None:
                        check_payment(payment)

                now = self.clock()
                result = await session.execute(
                    update(Booking)
                    .where(Booking.id == booking_id, Booking.status == observed)
                    .values(status=target, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await session.rollback()
                    logger.info(
                        f"Status changed concurrently: booking_id={booking_id} observed={observed.value} "
                        f"attempt={attempt}/{self.max_attempts}",
                        extra={"booking_id": str(booking_id)},
                    )
                    continue

                if target == BookingStatus.CANCELLED and payment is not None:
                    self._cancel_payment(booking, payment, now)

                await session.commit()

            set_committed_value(booking, "status", target)
            set_committed_value(booking, "updated_at", now)
            logger.info(
                f"Booking status updated: booking_id={booking_id} {observed.value} -> {target.value}",
                extra={"booking_id": str(booking_id)},
            )
            return OperationResult.ok(
                booking=serialize_booking(booking, payment),
                previous_status=observed.value,
            )

        logger.warning(
            f"Status update gave up after {self.max_attempts} attempts: booking_id={booking_id}",
            extra={"booking_id": str(booking_id)},
        )
        raise BookingError(
            ErrorCode.CONFLICT,
            "Booking was modified concurrently, please retry",
            {"booking_id": str(booking_id), "attempts": self.max_attempts},
        )

    def _cancel_payment(self, booking: Booking, payment: Payment, now) -> None:
        if payment.status == PaymentStatus.PAID:
            logger.warning(
                f"Cancelled booking has a PAID payment, refund required: booking_id={booking.id} "
                f"transaction_id={payment.transaction_id}",
                extra={"booking_id": str(booking.id), "transaction_id": payment.transaction_id},
            )
            return
        if payment.status in (PaymentStatus.CANCELLED, PaymentStatus.REFUNDED):
            return
        payment.status = PaymentStatus.CANCELLED
        payment.updated_at = now

    async def _set_admin_flag(
        self,
        booking_id: UUID,
        actor: Actor,
        changes: Callable[[Booking], dict[str, bool]],
    ) -> OperationResult:
        if not actor.is_admin:
            logger.warning(f"Admin flag change rejected: booking_id={booking_id} actor_id={actor.id}")
            return OperationResult.fail(
                BookingError(ErrorCode.FORBIDDEN, "Only administrators can change booking flags")
            )

        async with get_async_session() as session:
            booking = await session.get(Booking, booking_id)
            if booking is None:
                return OperationResult.fail(_not_found(booking_id))

            values = changes(booking)
            for name, value in values.items():
                setattr(booking, name, value)
            booking.updated_at = self.clock()
            await session.commit()

        logger.info(
            f"Booking flags updated: booking_id={booking_id} {values} actor_id={actor.id}",
            extra={"booking_id": str(booking_id), "actor_id": str(actor.id)},
        )
        return OperationResult.ok(booking=serialize_booking(booking))
