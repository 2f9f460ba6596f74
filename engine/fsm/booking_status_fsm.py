"""
BookingStatusMachine - authoritative booking status transition table.

Every writer of Booking.status consults this class. Manual updates and payment
re-initiation go through ``ensure_transition``; cancellation (by a party to
the booking or by the expiration worker) goes through ``ensure_cancellable``,
which accepts any non-terminal status. The payment callback service is the
only writer allowed to move a booking to PAID and does so through
``callback_target``.
"""

import logging
from typing import ClassVar

from database.models import BookingStatus, PaymentStatus
from shared.errors import BookingError, ErrorCode

logger = logging.getLogger(__name__)


class BookingStatusMachine:
    """
    Validates booking status transitions.

    Example:
        >>> BookingStatusMachine.can_transition(BookingStatus.PENDING, BookingStatus.CONFIRMED)
        True
        >>> BookingStatusMachine.can_transition(BookingStatus.COMPLETED, BookingStatus.CONFIRMED)
        False
    """

    TRANSITIONS: ClassVar[dict[BookingStatus, frozenset[BookingStatus]]] = {
        BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
        BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
        BookingStatus.PAID: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
        BookingStatus.COMPLETED: frozenset(),
        BookingStatus.CANCELLED: frozenset(),
        BookingStatus.FAILED: frozenset({BookingStatus.PENDING}),
    }

    # Targets only the gateway callback path may set
    GATEWAY_ONLY_TARGETS: ClassVar[frozenset[BookingStatus]] = frozenset({BookingStatus.PAID})

    TERMINAL: ClassVar[frozenset[BookingStatus]] = frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
    )

    # Payment status set by each gateway callback, and the booking status it implies
    CALLBACK_TARGETS: ClassVar[dict[PaymentStatus, BookingStatus]] = {
        PaymentStatus.PAID: BookingStatus.PAID,
        PaymentStatus.FAILED: BookingStatus.FAILED,
        PaymentStatus.CANCELLED: BookingStatus.CANCELLED,
    }

    @classmethod
    def allowed_targets(cls, current: BookingStatus) -> frozenset[BookingStatus]:
        return cls.TRANSITIONS.get(current, frozenset())

    @classmethod
    def can_transition(cls, current: BookingStatus, target: BookingStatus) -> bool:
        return target in cls.allowed_targets(current)

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def ensure_manual_target(cls, target: BookingStatus) -> None:
        """
        Reject targets that may only be set by the gateway.

        Raises:
            BookingError: FORBIDDEN for PAID
        """
        if target in cls.GATEWAY_ONLY_TARGETS:
            raise BookingError(
                ErrorCode.FORBIDDEN,
                f"Booking status {target.value} can only be set by the payment gateway",
                {"requested_status": target.value},
            )

    @classmethod
    def ensure_transition(cls, current: BookingStatus, target: BookingStatus) -> None:
        """
        Raises:
            BookingError: INVALID_TRANSITION if target is not allowed from current
        """
        if not cls.can_transition(current, target):
            logger.info(f"Rejected booking transition {current.value} -> {target.value}")
            raise BookingError(
                ErrorCode.INVALID_TRANSITION,
                f"Cannot transition from {current.value} to {target.value}",
                {
                    "current_status": current.value,
                    "requested_status": target.value,
                    "allowed": sorted(s.value for s in cls.allowed_targets(current)),
                },
            )

    @classmethod
    def ensure_cancellable(cls, current: BookingStatus) -> None:
        """
        Cancellation rule: any non-terminal booking may be cancelled.

        Raises:
            BookingError: INVALID_TRANSITION for COMPLETED or CANCELLED
        """
        if cls.is_terminal(current):
            raise BookingError(
                ErrorCode.INVALID_TRANSITION,
                f"Cannot cancel a booking that is {current.value}",
                {"current_status": current.value, "requested_status": BookingStatus.CANCELLED.value},
            )

    @classmethod
    def callback_target(cls, payment_status: PaymentStatus) -> BookingStatus:
        return cls.CALLBACK_TARGETS[payment_status]
