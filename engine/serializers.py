"""Plain-dict views of booking and payment rows returned in OperationResult.data."""

from typing import Any

from database.models import Booking, Payment


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_payment(payment: Payment | None) -> dict[str, Any] | None:
    if payment is None:
        return None
    return {
        "id": str(payment.id),
        "booking_id": str(payment.booking_id),
        "transaction_id": payment.transaction_id,
        "amount": str(payment.amount),
        "status": payment.status.value,
        "payment_url": payment.payment_url,
        "updated_at": _iso(payment.updated_at),
    }


def serialize_booking(booking: Booking, payment: Payment | None = None) -> dict[str, Any]:
    """
    Serialize a booking with an optional payment summary.

    Decimal amounts are rendered as strings to keep cents exact in JSON.
    """
    return {
        "id": str(booking.id),
        "tourist_id": str(booking.tourist_id),
        "tour_id": str(booking.tour_id),
        "guide_id": str(booking.guide_id),
        "payment_id": str(booking.payment_id) if booking.payment_id else None,
        "guest_count": booking.guest_count,
        "total_price": str(booking.total_price),
        "commission_amount": str(booking.commission_amount),
        "guide_earnings": str(booking.guide_earnings),
        "status": booking.status.value,
        "is_active": booking.is_active,
        "is_deleted": booking.is_deleted,
        "created_at": _iso(booking.created_at),
        "updated_at": _iso(booking.updated_at),
        "payment": serialize_payment(payment),
    }
