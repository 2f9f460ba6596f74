"""
Transaction Validators for Booking Business Rules.

Validators that check business constraints inside the booking creation
transaction, against rows read from the same snapshot. They are pure
functions over loaded models and return a result dict in a single shape:

    {
        "valid": bool,
        "error_code": str | None,
        "error_message": str | None,
        ...extra context...
    }
"""

import logging

from database.models import Role, Tour, User, UserStatus
from shared.errors import ErrorCode

logger = logging.getLogger(__name__)


def _valid(**extra) -> dict:
    return {"valid": True, "error_code": None, "error_message": None, **extra}


def _invalid(code: ErrorCode, message: str, **extra) -> dict:
    return {"valid": False, "error_code": code.value, "error_message": message, **extra}


def validate_tourist_profile(tourist: User | None) -> dict:
    """
    Validate that the requesting user may book a tour.

    Business rules:
    - The user must exist (NOT_FOUND)
    - Must be a tourist, not blocked and not soft-deleted (VALIDATION_ERROR)
    - Must have both a phone number and an address on file (VALIDATION_ERROR)

    Example:
        >>> validate_tourist_profile(user_without_phone)
        {
            "valid": False,
            "error_code": "VALIDATION_ERROR",
            "error_message": "Please add a phone number and address to your profile before booking a tour",
            "missing_fields": ["phone_number"]
        }
    """
    if tourist is None:
        return _invalid(ErrorCode.NOT_FOUND, "Tourist not found")

    if tourist.is_deleted or tourist.status == UserStatus.BLOCKED:
        logger.warning(f"Booking attempt by inactive user {tourist.id} (status={tourist.status})")
        return _invalid(
            ErrorCode.VALIDATION_ERROR,
            "Your account is not allowed to make bookings",
            user_status=tourist.status.value,
        )

    if tourist.role != Role.TOURIST:
        return _invalid(
            ErrorCode.VALIDATION_ERROR,
            "Only tourists can book tours",
            role=tourist.role.value,
        )

    missing = [
        field_name
        for field_name in ("phone_number", "address")
        if not (getattr(tourist, field_name) or "").strip()
    ]
    if missing:
        return _invalid(
            ErrorCode.VALIDATION_ERROR,
            "Please add a phone number and address to your profile before booking a tour",
            missing_fields=missing,
        )

    return _valid()


def validate_tour_bookable(tour: Tour | None) -> dict:
    """
    Validate that the tour exists and is open for booking.

    Soft-deleted and deactivated listings are reported as NOT_FOUND.
    """
    if tour is None or tour.is_deleted or not tour.is_active:
        return _invalid(ErrorCode.NOT_FOUND, "Tour not found")
    return _valid()


def validate_guest_count(guest_count: int, tour: Tour) -> dict:
    """
    Validate 1 <= guest_count <= tour.max_group_size.

    Example:
        >>> validate_guest_count(6, tour_with_max_5)
        {
            "valid": False,
            "error_code": "VALIDATION_ERROR",
            "error_message": "Guest count cannot exceed maximum group size of 5",
            "guest_count": 6,
            "max_group_size": 5
        }
    """
    if isinstance(guest_count, bool) or not isinstance(guest_count, int) or guest_count < 1:
        return _invalid(
            ErrorCode.VALIDATION_ERROR,
            "Guest count must be at least 1",
            guest_count=guest_count,
        )

    if guest_count > tour.max_group_size:
        return _invalid(
            ErrorCode.VALIDATION_ERROR,
            f"Guest count cannot exceed maximum group size of {tour.max_group_size}",
            guest_count=guest_count,
            max_group_size=tour.max_group_size,
        )

    return _valid(guest_count=guest_count, max_group_size=tour.max_group_size)
