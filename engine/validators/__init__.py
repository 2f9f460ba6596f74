"""
Transaction Validators.

Validators for business rules checked inside the booking creation transaction:
- validate_tourist_profile: Tourist exists, is active, has phone and address
- validate_tour_bookable: Tour exists, is active and not soft-deleted
- validate_guest_count: 1 <= guest_count <= tour.max_group_size
"""

from engine.validators.transaction_validators import (
    validate_guest_count,
    validate_tour_bookable,
    validate_tourist_profile,
)

__all__ = [
    "validate_guest_count",
    "validate_tour_bookable",
    "validate_tourist_profile",
]
