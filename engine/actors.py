"""Authenticated caller passed into core operations."""

from dataclasses import dataclass
from uuid import UUID

from database.models import Booking, Role


@dataclass(frozen=True)
class Actor:
    """
    The user performing an operation.

    Attributes:
        id: User UUID (JWT ``sub``)
        role: User role (JWT ``role``)
    """

    id: UUID
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def is_tourist_of(self, booking: Booking) -> bool:
        return self.role == Role.TOURIST and booking.tourist_id == self.id

    def is_guide_of(self, booking: Booking) -> bool:
        return self.role == Role.GUIDE and booking.guide_id == self.id
