"""Request bodies for booking routes."""

from uuid import UUID

from pydantic import BaseModel, Field

from database.models import BookingStatus


class CreateBookingRequest(BaseModel):
    tour_id: UUID
    guest_count: int = Field(..., ge=1)


class UpdateBookingStatusRequest(BaseModel):
    status: BookingStatus


class CreateReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(default=None, max_length=2000)
