"""
Review service - post-trip reviews and rating reconciliation.

Tour and guide rating aggregates are recomputed by an explicit call to
recalculate_ratings() in the same transaction as the review write. Nothing
else in the booking/payment core touches these columns.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import Booking, BookingStatus, Review, Role, Tour, User
from engine.actors import Actor
from shared.errors import BookingError, ErrorCode, OperationResult

logger = logging.getLogger(__name__)

RATING_QUANTUM = Decimal("0.01")


def _average(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(value).quantize(RATING_QUANTUM, rounding=ROUND_HALF_UP)


async def recalculate_ratings(session: AsyncSession, tour_id: UUID, guide_id: UUID) -> dict:
    """
    Recompute tour and guide rating aggregates from the reviews table.

    Must be called inside the transaction that wrote the review.

    Returns:
        {"tour_average": Decimal, "tour_review_count": int, "guide_average": Decimal}
    """
    tour_row = (
        await session.execute(
            select(func.avg(Review.rating), func.count(Review.id)).where(Review.tour_id == tour_id)
        )
    ).one()
    guide_row = (
        await session.execute(select(func.avg(Review.rating)).where(Review.guide_id == guide_id))
    ).one()

    tour_average = _average(tour_row[0])
    tour_count = int(tour_row[1] or 0)
    guide_average = _average(guide_row[0])

    await session.execute(
        update(Tour)
        .where(Tour.id == tour_id)
        .values(average_rating=tour_average, review_count=tour_count)
    )
    await session.execute(
        update(User).where(User.id == guide_id).values(average_rating=guide_average)
    )

    logger.debug(
        f"Ratings recalculated: tour_id={tour_id} avg={tour_average} count={tour_count} "
        f"guide_id={guide_id} avg={guide_average}"
    )
    return {
        "tour_average": tour_average,
        "tour_review_count": tour_count,
        "guide_average": guide_average,
    }


class ReviewService:
    """Creates reviews for completed bookings."""

    async def create_review(
        self,
        booking_id: UUID,
        tourist: Actor,
        rating: int,
        comment: str | None = None,
    ) -> OperationResult:
        """
        Create a review for a COMPLETED booking owned by the tourist.

        Errors: FORBIDDEN (not a tourist / not the owner), NOT_FOUND,
        VALIDATION_ERROR (rating out of range, booking not completed,
        already reviewed).
        """
        if tourist.role != Role.TOURIST:
            return OperationResult.fail(BookingError(ErrorCode.FORBIDDEN, "Only tourists can write reviews"))
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            return OperationResult.fail(
                BookingError(ErrorCode.VALIDATION_ERROR, "Rating must be between 1 and 5", {"rating": rating})
            )

        try:
            async with get_async_session() as session:
                booking = await session.get(Booking, booking_id)
                if booking is None or booking.is_deleted:
                    raise BookingError(ErrorCode.NOT_FOUND, "Booking not found", {"booking_id": str(booking_id)})
                if not tourist.is_tourist_of(booking):
                    raise BookingError(ErrorCode.FORBIDDEN, "You can only review your own bookings")
                if booking.status != BookingStatus.COMPLETED:
                    raise BookingError(
                        ErrorCode.VALIDATION_ERROR,
                        "Only completed bookings can be reviewed",
                        {"booking_status": booking.status.value},
                    )

                existing = await session.execute(select(Review.id).where(Review.booking_id == booking_id))
                if existing.scalar_one_or_none() is not None:
                    raise BookingError(ErrorCode.VALIDATION_ERROR, "Booking has already been reviewed")

                review = Review(
                    id=uuid4(),
                    booking_id=booking.id,
                    tourist_id=booking.tourist_id,
                    tour_id=booking.tour_id,
                    guide_id=booking.guide_id,
                    rating=rating,
                    comment=comment,
                )
                session.add(review)
                await session.flush()

                ratings = await recalculate_ratings(session, booking.tour_id, booking.guide_id)
                await session.commit()
        except BookingError as e:
            return OperationResult.fail(e)

        logger.info(
            f"Review created: booking_id={booking_id} rating={rating}",
            extra={"booking_id": str(booking_id), "actor_id": str(tourist.id)},
        )
        return OperationResult.ok(
            review={
                "id": str(review.id),
                "booking_id": str(review.booking_id),
                "tour_id": str(review.tour_id),
                "guide_id": str(review.guide_id),
                "rating": review.rating,
                "comment": review.comment,
            },
            tour_average_rating=str(ratings["tour_average"]),
            tour_review_count=ratings["tour_review_count"],
            guide_average_rating=str(ratings["guide_average"]),
        )
