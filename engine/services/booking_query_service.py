"""
Booking query service - role-scoped booking reads.

Architecture:
- Read-only (no database modifications)
- Visibility follows the actor: admins see every booking, tourists see the
  bookings they made, guides see bookings of their tours
- Soft-deleted bookings are hidden from everyone but admins
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from database.connection import get_async_session
from database.models import Booking, BookingStatus, Review, Role, Tour
from engine.actors import Actor
from engine.serializers import serialize_booking
from shared.errors import BookingError, ErrorCode, OperationResult

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


async def get_booking_by_id(booking_id: UUID, actor: Actor) -> OperationResult:
    """
    Fetch one booking with its payment summary.

    Returns:
        OperationResult with ``booking``; NOT_FOUND if absent (or deleted for
        non-admins), FORBIDDEN if the actor is not a party to it.
    """
    async with get_async_session() as session:
        result = await session.execute(
            select(Booking)
            .options(selectinload(Booking.payment))
            .where(Booking.id == booking_id)
        )
        booking = result.scalar_one_or_none()

    if booking is None or (booking.is_deleted and not actor.is_admin):
        return OperationResult.fail(
            BookingError(ErrorCode.NOT_FOUND, "Booking not found", {"booking_id": str(booking_id)})
        )

    if not (actor.is_admin or actor.is_tourist_of(booking) or actor.is_guide_of(booking)):
        logger.warning(f"Booking read denied: booking_id={booking_id} actor_id={actor.id}")
        return OperationResult.fail(
            BookingError(ErrorCode.FORBIDDEN, "You are not allowed to view this booking")
        )

    return OperationResult.ok(booking=serialize_booking(booking, booking.payment))


async def list_bookings(
    actor: Actor,
    status: BookingStatus | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> OperationResult:
    """
    List bookings visible to the actor, newest first.

    Args:
        actor: Caller
        status: Only bookings in this status
        date_from: Created at or after
        date_to: Created at or before
        search: Case-insensitive substring of the tour title
        limit: Page size (capped at MAX_PAGE_SIZE)
        offset: Rows to skip

    Returns:
        OperationResult with ``bookings``, ``limit`` and ``offset``
    """
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    query = select(Booking).options(selectinload(Booking.payment))

    if actor.role == Role.TOURIST:
        query = query.where(Booking.tourist_id == actor.id)
    elif actor.role == Role.GUIDE:
        query = query.where(Booking.guide_id == actor.id)

    if not actor.is_admin:
        query = query.where(Booking.is_deleted.is_(False))
    if status is not None:
        query = query.where(Booking.status == status)
    if date_from is not None:
        query = query.where(Booking.created_at >= date_from)
    if date_to is not None:
        query = query.where(Booking.created_at <= date_to)
    if search:
        query = query.join(Tour, Tour.id == Booking.tour_id).where(Tour.title.ilike(f"%{search.strip()}%"))

    query = query.order_by(Booking.created_at.desc()).limit(limit).offset(offset)

    async with get_async_session() as session:
        result = await session.execute(query)
        bookings = result.scalars().all()

    logger.debug(f"Listed {len(bookings)} bookings for actor_id={actor.id} role={actor.role.value}")
    return OperationResult.ok(
        bookings=[serialize_booking(b, b.payment) for b in bookings],
        limit=limit,
        offset=offset,
    )


async def is_booking_eligible_for_review(booking_id: UUID, tourist_id: UUID) -> bool:
    """
    True when the tourist's booking is COMPLETED and has no review yet.
    """
    async with get_async_session() as session:
        booking = await session.get(Booking, booking_id)
        if (
            booking is None
            or booking.is_deleted
            or booking.tourist_id != tourist_id
            or booking.status != BookingStatus.COMPLETED
        ):
            return False

        result = await session.execute(select(Review.id).where(Review.booking_id == booking_id))
        return result.scalar_one_or_none() is None
