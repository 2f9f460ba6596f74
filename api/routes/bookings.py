"""Booking routes: creation, reads, status changes, payment retry and reviews."""

import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from api.auth import CurrentActor
from api.errors import result_response
from api.models.booking import CreateBookingRequest, CreateReviewRequest, UpdateBookingStatusRequest
from database.models import BookingStatus
from engine.services import ReviewService, StatusTransitionService, booking_query_service
from engine.transactions import BookingTransaction
from shared.errors import OperationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings")


def get_booking_transaction() -> BookingTransaction:
    return BookingTransaction()


def get_status_service() -> StatusTransitionService:
    return StatusTransitionService()


def get_review_service() -> ReviewService:
    return ReviewService()


BookingTransactionDep = Annotated[BookingTransaction, Depends(get_booking_transaction)]
StatusServiceDep = Annotated[StatusTransitionService, Depends(get_status_service)]
ReviewServiceDep = Annotated[ReviewService, Depends(get_review_service)]


@router.post("")
async def create_booking(
    body: CreateBookingRequest,
    actor: CurrentActor,
    transaction: BookingTransactionDep,
):
    """Create a booking for the calling tourist and return the payment URL."""
    result = await transaction.create_booking(actor.id, body.tour_id, body.guest_count)
    return result_response(result, status_code=201)


@router.get("")
async def list_bookings(
    actor: CurrentActor,
    status: BookingStatus | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
):
    result = await booking_query_service.list_bookings(
        actor,
        status=status,
        date_from=date_from,
        date_to=date_to,
        search=search,
        limit=limit,
        offset=offset,
    )
    return result_response(result)


@router.get("/{booking_id}")
async def get_booking(booking_id: UUID, actor: CurrentActor):
    result = await booking_query_service.get_booking_by_id(booking_id, actor)
    return result_response(result)


@router.patch("/{booking_id}/status")
async def update_booking_status(
    booking_id: UUID,
    body: UpdateBookingStatusRequest,
    actor: CurrentActor,
    service: StatusServiceDep,
):
    """Admin or owning guide moves the booking along the transition table."""
    result = await service.update_booking_status(booking_id, actor, body.status)
    return result_response(result)


@router.post("/{booking_id}/cancel")
async def cancel_booking(booking_id: UUID, actor: CurrentActor, service: StatusServiceDep):
    result = await service.cancel_booking(booking_id, actor)
    return result_response(result)


@router.post("/{booking_id}/init-payment")
async def init_payment(booking_id: UUID, actor: CurrentActor, transaction: BookingTransactionDep):
    """Issue a fresh transaction id and payment URL for an unpaid booking."""
    result = await transaction.init_payment(booking_id, actor)
    return result_response(result)


@router.patch("/{booking_id}/toggle-active")
async def toggle_booking_active(booking_id: UUID, actor: CurrentActor, service: StatusServiceDep):
    result = await service.toggle_booking_active(booking_id, actor)
    return result_response(result)


@router.delete("/{booking_id}")
async def soft_delete_booking(booking_id: UUID, actor: CurrentActor, service: StatusServiceDep):
    result = await service.soft_delete_booking(booking_id, actor)
    return result_response(result)


@router.get("/{booking_id}/review-eligibility")
async def review_eligibility(booking_id: UUID, actor: CurrentActor):
    eligible = await booking_query_service.is_booking_eligible_for_review(booking_id, actor.id)
    return result_response(OperationResult.ok(eligible=eligible))


@router.post("/{booking_id}/review")
async def create_review(
    booking_id: UUID,
    body: CreateReviewRequest,
    actor: CurrentActor,
    service: ReviewServiceDep,
):
    result = await service.create_review(booking_id, actor, body.rating, body.comment)
    return result_response(result, status_code=201)
