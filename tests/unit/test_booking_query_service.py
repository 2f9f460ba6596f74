"""
Unit tests for booking_query_service.

Tests coverage:
- get_booking_by_id(): party access, stranger FORBIDDEN, deleted hidden from non-admins
- list_bookings(): role scoping and filters reach the query, page size capped
- is_booking_eligible_for_review()
"""

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from database.models import BookingStatus, Role
from engine.actors import Actor
from engine.services import booking_query_service
from shared.errors import ErrorCode
from tests.factories import (
    ADMIN_ID,
    GUIDE_ID,
    TOURIST_ID,
    make_booking,
    make_payment,
    make_session,
    scalar_result,
)

SESSION_PATH = "engine.services.booking_query_service.get_async_session"

TOURIST = Actor(id=TOURIST_ID, role=Role.TOURIST)
GUIDE = Actor(id=GUIDE_ID, role=Role.GUIDE)
ADMIN = Actor(id=ADMIN_ID, role=Role.ADMIN)


def _booking_with_payment(**kwargs):
    booking = make_booking(payment_id=uuid4(), **kwargs)
    booking.payment = make_payment(booking)
    return booking


def _list_result(bookings):
    result = MagicMock()
    result.scalars.return_value.all.return_value = bookings
    return result


def _where_clause(session) -> str:
    statement = session.execute.await_args.args[0]
    return str(statement).split("WHERE", 1)[1]


class TestGetBookingById:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("actor", [TOURIST, GUIDE, ADMIN])
    async def test_parties_and_admin_can_read(self, actor):
        booking = _booking_with_payment()
        session = make_session()
        session.execute.return_value = scalar_result(booking)

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await booking_query_service.get_booking_by_id(booking.id, actor)

        assert result.success is True
        assert result.data["booking"]["id"] == str(booking.id)
        assert result.data["booking"]["payment"]["transaction_id"] == booking.payment.transaction_id

    @pytest.mark.asyncio
    async def test_stranger_forbidden(self):
        booking = _booking_with_payment()
        session = make_session()
        session.execute.return_value = scalar_result(booking)

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await booking_query_service.get_booking_by_id(
                booking.id, Actor(id=uuid4(), role=Role.TOURIST)
            )

        assert result.error_code == ErrorCode.FORBIDDEN

    @pytest.mark.asyncio
    async def test_deleted_booking_hidden_from_tourist(self):
        booking = _booking_with_payment(is_deleted=True)
        session = make_session()
        session.execute.return_value = scalar_result(booking)

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await booking_query_service.get_booking_by_id(booking.id, TOURIST)

        assert result.error_code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_deleted_booking_visible_to_admin(self):
        booking = _booking_with_payment(is_deleted=True)
        session = make_session()
        session.execute.return_value = scalar_result(booking)

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await booking_query_service.get_booking_by_id(booking.id, ADMIN)

        assert result.data["booking"]["is_deleted"] is True


class TestListBookings:
    @pytest.mark.asyncio
    async def test_tourist_sees_own_bookings_only(self):
        session = make_session()
        session.execute.return_value = _list_result([_booking_with_payment()])

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await booking_query_service.list_bookings(TOURIST)

        assert len(result.data["bookings"]) == 1
        where = _where_clause(session)
        assert "bookings.tourist_id" in where
        assert "bookings.guide_id" not in where
        assert "bookings.is_deleted" in where

    @pytest.mark.asyncio
    async def test_guide_scoped_to_own_tours(self):
        session = make_session()
        session.execute.return_value = _list_result([])

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            await booking_query_service.list_bookings(GUIDE)

        where = _where_clause(session)
        assert "bookings.guide_id" in where
        assert "bookings.tourist_id" not in where

    @pytest.mark.asyncio
    async def test_admin_unscoped_and_sees_deleted(self):
        session = make_session()
        session.execute.return_value = _list_result([])

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            await booking_query_service.list_bookings(ADMIN)

        statement = str(session.execute.await_args.args[0])
        assert "WHERE" not in statement

    @pytest.mark.asyncio
    async def test_filters_and_search_applied(self):
        session = make_session()
        session.execute.return_value = _list_result([])

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            await booking_query_service.list_bookings(
                ADMIN, status=BookingStatus.PAID, search="old town"
            )

        statement = str(session.execute.await_args.args[0])
        assert "bookings.status" in statement
        assert "JOIN tours" in statement
        assert "lower(tours.title)" in statement

    @pytest.mark.asyncio
    async def test_page_size_capped(self):
        session = make_session()
        session.execute.return_value = _list_result([])

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await booking_query_service.list_bookings(ADMIN, limit=1000, offset=-5)

        assert result.data["limit"] == booking_query_service.MAX_PAGE_SIZE
        assert result.data["offset"] == 0


class TestReviewEligibility:
    @pytest.mark.asyncio
    async def test_completed_unreviewed_booking_is_eligible(self):
        session = make_session()
        session.get.return_value = make_booking(status=BookingStatus.COMPLETED)
        session.execute.return_value = scalar_result(None)

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            assert await booking_query_service.is_booking_eligible_for_review(uuid4(), TOURIST_ID) is True

    @pytest.mark.asyncio
    async def test_already_reviewed_is_not_eligible(self):
        session = make_session()
        session.get.return_value = make_booking(status=BookingStatus.COMPLETED)
        session.execute.return_value = scalar_result(uuid4())

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            assert await booking_query_service.is_booking_eligible_for_review(uuid4(), TOURIST_ID) is False

    @pytest.mark.asyncio
    async def test_paid_booking_is_not_eligible(self):
        session = make_session()
        session.get.return_value = make_booking(status=BookingStatus.PAID)

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            assert await booking_query_service.is_booking_eligible_for_review(uuid4(), TOURIST_ID) is False

        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_tourist_is_not_eligible(self):
        session = make_session()
        session.get.return_value = make_booking(status=BookingStatus.COMPLETED)

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            assert await booking_query_service.is_booking_eligible_for_review(uuid4(), uuid4()) is False
