"""
Unit tests for review_service.py.

Tests coverage:
- ReviewService.create_review(): happy path, role/ownership checks,
  completed-only, one review per booking, rating bounds
- recalculate_ratings(): aggregates written to tour and guide
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from database.models import BookingStatus, Review, Role
from engine.actors import Actor
from engine.services import ReviewService, recalculate_ratings
from shared.errors import ErrorCode
from tests.factories import GUIDE_ID, TOUR_ID, TOURIST_ID, make_booking, make_session, scalar_result

SESSION_PATH = "engine.services.review_service.get_async_session"

TOURIST = Actor(id=TOURIST_ID, role=Role.TOURIST)


def _row_result(*values):
    result = MagicMock()
    result.one.return_value = values
    return result


def _recalc_results(tour_avg, tour_count, guide_avg):
    return [
        _row_result(tour_avg, tour_count),
        _row_result(guide_avg),
        MagicMock(),
        MagicMock(),
    ]


class TestRecalculateRatings:
    @pytest.mark.asyncio
    async def test_averages_rounded_and_written(self):
        session = make_session()
        session.execute.side_effect = _recalc_results(Decimal("4.3333333"), 3, Decimal("4.5"))

        ratings = await recalculate_ratings(session, TOUR_ID, GUIDE_ID)

        assert ratings == {
            "tour_average": Decimal("4.33"),
            "tour_review_count": 3,
            "guide_average": Decimal("4.50"),
        }
        statements = [str(call.args[0]) for call in session.execute.await_args_list]
        assert statements[2].startswith("UPDATE tours")
        assert statements[3].startswith("UPDATE users")

    @pytest.mark.asyncio
    async def test_no_reviews_gives_zero(self):
        session = make_session()
        session.execute.side_effect = _recalc_results(None, 0, None)

        ratings = await recalculate_ratings(session, TOUR_ID, GUIDE_ID)

        assert ratings["tour_average"] == Decimal("0")
        assert ratings["tour_review_count"] == 0


class TestCreateReview:
    @pytest.mark.asyncio
    async def test_completed_booking_reviewed(self):
        booking = make_booking(status=BookingStatus.COMPLETED)
        session = make_session()
        session.get.return_value = booking
        session.execute.side_effect = [scalar_result(None), *_recalc_results(Decimal("5"), 1, Decimal("4.75"))]

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await ReviewService().create_review(booking.id, TOURIST, 5, "Great guide")

        assert result.success is True
        assert result.data["review"]["rating"] == 5
        assert result.data["review"]["guide_id"] == str(GUIDE_ID)
        assert result.data["tour_average_rating"] == "5.00"
        assert result.data["tour_review_count"] == 1
        assert result.data["guide_average_rating"] == "4.75"

        review = session.add.call_args.args[0]
        assert isinstance(review, Review)
        assert review.booking_id == booking.id
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_pending_booking_cannot_be_reviewed(self):
        session = make_session()
        session.get.return_value = make_booking(status=BookingStatus.PAID)

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await ReviewService().create_review(uuid4(), TOURIST, 4)

        assert result.error_code == ErrorCode.VALIDATION_ERROR
        assert result.details["booking_status"] == "PAID"
        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_second_review_rejected(self):
        session = make_session()
        session.get.return_value = make_booking(status=BookingStatus.COMPLETED)
        session.execute.side_effect = [scalar_result(uuid4())]

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await ReviewService().create_review(uuid4(), TOURIST, 4)

        assert result.error_code == ErrorCode.VALIDATION_ERROR
        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_tourist_forbidden(self):
        session = make_session()
        session.get.return_value = make_booking(status=BookingStatus.COMPLETED)

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await ReviewService().create_review(uuid4(), Actor(id=uuid4(), role=Role.TOURIST), 4)

        assert result.error_code == ErrorCode.FORBIDDEN

    @pytest.mark.asyncio
    async def test_guide_cannot_review(self):
        with patch(SESSION_PATH) as mock_session:
            result = await ReviewService().create_review(uuid4(), Actor(id=GUIDE_ID, role=Role.GUIDE), 5)

        assert result.error_code == ErrorCode.FORBIDDEN
        mock_session.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6, True])
    async def test_rating_out_of_range(self, rating):
        with patch(SESSION_PATH) as mock_session:
            result = await ReviewService().create_review(uuid4(), TOURIST, rating)

        assert result.error_code == ErrorCode.VALIDATION_ERROR
        mock_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_booking_not_found(self):
        session = make_session()
        session.get.return_value = None

        with patch(SESSION_PATH) as mock_session:
            mock_session.return_value.__aenter__.return_value = session
            result = await ReviewService().create_review(uuid4(), TOURIST, 5)

        assert result.error_code == ErrorCode.NOT_FOUND
