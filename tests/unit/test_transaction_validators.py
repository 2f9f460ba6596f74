"""
Unit tests for booking transaction validators.

Tests coverage:
- validate_tourist_profile: missing user, blocked/deleted, wrong role, missing contact fields
- validate_tour_bookable: missing, inactive, soft-deleted
- validate_guest_count: lower and upper bounds
"""

from database.models import Role, UserStatus
from engine.validators import validate_guest_count, validate_tour_bookable, validate_tourist_profile
from tests.factories import GUIDE_ID, make_tour, make_user


class TestValidateTouristProfile:
    def test_complete_profile_is_valid(self):
        result = validate_tourist_profile(make_user())

        assert result["valid"] is True
        assert result["error_code"] is None

    def test_missing_user_is_not_found(self):
        result = validate_tourist_profile(None)

        assert result["valid"] is False
        assert result["error_code"] == "NOT_FOUND"

    def test_blocked_user_rejected(self):
        result = validate_tourist_profile(make_user(status=UserStatus.BLOCKED))

        assert result["valid"] is False
        assert result["error_code"] == "VALIDATION_ERROR"
        assert result["user_status"] == "BLOCKED"

    def test_deleted_user_rejected(self):
        result = validate_tourist_profile(make_user(is_deleted=True))

        assert result["error_code"] == "VALIDATION_ERROR"

    def test_guide_cannot_book(self):
        result = validate_tourist_profile(make_user(user_id=GUIDE_ID, role=Role.GUIDE))

        assert result["error_code"] == "VALIDATION_ERROR"
        assert result["role"] == "GUIDE"

    def test_missing_phone_reported(self):
        result = validate_tourist_profile(make_user(phone_number=None))

        assert result["valid"] is False
        assert result["missing_fields"] == ["phone_number"]

    def test_blank_address_counts_as_missing(self):
        result = validate_tourist_profile(make_user(address="   "))

        assert result["missing_fields"] == ["address"]

    def test_both_contact_fields_missing(self):
        result = validate_tourist_profile(make_user(phone_number="", address=None))

        assert result["missing_fields"] == ["phone_number", "address"]


class TestValidateTourBookable:
    def test_active_tour_is_bookable(self):
        assert validate_tour_bookable(make_tour())["valid"] is True

    def test_missing_tour_not_found(self):
        assert validate_tour_bookable(None)["error_code"] == "NOT_FOUND"

    def test_soft_deleted_tour_not_found(self):
        assert validate_tour_bookable(make_tour(is_deleted=True))["error_code"] == "NOT_FOUND"

    def test_inactive_tour_not_found(self):
        assert validate_tour_bookable(make_tour(is_active=False))["error_code"] == "NOT_FOUND"


class TestValidateGuestCount:
    def test_within_capacity(self):
        result = validate_guest_count(5, make_tour(max_group_size=5))

        assert result["valid"] is True
        assert result["max_group_size"] == 5

    def test_six_guests_against_max_five(self):
        result = validate_guest_count(6, make_tour(max_group_size=5))

        assert result["valid"] is False
        assert result["error_code"] == "VALIDATION_ERROR"
        assert result["guest_count"] == 6
        assert result["max_group_size"] == 5

    def test_zero_guests_rejected(self):
        assert validate_guest_count(0, make_tour())["error_code"] == "VALIDATION_ERROR"

    def test_boolean_is_not_a_guest_count(self):
        assert validate_guest_count(True, make_tour())["valid"] is False
