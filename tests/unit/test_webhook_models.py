"""Unit tests for webhook Pydantic models."""

import pytest
from pydantic import ValidationError

from api.models.stripe_webhook import StripePaymentEvent, StripeWebhookEvent


class TestStripeWebhookEvent:
    """Tests for StripeWebhookEvent model."""

    def test_valid_event_parses_correctly(self) -> None:
        event = StripeWebhookEvent.model_validate(
            {
                "id": "evt_1",
                "type": "checkout.session.completed",
                "created": 1792400400,
                "data": {"object": {"id": "cs_test_1"}},
                "livemode": False,
            }
        )

        assert event.type == "checkout.session.completed"
        assert event.data["object"]["id"] == "cs_test_1"

    def test_missing_data_raises_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            StripeWebhookEvent.model_validate({"id": "evt_1", "type": "x", "created": 1})


class TestStripePaymentEvent:
    """Tests for StripePaymentEvent model."""

    def test_transaction_id_is_stripped(self) -> None:
        event = StripePaymentEvent(
            event_id="evt_1",
            event_type="checkout.session.completed",
            transaction_id="  TXN-1-abc123 ",
        )

        assert event.transaction_id == "TXN-1-abc123"
        assert event.amount_total is None

    @pytest.mark.parametrize("transaction_id", [None, "", "   "])
    def test_blank_transaction_id_rejected(self, transaction_id) -> None:
        with pytest.raises(ValidationError):
            StripePaymentEvent(
                event_id="evt_1",
                event_type="checkout.session.completed",
                transaction_id=transaction_id,
            )
