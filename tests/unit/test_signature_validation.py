"""Unit tests for Stripe webhook signature validation."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import HTTPException, Request
from stripe import SignatureVerificationError

from api.middleware.signature_validation import validate_stripe_signature

SECRET = "whsec_test_secret"
BODY = b'{"type":"checkout.session.completed","id":"evt_test","data":{"object":{}}}'


def _request(body: bytes, headers: dict) -> AsyncMock:
    mock_request = AsyncMock(spec=Request)
    mock_request.body = AsyncMock(return_value=body)
    mock_request.headers = headers
    return mock_request


class TestStripeSignatureValidation:
    """Tests for Stripe signature validation."""

    @pytest.mark.asyncio
    async def test_valid_stripe_signature_returns_event_dict(self):
        """Valid signature returns the JSON body as a plain dict."""
        mock_request = _request(BODY, {"Stripe-Signature": "valid_signature"})

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = SECRET

            with patch(
                "api.middleware.signature_validation.stripe.Webhook.construct_event"
            ) as mock_construct:
                result = await validate_stripe_signature(mock_request)

                assert result == {
                    "type": "checkout.session.completed",
                    "id": "evt_test",
                    "data": {"object": {}},
                }
                assert type(result) is dict
                mock_construct.assert_called_once_with(
                    payload=BODY, sig_header="valid_signature", secret=SECRET
                )

    @pytest.mark.asyncio
    async def test_invalid_stripe_signature_returns_401(self):
        """Invalid signature raises 401 HTTPException."""
        mock_request = _request(BODY, {"Stripe-Signature": "invalid_signature"})

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = SECRET

            with patch(
                "api.middleware.signature_validation.stripe.Webhook.construct_event"
            ) as mock_construct:
                mock_construct.side_effect = SignatureVerificationError(
                    "Invalid signature", "sig_header"
                )

                with pytest.raises(HTTPException) as exc_info:
                    await validate_stripe_signature(mock_request)

                assert exc_info.value.status_code == 401
                assert "Invalid Stripe signature" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_missing_stripe_signature_header_returns_401(self):
        """Missing header is rejected before Stripe is consulted."""
        mock_request = _request(BODY, {})

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = SECRET

            with patch(
                "api.middleware.signature_validation.stripe.Webhook.construct_event"
            ) as mock_construct:
                with pytest.raises(HTTPException) as exc_info:
                    await validate_stripe_signature(mock_request)

                assert exc_info.value.status_code == 401
                mock_construct.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_stripe_signature_returns_401(self):
        """Expired timestamp (outside Stripe tolerance) raises 401."""
        mock_request = _request(BODY, {"Stripe-Signature": "expired_signature"})

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = SECRET

            with patch(
                "api.middleware.signature_validation.stripe.Webhook.construct_event"
            ) as mock_construct:
                mock_construct.side_effect = SignatureVerificationError(
                    "Timestamp outside the tolerance zone", "sig_header"
                )

                with pytest.raises(HTTPException) as exc_info:
                    await validate_stripe_signature(mock_request)

                assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_body_returns_400(self):
        """Body Stripe cannot parse raises 400."""
        mock_request = _request(b"not json", {"Stripe-Signature": "valid_signature"})

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = SECRET

            with patch(
                "api.middleware.signature_validation.stripe.Webhook.construct_event"
            ) as mock_construct:
                mock_construct.side_effect = ValueError("Invalid payload")

                with pytest.raises(HTTPException) as exc_info:
                    await validate_stripe_signature(mock_request)

                assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_non_object_body_returns_400(self):
        """A verified JSON array is not an event."""
        mock_request = _request(b"[1, 2]", {"Stripe-Signature": "valid_signature"})

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = SECRET

            with patch("api.middleware.signature_validation.stripe.Webhook.construct_event"):
                with pytest.raises(HTTPException) as exc_info:
                    await validate_stripe_signature(mock_request)

                assert exc_info.value.status_code == 400
