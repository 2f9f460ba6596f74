"""Pydantic models for Stripe webhook payloads."""

from typing import Any

from pydantic import BaseModel, field_validator


class StripeWebhookEvent(BaseModel):
    """Stripe webhook event structure."""

    type: str
    data: dict[str, Any]
    id: str
    created: int


class StripePaymentEvent(BaseModel):
    """Parsed Checkout Session event for Redis pub/sub."""

    event_id: str
    event_type: str
    transaction_id: str
    checkout_session_id: str | None = None
    payment_intent: str | None = None
    amount_total: int | None = None
    currency: str | None = None
    payment_status: str | None = None

    @field_validator("transaction_id", mode="before")
    @classmethod
    def validate_transaction_id(cls, v: Any) -> str:
        """Reject blank transaction ids."""
        if not isinstance(v, str) or not v.strip():
            raise ValueError("transaction_id must be a non-empty string")
        return v.strip()
