"""
Booking/payment services.

- status_transition_service: manual status updates, cancellation, admin flags
- payment_callback_service: gateway success/fail/cancel reconciliation
- booking_query_service: role-scoped reads
- review_service: reviews and rating reconciliation
"""

from engine.services.payment_callback_service import PaymentCallbackService, resolve_transaction_id
from engine.services.review_service import ReviewService, recalculate_ratings
from engine.services.status_transition_service import StatusTransitionService

__all__ = [
    "PaymentCallbackService",
    "ReviewService",
    "StatusTransitionService",
    "recalculate_ratings",
    "resolve_transaction_id",
]
