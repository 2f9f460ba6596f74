"""Utility helpers for the booking core."""

from engine.utils.ids import Clock, TransactionIdFactory, generate_transaction_id, utc_now
from engine.utils.pricing import PriceBreakdown, calculate_price_breakdown

__all__ = [
    "Clock",
    "TransactionIdFactory",
    "generate_transaction_id",
    "utc_now",
    "PriceBreakdown",
    "calculate_price_breakdown",
]
