"""Booking creation and payment (re)initiation."""

from engine.transactions.booking_transaction import BookingTransaction

__all__ = ["BookingTransaction"]
