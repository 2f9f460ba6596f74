"""Booking status state machine."""

from engine.fsm.booking_status_fsm import BookingStatusMachine

__all__ = ["BookingStatusMachine"]
