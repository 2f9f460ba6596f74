"""
Booking Expiration Worker - Cancels bookings whose payment never completed.

Runs every BOOKING_EXPIRATION_CHECK_INTERVAL_SECONDS and cancels bookings that:
- are PENDING or FAILED
- have a payment still UNPAID or FAILED
- were created more than BOOKING_PAYMENT_TIMEOUT_MINUTES ago

Each candidate goes through StatusTransitionService.cancel_expired_booking(),
which re-checks both statuses under lock, so a payment confirmed between the
scan and the write is never cancelled. A timeout of 0 disables expiration.
"""

import asyncio
import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy import select

from database.connection import get_async_session
from database.models import Booking, BookingStatus, Payment, PaymentStatus
from engine.services.status_transition_service import StatusTransitionService
from engine.utils import Clock, utc_now
from shared.config import get_settings
from shared.logging_config import configure_logging

logger = logging.getLogger(__name__)

SCAN_BATCH_SIZE = 200


async def find_expired_booking_ids(clock: Clock = utc_now) -> list[UUID]:
    settings = get_settings()
    cutoff = clock() - timedelta(minutes=settings.BOOKING_PAYMENT_TIMEOUT_MINUTES)

    async with get_async_session() as session:
        result = await session.execute(
            select(Booking.id)
            .join(Payment, Payment.booking_id == Booking.id)
            .where(
                Booking.status.in_([BookingStatus.PENDING, BookingStatus.FAILED]),
                Payment.status.in_([PaymentStatus.UNPAID, PaymentStatus.FAILED]),
                Booking.created_at < cutoff,
                Booking.is_deleted.is_(False),
            )
            .order_by(Booking.created_at)
            .limit(SCAN_BATCH_SIZE)
        )
        return list(result.scalars().all())


async def expire_unpaid_bookings(
    clock: Clock = utc_now,
    service: StatusTransitionService | None = None,
) -> int:
    """
    Cancel every booking past its payment window.

    Returns:
        int: Number of bookings cancelled in this run
    """
    settings = get_settings()
    if settings.BOOKING_PAYMENT_TIMEOUT_MINUTES <= 0:
        return 0

    service = service or StatusTransitionService(clock=clock)
    expired_count = 0

    for booking_id in await find_expired_booking_ids(clock):
        result = await service.cancel_expired_booking(booking_id)
        if result.success:
            expired_count += 1
            logger.info(
                f"Booking expired | booking_id={booking_id}",
                extra={"booking_id": str(booking_id)},
            )
        else:
            # Paid or changed since the scan
            logger.info(
                f"Booking skipped by expiration | booking_id={booking_id} | "
                f"error_code={result.error_code.value} | {result.error_message}",
                extra={"booking_id": str(booking_id)},
            )

    if expired_count:
        logger.info(f"Expired {expired_count} unpaid bookings")
    return expired_count


async def run_expiration_worker():
    """
    Main worker loop - runs the expiration check on a fixed interval.

    Runs until cancelled.
    """
    settings = get_settings()
    interval = settings.BOOKING_EXPIRATION_CHECK_INTERVAL_SECONDS

    logger.info("Booking expiration worker starting...")
    logger.info(
        f"Check interval: {interval} seconds | "
        f"payment timeout: {settings.BOOKING_PAYMENT_TIMEOUT_MINUTES} minutes"
    )

    try:
        while True:
            try:
                expired_count = await expire_unpaid_bookings()
                logger.debug(f"Expiration check completed | expired_count={expired_count}")
            except Exception as e:
                logger.exception(f"Error in expiration check cycle: {e}")

            await asyncio.sleep(interval)

    except asyncio.CancelledError:
        logger.info("Booking expiration worker shutting down...")


if __name__ == "__main__":
    configure_logging()
    logger.info("Starting booking expiration worker...")

    try:
        asyncio.run(run_expiration_worker())
    except KeyboardInterrupt:
        logger.info("Booking expiration worker stopped by user")
