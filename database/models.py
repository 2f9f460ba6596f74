"""
SQLAlchemy ORM models for the tour marketplace.

This module defines the tables:
- users: Tourists, guides and administrators
- tours: Guide-owned tour listings with pricing and capacity
- bookings: A tourist's reservation against a tour (lifecycle status)
- payments: One payment record per booking with gateway transaction id
- reviews: Post-trip reviews for completed bookings

All models use:
- UUID primary keys (auto-generated)
- TIMESTAMP WITH TIME ZONE for datetime fields
- JSONB for gateway audit payloads
- Proper indexes and constraints
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ============================================================================
# Enums
# ============================================================================


class Role(str, PyEnum):
    """User role."""

    ADMIN = "ADMIN"
    GUIDE = "GUIDE"
    TOURIST = "TOURIST"


class UserStatus(str, PyEnum):
    """Account status managed by administrators."""

    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"
    PENDING_APPROVAL = "PENDING_APPROVAL"  # Guides awaiting vetting


class BookingStatus(str, PyEnum):
    """Booking lifecycle status."""

    PENDING = "PENDING"
    PAID = "PAID"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    def __str__(self):
        return self.value


class PaymentStatus(str, PyEnum):
    """Payment attempt status."""

    UNPAID = "UNPAID"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    def __str__(self):
        return self.value


# ============================================================================
# Core Models
# ============================================================================


class User(Base):
    """
    User model - tourists book tours, guides own them, admins manage both.

    Users are soft-deleted so their bookings and payments stay intact.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[Role] = mapped_column(
        SQLEnum(Role, name="user_role"), default=Role.TOURIST, nullable=False
    )
    status: Mapped[UserStatus] = mapped_column(
        SQLEnum(UserStatus, name="user_status"), default=UserStatus.ACTIVE, nullable=False
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Contact profile required before booking
    phone_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Guides only
    average_rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), default=Decimal("0"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    tours: Mapped[list["Tour"]] = relationship("Tour", back_populates="guide")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"


class Tour(Base):
    """
    Tour model - a guide's listing with per-guest price and group size cap.

    average_rating/review_count are written only by the review service's
    explicit reconciliation step.
    """

    __tablename__ = "tours"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    guide_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_group_size: Mapped[int] = mapped_column(Integer, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    average_rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), default=Decimal("0"), nullable=False
    )
    review_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    guide: Mapped["User"] = relationship("User", back_populates="tours")

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_tour_price_non_negative"),
        CheckConstraint("max_group_size >= 1", name="check_tour_max_group_size_positive"),
    )

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, title='{self.title}', price={self.price})>"


# ============================================================================
# Transactional Models
# ============================================================================


class Booking(Base):
    """
    Booking model - a tourist's reservation against a tour.

    Price fields are fixed at creation. Status changes only through the
    booking transaction, the status transition service, or the payment
    callback service.
    """

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )

    tourist_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    tour_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("tours.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    guide_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    payment_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("payments.id", ondelete="RESTRICT", use_alter=True),
        nullable=True,
        unique=True,
    )

    guest_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    guide_earnings: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status"),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Administrative flags (independent of status)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    tourist: Mapped["User"] = relationship("User", foreign_keys=[tourist_id])
    guide: Mapped["User"] = relationship("User", foreign_keys=[guide_id])
    tour: Mapped["Tour"] = relationship("Tour", foreign_keys=[tour_id])
    payment: Mapped[Optional["Payment"]] = relationship(
        "Payment", foreign_keys=[payment_id], post_update=True
    )

    __table_args__ = (
        CheckConstraint("guest_count >= 1", name="check_booking_guest_count_positive"),
        CheckConstraint("total_price >= 0", name="check_booking_total_price_non_negative"),
        Index("idx_bookings_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, tourist_id={self.tourist_id}, status='{self.status.value}')>"


class Payment(Base):
    """
    Payment model - the single payment record of a booking.

    transaction_id is regenerated whenever an unpaid booking re-initiates
    payment, so it always identifies the current gateway attempt.
    gateway_data accumulates every inbound gateway event under "events".
    """

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    booking_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    transaction_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status"),
        default=PaymentStatus.UNPAID,
        nullable=False,
        index=True,
    )
    payment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    gateway_data: Mapped[dict[str, Any]] = mapped_column(
        JSONB, default=dict, server_default=text("'{}'::jsonb"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    booking: Mapped["Booking"] = relationship("Booking", foreign_keys=[booking_id])

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, transaction_id='{self.transaction_id}', status='{self.status.value}')>"


class Review(Base):
    """Review model - one per completed booking."""

    __tablename__ = "reviews"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    booking_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    tourist_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    tour_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), ForeignKey("tours.id"), nullable=False, index=True
    )
    guide_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_review_rating_range"),
    )

    def __repr__(self) -> str:
        return f"<Review(id={self.id}, booking_id={self.booking_id}, rating={self.rating})>"
