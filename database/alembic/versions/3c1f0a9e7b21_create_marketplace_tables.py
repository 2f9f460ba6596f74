"""Create marketplace tables: users, tours, bookings, payments, reviews

Revision ID: 3c1f0a9e7b21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3c1f0a9e7b21'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

user_role = postgresql.ENUM('ADMIN', 'GUIDE', 'TOURIST', name='user_role', create_type=False)
user_status = postgresql.ENUM('ACTIVE', 'BLOCKED', 'PENDING_APPROVAL', name='user_status', create_type=False)
booking_status = postgresql.ENUM(
    'PENDING', 'PAID', 'CONFIRMED', 'CANCELLED', 'COMPLETED', 'FAILED',
    name='booking_status', create_type=False,
)
payment_status = postgresql.ENUM(
    'UNPAID', 'PAID', 'FAILED', 'CANCELLED', 'REFUNDED',
    name='payment_status', create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in (user_role, user_status, booking_status, payment_status):
        enum_type.create(bind, checkfirst=True)

    op.create_table('users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('status', user_status, nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('phone_number', sa.String(length=30), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('average_rating', sa.Numeric(precision=3, scale=2), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table('tours',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('guide_id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('max_group_size', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('average_rating', sa.Numeric(precision=3, scale=2), nullable=False),
        sa.Column('review_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint('price >= 0', name='check_tour_price_non_negative'),
        sa.CheckConstraint('max_group_size >= 1', name='check_tour_max_group_size_positive'),
        sa.ForeignKeyConstraint(['guide_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tours_guide_id', 'tours', ['guide_id'])
    op.create_index('ix_tours_city', 'tours', ['city'])

    # bookings.payment_id FK is added after payments exists (circular reference)
    op.create_table('bookings',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('tourist_id', sa.UUID(), nullable=False),
        sa.Column('tour_id', sa.UUID(), nullable=False),
        sa.Column('guide_id', sa.UUID(), nullable=False),
        sa.Column('payment_id', sa.UUID(), nullable=True),
        sa.Column('guest_count', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('commission_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('guide_earnings', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint('guest_count >= 1', name='check_booking_guest_count_positive'),
        sa.CheckConstraint('total_price >= 0', name='check_booking_total_price_non_negative'),
        sa.ForeignKeyConstraint(['tourist_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['guide_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_id')
    )
    op.create_index('ix_bookings_tourist_id', 'bookings', ['tourist_id'])
    op.create_index('ix_bookings_tour_id', 'bookings', ['tour_id'])
    op.create_index('ix_bookings_guide_id', 'bookings', ['guide_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_created_at', 'bookings', ['created_at'])
    op.create_index('idx_bookings_status_created', 'bookings', ['status', 'created_at'])

    op.create_table('payments',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('booking_id', sa.UUID(), nullable=False),
        sa.Column('transaction_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', payment_status, nullable=False),
        sa.Column('payment_url', sa.Text(), nullable=True),
        sa.Column('gateway_data', postgresql.JSONB(astext_type=sa.Text()),
                  server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint('amount >= 0', name='check_payment_amount_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id')
    )
    op.create_index('ix_payments_transaction_id', 'payments', ['transaction_id'], unique=True)
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_foreign_key(
        'bookings_payment_id_fkey', 'bookings', 'payments',
        ['payment_id'], ['id'], ondelete='RESTRICT',
    )

    op.create_table('reviews',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('booking_id', sa.UUID(), nullable=False),
        sa.Column('tourist_id', sa.UUID(), nullable=False),
        sa.Column('tour_id', sa.UUID(), nullable=False),
        sa.Column('guide_id', sa.UUID(), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='check_review_rating_range'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['tourist_id'], ['users.id']),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id']),
        sa.ForeignKeyConstraint(['guide_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id')
    )
    op.create_index('ix_reviews_tourist_id', 'reviews', ['tourist_id'])
    op.create_index('ix_reviews_tour_id', 'reviews', ['tour_id'])
    op.create_index('ix_reviews_guide_id', 'reviews', ['guide_id'])


def downgrade() -> None:
    op.drop_table('reviews')
    op.drop_constraint('bookings_payment_id_fkey', 'bookings', type_='foreignkey')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('tours')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (payment_status, booking_status, user_status, user_role):
        enum_type.drop(bind, checkfirst=True)
