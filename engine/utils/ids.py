"""Transaction id generation and clock helpers (injectable in services)."""

import secrets
from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]
TransactionIdFactory = Callable[[], str]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(UTC)


def generate_transaction_id(clock: Clock = utc_now) -> str:
    """
    Generate a gateway transaction id.

    Format: ``TXN-<epoch milliseconds>-<6 hex chars>``. Uniqueness is enforced
    by the payments.transaction_id unique index; the random suffix keeps
    collisions within the same millisecond negligible.

    Example:
        >>> generate_transaction_id()
        'TXN-1760882400123-9f2c1a'
    """
    millis = int(clock().timestamp() * 1000)
    return f"TXN-{millis}-{secrets.token_hex(3)}"
