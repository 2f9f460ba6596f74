"""
Error taxonomy and operation results for the booking/payment core.

Core operations never let business-rule failures escape as raw exceptions to
their callers. Internally a service raises ``BookingError``; the public entry
point converts it into an ``OperationResult`` so the HTTP layer (or a worker)
decides how to surface it.
"""

from dataclasses import dataclass, field
from enum import Enum as PyEnum
from typing import Any


class ErrorCode(str, PyEnum):
    """Error kinds surfaced by core operations."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    CONFLICT = "CONFLICT"


class BookingError(Exception):
    """
    Business-rule or authorization failure inside a core operation.

    Attributes:
        code: ErrorCode classifying the failure
        message: Human-readable message safe to return to API clients
        details: Structured context (ids, observed statuses, limits)
    """

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class GatewayError(Exception):
    """Outbound payment gateway failed, timed out, or its circuit is open."""

    def __init__(self, message: str, original_error: Exception | None = None):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


@dataclass
class OperationResult:
    """
    Result of a core booking/payment operation.

    Attributes:
        success: Whether the operation succeeded
        data: Payload on success (booking, payment, redirect url, flags)
        error_code: ErrorCode on failure
        error_message: Message on failure
        details: Structured failure context
    """

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error_code: ErrorCode | None = None
    error_message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **data: Any) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: BookingError) -> "OperationResult":
        return cls(
            success=False,
            error_code=error.code,
            error_message=error.message,
            details=error.details,
        )
