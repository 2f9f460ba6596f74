"""
Circuit Breaker Pattern Implementation.

Protects the outbound payment gateway call so a gateway outage fails fast
instead of holding request slots open until the timeout.

Circuit breaker states:
- CLOSED: Normal operation, requests pass through
- OPEN: Service is down, requests fail fast without calling the service
- HALF_OPEN: Testing if service recovered, limited requests allowed

Usage:
    from shared.circuit_breaker import call_with_breaker, payment_gateway_breaker
    import pybreaker

    try:
        result = await call_with_breaker(payment_gateway_breaker, my_async_function, *args)
    except pybreaker.CircuitBreakerError:
        # Circuit is OPEN - service is down
        ...
"""

import contextlib
import logging
import time
from typing import Any, Callable

import pybreaker
import stripe

from shared.config import get_settings

logger = logging.getLogger(__name__)


class CircuitBreakerLogger(pybreaker.CircuitBreakerListener):
    """Log circuit breaker state changes and failures."""

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        if new_state.name == "open":
            logger.warning(
                f"Circuit breaker '{cb.name}' OPENED - "
                f"service appears down, failing fast for {cb.reset_timeout}s"
            )
        elif new_state.name == "half-open":
            logger.info(f"Circuit breaker '{cb.name}' HALF-OPEN - testing if service recovered")
        elif new_state.name == "closed":
            logger.info(f"Circuit breaker '{cb.name}' CLOSED - service recovered")
        else:
            logger.info(
                f"Circuit breaker '{cb.name}' state: {old_state.name} -> {new_state.name}"
            )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: Exception) -> None:
        logger.warning(
            f"Circuit breaker '{cb.name}' recorded failure: {type(exc).__name__}: {exc}"
        )


class OpenedAtListener(pybreaker.CircuitBreakerListener):
    """Record when each breaker last opened (monotonic clock)."""

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        if new_state.name == "open":
            _opened_at[cb.name] = time.monotonic()
        else:
            _opened_at.pop(cb.name, None)


# Singleton registry of circuit breakers
_breakers: dict[str, pybreaker.CircuitBreaker] = {}
_opened_at: dict[str, float] = {}
_logger_instance = CircuitBreakerLogger()
_opened_at_listener = OpenedAtListener()


def get_circuit_breaker(
    name: str,
    fail_max: int = 5,
    reset_timeout: int = 30,
    exclude: list[type] | None = None,
) -> pybreaker.CircuitBreaker:
    """
    Get or create a circuit breaker for a service.

    Args:
        name: Unique identifier for the circuit breaker
        fail_max: Number of consecutive failures before opening circuit
        reset_timeout: Seconds before attempting recovery (half-open)
        exclude: Exception types that should NOT count as failures

    Returns:
        CircuitBreaker instance (singleton per name)
    """
    if name not in _breakers:
        _breakers[name] = pybreaker.CircuitBreaker(
            name=name,
            fail_max=fail_max,
            reset_timeout=reset_timeout,
            exclude=exclude or [],
            listeners=[_logger_instance, _opened_at_listener],
        )
        logger.info(
            f"Created circuit breaker '{name}' | "
            f"fail_max={fail_max} | reset_timeout={reset_timeout}s"
        )
    return _breakers[name]


_settings = get_settings()

payment_gateway_breaker = get_circuit_breaker(
    name="payment_gateway",
    fail_max=_settings.PAYMENT_GATEWAY_FAIL_MAX,
    reset_timeout=_settings.PAYMENT_GATEWAY_RESET_TIMEOUT,
    # Rejected requests (bad session id, declined card) mean Stripe is reachable
    exclude=[stripe.InvalidRequestError, stripe.CardError],
)


async def call_with_breaker(
    breaker: pybreaker.CircuitBreaker,
    func: Callable,
    *args,
    **kwargs,
) -> Any:
    """
    Call async function with circuit breaker protection (native asyncio).

    pybreaker's call_async() requires Tornado, so the coroutine is awaited here
    and its outcome is then replayed through ``breaker.call()`` so pybreaker's
    own state machine counts failures, opens, and closes the circuit. An open
    circuit moves to half-open once ``reset_timeout`` has elapsed, letting one
    trial call through.

    Raises:
        pybreaker.CircuitBreakerError: If circuit is open
        Exception: Any exception raised by func
    """
    if breaker.current_state == pybreaker.STATE_OPEN:
        if not _reset_timeout_elapsed(breaker):
            logger.warning(f"Circuit breaker '{breaker.name}' is OPEN, failing fast")
            raise pybreaker.CircuitBreakerError(breaker)
        breaker.half_open()

    try:
        result = await func(*args, **kwargs)
    except Exception as e:
        # Raises e again, or CircuitBreakerError when this failure opened the circuit
        with contextlib.suppress(type(e), pybreaker.CircuitBreakerError):
            breaker.call(_reraise, e)
        raise

    with contextlib.suppress(pybreaker.CircuitBreakerError):
        breaker.call(lambda: result)
    return result


def _reraise(exc: Exception) -> None:
    raise exc


def _reset_timeout_elapsed(breaker: pybreaker.CircuitBreaker) -> bool:
    opened_at = _opened_at.get(breaker.name)
    if opened_at is None:
        return True
    return time.monotonic() - opened_at >= breaker.reset_timeout


def get_breaker_status() -> dict[str, dict[str, Any]]:
    """
    Get status of all circuit breakers for monitoring/health checks.

    Returns:
        Dict of {name: {state, fail_counter, reset_timeout}}
    """
    return {
        name: {
            "state": breaker.current_state,
            "fail_counter": breaker.fail_counter,
            "reset_timeout": breaker.reset_timeout,
        }
        for name, breaker in _breakers.items()
    }
