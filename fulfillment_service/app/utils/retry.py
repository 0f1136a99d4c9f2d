"""Retry helpers for store timeouts and unique number collisions."""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from .logging import setup_fulfillment_logging as setup_logging

logger = setup_logging("fulfillment_service.retry")

T = TypeVar("T")

_TIMEOUT_MARKERS = ("timeout", "timed out", "etimedout", "connection reset")


def is_timeout_error(exc: BaseException) -> bool:
    """Whether an exception looks like a connection timeout from the store."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, PoolTimeoutError)):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker in message for marker in _TIMEOUT_MARKERS)
    return False


async def retry_on_timeout(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay_seconds: float = 1.0,
    operation_name: Optional[str] = None,
) -> T:
    """Run ``operation``, retrying only timeout-class failures.

    The delay between attempts is fixed. Any other exception propagates on
    the first occurrence.
    """
    name = operation_name or getattr(operation, "__name__", "operation")
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_timeout_error(e) or attempt >= max_attempts:
                raise
            logger.warning(
                f"{name} timed out, retrying in {delay_seconds}s",
                extra={
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "error": str(e),
                    "operation": name,
                },
            )
            await asyncio.sleep(delay_seconds)
    raise RuntimeError("retry_on_timeout requires max_attempts >= 1")


async def retry_on_collision(
    insert: Callable[[str], Awaitable[T]],
    number_factory: Callable[[], str],
    rollback: Callable[[], Awaitable[None]],
    max_attempts: int = 3,
    label: str = "Number",
) -> T:
    """Insert a row under a freshly generated unique number.

    A unique-constraint violation rolls the session back and the insert is
    retried with a new number. The last violation propagates.
    """
    attempt = 1
    while True:
        number = number_factory()
        try:
            return await insert(number)
        except IntegrityError:
            await rollback()
            if attempt >= max_attempts:
                raise
            logger.warning(
                f"{label} collision, generating a new one",
                extra={"number": number, "attempt": attempt},
            )
            attempt += 1
            await asyncio.sleep(0.002)
