"""Bounded retry helpers shared by the payment watcher and the transferor.

Both helpers make a fixed number of attempts with a fixed delay between
them.  The delay is skipped after the final attempt so a caller waiting on
an exhausted budget returns immediately.

``retry_until`` polls a coroutine until its result satisfies a predicate.
Exceptions of the ``retry_on`` types are logged and count as a failed attempt.

``retry_call`` re-invokes a coroutine until it stops raising, and re-raises
the last exception once the budget is spent.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def retry_until(
    func: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    *,
    attempts: int,
    delay: float,
    label: str = "operation",
    sleep: Sleep = asyncio.sleep,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> T | None:
    """Call ``func`` until ``predicate`` accepts its result.

    Args:
        func: Zero-argument coroutine function producing a candidate result.
        predicate: Returns ``True`` when the result is the one we want.
        attempts: Maximum number of calls to ``func``.
        delay: Seconds to wait between calls.
        label: Name used in log messages.
        sleep: Awaitable sleep function (injectable for tests).
        retry_on: Exception types that count as a failed attempt.  Any
            other exception propagates immediately.

    Returns:
        The first accepted result, or ``None`` after ``attempts`` calls.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        logger.info("%s: attempt %d of %d", label, attempt, attempts)
        try:
            result = await func()
        except retry_on as exc:
            logger.warning("%s: attempt %d failed: %s", label, attempt, exc)
        else:
            if predicate(result):
                return result

        if attempt < attempts:
            await sleep(delay)

    logger.info("%s: gave up after %d attempts", label, attempts)
    return None


async def retry_call(
    func: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    delay: float,
    label: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Call ``func`` until it returns without raising.

    Args:
        func: Zero-argument coroutine function.
        attempts: Maximum number of calls to ``func``.
        delay: Seconds to wait between calls.
        label: Name used in log messages.
        sleep: Awaitable sleep function (injectable for tests).

    Returns:
        The value returned by the first successful call.

    Raises:
        Exception: The exception from the final attempt.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except Exception as exc:
            last_error = exc
            logger.warning("%s: attempt %d of %d failed: %s", label, attempt, attempts, exc)

        if attempt < attempts:
            await sleep(delay)

    assert last_error is not None
    raise last_error
