"""
Deadline-aware polling shared by every flow's ``wait``.

Contract:
    - The interval is clamped to ``max(min_poll_ms, poll_ms)``; a caller
      asking for 10 ms gets the floor.
    - ``check`` is awaited once per iteration. The first non-None value
      it returns ends the wait and is returned.
    - Reaching the deadline returns None. Timeouts never raise here;
      callers that want a TIMEOUT error build it themselves.
    - No check runs once the deadline has passed, and a sleep is cut
      short so it never overshoots the deadline.

Clock and sleep are injectable so tests run without wall time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


def clamp_poll_ms(poll_ms: int | None, minimum: int, default: int | None = None) -> int:
    """Resolve a caller-supplied interval against the floor.

    Args:
        poll_ms: Requested interval, or None for ``default``.
        minimum: Smallest interval allowed.
        default: Interval used when ``poll_ms`` is None (falls back to
            ``minimum`` when also None).
    """
    if poll_ms is None:
        poll_ms = default if default is not None else minimum
    return max(minimum, int(poll_ms))


async def poll_until(
    check: Callable[[], Awaitable[T | None]],
    *,
    poll_ms: int,
    timeout_ms: int | None = None,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
    label: str = "poll",
) -> T | None:
    """Call *check* until it yields a value or the deadline passes.

    Args:
        check: Async callable returning the awaited value or None.
        poll_ms: Interval between checks (already clamped).
        timeout_ms: Deadline relative to now; None waits indefinitely.
        sleep: Async sleep taking seconds.
        clock: Monotonic clock returning seconds.
        label: Name used in debug logs.

    Returns:
        The first non-None check value, or None at the deadline.
    """
    deadline = None if timeout_ms is None else clock() + timeout_ms / 1000.0
    attempt = 0
    while True:
        if deadline is not None and clock() >= deadline:
            logger.debug("%s: deadline reached after %d check(s)", label, attempt)
            return None
        attempt += 1
        value = await check()
        if value is not None:
            logger.debug("%s: satisfied on check %d", label, attempt)
            return value

        delay = poll_ms / 1000.0
        if deadline is not None:
            remaining = deadline - clock()
            if remaining <= 0:
                logger.debug("%s: deadline reached after %d check(s)", label, attempt)
                return None
            delay = min(delay, remaining)
        logger.debug("%s: check %d not ready, sleeping %.3fs", label, attempt, delay)
        await sleep(delay)
