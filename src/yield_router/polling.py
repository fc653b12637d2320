"""Fixed-interval polling with an overall deadline."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    is_done: Callable[[T], bool],
    *,
    interval: float,
    timeout: float,
    retry_on: tuple[type[Exception], ...] = (),
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> tuple[T | None, bool]:
    """Call ``fetch`` every ``interval`` seconds until ``is_done`` or ``timeout``.

    Returns ``(last_value, done)``. Exceptions listed in ``retry_on`` are
    logged and count as a not-done poll; anything else propagates.
    """

    deadline = clock() + timeout
    last: T | None = None
    while True:
        try:
            last = await fetch()
        except retry_on as exc:
            logger.warning("Poll attempt failed: %s", exc)
        else:
            if is_done(last):
                return last, True
        remaining = deadline - clock()
        if remaining <= 0:
            return last, False
        await sleep(min(interval, remaining))


__all__ = ["poll_until"]
