"""Fixed-interval polling with cancellation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable


log = logging.getLogger(__name__)

Check = Callable[[], Awaitable[bool]]


class WaitCancelledError(Exception):
    """Wait was cancelled before the check reported completion."""


class WaitTimeoutError(WaitCancelledError):
    """Wait deadline passed before the check reported completion."""


async def wait_until(
    check: Check,
    interval: float,
    *,
    cancel: asyncio.Event | None = None,
    timeout: float | None = None,
) -> None:
    """Poll ``check`` until it reports completion.

    The check runs immediately, then once per ``interval`` seconds. An
    exception raised by the check propagates at once without another
    attempt. There is no backoff and no jitter.

    Args:
        check: Coroutine function returning True when done
        interval: Seconds between checks
        cancel: Event that aborts the wait when set
        timeout: Optional deadline in seconds from the first check

    Raises:
        WaitCancelledError: If ``cancel`` fires while waiting for the next tick
        WaitTimeoutError: If ``timeout`` elapses first
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    ticks = 0

    while True:
        if await check():
            log.debug("Wait finished after %d tick(s)", ticks)
            return

        delay = interval
        if deadline is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise WaitTimeoutError(f"Condition not met within {timeout}s")
            delay = min(delay, remaining)

        if await _sleep_or_cancel(delay, cancel):
            raise WaitCancelledError(f"Wait cancelled after {ticks} tick(s)")
        ticks += 1


async def _sleep_or_cancel(delay: float, cancel: asyncio.Event | None) -> bool:
    """Sleep ``delay`` seconds; return True if ``cancel`` fired first."""
    if cancel is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True
