"""
Periodic background tasks with a shared stop signal.
"""

import asyncio
from typing import Awaitable, Callable

from util.logging_util import setup_logger

logger = setup_logger(__name__)


async def wait_for_stop(stop_event: asyncio.Event, timeout: float) -> bool:
    """Sleep up to timeout seconds. Returns True as soon as the stop event is set."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        return False
    return True


async def run_periodically(
    name: str,
    tick: Callable[[], Awaitable[object]],
    interval_seconds: float,
    stop_event: asyncio.Event,
) -> None:
    """Call tick every interval_seconds until stop_event is set.

    A failing tick is logged and the loop carries on; there is no backoff.
    """
    logger.info(f"Starting {name} (every {interval_seconds}s)")
    while not stop_event.is_set():
        try:
            await tick()
        except Exception as e:
            logger.error(f"{name} failed: {e}", exc_info=True)

        if await wait_for_stop(stop_event, interval_seconds):
            break
    logger.info(f"Stopped {name}")
