"""
Interruptible sleep shared by every polling loop.
"""

import asyncio
from typing import Optional


async def pause(stop_event: Optional[asyncio.Event], seconds: float) -> bool:
    """
    Sleep for up to `seconds`, waking early if the stop event is set.

    Returns:
        True if the stop event is set when the pause ends
    """
    if stop_event is None:
        await asyncio.sleep(max(seconds, 0))
        return False

    if stop_event.is_set():
        return True

    try:
        await asyncio.wait_for(stop_event.wait(), timeout=max(seconds, 0))
    except asyncio.TimeoutError:
        pass
    return stop_event.is_set()
