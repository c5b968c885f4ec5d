"""
Issuance throttle for upstream fetches.
Spaces the *launch* of per-entity work; launched work then runs concurrently.
"""
from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class IssueThrottle:
    """
    Guarantees at least ``spacing_s`` between successive ``wait()`` returns,
    regardless of how long the launched work takes.
    """

    def __init__(
        self,
        spacing_s: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._spacing = max(0.0, spacing_s)
        self._clock = clock
        self._sleep = sleep
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            now = self._clock()
            delay = self._next_slot - now
            if delay > 0:
                await self._sleep(delay)
                now = self._next_slot
            self._next_slot = now + self._spacing
