"""Minimum-interval request throttle.

All outbound requests of one scraping engine pass through a single
``RequestThrottle``. Callers reserve the next free slot in arrival order and
sleep until it; nobody is rejected and nobody holds a lock while waiting.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable


class RequestThrottle:
    """FIFO admission queue enforcing a floor interval between requests.

    Attributes:
        min_interval: Seconds that must separate two admitted requests.
    """

    def __init__(
        self,
        min_interval: float = 1.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._sleep = sleep
        self._next_slot: float | None = None

    def _reserve(self) -> float:
        """Claim the next slot and return how long the caller must wait.

        Runs without awaiting, so reservations are atomic within the event loop
        and are handed out in call order.
        """
        now = self._clock()
        slot = now if self._next_slot is None else max(now, self._next_slot)
        self._next_slot = slot + self.min_interval
        return slot - now

    async def schedule(self) -> float:
        """Wait for this caller's turn.

        Returns:
            Seconds waited.
        """
        wait = self._reserve()
        if wait > 0:
            await self._sleep(wait)
        return wait

    def reset(self) -> None:
        self._next_slot = None
