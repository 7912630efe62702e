"""
Concurrency gate bounding the number of simultaneous browser sessions.

A counting semaphore with a strict FIFO wait queue. Slots are handed
directly from the releasing task to the oldest waiter, so a task arriving
while others are queued can never take a slot ahead of them.

The gate is not thread-safe; all calls must come from the event loop that
owns it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    """FIFO counting semaphore for browser sessions."""

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._total_acquired = 0
        self._total_released = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def active(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def stats(self) -> dict[str, int]:
        return {
            "capacity": self._capacity,
            "active": self._active,
            "queued": self.queued,
            "total_acquired": self._total_acquired,
            "total_released": self._total_released,
        }

    async def acquire(self, timeout: float | None = None) -> None:
        """
        Wait until a slot is available and take it.

        Args:
            timeout: Optional deadline in seconds. Without it the call waits
                indefinitely; with it, TimeoutError is raised when the deadline
                passes and the caller holds no slot.
        """
        if self._active < self._capacity and not self._waiters:
            self._active += 1
            self._total_acquired += 1
            logger.debug(f"Browser slot acquired. Active: {self._active}/{self._capacity}")
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.info(f"All browser slots busy. Request added to queue. Queue length: {len(self._waiters)}")

        try:
            if timeout is None:
                await waiter
            else:
                await asyncio.wait_for(asyncio.shield(waiter), timeout)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            if waiter.done() and not waiter.cancelled():
                # The slot was handed over while we were being cancelled: pass it on.
                self._total_acquired += 1
                self.release()
            else:
                waiter.cancel()
                self._discard(waiter)
            raise

        self._total_acquired += 1
        logger.debug(f"Request from queue acquired a browser slot. Active: {self._active}/{self._capacity}")

    def release(self) -> None:
        """Release a slot, handing it to the oldest live waiter if any."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            # Hand-off: the slot stays active and changes owner.
            waiter.set_result(None)
            self._total_released += 1
            logger.debug(f"Releasing browser slot to next request in queue. Queue length: {len(self._waiters)}")
            return

        if self._active <= 0:
            raise RuntimeError("ConcurrencyGate.release() called without a matching acquire()")

        self._active -= 1
        self._total_released += 1
        logger.debug(f"Browser slot released. Active: {self._active}/{self._capacity}")

    @asynccontextmanager
    async def slot(self, timeout: float | None = None) -> AsyncIterator[None]:
        """Hold a slot for the duration of the block."""
        await self.acquire(timeout=timeout)
        try:
            yield
        finally:
            self.release()

    def _discard(self, waiter: asyncio.Future[None]) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
