"""Serialization lock for overlapping asynchronous notifications.

Fill notifications can arrive in bursts from the stream. Each handler mutates
shared counters across await points, so handlers are admitted one at a time
in the order they asked for the lock.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


class SerializationLock:
    """Runs async tasks one at a time, in call order.

    asyncio.Lock wakes waiters first-in first-out, which gives the admission
    order. A task that raises still releases the lock, and the exception is
    re-raised to whoever called run_locked().

    Usage::

        lock = SerializationLock()
        asyncio.create_task(lock.run_locked(handle_first_fill))
        asyncio.create_task(lock.run_locked(handle_second_fill))  # waits for the first
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._waiting = 0

    async def run_locked(self, task: Callable[[], Awaitable[T]]) -> T:
        self._waiting += 1
        try:
            await self._lock.acquire()
        finally:
            self._waiting -= 1

        try:
            return await task()
        finally:
            self._lock.release()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def waiting(self) -> int:
        """Number of tasks queued behind the current holder."""
        return self._waiting
