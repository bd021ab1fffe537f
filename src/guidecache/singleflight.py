"""Per-key request coalescing for coroutines.

``SingleFlight.do(key, producer)`` runs ``producer`` at most once per key at a
time. Callers arriving while a run is in flight await the same task and
receive the same result or exception. The ticket is removed from the map by
the task itself as it settles, so a failed run never blocks the next attempt.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

K = TypeVar("K")
T = TypeVar("T")


def _retrieve_exception(task: asyncio.Task) -> None:
    # Every caller may have been cancelled before the task failed; mark the
    # exception as observed so asyncio does not report it as lost.
    if not task.cancelled():
        task.exception()


class SingleFlight(Generic[K, T]):
    """Key → in-flight task map with shared results."""

    def __init__(self) -> None:
        self._in_flight: dict[K, asyncio.Task[T]] = {}

    def __len__(self) -> int:
        return len(self._in_flight)

    def in_flight(self, key: K) -> bool:
        return key in self._in_flight

    def pending(self, key: K) -> asyncio.Task[T] | None:
        return self._in_flight.get(key)

    async def do(self, key: K, producer: Callable[[], Awaitable[T]]) -> T:
        """Join the in-flight run for ``key`` or start a new one.

        The shared task is shielded: cancelling one caller does not cancel the
        run for the others.
        """
        task = self._in_flight.get(key)
        if task is None:
            # No suspension point between the lookup above and this insert.
            task = asyncio.create_task(self._run(key, producer))
            task.add_done_callback(_retrieve_exception)
            self._in_flight[key] = task
        return await asyncio.shield(task)

    async def _run(self, key: K, producer: Callable[[], Awaitable[T]]) -> T:
        try:
            return await producer()
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]
