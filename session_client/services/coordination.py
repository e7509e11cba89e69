"""
Single-Flight Coordination.

``CoordinationState`` owns the three process-wide slots (token refresh,
session verification, logout).  Each slot is a ``SingleFlight``: at any
instant it is either idle (no task) or holds exactly one task that every
concurrent caller awaits.  ``KeyedSingleFlight`` applies the same rule per
key and backs request deduplication.

Concurrency model
-----------------
Everything runs on one asyncio event loop.  ``start()`` checks and claims
the slot without awaiting, so no other coroutine can interleave between
the check and the claim and no lock is required.  The slot is released
in the task's own ``finally`` block, so an operation that raises can
never leave the slot claimed.
"""

from __future__ import annotations

import asyncio
import math
from typing import Awaitable, Callable, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


class SingleFlight(Generic[T]):
    """Memoises one in-flight asynchronous operation.

    Parameters
    ----------
    name:
        Label used in task names and log lines.
    """

    def __init__(self, name: str) -> None:
        self._name: str = name
        self._task: Optional[asyncio.Task[T]] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    @property
    def shared(self) -> Optional[asyncio.Task[T]]:
        """The in-flight task, or ``None`` when idle."""
        return self._task

    def start(self, operation: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        """Claim the slot for *operation*, or return the task already in it.

        *operation* is only invoked when the slot was idle.
        """
        if self._task is None:
            self._task = asyncio.ensure_future(self._guarded(operation))
            self._task.set_name(f"single-flight:{self._name}")
        return self._task

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Join (or start) the in-flight operation and return its outcome.

        The shared task is shielded: cancelling one waiter never cancels
        the operation the other waiters depend on.
        """
        return await asyncio.shield(self.start(operation))

    async def wait_idle(
        self,
        timeout: float,
        poll_interval: float,
        sleep: SleepFunc = asyncio.sleep,
    ) -> bool:
        """Poll until the slot is idle, for at most *timeout* seconds.

        Returns ``True`` if the slot went idle, ``False`` if the timeout
        elapsed first.  Never raises on timeout.
        """
        polls = max(1, math.ceil(timeout / poll_interval))
        for _ in range(polls):
            if self._task is None:
                return True
            await sleep(poll_interval)
        return self._task is None

    async def _guarded(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        finally:
            self._task = None


class KeyedSingleFlight(Generic[K, T]):
    """One ``SingleFlight`` per key, created on demand.

    A key's flight is dropped as soon as its operation settles, so only
    overlapping callers share an outcome.
    """

    def __init__(self, name: str) -> None:
        self._name: str = name
        self._flights: dict[K, SingleFlight[T]] = {}

    def __len__(self) -> int:
        return len(self._flights)

    def in_flight(self, key: K) -> bool:
        return key in self._flights

    async def run(self, key: K, operation: Callable[[], Awaitable[T]]) -> T:
        """Join the flight for *key*, starting it with *operation* if idle."""
        flight = self._flights.get(key)
        if flight is None:
            flight = SingleFlight(f"{self._name}:{key}")
            self._flights[key] = flight

            async def _release_after() -> T:
                try:
                    return await operation()
                finally:
                    self._flights.pop(key, None)

            return await flight.run(_release_after)
        return await flight.run(operation)


class CoordinationState:
    """The three single-flight slots shared by every call through one client."""

    def __init__(self) -> None:
        self.refreshing: SingleFlight[bool] = SingleFlight("refreshing-token")
        self.verifying: SingleFlight[bool] = SingleFlight("verifying-session")
        self.logging_out: SingleFlight[None] = SingleFlight("logging-out")

    def snapshot(self) -> dict[str, bool]:
        """Which slots are currently claimed (for logging/diagnostics)."""
        return {
            slot.name: slot.in_flight
            for slot in (self.refreshing, self.verifying, self.logging_out)
        }
