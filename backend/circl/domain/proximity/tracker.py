"""In-process proximity state per observing user.

Two triggers can evaluate the same observer at once (their own location update
and a peer's), so each observer's state is read and replaced under a per-user
lock. Locks live as long as the tracker; `forget` only drops state. State is not
persisted; a restart forgets who was already notified.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Tuple, TypeVar, Union

from circl.domain.proximity.monitor import ProximityState

T = TypeVar("T")

StateFn = Callable[[ProximityState], Union[Tuple[T, ProximityState], Awaitable[Tuple[T, ProximityState]]]]


class ProximityTracker:
    def __init__(self) -> None:
        self._states: Dict[str, ProximityState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._guard = asyncio.Lock()

    async def _lock_for(self, user_id: str) -> asyncio.Lock:
        async with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[user_id] = lock
            return lock

    async def run(self, user_id: str, fn: StateFn) -> T:
        """Call ``fn`` with the user's current state and store the state it returns.

        ``fn`` returns ``(result, new_state)`` and may be sync or async. If it
        raises, the stored state is left untouched.
        """
        lock = await self._lock_for(user_id)
        async with lock:
            current = dict(self._states.get(user_id, {}))
            outcome = fn(current)
            if asyncio.iscoroutine(outcome):
                outcome = await outcome
            result, new_state = outcome
            self._states[user_id] = dict(new_state)
            return result

    async def snapshot(self, user_id: str) -> ProximityState:
        lock = await self._lock_for(user_id)
        async with lock:
            return dict(self._states.get(user_id, {}))

    async def forget(self, user_id: str) -> None:
        lock = await self._lock_for(user_id)
        async with lock:
            self._states.pop(user_id, None)

    async def reset(self) -> None:
        async with self._guard:
            self._states.clear()
            self._locks.clear()
        self._guard = asyncio.Lock()


tracker = ProximityTracker()


async def reset_memory_state() -> None:
    await tracker.reset()
