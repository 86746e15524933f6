"""
Per-bus write serialization.

Position reports for the same bus must be applied one at a time and in
arrival order, while different buses update concurrently. The registry hands
out one asyncio.Lock per bus; asyncio locks wake waiters in FIFO order.
Within a single database transaction the live row is additionally locked
with SELECT ... FOR UPDATE so that several worker processes also serialize.

A lock only lives while someone holds or waits for it, so ids that never
resolve to a bus do not accumulate.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class BusLockRegistry:
    """Lazily created asyncio.Lock per bus id."""

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._holders: Dict[int, int] = {}

    def lock_for(self, bus_id: int) -> asyncio.Lock:
        # No await between lookup and insert, so this is atomic on the loop
        lock = self._locks.get(bus_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[bus_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, bus_id: int):
        """Hold the bus's lock for the duration of the block."""
        lock = self.lock_for(bus_id)
        self._holders[bus_id] = self._holders.get(bus_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[bus_id] -= 1
            if not self._holders[bus_id]:
                del self._holders[bus_id]
                self._locks.pop(bus_id, None)

    def is_locked(self, bus_id: int) -> bool:
        lock = self._locks.get(bus_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
