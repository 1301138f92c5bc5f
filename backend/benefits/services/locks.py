"""Per-key reservation locks.

Budget and usage reservations must be linearizable per (employee, pool) key.
Inside one process a keyed asyncio.Lock serializes the whole
compute-reserve-commit unit; across processes the row lock taken with
SELECT ... FOR UPDATE does the same job.
"""

from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import uuid
    from collections.abc import AsyncIterator

ReservationKey = tuple[str, str]


def reservation_key(employee_id: uuid.UUID, scope: str) -> ReservationKey:
    return (str(employee_id), scope)


class KeyedLocks:
    """Registry of asyncio locks, one per key, dropped once nobody holds them."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[ReservationKey, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, key: ReservationKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, *keys: ReservationKey) -> AsyncIterator[None]:
        """Acquire every key in sorted order so overlapping holders cannot deadlock."""
        locks = [self._lock_for(key) for key in sorted(set(keys))]
        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


_reservation_locks = KeyedLocks()


def get_reservation_locks() -> KeyedLocks:
    return _reservation_locks
