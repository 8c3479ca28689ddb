'''
Per-asset serialization for writes that must check-then-write atomically
(reservations, cancellations, schedule and exception edits).

Within one process an asyncio.Lock per asset orders the critical sections;
across processes the services additionally take a row lock on the asset
(SELECT ... FOR UPDATE) inside the same section. Different assets never share
a lock, so they never block each other.
'''
import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID

from ..common.logger import log


class AssetLockRegistry:
    """
    Hands out one asyncio.Lock per asset id. Locks are held weakly: once no
    coroutine references a lock it is dropped from the registry.
    """
    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, asset_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(asset_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[asset_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, asset_id: UUID) -> AsyncIterator[None]:
        lock = self.lock_for(asset_id)
        if lock.locked():
            log.info(f"Waiting for write lock on asset {asset_id}.")
        async with lock:
            yield


# Process-wide registry shared by every service instance.
asset_locks = AssetLockRegistry()

def get_asset_locks() -> AssetLockRegistry:
    """FastAPI dependency returning the process-wide lock registry."""
    return asset_locks
