"""Per-upload advisory locks."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class UploadLocker:
    """Serializes operations on the same upload id.

    Locks are created on demand and dropped once nobody holds or waits for
    them. All bookkeeping happens on the event loop thread.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def lock(self, upload_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(upload_id, asyncio.Lock())
        self._users[upload_id] = self._users.get(upload_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[upload_id] -= 1
            if self._users[upload_id] == 0:
                del self._users[upload_id]
                del self._locks[upload_id]

    def is_locked(self, upload_id: str) -> bool:
        lock = self._locks.get(upload_id)
        return lock is not None and lock.locked()
