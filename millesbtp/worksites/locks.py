"""In-process serialization of worksite units of work."""

from __future__ import annotations

import asyncio
import weakref
from uuid import UUID


class WorksiteLocks:
    """One asyncio.Lock per worksite id.

    Only serializes writers inside this process; the version column on
    worksites covers writers in other processes. Entries are weak: a lock
    disappears once no unit of work holds it or waits on it.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, worksite_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(worksite_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[worksite_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every WorksiteService that is not given its own registry
default_locks = WorksiteLocks()
