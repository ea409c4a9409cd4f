"""Process-local asyncio locks keyed by an id (subscriber, content item, chain)."""

import asyncio
import weakref


class KeyedLocks:
    """One asyncio.Lock per key, held weakly.

    A lock disappears once no coroutine holds or waits on it, so a registry
    shared across requests does not grow without bound. Cross-process
    ordering is left to database constraints.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
