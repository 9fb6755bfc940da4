"""
FinSync - Optimistic Mutations

PURPOSE: The apply / confirm-or-revert protocol shared by every store
SCOPE: Generic optimistic mutation, per-record mutation sequencing
DEPENDENCIES: asyncio
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Hashable, TypeVar

T = TypeVar('T')


async def optimistic_mutation(remote_call: Callable[[], Awaitable[T]],
                              apply: Callable[[], None],
                              revert: Callable[[], None]) -> T:
    """Apply locally, then await the remote call; revert if it fails or is cancelled.

    The remote error is re-raised after ``revert`` so the caller decides how
    to surface it.
    """
    apply()
    try:
        return await remote_call()
    except (Exception, asyncio.CancelledError):
        revert()
        raise


class MutationQueue:
    """Runs mutations that share a key one at a time, in arrival order."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._holders: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    def pending(self, key: Hashable) -> int:
        """Mutations running or waiting for ``key``."""
        return self._holders.get(key, 0)

    def __len__(self) -> int:
        return len(self._holders)
