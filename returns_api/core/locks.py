"""
Per-investment write serialization.

Every ledger mutation reads the current balance and writes a derived one, so
two mutations on the same investment must never interleave.  Within one
worker process this registry hands out one ``asyncio.Lock`` per investment
id; across workers the repository additionally takes a row lock
(``SELECT ... FOR UPDATE``) on the investment inside the same transaction.

Locks for different investments are independent.  Entries are held weakly,
so an investment's lock disappears once no coroutine holds or waits on it.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable

logger = logging.getLogger(__name__)


class InvestmentLockRegistry:
    """Hands out one ``asyncio.Lock`` per investment id."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, investment_id: Hashable) -> asyncio.Lock:
        lock = self._locks.get(investment_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[investment_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, investment_id: Hashable) -> AsyncIterator[None]:
        """Hold the write lock for ``investment_id`` for the ``async with`` body."""
        lock = self._lock_for(investment_id)
        if lock.locked():
            logger.debug("Waiting for write lock on investment %s", investment_id)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


investment_locks = InvestmentLockRegistry()
