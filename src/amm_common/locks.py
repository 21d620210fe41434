"""Per-market asyncio locks.

In-process serialization for every operation that mutates a market's
shares, status or disputes. The database row lock (SELECT ... FOR UPDATE)
taken inside the transaction covers multiple worker processes; this lock
keeps a single process from queueing many coroutines on the same row.
"""

import asyncio
from collections import defaultdict


class MarketLockRegistry:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def for_market(self, market_id: str) -> asyncio.Lock:
        return self._locks[market_id]

    def discard(self, market_id: str) -> None:
        """Drop the lock of a market that will never be mutated again.

        A held lock is kept; the next caller would otherwise get a fresh one.
        """
        lock = self._locks.get(market_id)
        if lock is not None and not lock.locked():
            del self._locks[market_id]

    def __len__(self) -> int:
        return len(self._locks)


# Shared by SettlementLedger and DisputeService so that resolve/finalize and
# dispute create/resolve on the same market never interleave.
market_locks = MarketLockRegistry()
