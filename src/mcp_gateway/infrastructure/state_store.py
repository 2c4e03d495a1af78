#!/usr/bin/env python3
"""
Shared State Store
In-memory TTL store owned by a gateway instance and injected into the
components that need shared mutable state (confirmation tokens today).

Writers to the same key are serialized through a per-key asyncio.Lock, so a
read-check-consume sequence on a key can never interleave with another one.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class StateStore:
    """
    Keyed store with per-entry TTL and per-key single-writer locks
    """

    def __init__(self, max_size: int = 10000, clock: Callable[[], float] = time.time):
        """
        Initialize store

        Args:
            max_size: Maximum number of live entries; expired entries are purged
                first, then the entries closest to expiry are evicted
            clock: Wall-clock source in epoch seconds, injectable for tests
        """
        self.max_size = max_size
        self.clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}  # key -> (value, expires_at)
        self._locks: Dict[str, list] = {}  # key -> [lock, holders + waiters]

        self.metrics = {
            'puts': 0,
            'hits': 0,
            'misses': 0,
            'expired_entries': 0,
            'evictions': 0,
        }

    @asynccontextmanager
    async def locked(self, key: str):
        """Hold the single-writer lock for one key"""
        slot = self._locks.setdefault(key, [asyncio.Lock(), 0])
        slot[1] += 1
        try:
            async with slot[0]:
                yield
        finally:
            # Drop the lock once nobody holds or waits on it
            slot[1] -= 1
            if slot[1] == 0:
                del self._locks[key]

    async def put(self, key: str, value: Any, ttl: float) -> float:
        """Store a value; returns its expiry time"""
        async with self.locked(key):
            if len(self._entries) >= self.max_size and key not in self._entries:
                self._make_room()
            expires_at = self.clock() + ttl
            self._entries[key] = (value, expires_at)
            self.metrics['puts'] += 1
            return expires_at

    async def get(self, key: str) -> Optional[Any]:
        """Read a live value without consuming it"""
        async with self.locked(key):
            return self._read(key, consume=False)

    async def take(self, key: str) -> Optional[Any]:
        """Read and remove a live value in one step"""
        async with self.locked(key):
            return self._read(key, consume=True)

    async def delete(self, key: str) -> bool:
        async with self.locked(key):
            return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed"""
        now = self.clock()
        expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
        for key in expired:
            del self._entries[key]
        self.metrics['expired_entries'] += len(expired)
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'entries': len(self._entries),
            'max_size': self.max_size,
            **self.metrics,
        }

    def _read(self, key: str, consume: bool) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.metrics['misses'] += 1
            return None

        value, expires_at = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            self.metrics['expired_entries'] += 1
            self.metrics['misses'] += 1
            return None

        if consume:
            del self._entries[key]
        self.metrics['hits'] += 1
        return value

    def _make_room(self) -> None:
        if self.purge_expired():
            return
        # Evict the entry closest to expiry
        victim = min(self._entries, key=lambda k: self._entries[k][1])
        del self._entries[victim]
        self.metrics['evictions'] += 1
        logger.debug(f"Evicted state entry {victim}")
