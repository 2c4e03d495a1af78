#!/usr/bin/env python3
"""
Rate Limiting
Per-client moving-window limits backed by the `limits` library

The counter storage is injected: the default MemoryStorage is process-local
and serializes updates per key internally; a shared backend (redis, memcached)
can be passed in for multi-process deployments.
"""

import time
from typing import Callable, Optional

from limits import RateLimitItem, parse
from limits.storage import MemoryStorage, Storage
from limits.strategies import MovingWindowRateLimiter

from .error_handling import RateLimitError
from .structured_logging import get_logger

logger = get_logger("rate_limiting")


class RateLimiter:
    """Moving-window rate limiter keyed by client"""

    def __init__(self,
                 limit: Optional[str] = "120/minute",
                 storage: Optional[Storage] = None,
                 namespace: str = "mcp-gateway",
                 clock: Callable[[], float] = time.time):
        """
        Args:
            limit: limits-style rate string, e.g. "120/minute"; empty disables
            storage: counter backend, defaults to in-process memory
            namespace: prefix isolating this gateway's counters
        """
        self.item: Optional[RateLimitItem] = parse(limit) if limit else None
        self.storage = storage or MemoryStorage()
        self.strategy = MovingWindowRateLimiter(self.storage)
        self.namespace = namespace
        self.clock = clock

    @property
    def enabled(self) -> bool:
        return self.item is not None

    def check(self, client_key: str, cost: int = 1) -> None:
        """Count one request for client_key or raise RateLimitError"""
        if self.item is None:
            return

        if self.strategy.hit(self.item, self.namespace, client_key, cost=cost):
            return

        reset_time, _remaining = self.strategy.get_window_stats(self.item, self.namespace, client_key)
        retry_after = max(reset_time - self.clock(), 0.0)
        logger.warning("rate_limited", client=client_key, limit=str(self.item), retry_after_s=round(retry_after, 3))
        raise RateLimitError(
            f"Rate limit of {self.item} exceeded for client '{client_key}'",
            suggestion=f"Wait {retry_after:.0f}s before retrying",
            retry_after=retry_after,
            context={"limit": str(self.item)},
        )

    def remaining(self, client_key: str) -> Optional[int]:
        """Requests left in the current window, None when disabled"""
        if self.item is None:
            return None
        _reset_time, remaining = self.strategy.get_window_stats(self.item, self.namespace, client_key)
        return remaining

    def reset(self) -> None:
        self.storage.reset()
