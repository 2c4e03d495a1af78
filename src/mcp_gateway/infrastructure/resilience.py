#!/usr/bin/env python3
"""
Resilience Infrastructure

Wraps every outbound adapter call with:
- Retry logic with exponential backoff (tenacity)
- Per-attempt timeout handling (asyncio)
- A caller-supplied transient-error predicate

Retries are invisible to callers: a wrapped call either returns its value,
raises the original non-transient error immediately, or raises
UpstreamUnavailableError once the attempt ceiling is reached.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .error_handling import TransientUpstreamError, UpstreamUnavailableError
from .structured_logging import get_logger
from .telemetry import get_telemetry

logger = get_logger("resilience")
telemetry = get_telemetry()


@dataclass
class ResilienceConfig:
    """Configuration for resilience patterns"""

    # Retry logic
    max_attempts: int = 3
    base_delay: float = 0.2
    max_delay: float = 5.0

    # Timeouts, None disables
    call_timeout: Optional[float] = 10.0


@dataclass
class RetryOutcome:
    """Result of a wrapped call plus how many attempts it took"""
    value: Any
    attempts: int


def default_is_transient(error: BaseException) -> bool:
    """Rate limits, 5xx-equivalents and timeouts from upstream"""
    return isinstance(error, (TransientUpstreamError, ConnectionError, TimeoutError, asyncio.TimeoutError))


class RetryPolicy:
    """Bounded exponential-backoff retry around single upstream calls"""

    def __init__(self,
                 config: Optional[ResilienceConfig] = None,
                 is_transient: Callable[[BaseException], bool] = default_is_transient,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.config = config or ResilienceConfig()
        if self.config.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.is_transient = is_transient
        self._sleep = sleep

    def _retrying(self, name: str, max_attempts: int) -> AsyncRetrying:
        cfg = self.config

        def log_retry(retry_state: RetryCallState) -> None:
            logger.retry_scheduled(
                operation=name,
                attempt=retry_state.attempt_number,
                max_attempts=max_attempts,
                delay=retry_state.next_action.sleep if retry_state.next_action else 0.0,
                error=repr(retry_state.outcome.exception()),
            )

        return AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=cfg.base_delay, min=cfg.base_delay, max=cfg.max_delay),
            retry=retry_if_exception(self.is_transient),
            before_sleep=log_retry,
            sleep=self._sleep,
        )

    async def _attempt(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        timeout = self.config.call_timeout
        if timeout is None:
            return await func(*args, **kwargs)
        try:
            return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TransientUpstreamError(f"Upstream call timed out after {timeout}s") from e

    async def _run(self,
                   func: Callable[..., Awaitable[Any]],
                   args: tuple,
                   kwargs: dict,
                   max_attempts: int) -> RetryOutcome:
        name = getattr(func, "__qualname__", getattr(func, "__name__", "upstream_call"))
        attempts = 0
        try:
            async for attempt in self._retrying(name, max_attempts):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    value = await self._attempt(func, *args, **kwargs)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            telemetry.record_attempts(name, attempts)
            logger.error("retry_exhausted",
                         operation=name,
                         attempts=attempts,
                         error=repr(last_error),
                         error_type="upstream_unavailable",
                         component="resilience")
            raise UpstreamUnavailableError(
                f"{name} failed after {attempts} attempts: {last_error}",
                attempts=attempts,
            ) from last_error
        except BaseException:
            telemetry.record_attempts(name, attempts)
            raise

        telemetry.record_attempts(name, attempts)
        return RetryOutcome(value=value, attempts=attempts)

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> RetryOutcome:
        """Run func with retries and report the attempt count"""
        return await self._run(func, args, kwargs, self.config.max_attempts)

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run func with retries and return its value"""
        outcome = await self.execute(func, *args, **kwargs)
        return outcome.value

    async def call_once(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Single attempt for non-idempotent calls; the per-attempt timeout still applies"""
        outcome = await self._run(func, args, kwargs, 1)
        return outcome.value

    def wrap(self, func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        """Decorator form of call()"""
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await self.call(func, *args, **kwargs)
        return wrapper
