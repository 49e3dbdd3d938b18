"""
Bounded retry policy shared by daily collection, backfill and store writes.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from shared.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Run an async callable up to 1 + max_retries times.

    Delay between attempts is fixed (delay_s) or exponential
    (delay_s * 2 ** retry_index). Only exceptions in retry_on are retried;
    anything else propagates immediately. should_stop() is consulted after
    every failed attempt: once it returns True no further attempt is started
    and the last error is raised. An attempt that was already scheduled
    (its delay elapsing) still runs to completion.
    """

    FIXED = "fixed"
    EXPONENTIAL = "exponential"

    def __init__(
        self,
        max_retries: int,
        delay_s: float,
        *,
        backoff: str = FIXED,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if backoff not in (self.FIXED, self.EXPONENTIAL):
            raise ValueError(f"unknown backoff: {backoff}")
        self.max_retries = max_retries
        self.delay_s = delay_s
        self.backoff = backoff
        self.retry_on = retry_on
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_index: int) -> float:
        if self.backoff == self.EXPONENTIAL:
            return self.delay_s * (2 ** retry_index)
        return self.delay_s

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        name: str = "operation",
        should_stop: Optional[Callable[[], bool]] = None,
        on_retry: Optional[Callable[[int, BaseException], None]] = None,
    ) -> T:
        last_exc: Optional[BaseException] = None
        for attempt in range(self.max_attempts):
            try:
                return await fn()
            except asyncio.CancelledError:
                raise
            except self.retry_on as exc:
                last_exc = exc
                if attempt >= self.max_retries:
                    break
                if should_stop is not None and should_stop():
                    logger.info("retry_aborted_on_stop", operation=name, attempt=attempt + 1)
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    "retry_scheduled",
                    operation=name,
                    attempt=attempt + 1,
                    max_attempts=self.max_attempts,
                    delay_s=delay,
                    error=str(exc),
                )
                if on_retry is not None:
                    on_retry(attempt + 1, exc)
                await self._sleep(delay)
        assert last_exc is not None
        raise last_exc
