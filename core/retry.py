"""Retry policy value object used by the bulk fetcher and the queue pipeline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from core.errors import RateLimited

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    ``max_retries`` counts retries, not attempts: with the defaults an item
    is tried once and then retried after 1s, 2s and 4s before giving up.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (RateLimited,)

    @classmethod
    def none(cls) -> "RetryPolicy":
        return cls(max_retries=0)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number *attempt* (1-based)."""
        return self.base_delay * (self.multiplier ** (attempt - 1))

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        return isinstance(exc, self.retry_on) and attempt <= self.max_retries

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        sleep: Sleep = asyncio.sleep,
        label: str = "request",
    ) -> T:
        """Call *fn* until it succeeds or the policy gives up (re-raising)."""
        attempt = 0
        while True:
            try:
                return await fn()
            except self.retry_on as exc:
                attempt += 1
                if not self.should_retry(exc, attempt):
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "%s: %s, retrying in %.2fs (attempt %d/%d)",
                    label, type(exc).__name__, delay, attempt, self.max_retries,
                )
                await sleep(delay)
