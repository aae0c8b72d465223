"""
Bounded retry with exponential backoff.

One wrapper applies the policy to any async operation; callers only decide
which errors are transient by raising retryable MenuPalErrors.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import config
from menu_pipeline.errors import MenuPalError

T = TypeVar('T')


@dataclass(frozen=True)
class RetryPolicy:
    """max_retries extra attempts after the first, waiting base_delay * 2**n before retry n."""
    max_retries: int = 3
    base_delay: float = 1.0

    def delay_for(self, retry_number: int) -> float:
        return self.base_delay * (2 ** retry_number)  # 2, 4, 8 seconds

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_retries=config.EXTRACTION_MAX_RETRIES,
            base_delay=config.EXTRACTION_BACKOFF_BASE_SECONDS,
        )


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, float, MenuPalError], None]] = None,
) -> T:
    """
    Run ``operation`` until it succeeds, fails permanently, or retries run out.

    Attempts are strictly sequential. Non-retryable MenuPalErrors and any
    other exception propagate immediately; after the last retry the final
    error propagates unchanged.
    """
    retries = 0
    while True:
        try:
            return await operation()
        except MenuPalError as exc:
            if not exc.retryable or retries >= policy.max_retries:
                raise
            retries += 1
            delay = policy.delay_for(retries)
            if on_retry:
                on_retry(retries, delay, exc)
            await sleep(delay)
