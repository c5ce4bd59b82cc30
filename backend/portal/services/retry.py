"""
Retry policy for outbound calls that are safe to repeat.

Only transient failures are retried: HTTP 429 (rate limited) and 5xx.
Everything else, including failures without a status, is permanent.

Delay before retry n (1-based attempt that just failed):
``base_delay * 2 ** (n - 1)`` plus uniform jitter in ``[0, jitter)``.
Waits are awaited, so other tasks keep running during a backoff.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)


def is_transient_status(status: Optional[int]) -> bool:
    if status is None:
        return False
    return status == 429 or 500 <= status <= 599


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5
    jitter: float = 0.15

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.jitter < 0:
            raise ValueError("delays must not be negative")

    def retrying(self, should_retry: Callable[[BaseException], bool],
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> AsyncRetrying:
        """
        Build a tenacity controller for this policy.

        The last exception is re-raised unchanged once attempts run out or
        ``should_retry`` returns False.
        """
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2, min=0)
            + wait_random(0, self.jitter),
            retry=retry_if_exception(should_retry),
            sleep=sleep,
            reraise=True,
        )
