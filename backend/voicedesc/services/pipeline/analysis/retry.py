"""
Retry with exponential backoff.

Delay before attempt n+1 is ``min(base_delay * 2 ** (n - 1), max_delay)``,
so with the defaults the waits are 1s, 2s, 4s ... capped at 10s.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from voicedesc.core.exceptions import ProviderError, ValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given 1-based failed attempt."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


@dataclass(frozen=True)
class AttemptRecord:
    """Telemetry for one call attempt."""
    attempt: int
    succeeded: bool
    error: Optional[BaseException] = None
    delay: float = 0.0  # wait before the next attempt, 0 when none follows


class RetryExhausted(Exception):
    """All attempts failed (or a non-retryable error stopped the loop)."""

    def __init__(self, last_error: BaseException, attempts: int):
        super().__init__(str(last_error))
        self.last_error = last_error
        self.attempts = attempts


def is_retryable(exc: BaseException) -> bool:
    """Every failure is retryable unless explicitly classified otherwise."""
    if isinstance(exc, ValidationError):
        return False
    if isinstance(exc, ProviderError):
        return exc.retryable
    return True


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    on_attempt: Optional[Callable[[AttemptRecord], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call ``fn`` until it succeeds or the policy runs out.

    Raises:
        RetryExhausted: wrapping the last error
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await fn()
        except Exception as e:
            final = attempt == policy.max_attempts or not is_retryable(e)
            delay = 0.0 if final else policy.delay_for(attempt)
            if on_attempt is not None:
                on_attempt(AttemptRecord(attempt=attempt, succeeded=False, error=e, delay=delay))
            if final:
                raise RetryExhausted(e, attempt) from e
            await sleep(delay)
        else:
            if on_attempt is not None:
                on_attempt(AttemptRecord(attempt=attempt, succeeded=True))
            return result
    raise AssertionError("unreachable")
