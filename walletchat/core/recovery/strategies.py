"""
Bounded retry with linear or exponential backoff.

Used by the connection manager for its per-endpoint delays and by the
wallet data provider around whole balance fetches.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, Optional, TypeVar

from .errors import UnrecoverableError

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class RetryConfig:
    max_attempts: int = 3
    initial_delay_seconds: float = 0.2
    max_delay_seconds: float = 2.0
    exponential_base: float = 2.0
    # 1x, 2x, 3x the initial delay instead of doubling
    linear: bool = False

    def get_delay(self, attempt: int) -> float:
        """Seconds to wait after the zero-based ``attempt`` fails."""
        if self.linear:
            factor = attempt + 1
        else:
            factor = self.exponential_base ** attempt
        return max(0.0, min(self.initial_delay_seconds * factor, self.max_delay_seconds))


class RetryStrategy:
    """
    Run an async operation until it succeeds or ``max_attempts`` is spent.

    Unrecoverable errors (user rejection, expired signatures, on-chain
    failures) propagate on the first occurrence. After the final attempt the
    last error is re-raised unchanged.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: SleepFn = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep
        self.logger = logger or logging.getLogger(__name__)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if isinstance(error, UnrecoverableError):
            return False
        return attempt + 1 < self.config.max_attempts

    async def execute(self, operation: Callable[[], Coroutine[Any, Any, T]]) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise
                delay = self.config.get_delay(attempt)
                self.logger.warning(
                    "Attempt %d/%d failed: %s; retrying in %.1fs",
                    attempt + 1,
                    self.config.max_attempts,
                    e,
                    delay,
                )
                await self._sleep(delay)
                attempt += 1
