"""
RPC connection pool with failure tracking, retry and a short response cache.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from ..cache import TTLCache
from ..config import Settings
from ..providers.solana_rpc import SolanaRpcClient
from .recovery.errors import ErrorCategory, RpcError, UnrecoverableError, is_rate_limited
from .recovery.strategies import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT = "default"
TOKEN = "token"

# Node-side rejections of the request itself; another endpoint would answer the same
REJECTED_CATEGORIES = frozenset(
    {
        ErrorCategory.INSUFFICIENT_FUNDS,
        ErrorCategory.INSUFFICIENT_RENT,
        ErrorCategory.TRANSACTION_FAILED,
    }
)


@dataclass
class EndpointHealth:
    failure_count: int = 0
    last_reset_at: float = 0.0


class ConnectionManager:
    """
    Hands out RPC connections and runs calls against them with fallback.

    ``connections`` are in priority order; the first one is the designated
    endpoint for token account enumeration. Endpoints whose URL contains one
    of ``unreliable_for_tokens`` are never used for ``kind="token"`` unless
    every other endpoint is exhausted.

    State (failure counters, cursor, cache) is owned by the instance. There
    is no locking: concurrent callers race on the counters and the last
    write wins.
    """

    def __init__(
        self,
        connections: Sequence[SolanaRpcClient],
        *,
        unreliable_for_tokens: Sequence[str] = (),
        max_failures: int = 3,
        failure_reset_seconds: float = 60.0,
        cache: Optional[TTLCache] = None,
        retry_config: Optional[RetryConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if not connections:
            raise ValueError("ConnectionManager needs at least one connection")

        self.connections: List[SolanaRpcClient] = list(connections)
        self.unreliable_for_tokens = tuple(unreliable_for_tokens)
        self.max_failures = max_failures
        self.failure_reset_seconds = failure_reset_seconds
        self._clock = clock
        self._sleep = sleep
        self.cache = cache or TTLCache(default_ttl=20.0, clock=clock)
        self.retry_config = retry_config or RetryConfig(
            initial_delay_seconds=0.2,
            max_delay_seconds=2.0,
            exponential_base=2.0,
        )
        self.health: Dict[str, EndpointHealth] = {
            c.endpoint: EndpointHealth(last_reset_at=clock()) for c in self.connections
        }
        self._cursor = 0
        self._last_request_at = clock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "ConnectionManager":
        connections = [
            SolanaRpcClient(
                url,
                timeout_s=settings.solana_rpc_timeout_seconds,
                commitment=settings.solana_commitment,
            )
            for url in settings.rpc_endpoints()
        ]
        return cls(
            connections,
            unreliable_for_tokens=settings.rpc_unreliable_for_tokens,
            max_failures=settings.rpc_max_failures,
            failure_reset_seconds=settings.rpc_failure_reset_seconds,
            cache=TTLCache(default_ttl=settings.rpc_cache_ttl_seconds, clock=kwargs.get("clock", time.monotonic)),
            retry_config=RetryConfig(
                initial_delay_seconds=settings.rpc_backoff_initial_seconds,
                max_delay_seconds=settings.rpc_backoff_max_seconds,
            ),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Endpoint selection
    # ------------------------------------------------------------------

    def _is_exhausted(self, connection: SolanaRpcClient) -> bool:
        return self.health[connection.endpoint].failure_count >= self.max_failures

    def _is_unreliable_for_tokens(self, connection: SolanaRpcClient) -> bool:
        return any(marker in connection.endpoint for marker in self.unreliable_for_tokens)

    def _maybe_reset(self) -> None:
        now = self._clock()
        if now - self._last_request_at > self.failure_reset_seconds:
            self.reset_failures()
        self._last_request_at = now

    def reset_failures(self) -> None:
        now = self._clock()
        for health in self.health.values():
            health.failure_count = 0
            health.last_reset_at = now

    def get_connection(self, kind: str = DEFAULT) -> SolanaRpcClient:
        self._maybe_reset()

        if kind == TOKEN:
            for connection in self.connections:
                if self._is_unreliable_for_tokens(connection) or self._is_exhausted(connection):
                    continue
                return connection

        count = len(self.connections)
        for offset in range(count):
            index = (self._cursor + offset) % count
            connection = self.connections[index]
            if not self._is_exhausted(connection):
                self._cursor = (index + 1) % count
                return connection

        logger.warning("All %d RPC endpoints exhausted; resetting failure counters", count)
        self.reset_failures()
        self._cursor = 1 % count
        return self.connections[0]

    def record_failure(self, connection: SolanaRpcClient) -> None:
        health = self.health[connection.endpoint]
        health.failure_count += 1
        if health.failure_count == self.max_failures:
            logger.warning("RPC endpoint %s marked unhealthy", connection.label)

    def record_success(self, connection: SolanaRpcClient) -> None:
        health = self.health[connection.endpoint]
        if health.failure_count > 0:
            health.failure_count -= 1

    def failure_count(self, connection: SolanaRpcClient) -> int:
        return self.health[connection.endpoint].failure_count

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def make_request(
        self,
        fn: Callable[[SolanaRpcClient], Awaitable[T]],
        cache_key: Optional[str] = None,
        max_attempts: int = 3,
        kind: str = DEFAULT,
    ) -> T:
        """
        Run ``fn(connection)`` until it succeeds, rotating endpoints.

        Tries up to ``max_attempts * len(connections)`` times. Rate-limited
        attempts move to the next endpoint without sleeping; other failures
        back off exponentially. Unrecoverable errors, and JSON-RPC rejections
        such as a failed preflight for lack of funds, are raised at once
        without counting against the endpoint.
        When every attempt fails the stale cache entry for ``cache_key`` is
        returned if there is one, otherwise the last error is raised.
        """
        if cache_key:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        count = len(self.connections)
        total_attempts = max(1, max_attempts * count)
        last_error: Optional[Exception] = None

        for attempt in range(total_attempts):
            connection = self.get_connection(kind)
            try:
                result = await fn(connection)
            except UnrecoverableError:
                raise
            except Exception as e:
                if isinstance(e, RpcError) and e.category in REJECTED_CATEGORIES:
                    logger.info("%s rejected the request: %s", connection.label, e)
                    raise
                last_error = e
                self.record_failure(connection)

                if is_rate_limited(e):
                    logger.info("Rate limited by %s; trying next endpoint", connection.label)
                    continue

                if attempt < total_attempts - 1:
                    delay = self.retry_config.get_delay(attempt // count)
                    logger.debug(
                        "RPC attempt %d/%d on %s failed: %s; retrying in %.2fs",
                        attempt + 1, total_attempts, connection.label, e, delay,
                    )
                    await self._sleep(delay)
                continue

            self.record_success(connection)
            if cache_key:
                self.cache.set(cache_key, result)
            return result

        if cache_key:
            stale = self.cache.get_stale(cache_key)
            if stale is not None:
                logger.warning("All RPC attempts failed for %s; serving stale cache", cache_key)
                return stale

        raise last_error or RuntimeError("All RPC attempts exhausted")

    async def get_balance(self, address: str, use_cache: bool = True) -> int:
        """Native balance in lamports."""
        return await self.make_request(
            lambda c: c.get_balance(address),
            cache_key=f"balance:{address}" if use_cache else None,
        )

    def invalidate_address(self, address: str) -> None:
        """Drop cached balance and token account reads for ``address``."""
        self.cache.delete(f"balance:{address}")
        self.cache.delete(f"token_accounts:{address}")

    def clear_cache(self) -> None:
        self.cache.clear()

    async def close(self) -> None:
        for connection in self.connections:
            await connection.close()
