"""
Wallet balances with best-effort USD valuation.

Token holdings come from a tiered strategy: the native balance is always
included, a fast indexer is tried first for enriched holdings, raw RPC token
account enumeration is the fallback, and missing USD values are filled from
the price service in parallel.
"""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

import httpx

from ...cache import TTLCache
from ...providers.base import TokenIndexerProvider
from ...services.prices import PriceService
from ..connection import TOKEN, ConnectionManager
from ..models import (
    NATIVE_MINT,
    NATIVE_SYMBOL,
    TokenBalance,
    WalletSnapshot,
    lamports_to_sol,
    native_token,
)
from ..recovery.errors import RecoverableError
from ..recovery.strategies import RetryConfig, RetryStrategy
from ..tokens import get_token, metadata_for_mint

logger = logging.getLogger(__name__)

UNKNOWN_SYMBOL = "Unknown"

# Failures that degrade a tier instead of failing the snapshot
_TIER_ERRORS = (RecoverableError, httpx.HTTPError, ValueError, KeyError, TypeError)


class WalletDataProvider:
    def __init__(
        self,
        connections: ConnectionManager,
        price_service: PriceService,
        token_indexer: Optional[TokenIndexerProvider] = None,
        *,
        wallet_cache: Optional[TTLCache] = None,
        token_cache: Optional[TTLCache] = None,
        retry: Optional[RetryStrategy] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.connections = connections
        self.price_service = price_service
        self.token_indexer = token_indexer
        self.wallet_cache = wallet_cache or TTLCache(default_ttl=5.0)
        self.token_cache = token_cache or TTLCache(default_ttl=15.0)
        self.retry = retry or RetryStrategy(
            RetryConfig(max_attempts=3, initial_delay_seconds=1.0, max_delay_seconds=10.0, linear=True)
        )
        self._clock = clock

    async def get_wallet_data(self, address: str, force_refresh: bool = False) -> WalletSnapshot:
        """
        Snapshot of native and token balances for ``address``.

        Never raises. When every attempt fails the result is a native-only
        snapshot at zero with ``degraded=True``.
        """
        if not force_refresh:
            cached = self.wallet_cache.get(address)
            if cached is not None:
                return cached
        else:
            self.connections.invalidate_address(address)

        try:
            snapshot = await self.retry.execute(lambda: self._fetch_snapshot(address))
        except Exception as e:
            logger.error("Wallet data unavailable for %s after retries: %s", address, e)
            return WalletSnapshot.fallback()

        self.wallet_cache.set(address, snapshot)
        return snapshot

    async def _fetch_snapshot(self, address: str) -> WalletSnapshot:
        native = await self._fetch_native_balance(address)
        tokens = await self._load_tokens(address, native)
        self.token_cache.set(address, tokens)
        return WalletSnapshot.build(native, tokens, fetched_at=self._clock())

    async def get_tokens(self, address: str) -> List[TokenBalance]:
        """
        Token balances including the native pseudo-token first.

        Degrades instead of raising: if the native balance cannot be read the
        last cached token list is returned, or a native entry at zero.
        """
        cached = self.token_cache.get(address)
        if cached is not None:
            return list(cached)

        try:
            native = await self._fetch_native_balance(address)
        except Exception as e:
            logger.warning("Native balance unavailable for %s: %s", address, e)
            stale = self.token_cache.get_stale(address)
            if stale is not None:
                return list(stale)
            return [native_token(Decimal(0))]

        tokens = await self._load_tokens(address, native)
        self.token_cache.set(address, tokens)
        return tokens

    async def _fetch_native_balance(self, address: str) -> Decimal:
        lamports = await self.connections.get_balance(address)
        return lamports_to_sol(lamports)

    async def _load_tokens(self, address: str, native: Decimal) -> List[TokenBalance]:
        tokens = [native_token(native)]
        tokens.extend(await self._fetch_token_holdings(address))
        return await self._fill_prices(tokens)

    async def _fetch_token_holdings(self, address: str) -> List[TokenBalance]:
        if self.token_indexer is not None and await self.token_indexer.ready():
            try:
                indexed = await self.token_indexer.get_token_holdings(address)
            except _TIER_ERRORS as e:
                logger.info("%s holdings failed for %s: %s", self.token_indexer.name, address, e)
                indexed = []
            if indexed:
                return self._from_indexer(indexed)

        try:
            accounts = await self.connections.make_request(
                lambda c: c.get_token_accounts_by_owner(address),
                cache_key=f"token_accounts:{address}",
                kind=TOKEN,
            )
        except _TIER_ERRORS as e:
            logger.warning("Token account enumeration failed for %s: %s", address, e)
            return []
        return self._from_token_accounts(accounts)

    def _from_indexer(self, items: Iterable[dict]) -> List[TokenBalance]:
        by_mint: Dict[str, TokenBalance] = {}
        for item in items:
            mint = item["mint"]
            if mint == NATIVE_MINT or mint in by_mint:
                continue
            by_mint[mint] = TokenBalance(
                symbol=item.get("symbol") or UNKNOWN_SYMBOL,
                display_name=item.get("name") or "Unknown Token",
                balance=Decimal(item["balance"]),
                usd_value=item.get("usd_value"),
                mint=mint,
                decimals=int(item.get("decimals") or 0),
                logo_uri=item.get("logo_uri"),
            )
        return list(by_mint.values())

    def _from_token_accounts(self, accounts: Iterable[dict]) -> List[TokenBalance]:
        raw: Dict[str, int] = {}
        decimals: Dict[str, int] = {}
        for account in accounts:
            mint = account.get("mint")
            amount = int(account.get("amount") or 0)
            # Wrapped SOL is reported as part of the native balance
            if not mint or amount <= 0 or mint == NATIVE_MINT:
                continue
            raw[mint] = raw.get(mint, 0) + amount
            decimals[mint] = int(account.get("decimals") or 0)

        tokens = []
        for mint, amount in raw.items():
            meta = metadata_for_mint(mint) or {}
            tokens.append(
                TokenBalance(
                    symbol=str(meta.get("symbol", UNKNOWN_SYMBOL)),
                    display_name=str(meta.get("name", "Unknown Token")),
                    balance=Decimal(amount) / (Decimal(10) ** decimals[mint]),
                    usd_value=None,
                    mint=mint,
                    decimals=decimals[mint],
                )
            )
        return tokens

    async def _fill_prices(self, tokens: List[TokenBalance]) -> List[TokenBalance]:
        pending = [
            (i, t) for i, t in enumerate(tokens)
            if t.usd_value is None and t.symbol != UNKNOWN_SYMBOL
        ]
        if not pending:
            return tokens

        prices = await asyncio.gather(
            *(self.price_service.get_spot_price(t.symbol) for _, t in pending),
            return_exceptions=True,
        )

        filled = list(tokens)
        for (index, token), price in zip(pending, prices):
            if isinstance(price, Exception):
                logger.debug("No price for %s: %s", token.symbol, price)
                continue
            if price is not None:
                filled[index] = token.with_usd_value(token.balance * price)
        return filled

    async def get_fresh_balances(self, address: str, symbols: Iterable[str]) -> Dict[str, Decimal]:
        """
        Read current balances straight from RPC, bypassing every cache.

        Used for before/after comparisons, so failures propagate.
        """
        wanted = [s.upper() for s in symbols]
        balances: Dict[str, Decimal] = {}

        if NATIVE_SYMBOL in wanted:
            lamports = await self.connections.get_balance(address, use_cache=False)
            balances[NATIVE_SYMBOL] = lamports_to_sol(lamports)

        spl = [s for s in wanted if s != NATIVE_SYMBOL]
        if spl:
            accounts = await self.connections.make_request(
                lambda c: c.get_token_accounts_by_owner(address),
                kind=TOKEN,
            )
            for symbol in spl:
                meta = get_token(symbol)
                mint = meta["mint"] if meta else None
                total = Decimal(0)
                for account in accounts:
                    if account.get("mint") == mint:
                        total += Decimal(int(account.get("amount") or 0)) / (
                            Decimal(10) ** int(account.get("decimals") or 0)
                        )
                balances[symbol] = total

        return balances

    def invalidate(self, address: str) -> None:
        self.wallet_cache.delete(address)
        self.token_cache.delete(address)
        self.connections.invalidate_address(address)
