"""Spot prices and market-wide data from a primary/fallback provider chain."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from ..cache import TTLCache
from ..core.tokens import STABLECOINS
from ..providers.base import PriceProvider

logger = logging.getLogger(__name__)


# Errors a provider may raise that mean "try the next one"
_PROVIDER_ERRORS = (httpx.HTTPError, RuntimeError, ValueError, KeyError, TypeError, ArithmeticError)


class PriceService:
    """
    Walks ``providers`` in order until one answers.

    Results are cached per key; when every provider fails the last cached
    value is served regardless of age, and ``None`` (or an empty result)
    is returned when nothing was ever cached.
    """

    def __init__(self, providers: Sequence[PriceProvider], cache: TTLCache):
        self.providers = list(providers)
        self.cache = cache

    async def _first_answer(
        self,
        cache_key: str,
        call: Callable[[PriceProvider], Awaitable[Any]],
    ) -> Any:
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        for provider in self.providers:
            if not await provider.ready():
                continue
            try:
                result = await call(provider)
            except _PROVIDER_ERRORS as e:
                logger.warning("%s failed for %s: %s", provider.name, cache_key, e)
                continue
            if result:
                self.cache.set(cache_key, result)
                return result

        stale = self.cache.get_stale(cache_key)
        if stale is not None:
            logger.info("Serving stale value for %s", cache_key)
        return stale

    async def get_spot_price(self, symbol: str) -> Optional[Decimal]:
        symbol = (symbol or "").upper()
        if not symbol:
            return None
        if symbol in STABLECOINS:
            return Decimal(1)
        return await self._first_answer(f"price:{symbol}", lambda p: p.get_spot_price(symbol))

    async def get_spot_prices(self, symbols: Sequence[str]) -> Dict[str, Optional[Decimal]]:
        prices: Dict[str, Optional[Decimal]] = {}
        for symbol in symbols:
            prices[symbol.upper()] = await self.get_spot_price(symbol)
        return prices

    async def get_listings(self, limit: int = 10) -> List[Dict[str, Any]]:
        listings = await self._first_answer(f"listings:{limit}", lambda p: p.get_listings(limit))
        return listings or []

    async def get_global_metrics(self) -> Dict[str, Any]:
        metrics = await self._first_answer("global", lambda p: p.get_global_metrics())
        return metrics or {}
