"""Price analysis and market overview replies."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from ...cache import TTLCache
from ...providers.coingecko import CoingeckoProvider
from ...services.prices import PriceService

logger = logging.getLogger(__name__)


def format_usd(value: Optional[Decimal]) -> str:
    if value is None:
        return "n/a"
    if value >= 1:
        return f"${value:,.2f}"
    return f"${value:,.6f}".rstrip("0").rstrip(".")


def format_billions(value: Optional[Decimal]) -> str:
    if value is None:
        return "n/a"
    return f"${value / Decimal(1_000_000_000):,.2f}B"


def trend_for_change(change_24h: Optional[Decimal]) -> str:
    if change_24h is None:
        return "stable"
    if change_24h > 1:
        return "up"
    if change_24h < -1:
        return "down"
    return "stable"


class MarketDataService:
    def __init__(
        self,
        coingecko: CoingeckoProvider,
        price_service: PriceService,
        cache: Optional[TTLCache] = None,
    ):
        self.coingecko = coingecko
        self.price_service = price_service
        self.cache = cache or TTLCache(default_ttl=60.0)

    async def get_market_snapshot(self, symbol: str) -> Optional[Dict[str, Any]]:
        """Price, 24h change, market cap and volume; stale data on upstream failure."""
        key = symbol.upper()
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            data = await self.coingecko.get_market_data(key)
        except (httpx.HTTPError, ValueError, ArithmeticError) as e:
            logger.warning("Market data for %s unavailable: %s", key, e)
            return self.cache.get_stale(key)

        if data is None:
            return None
        self.cache.set(key, data)
        return data

    async def get_market_analysis(self, symbol: str) -> str:
        symbol = symbol.upper()
        data = await self.get_market_snapshot(symbol)
        if not data:
            price = await self.price_service.get_spot_price(symbol)
            if price is None:
                return f"Sorry, I couldn't fetch the current price for {symbol}. Please try again in a moment."
            return f"Current {symbol} Price: {format_usd(price)}"

        change = data["change_24h"]
        direction = "up" if change >= 0 else "down"
        return (
            f"Current {symbol} Price: {format_usd(data['price'])}\n\n"
            f"24h Change: {change:.2f}% ({direction})\n"
            f"Market Cap: {format_billions(data['market_cap'])}\n"
            f"24h Volume: {format_billions(data['volume_24h'])}"
        )

    async def get_market_overview(self, limit: int = 5) -> str:
        metrics = await self.price_service.get_global_metrics()
        listings: List[Dict[str, Any]] = await self.price_service.get_listings(limit)
        if not metrics and not listings:
            return "Sorry, market data is unavailable right now. Please try again in a moment."

        lines = ["Market Overview", ""]
        if metrics:
            lines.append(f"Total Market Cap: {format_billions(metrics.get('total_market_cap'))}")
            lines.append(f"24h Volume: {format_billions(metrics.get('total_volume_24h'))}")
            btc = metrics.get("btc_dominance")
            eth = metrics.get("eth_dominance")
            if btc is not None:
                lines.append(f"BTC Dominance: {btc:.1f}%")
            if eth is not None:
                lines.append(f"ETH Dominance: {eth:.1f}%")
        if listings:
            lines.append("")
            lines.append("Top coins:")
            for index, coin in enumerate(listings, start=1):
                change = coin.get("change_24h")
                change_text = f" ({change:+.2f}%)" if change is not None else ""
                lines.append(f"{index}. {coin.get('symbol')}: {format_usd(coin.get('price'))}{change_text}")
        return "\n".join(lines)
