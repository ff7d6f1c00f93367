from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from .base import PriceProvider

# Ticker symbol -> Coingecko coin id
COINGECKO_IDS: Dict[str, str] = {
    "SOL": "solana",
    "USDC": "usd-coin",
    "USDT": "tether",
    "BONK": "bonk",
    "JUP": "jupiter-exchange-solana",
    "WIF": "dogwifcoin",
    "JTO": "jito-governance-token",
    "RAY": "raydium",
    "PYTH": "pyth-network",
    "SAMO": "samoyedcoin",
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binancecoin",
    "XRP": "ripple",
    "ADA": "cardano",
    "DOGE": "dogecoin",
}


def _dec(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


class CoingeckoProvider(PriceProvider):
    """Coingecko API provider for spot prices and market data"""

    name = "coingecko"

    def __init__(self, api_key: Optional[str] = None, timeout_s: Optional[float] = None):
        self.api_key = settings.coingecko_api_key if api_key is None else api_key
        self.base_url = "https://api.coingecko.com/api/v3"
        self.timeout_s = timeout_s or settings.http_timeout_seconds

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"accept": "application/json"}
        if self.api_key:
            headers["X-CG-Demo-API-Key"] = self.api_key
        return headers

    async def ready(self) -> bool:
        return True  # API key is optional for basic tier

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                response = await client.get(f"{self.base_url}/ping", headers=self._build_headers())
                response.raise_for_status()
                return {"status": "healthy", "latency_ms": int(response.elapsed.total_seconds() * 1000)}
        except httpx.HTTPError as e:
            return {"status": "error", "reason": str(e)}

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            response = await client.get(
                f"{self.base_url}{path}",
                headers=self._build_headers(),
                params=params,
            )
            response.raise_for_status()
            return response.json()

    async def get_market_data(self, symbol: str) -> Optional[Dict[str, Any]]:
        """Price, 24h change, market cap and 24h volume for one symbol."""
        coin_id = COINGECKO_IDS.get(symbol.upper())
        if not coin_id:
            return None

        data = await self._get(
            "/simple/price",
            {
                "ids": coin_id,
                "vs_currencies": "usd",
                "include_24hr_change": "true",
                "include_market_cap": "true",
                "include_24hr_vol": "true",
            },
        )
        entry = (data or {}).get(coin_id)
        if not entry or entry.get("usd") is None:
            return None

        return {
            "symbol": symbol.upper(),
            "price": _dec(entry.get("usd")),
            "change_24h": _dec(entry.get("usd_24h_change")) or Decimal(0),
            "market_cap": _dec(entry.get("usd_market_cap")) or Decimal(0),
            "volume_24h": _dec(entry.get("usd_24h_vol")) or Decimal(0),
            "_source": {"name": "coingecko", "url": "https://coingecko.com"},
        }

    async def get_spot_price(self, symbol: str) -> Optional[Decimal]:
        market = await self.get_market_data(symbol)
        return market["price"] if market else None

    async def get_listings(self, limit: int = 10) -> List[Dict[str, Any]]:
        data = await self._get(
            "/coins/markets",
            {
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": limit,
                "page": 1,
                "price_change_percentage": "24h",
            },
        )
        listings = []
        for coin in data or []:
            listings.append({
                "symbol": (coin.get("symbol") or "").upper(),
                "name": coin.get("name"),
                "price": _dec(coin.get("current_price")),
                "change_24h": _dec(coin.get("price_change_percentage_24h")),
                "market_cap": _dec(coin.get("market_cap")),
                "volume_24h": _dec(coin.get("total_volume")),
            })
        return listings

    async def get_global_metrics(self) -> Dict[str, Any]:
        data = (await self._get("/global") or {}).get("data") or {}
        dominance = data.get("market_cap_percentage") or {}
        return {
            "total_market_cap": _dec((data.get("total_market_cap") or {}).get("usd")),
            "total_volume_24h": _dec((data.get("total_volume") or {}).get("usd")),
            "btc_dominance": _dec(dominance.get("btc")),
            "eth_dominance": _dec(dominance.get("eth")),
            "market_cap_change_24h": _dec(data.get("market_cap_change_percentage_24h_usd")),
            "_source": {"name": "coingecko", "url": "https://coingecko.com"},
        }
