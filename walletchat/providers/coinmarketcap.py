"""CoinMarketCap pro API provider; used only when an API key is configured."""

from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from .base import PriceProvider


def _dec(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


class CoinMarketCapProvider(PriceProvider):

    name = "coinmarketcap"

    def __init__(self, api_key: Optional[str] = None, timeout_s: Optional[float] = None):
        self.api_key = settings.coinmarketcap_api_key if api_key is None else api_key
        self.base_url = "https://pro-api.coinmarketcap.com"
        self.timeout_s = timeout_s or settings.http_timeout_seconds

    async def ready(self) -> bool:
        return bool(self.api_key)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "API key not configured"}
        return {"status": "configured"}

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not await self.ready():
            raise RuntimeError("CoinMarketCap provider not configured")
        headers = {"X-CMC_PRO_API_KEY": self.api_key, "Accept": "application/json"}
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            response = await client.get(f"{self.base_url}{path}", headers=headers, params=params)
            response.raise_for_status()
            return response.json()

    async def get_spot_price(self, symbol: str) -> Optional[Decimal]:
        payload = await self._get(
            "/v1/cryptocurrency/quotes/latest",
            {"symbol": symbol.upper(), "convert": "USD"},
        )
        entry = (payload.get("data") or {}).get(symbol.upper())
        # v1 returns an object per symbol, v2 a list
        if isinstance(entry, list):
            entry = entry[0] if entry else None
        if not entry:
            return None
        return _dec(((entry.get("quote") or {}).get("USD") or {}).get("price"))

    async def get_listings(self, limit: int = 10) -> List[Dict[str, Any]]:
        payload = await self._get(
            "/v1/cryptocurrency/listings/latest",
            {"start": 1, "limit": limit, "convert": "USD"},
        )
        listings = []
        for coin in payload.get("data") or []:
            quote = (coin.get("quote") or {}).get("USD") or {}
            listings.append({
                "symbol": coin.get("symbol"),
                "name": coin.get("name"),
                "price": _dec(quote.get("price")),
                "change_24h": _dec(quote.get("percent_change_24h")),
                "market_cap": _dec(quote.get("market_cap")),
                "volume_24h": _dec(quote.get("volume_24h")),
            })
        return listings

    async def get_global_metrics(self) -> Dict[str, Any]:
        payload = await self._get("/v1/global-metrics/quotes/latest", {"convert": "USD"})
        data = payload.get("data") or {}
        quote = (data.get("quote") or {}).get("USD") or {}
        return {
            "total_market_cap": _dec(quote.get("total_market_cap")),
            "total_volume_24h": _dec(quote.get("total_volume_24h")),
            "btc_dominance": _dec(data.get("btc_dominance")),
            "eth_dominance": _dec(data.get("eth_dominance")),
            "market_cap_change_24h": _dec(quote.get("total_market_cap_yesterday_percentage_change")),
            "_source": {"name": "coinmarketcap", "url": "https://coinmarketcap.com"},
        }
