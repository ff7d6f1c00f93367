"""DexScreener pair data for meme-coin analysis."""

from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from ..config import settings


def _dec(value: Any) -> Decimal:
    if value is None:
        return Decimal(0)
    return Decimal(str(value))


class DexScreenerProvider:

    name = "dexscreener"

    def __init__(self, base_url: Optional[str] = None, timeout_s: Optional[float] = None):
        self.base_url = (base_url or settings.dexscreener_base_url).rstrip("/")
        self.timeout_s = timeout_s or settings.http_timeout_seconds

    async def get_token_pair(self, mint: str) -> Optional[Dict[str, Any]]:
        """Most liquid Solana pair for ``mint``, or None when it has no pairs."""
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            response = await client.get(f"{self.base_url}/tokens/{mint}")
            response.raise_for_status()
            data = response.json()

        pairs = [p for p in (data or {}).get("pairs") or [] if p.get("chainId") == "solana"]
        if not pairs:
            return None

        pair = max(pairs, key=lambda p: _dec((p.get("liquidity") or {}).get("usd")))
        base = pair.get("baseToken") or {}
        return {
            "mint": mint,
            "name": base.get("name") or "Unknown",
            "symbol": base.get("symbol") or "UNKNOWN",
            "price": _dec(pair.get("priceUsd")),
            "price_change_24h": _dec((pair.get("priceChange") or {}).get("h24")),
            "volume_24h": _dec((pair.get("volume") or {}).get("h24")),
            "liquidity": _dec((pair.get("liquidity") or {}).get("usd")),
            "market_cap": _dec(pair.get("marketCap") or pair.get("fdv")),
            "pair_address": pair.get("pairAddress"),
            "dex": pair.get("dexId"),
        }
