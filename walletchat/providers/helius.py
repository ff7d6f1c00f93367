"""Helius-backed token holdings provider (DAS ``getAssetsByOwner``)."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from .base import TokenIndexerProvider

_FUNGIBLE_INTERFACES = {"FungibleToken", "FungibleAsset"}
_NATIVE_MINTS = {"so11111111111111111111111111111111111111112", "sol"}


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


class HeliusTokenProvider(TokenIndexerProvider):
    """Fetch enriched fungible holdings via the Helius DAS API."""

    name = "helius"
    timeout_s = 5

    def __init__(self, api_key: Optional[str] = None, rpc_url: Optional[str] = None) -> None:
        self.api_key = settings.solana_helius_api_key if api_key is None else api_key
        base_url = rpc_url or settings.helius_rpc_base_url
        self.base_url = base_url.rstrip("/")

    async def ready(self) -> bool:
        return bool(self.api_key)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "API key not configured"}
        return {"status": "configured"}

    async def _fetch_assets(self, address: str) -> List[Dict[str, Any]]:
        payload = {
            "jsonrpc": "2.0",
            "id": "walletchat",
            "method": "getAssetsByOwner",
            "params": {
                "ownerAddress": address,
                "page": 1,
                "limit": 1000,
                "displayOptions": {"showFungible": True},
            },
        }
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            response = await client.post(
                f"{self.base_url}/",
                params={"api-key": self.api_key},
                json=payload,
            )
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, dict):
            raise ValueError("Unexpected response from Helius DAS API")
        if data.get("error"):
            raise ValueError(f"Helius error: {data['error']}")
        return (data.get("result") or {}).get("items") or []

    async def get_token_holdings(self, address: str) -> List[Dict[str, Any]]:
        """Nonzero fungible holdings; an empty list when unconfigured."""
        if not await self.ready():
            return []

        holdings: List[Dict[str, Any]] = []
        for item in await self._fetch_assets(address):
            if not isinstance(item, dict):
                continue
            if item.get("interface") not in _FUNGIBLE_INTERFACES:
                continue

            mint = item.get("id")
            if not mint or mint.lower() in _NATIVE_MINTS:
                continue

            token_info = item.get("token_info") or {}
            metadata = (item.get("content") or {}).get("metadata") or {}
            links = (item.get("content") or {}).get("links") or {}

            try:
                decimals = int(token_info.get("decimals") or 0)
            except (ValueError, TypeError):
                decimals = 0

            raw_balance = _to_decimal(token_info.get("balance"))
            if raw_balance is None or raw_balance <= 0:
                continue
            balance = raw_balance / (Decimal(10) ** decimals)

            price_info = token_info.get("price_info") or {}
            usd_value = _to_decimal(price_info.get("total_price"))
            if usd_value is None:
                price = _to_decimal(price_info.get("price_per_token"))
                usd_value = balance * price if price is not None else None

            holdings.append(
                {
                    "mint": mint,
                    "symbol": token_info.get("symbol") or metadata.get("symbol") or "Unknown",
                    "name": metadata.get("name") or "Unknown Token",
                    "logo_uri": links.get("image"),
                    "balance": balance,
                    "decimals": decimals,
                    "usd_value": usd_value,
                }
            )
        return holdings
