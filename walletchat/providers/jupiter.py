"""
Jupiter v6 client.

``get_quote`` prices an exact-in route between two mints and
``prepare_transaction`` turns that quote into an unsigned versioned
transaction for the wallet to sign.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type

import httpx
from solders.transaction import VersionedTransaction

from ..config import settings

QUOTE_API_URL = "https://quote-api.jup.ag/v6"
QUOTE_TTL_SECONDS = 30
MAX_PRIORITY_FEE_LAMPORTS = 10_000_000


class JupiterQuoteError(Exception):
    pass


class JupiterSwapError(Exception):
    pass


@dataclass
class JupiterQuote:
    input_mint: str
    output_mint: str
    # Raw integer amounts in each mint's smallest unit
    in_amount: int
    out_amount: int
    other_amount_threshold: int
    slippage_bps: int
    price_impact_pct: float
    quote_response: Dict[str, Any] = field(default_factory=dict)
    fetched_at: float = field(default_factory=time.time)

    @property
    def is_valid(self) -> bool:
        return time.time() - self.fetched_at < QUOTE_TTL_SECONDS

    @classmethod
    def from_response(cls, data: Dict[str, Any], slippage_bps: int) -> "JupiterQuote":
        out_amount = int(data["outAmount"])
        return cls(
            input_mint=data["inputMint"],
            output_mint=data["outputMint"],
            in_amount=int(data["inAmount"]),
            out_amount=out_amount,
            other_amount_threshold=int(data.get("otherAmountThreshold") or out_amount),
            slippage_bps=slippage_bps,
            price_impact_pct=float(data.get("priceImpactPct") or 0),
            quote_response=data,
        )


@dataclass
class PreparedSwap:
    transaction: VersionedTransaction
    last_valid_block_height: Optional[int]
    priority_fee_lamports: int = 0

    @property
    def blockhash(self) -> str:
        return str(self.transaction.message.recent_blockhash)


class JupiterSwapProvider:
    """Quote and build swaps through the Jupiter aggregator."""

    name = "jupiter"

    def __init__(self, base_url: Optional[str] = None, timeout_s: Optional[float] = None):
        self.base_url = (base_url or settings.jupiter_quote_api_url or QUOTE_API_URL).rstrip("/")
        self._timeout_s = timeout_s or settings.http_timeout_seconds

    async def _call(self, method: str, path: str, error_cls: Type[Exception], **kwargs: Any) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.request(method, f"{self.base_url}{path}", **kwargs)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise error_cls(f"Jupiter {path} returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise error_cls(f"Jupiter {path} request failed: {e}") from e

        if not isinstance(data, dict):
            raise error_cls(f"Unexpected payload from Jupiter {path}")
        if "error" in data:
            raise error_cls(f"Jupiter {path} error: {data['error']}")
        return data

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: Optional[int] = None,
    ) -> JupiterQuote:
        """Exact-in quote for ``amount`` base units of ``input_mint``."""
        if amount <= 0:
            raise JupiterQuoteError("Quote amount must be positive")

        slippage = settings.swap_slippage_bps if slippage_bps is None else slippage_bps
        data = await self._call(
            "GET",
            "/quote",
            JupiterQuoteError,
            params={
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": str(amount),
                "slippageBps": slippage,
                "swapMode": "ExactIn",
            },
        )
        if not data.get("outAmount"):
            raise JupiterQuoteError("Jupiter quote has no output amount")
        try:
            return JupiterQuote.from_response(data, slippage)
        except (KeyError, TypeError, ValueError) as e:
            raise JupiterQuoteError(f"Malformed Jupiter quote: {e}") from e

    async def prepare_transaction(
        self,
        wallet_address: str,
        quote: JupiterQuote,
        connection: Any = None,
        priority_level: str = "medium",
    ) -> PreparedSwap:
        """
        Ask Jupiter to build the swap for ``quote``.

        Jupiter normally reports ``lastValidBlockHeight``. When it does not
        and a connection is supplied, the window of the connection's latest
        blockhash is used for confirmation instead.
        """
        if not quote.quote_response:
            raise JupiterSwapError("A full quote response is required to build a swap")
        if not quote.is_valid:
            raise JupiterSwapError("Quote has expired, please get a new quote")

        data = await self._call(
            "POST",
            "/swap",
            JupiterSwapError,
            json={
                "quoteResponse": quote.quote_response,
                "userPublicKey": wallet_address,
                "wrapAndUnwrapSol": True,
                "dynamicComputeUnitLimit": True,
                "prioritizationFeeLamports": {
                    "priorityLevelWithMaxLamports": {
                        "maxLamports": MAX_PRIORITY_FEE_LAMPORTS,
                        "priorityLevel": priority_level,
                    }
                },
            },
        )
        try:
            transaction = VersionedTransaction.from_bytes(base64.b64decode(data["swapTransaction"]))
        except (KeyError, TypeError, ValueError) as e:
            raise JupiterSwapError(f"Jupiter returned an unusable swap transaction: {e}") from e

        last_valid = data.get("lastValidBlockHeight")
        if last_valid is None and connection is not None:
            latest = await connection.get_latest_blockhash()
            last_valid = latest.get("last_valid_block_height")

        return PreparedSwap(
            transaction=transaction,
            last_valid_block_height=last_valid,
            priority_fee_lamports=int(data.get("prioritizationFeeLamports") or 0),
        )
