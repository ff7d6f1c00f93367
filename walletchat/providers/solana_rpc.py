"""
Solana JSON-RPC client.

One instance per endpoint. The client does not retry: failures are raised as
typed errors from ``core.recovery`` and the connection manager decides whether
to retry on another endpoint.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlsplit

import httpx

from ..core.recovery.errors import (
    ConfirmationTimeoutError,
    ErrorCategory,
    NetworkError,
    RateLimitError,
    RecoverableError,
    RpcError,
    TransactionExpiredError,
    TransactionFailedError,
)

logger = logging.getLogger(__name__)

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
LAMPORTS_PER_SOL = 1_000_000_000


def endpoint_label(endpoint: str) -> str:
    """Endpoint without query string, safe to log when it embeds an API key."""

    parts = urlsplit(endpoint)
    return f"{parts.scheme}://{parts.netloc}{parts.path}".rstrip("/")


class SolanaRpcClient:
    """
    Thin async client over a single Solana RPC endpoint.

    Usage:
        client = SolanaRpcClient("https://api.mainnet-beta.solana.com")
        lamports = await client.get_balance(address)
    """

    def __init__(
        self,
        endpoint: str,
        timeout_s: float = 8.0,
        commitment: str = "confirmed",
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.endpoint = endpoint
        self.label = endpoint_label(endpoint)
        self.timeout_s = timeout_s
        self.commitment = commitment
        self._client = http_client
        self._sleep = sleep
        self._clock = clock

    def __repr__(self) -> str:
        return f"SolanaRpcClient({self.label!r})"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call and return its ``result`` member."""
        client = await self._get_client()

        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params,
        }

        try:
            response = await client.post(
                self.endpoint,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise RecoverableError(
                f"{method} timed out on {self.label}: {e}",
                category=ErrorCategory.TIMEOUT,
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} failed on {self.label}: {e}", provider=self.label) from e

        if response.status_code == 429:
            raise RateLimitError(f"429 Too Many Requests from {self.label}", provider=self.label)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                f"HTTP {response.status_code} from {self.label} for {method}",
                provider=self.label,
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise NetworkError(f"Malformed response from {self.label}", provider=self.label) from e

        if "error" in data:
            error = data["error"] or {}
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise RpcError(
                f"RPC error: {message}",
                code=error.get("code") if isinstance(error, dict) else None,
                endpoint=self.label,
                data=error.get("data") if isinstance(error, dict) else None,
            )

        return data.get("result")

    async def get_balance(self, address: str) -> int:
        """Balance in lamports."""
        result = await self._rpc_call("getBalance", [address, {"commitment": self.commitment}])
        return int((result or {}).get("value", 0))

    async def get_latest_blockhash(self) -> Dict[str, Any]:
        result = await self._rpc_call("getLatestBlockhash", [{"commitment": self.commitment}])
        value = (result or {}).get("value") or {}
        blockhash = value.get("blockhash")
        if not blockhash:
            raise RpcError("RPC error: no blockhash in response", endpoint=self.label)
        return {
            "blockhash": blockhash,
            "last_valid_block_height": value.get("lastValidBlockHeight"),
        }

    async def get_block_height(self) -> int:
        result = await self._rpc_call("getBlockHeight", [{"commitment": self.commitment}])
        return int(result or 0)

    async def get_token_accounts_by_owner(
        self,
        owner: str,
        program_id: str = TOKEN_PROGRAM_ID,
    ) -> List[Dict[str, Any]]:
        """Parsed token accounts owned by ``owner`` under ``program_id``."""
        result = await self._rpc_call(
            "getTokenAccountsByOwner",
            [
                owner,
                {"programId": program_id},
                {"encoding": "jsonParsed", "commitment": self.commitment},
            ],
        )

        accounts = []
        for item in (result or {}).get("value", []):
            parsed = item.get("account", {}).get("data", {}).get("parsed", {})
            info = parsed.get("info", {})
            token_amount = info.get("tokenAmount", {})
            accounts.append({
                "address": item.get("pubkey"),
                "mint": info.get("mint"),
                "owner": info.get("owner"),
                "amount": int(token_amount.get("amount", 0) or 0),
                "decimals": int(token_amount.get("decimals", 0) or 0),
                "ui_amount_string": token_amount.get("uiAmountString"),
            })
        return accounts

    async def simulate_transaction(self, transaction: bytes) -> Dict[str, Any]:
        """Dry-run a serialized transaction; signatures are not verified."""
        options = {
            "encoding": "base64",
            "commitment": self.commitment,
            "sigVerify": False,
            "replaceRecentBlockhash": True,
        }
        result = await self._rpc_call(
            "simulateTransaction",
            [base64.b64encode(transaction).decode("ascii"), options],
        )
        value = (result or {}).get("value") or {}
        return {
            "error": value.get("err"),
            "logs": value.get("logs") or [],
            "units_consumed": value.get("unitsConsumed"),
        }

    async def send_raw_transaction(self, signed_transaction: bytes, skip_preflight: bool = False) -> str:
        """Broadcast a signed transaction and return its signature."""
        options = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": self.commitment,
        }
        signature = await self._rpc_call(
            "sendTransaction",
            [base64.b64encode(signed_transaction).decode("ascii"), options],
        )
        if not signature:
            raise RpcError("RPC error: no signature returned from sendTransaction", endpoint=self.label)
        return signature

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = await self._rpc_call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        statuses = (result or {}).get("value") or [None]
        return statuses[0]

    async def confirm_transaction(
        self,
        signature: str,
        blockhash: Optional[str] = None,
        last_valid_block_height: Optional[int] = None,
        timeout_s: float = 30.0,
        poll_interval_s: float = 1.0,
    ) -> Dict[str, Any]:
        """
        Poll until ``signature`` is confirmed.

        Raises TransactionFailedError when the chain reports an execution
        error, TransactionExpiredError once the block height passes
        ``last_valid_block_height``, and ConfirmationTimeoutError when
        ``timeout_s`` elapses. Transport errors from the polling calls
        propagate unchanged.
        """
        started = self._clock()
        interval = poll_interval_s

        while (self._clock() - started) < timeout_s:
            status = await self.get_signature_status(signature)

            if status:
                if status.get("err") is not None:
                    raise TransactionFailedError(signature, status["err"])
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return {
                        "signature": signature,
                        "slot": status.get("slot"),
                        "confirmation_status": status.get("confirmationStatus"),
                        "blockhash": blockhash,
                    }

            if last_valid_block_height is not None:
                height = await self.get_block_height()
                if height > last_valid_block_height:
                    raise TransactionExpiredError(signature, last_valid_block_height)

            await self._sleep(interval)
            interval = min(interval * 1.5, 5.0)

        raise ConfirmationTimeoutError(signature, timeout_s)

    async def get_signatures_for_address(
        self,
        address: str,
        limit: int = 10,
        before: Optional[str] = None,
        until: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        config: Dict[str, Any] = {"limit": limit, "commitment": self.commitment}
        if before:
            config["before"] = before
        if until:
            config["until"] = until
        result = await self._rpc_call("getSignaturesForAddress", [address, config])
        return list(result or [])

    async def get_parsed_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        return await self._rpc_call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": self.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
