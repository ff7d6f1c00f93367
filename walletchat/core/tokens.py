"""Well-known Solana token metadata."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from .models import NATIVE_MINT

# Symbol -> metadata. Mints are case-sensitive base58 and kept verbatim.
TOKEN_REGISTRY: Dict[str, Dict[str, object]] = {
    "SOL": {
        "symbol": "SOL",
        "name": "Solana",
        "mint": NATIVE_MINT,
        "decimals": 9,
    },
    "USDC": {
        "symbol": "USDC",
        "name": "USD Coin",
        "mint": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        "decimals": 6,
    },
    "USDT": {
        "symbol": "USDT",
        "name": "Tether USD",
        "mint": "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
        "decimals": 6,
    },
    "BONK": {
        "symbol": "BONK",
        "name": "Bonk",
        "mint": "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263",
        "decimals": 5,
    },
    "JUP": {
        "symbol": "JUP",
        "name": "Jupiter",
        "mint": "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN",
        "decimals": 6,
    },
    "RAY": {
        "symbol": "RAY",
        "name": "Raydium",
        "mint": "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R",
        "decimals": 6,
    },
    "PYTH": {
        "symbol": "PYTH",
        "name": "Pyth Network",
        "mint": "HZ1JovNiVvGrGNiiYvEozEVgZ58xaU3RKwX8eACQBCt3",
        "decimals": 6,
    },
    "WIF": {
        "symbol": "WIF",
        "name": "dogwifhat",
        "mint": "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm",
        "decimals": 6,
    },
    "JTO": {
        "symbol": "JTO",
        "name": "Jito",
        "mint": "jtojtomepa8beP8AuQc6eXt5FriJwfFMwQx2v2f9mCL",
        "decimals": 9,
    },
}

MINT_METADATA: Dict[str, Dict[str, object]] = {
    str(meta["mint"]): meta for meta in TOKEN_REGISTRY.values()
}

SUPPORTED_SWAP_TOKENS: Tuple[str, ...] = (
    "SOL",
    "USDC",
    "USDT",
    "BONK",
    "JUP",
    "RAY",
    "PYTH",
    "WIF",
    "JTO",
)

STABLECOINS: Tuple[str, ...] = ("USDC", "USDT")


def get_token(symbol: str) -> Optional[Dict[str, object]]:
    return TOKEN_REGISTRY.get((symbol or "").upper())


def metadata_for_mint(mint: str) -> Optional[Dict[str, object]]:
    return MINT_METADATA.get(mint)


def decimals_for(symbol: str) -> int:
    token = get_token(symbol)
    if token is None:
        raise KeyError(f"Unknown token symbol: {symbol}")
    return int(token["decimals"])
