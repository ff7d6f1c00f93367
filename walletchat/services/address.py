"""Helpers for finding and validating Solana addresses and amounts in free text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Optional

from solders.pubkey import Pubkey

_BASE58_CHARS = "1-9A-HJ-NP-Za-km-z"
_BASE58_ALPHABET = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")

# Candidate runs are bounded on both sides so a longer base58 blob is not
# mistaken for an address by taking a 44 character slice of it.
_ADDRESS_CANDIDATE_RE = re.compile(
    rf"(?<![{_BASE58_CHARS}])[{_BASE58_CHARS}]{{32,44}}(?![{_BASE58_CHARS}])"
)

TRANSFER_TOKEN_SYMBOLS = ("sol", "usdc", "usdt", "bonk", "jup", "jto", "ray", "pyth", "meme", "wif")

_AMOUNT_TOKEN_RE = re.compile(
    r"\b(\d+\.?\d*)\s*(" + "|".join(TRANSFER_TOKEN_SYMBOLS) + r")\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class AmountAndToken:
    amount: Decimal
    token: str


def _decode(candidate: str) -> Optional[Pubkey]:
    try:
        return Pubkey.from_string(candidate)
    except ValueError:
        return None


@lru_cache(maxsize=256)
def is_valid_solana_address(address: str) -> bool:
    """Return True if ``address`` decodes to a 32 byte public key."""

    if not address:
        return False
    address = address.strip()
    length = len(address)
    if length < 32 or length > 44:
        return False
    if not all(ch in _BASE58_ALPHABET for ch in address):
        return False
    return _decode(address) is not None


def has_address_format(address: str) -> bool:
    """Cheap shape check: base58 alphabet and plausible length, no decoding."""

    if not address:
        return False
    address = address.strip()
    return 32 <= len(address) <= 44 and all(ch in _BASE58_ALPHABET for ch in address)


def canonical_address(address: str) -> str:
    """Re-encode ``address`` from its decoded bytes.

    Raises ValueError when the input is not a valid public key.
    """

    pubkey = _decode(address.strip())
    if pubkey is None:
        raise ValueError(f"Invalid Solana address: {address!r}")
    return str(pubkey)


def detect_account_address(text: str) -> Optional[str]:
    """Return the first structurally valid address in ``text``, canonicalized."""

    if not text:
        return None
    for match in _ADDRESS_CANDIDATE_RE.finditer(text):
        pubkey = _decode(match.group(0))
        if pubkey is not None:
            return str(pubkey)
    return None


def extract_amount_and_token(text: str) -> Optional[AmountAndToken]:
    """Find the first ``<number> <symbol>`` pair for a supported token symbol."""

    if not text:
        return None
    match = _AMOUNT_TOKEN_RE.search(text)
    if not match:
        return None
    try:
        amount = Decimal(match.group(1))
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return AmountAndToken(amount=amount, token=match.group(2).upper())


def format_address_short(address: str) -> str:
    if not address or len(address) < 8:
        return address or ""
    return f"{address[:4]}...{address[-4:]}"


def validate_and_format_address(address: str) -> dict:
    """Validate an address and return its canonical and display forms."""

    if not is_valid_solana_address(address or ""):
        return {"is_valid": False, "canonical": None, "display": None}
    canonical = canonical_address(address)
    return {
        "is_valid": True,
        "canonical": canonical,
        "display": format_address_short(canonical),
    }


__all__ = [
    "AmountAndToken",
    "TRANSFER_TOKEN_SYMBOLS",
    "canonical_address",
    "detect_account_address",
    "extract_amount_and_token",
    "format_address_short",
    "has_address_format",
    "is_valid_solana_address",
    "validate_and_format_address",
]
