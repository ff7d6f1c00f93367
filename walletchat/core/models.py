"""Typed models shared by the wallet, transfer and swap services."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

# Sentinel mint for the native asset
NATIVE_MINT = "So11111111111111111111111111111111111111112"
NATIVE_SYMBOL = "SOL"
NATIVE_DECIMALS = 9
LAMPORTS_PER_SOL = Decimal(1_000_000_000)


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / LAMPORTS_PER_SOL


def sol_to_lamports(amount: Decimal) -> int:
    """Whole lamports in ``amount``; fractions of a lamport are dropped."""
    return int((amount * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_DOWN))


@dataclass(frozen=True)
class TokenBalance:
    symbol: str
    display_name: str
    balance: Decimal
    usd_value: Optional[Decimal]
    mint: str
    decimals: int
    logo_uri: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.mint == NATIVE_MINT

    @property
    def has_valuation(self) -> bool:
        return self.usd_value is not None

    def with_usd_value(self, usd_value: Optional[Decimal]) -> "TokenBalance":
        return TokenBalance(
            symbol=self.symbol,
            display_name=self.display_name,
            balance=self.balance,
            usd_value=usd_value,
            mint=self.mint,
            decimals=self.decimals,
            logo_uri=self.logo_uri,
        )


def native_token(balance: Decimal, usd_value: Optional[Decimal] = None) -> TokenBalance:
    return TokenBalance(
        symbol=NATIVE_SYMBOL,
        display_name="Solana",
        balance=balance,
        usd_value=usd_value,
        mint=NATIVE_MINT,
        decimals=NATIVE_DECIMALS,
    )


@dataclass(frozen=True)
class WalletSnapshot:
    """Point-in-time view of a wallet; replaced wholesale on refresh.

    ``degraded`` marks the native-only fallback returned after every fetch
    attempt failed; its zero balance is not evidence of an empty wallet.
    """

    native_balance: Decimal
    tokens: Tuple[TokenBalance, ...]
    total_value_usd: Decimal
    fetched_at: float
    degraded: bool = False

    @classmethod
    def build(
        cls,
        native_balance: Decimal,
        tokens: Sequence[TokenBalance],
        fetched_at: Optional[float] = None,
        degraded: bool = False,
    ) -> "WalletSnapshot":
        total = sum((t.usd_value for t in tokens if t.usd_value is not None), Decimal(0))
        return cls(
            native_balance=native_balance,
            tokens=tuple(tokens),
            total_value_usd=total,
            fetched_at=time.time() if fetched_at is None else fetched_at,
            degraded=degraded,
        )

    @classmethod
    def fallback(cls) -> "WalletSnapshot":
        return cls.build(Decimal(0), [native_token(Decimal(0), Decimal(0))], degraded=True)

    def token(self, symbol: str) -> Optional[TokenBalance]:
        symbol = symbol.upper()
        for token in self.tokens:
            if token.symbol.upper() == symbol:
                return token
        return None

    def balance_of(self, symbol: str) -> Decimal:
        if symbol.upper() == NATIVE_SYMBOL:
            return self.native_balance
        token = self.token(symbol)
        return token.balance if token else Decimal(0)

    @property
    def unvalued_tokens(self) -> Tuple[TokenBalance, ...]:
        return tuple(t for t in self.tokens if t.usd_value is None)


@dataclass(frozen=True)
class TransferRequest:
    recipient: str
    amount: Decimal
    token: str = NATIVE_SYMBOL


@dataclass(frozen=True)
class SwapRequest:
    from_token: str
    to_token: str
    amount: str


class OperationErrorKind(str, Enum):
    """Failure kinds reported by the transfer and swap services."""

    WALLET_NOT_CONNECTED = "WALLET_NOT_CONNECTED"
    INVALID_RECIPIENT = "INVALID_RECIPIENT"
    INVALID_ADDRESS_FORMAT = "INVALID_ADDRESS_FORMAT"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    UNSUPPORTED_TOKEN = "UNSUPPORTED_TOKEN"
    SAME_TOKEN = "SAME_TOKEN"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INSUFFICIENT_BALANCE_FOR_RENT = "INSUFFICIENT_BALANCE_FOR_RENT"
    INSUFFICIENT_FEE = "INSUFFICIENT_FEE"
    NETWORK_ERROR = "NETWORK_ERROR"
    SIMULATION_FAILED = "SIMULATION_FAILED"
    QUOTE_FAILED = "QUOTE_FAILED"
    USER_REJECTED = "USER_REJECTED"
    TRANSACTION_ERROR = "TRANSACTION_ERROR"
    SIGNATURE_EXPIRED = "SIGNATURE_EXPIRED"
    CONFIRMATION_UNKNOWN = "CONFIRMATION_UNKNOWN"
    CONFIRMATION_ERROR = "CONFIRMATION_ERROR"
    BALANCE_VERIFICATION_FAILED = "BALANCE_VERIFICATION_FAILED"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    EXECUTION_ERROR = "EXECUTION_ERROR"


@dataclass
class OperationResult:
    """Outcome of a transfer or swap, returned to the assistant."""

    success: bool
    message: str
    transaction_id: Optional[str] = None
    explorer_url: Optional[str] = None
    error_kind: Optional[OperationErrorKind] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **kwargs: Any) -> "OperationResult":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def fail(
        cls,
        error_kind: OperationErrorKind,
        message: str,
        **kwargs: Any,
    ) -> "OperationResult":
        return cls(success=False, message=message, error_kind=error_kind, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["error_kind"] = self.error_kind.value if self.error_kind else None
        return data
