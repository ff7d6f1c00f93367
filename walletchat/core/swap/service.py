"""
Token swaps through the Jupiter aggregator.

Success is decided by balance evidence: balances are read fresh before and
after the swap, and a swap only counts as done when the output balance went
up. A confirmation call that fails for transport or provider reasons does not
fail the swap; the balance diff decides.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from ...providers.jupiter import JupiterQuoteError, JupiterSwapProvider
from ...services.prices import PriceService
from ..connection import ConnectionManager
from ..market.market_data import MarketDataService, trend_for_change
from ..models import NATIVE_SYMBOL, OperationErrorKind, OperationResult, SwapRequest, WalletSnapshot
from ..recovery.errors import (
    ErrorCategory,
    TransactionExpiredError,
    TransactionFailedError,
    classify_error,
    is_confirmation_ambiguous,
)
from ..tokens import STABLECOINS, SUPPORTED_SWAP_TOKENS, decimals_for, get_token
from ..wallet.data_provider import WalletDataProvider
from ..wallet.signer import WalletSigner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None
    error_kind: Optional[OperationErrorKind] = None
    amount: Optional[Decimal] = None

    @classmethod
    def reject(cls, kind: OperationErrorKind, reason: str) -> "ValidationResult":
        return cls(valid=False, reason=reason, error_kind=kind)


@dataclass(frozen=True)
class SwapEstimate:
    from_amount: Decimal
    to_amount: Optional[Decimal]
    price_impact: Optional[float]
    usd_value: Optional[Decimal]
    trend: str
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_amount": str(self.from_amount),
            "to_amount": str(self.to_amount) if self.to_amount is not None else None,
            "price_impact": self.price_impact,
            "usd_value": str(self.usd_value) if self.usd_value is not None else None,
            "trend": self.trend,
            "source": self.source,
        }


def to_base_units(amount: Decimal, decimals: int) -> int:
    scale = Decimal(10) ** decimals
    return int((amount * scale).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(amount: int, decimals: int) -> Decimal:
    return Decimal(amount) / (Decimal(10) ** decimals)


def _fixed(value: Decimal, places: int) -> str:
    return f"{value:.{places}f}"


def format_input_amount(amount: Decimal, token: str) -> str:
    text = _fixed(amount, 5 if token == NATIVE_SYMBOL else 2)
    if amount > 0 and Decimal(text) == 0:
        text = _fixed(amount, 6)
    return text


def format_output_amount(amount: Decimal, token: str) -> str:
    """Stablecoins get 8 places when 2 would show zero; tiny amounts get 6."""
    if token in STABLECOINS:
        text = _fixed(amount, 8 if amount < Decimal("0.01") else 2)
    elif amount < Decimal("0.0001"):
        text = _fixed(amount, 6)
    elif token == NATIVE_SYMBOL:
        text = _fixed(amount, 5)
    else:
        text = _fixed(amount, 2)

    if amount > 0 and Decimal(text) == 0:
        text = _fixed(amount, 6)
    return text


class SwapService:
    def __init__(
        self,
        wallet_data: WalletDataProvider,
        aggregator: JupiterSwapProvider,
        connections: ConnectionManager,
        price_service: PriceService,
        market_data: Optional[MarketDataService] = None,
        *,
        supported_tokens: Sequence[str] = SUPPORTED_SWAP_TOKENS,
        fee_reserve: Decimal = Decimal("0.01"),
        settle_seconds: float = 2.0,
        explorer_base_url: str = "https://explorer.solana.com/tx/",
        confirmation_timeout_s: float = 30.0,
        poll_interval_s: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.wallet_data = wallet_data
        self.aggregator = aggregator
        self.connections = connections
        self.price_service = price_service
        self.market_data = market_data
        self.supported_tokens = tuple(t.upper() for t in supported_tokens)
        self.fee_reserve = fee_reserve
        self.settle_seconds = settle_seconds
        self.explorer_base_url = explorer_base_url
        self.confirmation_timeout_s = confirmation_timeout_s
        self.poll_interval_s = poll_interval_s
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_request(self, request: SwapRequest) -> ValidationResult:
        """Checks that need no wallet state and no network."""
        from_token = request.from_token.upper()
        to_token = request.to_token.upper()

        for token in (from_token, to_token):
            if token not in self.supported_tokens:
                return ValidationResult.reject(
                    OperationErrorKind.UNSUPPORTED_TOKEN,
                    (
                        f"{token} is not supported yet in our utilities. "
                        "Please try other supported coins like USDT, USDC, SOL."
                    ),
                )

        if from_token == to_token:
            return ValidationResult.reject(OperationErrorKind.SAME_TOKEN, "Cannot swap a token to itself")

        try:
            amount = Decimal(str(request.amount).strip())
        except InvalidOperation:
            amount = Decimal(0)
        if not amount.is_finite() or amount <= 0:
            return ValidationResult.reject(OperationErrorKind.INVALID_AMOUNT, "Swap amount must be greater than 0")

        return ValidationResult(valid=True, amount=amount)

    def _check_balance(self, token: str, amount: Decimal, balance: Decimal) -> ValidationResult:
        if token == NATIVE_SYMBOL:
            available = balance - self.fee_reserve
            if amount > available:
                return ValidationResult.reject(
                    OperationErrorKind.INSUFFICIENT_BALANCE,
                    (
                        f"Insufficient SOL balance. You have {_fixed(max(available, Decimal(0)), 4)} SOL "
                        f"available for swapping (keeping {self.fee_reserve.normalize():f} SOL for fees)"
                    ),
                )
            return ValidationResult(valid=True, amount=amount)

        if balance <= 0:
            return ValidationResult.reject(
                OperationErrorKind.INSUFFICIENT_BALANCE,
                f"You don't have any {token} in your wallet",
            )
        if amount > balance:
            return ValidationResult.reject(
                OperationErrorKind.INSUFFICIENT_BALANCE,
                f"Insufficient {token} balance. You have {balance.normalize():f} {token}",
            )
        return ValidationResult(valid=True, amount=amount)

    def validate(self, request: SwapRequest, snapshot: WalletSnapshot) -> ValidationResult:
        result = self.validate_request(request)
        if not result.valid:
            return result
        token = request.from_token.upper()
        return self._check_balance(token, result.amount, snapshot.balance_of(token))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _explorer_url(self, signature: str) -> str:
        return f"{self.explorer_base_url}{signature}"

    async def execute_swap(self, request: SwapRequest, wallet: WalletSigner) -> OperationResult:
        checked = self.validate_request(request)
        if not checked.valid:
            return OperationResult.fail(checked.error_kind, checked.reason)

        if not wallet.connected or not wallet.public_key:
            return OperationResult.fail(OperationErrorKind.WALLET_NOT_CONNECTED, "Please connect your wallet first.")
        if not wallet.can_sign:
            return OperationResult.fail(
                OperationErrorKind.WALLET_NOT_CONNECTED,
                "This session can only read balances. Connect a signing wallet to swap tokens.",
            )

        address = wallet.public_key
        from_token = request.from_token.upper()
        to_token = request.to_token.upper()
        amount = checked.amount

        try:
            before = await self.wallet_data.get_fresh_balances(address, [from_token, to_token])
        except Exception as e:
            logger.warning("Pre-swap balance read failed for %s: %s", address, e)
            return OperationResult.fail(
                OperationErrorKind.NETWORK_ERROR,
                "Could not read your balances because the network is unreachable. Please try again.",
            )

        funded = self._check_balance(from_token, amount, before[from_token])
        if not funded.valid:
            return OperationResult.fail(funded.error_kind, funded.reason)

        from_meta, to_meta = get_token(from_token), get_token(to_token)
        from_decimals, to_decimals = int(from_meta["decimals"]), int(to_meta["decimals"])

        try:
            quote = await self.aggregator.get_quote(
                str(from_meta["mint"]),
                str(to_meta["mint"]),
                to_base_units(amount, from_decimals),
            )
        except Exception as e:
            logger.warning("Quote failed for %s->%s: %s", from_token, to_token, e)
            return OperationResult.fail(
                OperationErrorKind.QUOTE_FAILED,
                f"Could not get a swap quote for {from_token} to {to_token}. Please try again.",
                details={"error": str(e)},
            )
        if quote.out_amount <= 0:
            return OperationResult.fail(
                OperationErrorKind.QUOTE_FAILED,
                f"No route found to swap {from_token} to {to_token}.",
            )
        expected_output = from_base_units(quote.out_amount, to_decimals)

        connection = self.connections.get_connection()
        try:
            prepared = await self.aggregator.prepare_transaction(address, quote, connection)
        except Exception as e:
            logger.warning("Swap transaction build failed: %s", e)
            return OperationResult.fail(
                OperationErrorKind.TRANSACTION_ERROR,
                "Could not build the swap transaction. Please try again.",
                details={"error": str(e)},
            )

        try:
            signature = await wallet.send_transaction(prepared.transaction, connection)
        except Exception as e:
            if classify_error(e) == ErrorCategory.USER_REJECTED:
                return OperationResult.fail(OperationErrorKind.USER_REJECTED, "Transaction cancelled by user")
            logger.error("Swap broadcast failed: %s", e)
            return OperationResult.fail(
                OperationErrorKind.TRANSACTION_ERROR,
                f"The swap transaction could not be sent: {e}",
                details={"error": str(e)},
            )

        explorer_url = self._explorer_url(signature)
        confirmed = True
        try:
            await connection.confirm_transaction(
                signature,
                blockhash=prepared.blockhash,
                last_valid_block_height=prepared.last_valid_block_height,
                timeout_s=self.confirmation_timeout_s,
                poll_interval_s=self.poll_interval_s,
            )
        except TransactionFailedError as e:
            return OperationResult.fail(
                OperationErrorKind.TRANSACTION_ERROR,
                f"The swap failed on-chain: {e.err}",
                transaction_id=signature,
                explorer_url=explorer_url,
                details={"error": e.err},
            )
        except TransactionExpiredError:
            return OperationResult.fail(
                OperationErrorKind.SIGNATURE_EXPIRED,
                "The swap expired before it was confirmed. Check the explorer before retrying.",
                transaction_id=signature,
                explorer_url=explorer_url,
            )
        except Exception as e:
            if not is_confirmation_ambiguous(e):
                return OperationResult.fail(
                    OperationErrorKind.CONFIRMATION_ERROR,
                    f"Could not confirm the swap: {e}",
                    transaction_id=signature,
                    explorer_url=explorer_url,
                )
            logger.warning("Swap confirmation unavailable for %s, verifying by balance: %s", signature, e)
            confirmed = False

        await self._sleep(self.settle_seconds)
        self.wallet_data.invalidate(address)

        try:
            after = await self.wallet_data.get_fresh_balances(address, [from_token, to_token])
        except Exception as e:
            logger.warning("Post-swap balance read failed for %s: %s", address, e)
            if not confirmed:
                return OperationResult.fail(
                    OperationErrorKind.CONFIRMATION_UNKNOWN,
                    "Your swap was submitted but could not be verified. Please check your wallet.",
                    transaction_id=signature,
                    explorer_url=explorer_url,
                )
            after = None

        if after is None:
            received = expected_output
            verified = False
        else:
            received = after[to_token] - before[to_token]
            spent = before[from_token] - after[from_token]
            if received <= 0:
                return OperationResult.fail(
                    OperationErrorKind.BALANCE_VERIFICATION_FAILED,
                    f"Swap may have failed: {to_token} balance did not increase. Please check your wallet.",
                    transaction_id=signature,
                    explorer_url=explorer_url,
                    details={"before": before, "after": after},
                )
            if spent <= 0:
                return OperationResult.fail(
                    OperationErrorKind.BALANCE_VERIFICATION_FAILED,
                    f"Swap may have failed: {from_token} balance did not decrease. Please check your wallet.",
                    transaction_id=signature,
                    explorer_url=explorer_url,
                    details={"before": before, "after": after},
                )
            verified = True

        from_text = format_input_amount(amount, from_token)
        to_text = format_output_amount(received, to_token)
        return OperationResult.ok(
            f"Successfully swapped {from_text} {from_token} for {to_text} {to_token}",
            transaction_id=signature,
            explorer_url=explorer_url,
            details={
                "from_amount": from_text,
                "to_amount": to_text,
                "raw_output_amount": received,
                "expected_output_amount": expected_output,
                "confirmed": confirmed,
                "balance_verified": verified,
            },
        )

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    async def _trend(self, token: str) -> str:
        if self.market_data is None:
            return "stable"
        snapshot = await self.market_data.get_market_snapshot(token)
        return trend_for_change(snapshot["change_24h"] if snapshot else None)

    async def get_swap_estimate(self, request: SwapRequest) -> SwapEstimate:
        """Expected output for a swap without signing anything.

        Raises ValueError for a request that fails the static checks.
        """
        checked = self.validate_request(request)
        if not checked.valid:
            raise ValueError(checked.reason)

        from_token = request.from_token.upper()
        to_token = request.to_token.upper()
        amount = checked.amount

        from_price = await self.price_service.get_spot_price(from_token)
        usd_value = amount * from_price if from_price is not None else None
        trend = await self._trend(to_token)

        from_meta, to_meta = get_token(from_token), get_token(to_token)
        try:
            quote = await self.aggregator.get_quote(
                str(from_meta["mint"]),
                str(to_meta["mint"]),
                to_base_units(amount, decimals_for(from_token)),
            )
            return SwapEstimate(
                from_amount=amount,
                to_amount=from_base_units(quote.out_amount, decimals_for(to_token)),
                price_impact=quote.price_impact_pct,
                usd_value=usd_value,
                trend=trend,
                source="jupiter",
            )
        except JupiterQuoteError as e:
            logger.info("Estimate quote failed, using prices: %s", e)

        to_price = await self.price_service.get_spot_price(to_token)
        to_amount = None
        if usd_value is not None and to_price:
            to_amount = usd_value / to_price
        return SwapEstimate(
            from_amount=amount,
            to_amount=to_amount,
            price_impact=None,
            usd_value=usd_value,
            trend=trend,
            source="prices",
        )
