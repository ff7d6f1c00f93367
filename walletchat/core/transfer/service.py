"""
Native SOL transfers.

Each request moves through Validating -> Simulating -> Signing ->
Broadcasting -> ConfirmPending and ends Confirmed, ConfirmUnknown or Failed.
Every outcome is returned as an ``OperationResult``; nothing is raised past
``transfer``.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from ...services.address import canonical_address, format_address_short, has_address_format
from ..connection import ConnectionManager
from ..execution.transactions import build_sol_transfer, serialize
from ..models import (
    NATIVE_SYMBOL,
    OperationErrorKind,
    OperationResult,
    TransferRequest,
    lamports_to_sol,
    sol_to_lamports,
)
from ..recovery.errors import (
    ErrorCategory,
    TransactionExpiredError,
    TransactionFailedError,
    classify_error,
    classify_message,
    is_confirmation_ambiguous,
)
from ..wallet.signer import WalletSigner

logger = logging.getLogger(__name__)


class TransferState(str, Enum):
    VALIDATING = "validating"
    SIMULATING = "simulating"
    SIGNING = "signing"
    BROADCASTING = "broadcasting"
    CONFIRM_PENDING = "confirm_pending"
    CONFIRMED = "confirmed"
    CONFIRM_UNKNOWN = "confirm_unknown"
    FAILED = "failed"


def format_sol(amount: Decimal) -> str:
    text = f"{amount.normalize():f}"
    return text if text != "-0" else "0"


class TransferService:
    def __init__(
        self,
        connections: ConnectionManager,
        *,
        network_fee: Decimal = Decimal("0.000005"),
        min_reserve: Decimal = Decimal("0.001"),
        explorer_base_url: str = "https://explorer.solana.com/tx/",
        confirmation_timeout_s: float = 30.0,
        poll_interval_s: float = 1.0,
    ):
        self.connections = connections
        self.network_fee = network_fee
        self.min_reserve = min_reserve
        self.explorer_base_url = explorer_base_url
        self.confirmation_timeout_s = confirmation_timeout_s
        self.poll_interval_s = poll_interval_s

    def explorer_url(self, signature: str) -> str:
        return f"{self.explorer_base_url}{signature}"

    def _fail(
        self,
        kind: OperationErrorKind,
        message: str,
        state: TransferState = TransferState.FAILED,
        **kwargs: Any,
    ) -> OperationResult:
        details: Dict[str, Any] = kwargs.pop("details", {})
        details["state"] = state.value
        logger.info("Transfer ended in %s: %s", state.value, kind.value)
        return OperationResult.fail(kind, message, details=details, **kwargs)

    def _rent_failure(self, balance: Decimal) -> OperationResult:
        recommended = max(balance - self.network_fee - self.min_reserve, Decimal(0))
        return self._fail(
            OperationErrorKind.INSUFFICIENT_BALANCE_FOR_RENT,
            (
                f"This transfer would leave less than the minimum balance of "
                f"{format_sol(self.min_reserve)} SOL in your account. "
                f"The most you can send right now is {format_sol(recommended)} SOL."
            ),
            details={
                "recommended_amount": recommended,
                "min_reserve": self.min_reserve,
                "balance": balance,
            },
        )

    async def transfer(self, request: TransferRequest, wallet: WalletSigner) -> OperationResult:
        logger.info("Transfer %s: %s %s", TransferState.VALIDATING.value, request.amount, request.token)

        if not wallet.connected or not wallet.public_key:
            return self._fail(OperationErrorKind.WALLET_NOT_CONNECTED, "Please connect your wallet first.")
        if not wallet.can_sign:
            return self._fail(
                OperationErrorKind.WALLET_NOT_CONNECTED,
                "This session can only read balances. Connect a signing wallet to send tokens.",
            )

        if not has_address_format(request.recipient):
            return self._fail(OperationErrorKind.INVALID_ADDRESS_FORMAT, "Invalid recipient address format.")
        try:
            recipient = canonical_address(request.recipient)
        except ValueError:
            return self._fail(OperationErrorKind.INVALID_RECIPIENT, "Recipient is not a valid Solana address.")

        amount = request.amount
        if not amount.is_finite() or amount <= 0:
            return self._fail(OperationErrorKind.INVALID_AMOUNT, "Transfer amount must be greater than 0.")

        sender = wallet.public_key
        try:
            balance = lamports_to_sol(await self.connections.get_balance(sender, use_cache=False))
        except Exception as e:
            logger.warning("Balance check failed for %s: %s", sender, e)
            return self._fail(
                OperationErrorKind.NETWORK_ERROR,
                "Could not check your balance because the network is unreachable. Please try again.",
            )

        token = request.token.upper()
        if token != NATIVE_SYMBOL:
            if balance < self.network_fee + self.min_reserve:
                return self._fail(
                    OperationErrorKind.INSUFFICIENT_FEE,
                    (
                        f"You need at least {format_sol(self.network_fee + self.min_reserve)} SOL "
                        f"to pay the network fee for a {token} transfer."
                    ),
                    details={"balance": balance},
                )
            return self._fail(
                OperationErrorKind.NOT_IMPLEMENTED,
                f"Sending {token} is not supported yet. Only SOL transfers are available.",
            )

        lamports = sol_to_lamports(amount)
        if lamports <= 0 or lamports_to_sol(lamports) != amount:
            return self._fail(
                OperationErrorKind.INVALID_AMOUNT,
                "SOL amounts must be at least 0.000000001 and use at most 9 decimal places.",
                details={"amount": amount},
            )

        required = amount + self.network_fee
        if required > balance:
            return self._fail(
                OperationErrorKind.INSUFFICIENT_BALANCE,
                (
                    f"Insufficient balance. You need {format_sol(required)} SOL "
                    f"({format_sol(amount)} + {format_sol(self.network_fee)} fee) "
                    f"but only have {format_sol(balance)} SOL."
                ),
                details={"required": required, "available": balance, "shortfall": required - balance},
            )

        remaining = balance - required
        if remaining < self.min_reserve:
            return self._rent_failure(balance)

        return await self._execute(sender, recipient, lamports, balance, remaining, wallet)

    async def _execute(
        self,
        sender: str,
        recipient: str,
        lamports: int,
        balance: Decimal,
        remaining: Decimal,
        wallet: WalletSigner,
    ) -> OperationResult:
        logger.info("Transfer %s", TransferState.SIMULATING.value)
        try:
            latest = await self.connections.make_request(lambda c: c.get_latest_blockhash())
        except Exception as e:
            logger.warning("Blockhash fetch failed: %s", e)
            return self._fail(OperationErrorKind.NETWORK_ERROR, "Could not reach the network. Please try again.")

        transaction = build_sol_transfer(sender, recipient, lamports, latest["blockhash"])

        simulation_failure = await self._simulate(transaction, balance)
        if simulation_failure is not None:
            return simulation_failure

        logger.info("Transfer %s", TransferState.SIGNING.value)
        try:
            signed = await wallet.sign_transaction(transaction)
        except Exception as e:
            if classify_error(e) == ErrorCategory.USER_REJECTED:
                return self._fail(OperationErrorKind.USER_REJECTED, "Transaction cancelled by user.")
            logger.error("Signing failed: %s", e)
            return self._fail(OperationErrorKind.EXECUTION_ERROR, f"Could not sign the transaction: {e}")

        logger.info("Transfer %s", TransferState.BROADCASTING.value)
        raw = serialize(signed)
        try:
            signature = await self.connections.make_request(
                lambda c: c.send_raw_transaction(raw),
                max_attempts=1,
            )
        except Exception as e:
            return self._broadcast_failure(e, balance)

        return await self._confirm(signature, latest, recipient, lamports_to_sol(lamports), remaining)

    async def _simulate(self, transaction, balance: Decimal) -> Optional[OperationResult]:
        try:
            simulation = await self.connections.make_request(
                lambda c: c.simulate_transaction(serialize(transaction)),
                max_attempts=1,
            )
        except Exception as e:
            # The broadcast preflight still guards the real submission
            logger.warning("Simulation unavailable, continuing: %s", e)
            return None

        error = simulation.get("error")
        if error is None:
            return None

        text = f"{error} {' '.join(simulation.get('logs') or [])}"
        category = classify_message(text)
        if category == ErrorCategory.INSUFFICIENT_RENT:
            return self._rent_failure(balance)
        if category == ErrorCategory.INSUFFICIENT_FUNDS:
            return self._fail(
                OperationErrorKind.INSUFFICIENT_BALANCE,
                "Insufficient balance to cover this transfer and its fee.",
                details={"simulation_error": error},
            )
        return self._fail(
            OperationErrorKind.SIMULATION_FAILED,
            f"The transfer failed in simulation: {error}",
            details={"simulation_error": error, "logs": simulation.get("logs") or []},
        )

    def _broadcast_failure(self, error: Exception, balance: Decimal) -> OperationResult:
        category = classify_error(error)
        logger.warning("Broadcast failed (%s): %s", category.value, error)
        if category == ErrorCategory.INSUFFICIENT_RENT:
            return self._rent_failure(balance)
        if category == ErrorCategory.INSUFFICIENT_FUNDS:
            return self._fail(
                OperationErrorKind.INSUFFICIENT_BALANCE,
                "Insufficient balance to cover this transfer and its fee.",
                details={"error": str(error)},
            )
        if category == ErrorCategory.SIGNATURE_EXPIRED:
            return self._fail(
                OperationErrorKind.SIGNATURE_EXPIRED,
                "The transaction expired before it was sent. Please try again.",
            )
        if category in (ErrorCategory.NETWORK, ErrorCategory.RATE_LIMIT, ErrorCategory.TIMEOUT):
            return self._fail(
                OperationErrorKind.NETWORK_ERROR,
                "Could not submit the transaction because the network is unreachable. Please try again.",
            )
        return self._fail(
            OperationErrorKind.TRANSACTION_ERROR,
            f"The network rejected the transaction: {error}",
            details={"error": str(error)},
        )

    async def _confirm(
        self,
        signature: str,
        latest: Dict[str, Any],
        recipient: str,
        amount: Decimal,
        remaining: Decimal,
    ) -> OperationResult:
        logger.info("Transfer %s: %s", TransferState.CONFIRM_PENDING.value, signature)
        explorer_url = self.explorer_url(signature)
        try:
            connection = self.connections.get_connection()
            await connection.confirm_transaction(
                signature,
                blockhash=latest.get("blockhash"),
                last_valid_block_height=latest.get("last_valid_block_height"),
                timeout_s=self.confirmation_timeout_s,
                poll_interval_s=self.poll_interval_s,
            )
        except TransactionFailedError as e:
            return self._fail(
                OperationErrorKind.TRANSACTION_ERROR,
                f"The transaction failed on-chain: {e.err}",
                transaction_id=signature,
                explorer_url=explorer_url,
                details={"error": e.err},
            )
        except TransactionExpiredError:
            return self._fail(
                OperationErrorKind.SIGNATURE_EXPIRED,
                "The transaction expired before it was confirmed. Check the explorer before retrying.",
                transaction_id=signature,
                explorer_url=explorer_url,
            )
        except Exception as e:
            if is_confirmation_ambiguous(e):
                logger.warning("Confirmation unavailable for %s: %s", signature, e)
                return self._fail(
                    OperationErrorKind.CONFIRMATION_UNKNOWN,
                    (
                        "Your transfer was submitted but its confirmation could not be verified. "
                        "It has likely succeeded; check the explorer link."
                    ),
                    state=TransferState.CONFIRM_UNKNOWN,
                    transaction_id=signature,
                    explorer_url=explorer_url,
                    details={"error": str(e)},
                )
            logger.error("Confirmation failed for %s: %s", signature, e)
            return self._fail(
                OperationErrorKind.CONFIRMATION_ERROR,
                f"Could not confirm the transaction: {e}",
                transaction_id=signature,
                explorer_url=explorer_url,
            )

        logger.info("Transfer %s: %s", TransferState.CONFIRMED.value, signature)
        return OperationResult.ok(
            f"Successfully sent {format_sol(amount)} SOL to {format_address_short(recipient)}",
            transaction_id=signature,
            explorer_url=explorer_url,
            details={
                "state": TransferState.CONFIRMED.value,
                "amount": amount,
                "recipient": recipient,
                "fee": self.network_fee,
                "remaining_balance": remaining,
            },
        )
