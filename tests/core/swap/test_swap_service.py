from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from walletchat.core.models import NATIVE_MINT, OperationErrorKind, SwapRequest, WalletSnapshot
from walletchat.core.recovery.errors import ConfirmationTimeoutError, SigningRejectedError, TransactionFailedError
from walletchat.core.swap.service import SwapService, format_input_amount, format_output_amount
from walletchat.providers.jupiter import JupiterQuoteError

OWNER = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def balances(sol, usdc):
    return {"SOL": Decimal(sol), "USDC": Decimal(usdc)}


@pytest.fixture
def wallet():
    signer = MagicMock(connected=True, public_key=OWNER, can_sign=True)
    signer.send_transaction = AsyncMock(return_value="swapSig")
    return signer


@pytest.fixture
def parts():
    wallet_data = MagicMock()
    wallet_data.get_fresh_balances = AsyncMock(
        side_effect=[balances("1.0", "0"), balances("0.899995", "14.5")]
    )

    aggregator = MagicMock()
    aggregator.get_quote = AsyncMock(return_value=SimpleNamespace(out_amount=14_500_000, price_impact_pct=0.01))
    aggregator.prepare_transaction = AsyncMock(
        return_value=SimpleNamespace(transaction="unsigned-tx", blockhash="bh", last_valid_block_height=100)
    )

    connection = MagicMock()
    connection.confirm_transaction = AsyncMock(return_value={"confirmationStatus": "confirmed"})
    connections = MagicMock()
    connections.get_connection.return_value = connection

    prices = {"SOL": Decimal("145"), "USDC": Decimal("1")}
    price_service = MagicMock()
    price_service.get_spot_price = AsyncMock(side_effect=lambda symbol: prices.get(symbol))

    return SimpleNamespace(
        wallet_data=wallet_data,
        aggregator=aggregator,
        connection=connection,
        connections=connections,
        price_service=price_service,
        sleep=AsyncMock(),
    )


def make_service(parts):
    return SwapService(
        parts.wallet_data,
        parts.aggregator,
        parts.connections,
        parts.price_service,
        explorer_base_url="https://explorer.test/tx/",
        sleep=parts.sleep,
    )


class TestExecuteSwap:
    @pytest.mark.asyncio
    async def test_success_is_verified_by_balances(self, parts, wallet):
        result = await make_service(parts).execute_swap(SwapRequest("sol", "usdc", "0.1"), wallet)

        assert result.success
        assert result.message == "Successfully swapped 0.10000 SOL for 14.50 USDC"
        assert result.explorer_url == "https://explorer.test/tx/swapSig"
        assert result.details["balance_verified"] is True
        assert result.details["confirmed"] is True
        parts.aggregator.get_quote.assert_awaited_once_with(NATIVE_MINT, USDC_MINT, 100_000_000)
        parts.sleep.assert_awaited_once_with(2.0)
        parts.wallet_data.invalidate.assert_called_once_with(OWNER)

    @pytest.mark.asyncio
    async def test_ambiguous_confirmation_still_succeeds_when_balance_increased(self, parts, wallet):
        parts.connection.confirm_transaction.side_effect = ConfirmationTimeoutError("swapSig", 30)

        result = await make_service(parts).execute_swap(SwapRequest("SOL", "USDC", "0.1"), wallet)

        assert result.success
        assert result.details["confirmed"] is False
        assert result.details["raw_output_amount"] == Decimal("14.5")

    @pytest.mark.asyncio
    async def test_unchanged_output_balance_fails_verification(self, parts, wallet):
        parts.wallet_data.get_fresh_balances.side_effect = [balances("1.0", "0"), balances("0.999995", "0")]

        result = await make_service(parts).execute_swap(SwapRequest("SOL", "USDC", "0.1"), wallet)

        assert not result.success
        assert result.error_kind == OperationErrorKind.BALANCE_VERIFICATION_FAILED
        assert result.message == "Swap may have failed: USDC balance did not increase. Please check your wallet."

    @pytest.mark.asyncio
    async def test_unverifiable_and_unconfirmed_is_unknown(self, parts, wallet):
        parts.connection.confirm_transaction.side_effect = ConfirmationTimeoutError("swapSig", 30)
        parts.wallet_data.get_fresh_balances.side_effect = [balances("1.0", "0"), ConnectionError("down")]

        result = await make_service(parts).execute_swap(SwapRequest("SOL", "USDC", "0.1"), wallet)

        assert result.error_kind == OperationErrorKind.CONFIRMATION_UNKNOWN
        assert result.transaction_id == "swapSig"

    @pytest.mark.asyncio
    async def test_confirmed_but_unverifiable_uses_quote(self, parts, wallet):
        parts.wallet_data.get_fresh_balances.side_effect = [balances("1.0", "0"), ConnectionError("down")]

        result = await make_service(parts).execute_swap(SwapRequest("SOL", "USDC", "0.1"), wallet)

        assert result.success
        assert result.details["balance_verified"] is False
        assert result.details["raw_output_amount"] == Decimal("14.5")

    @pytest.mark.asyncio
    async def test_user_rejection(self, parts, wallet):
        wallet.send_transaction.side_effect = SigningRejectedError()

        result = await make_service(parts).execute_swap(SwapRequest("SOL", "USDC", "0.1"), wallet)

        assert result.error_kind == OperationErrorKind.USER_REJECTED
        assert result.message == "Transaction cancelled by user"
        parts.connection.confirm_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_on_chain_failure(self, parts, wallet):
        parts.connection.confirm_transaction.side_effect = TransactionFailedError("swapSig", {"Custom": 6001})

        result = await make_service(parts).execute_swap(SwapRequest("SOL", "USDC", "0.1"), wallet)

        assert result.error_kind == OperationErrorKind.TRANSACTION_ERROR
        parts.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_quote_failure(self, parts, wallet):
        parts.aggregator.get_quote.side_effect = JupiterQuoteError("no route")

        result = await make_service(parts).execute_swap(SwapRequest("SOL", "USDC", "0.1"), wallet)

        assert result.error_kind == OperationErrorKind.QUOTE_FAILED
        parts.aggregator.prepare_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_insufficient_sol_keeps_fee_reserve(self, parts, wallet):
        parts.wallet_data.get_fresh_balances.side_effect = [balances("0.1", "0")]

        result = await make_service(parts).execute_swap(SwapRequest("SOL", "USDC", "0.1"), wallet)

        assert result.error_kind == OperationErrorKind.INSUFFICIENT_BALANCE
        assert result.message == (
            "Insufficient SOL balance. You have 0.0900 SOL available for swapping (keeping 0.01 SOL for fees)"
        )
        parts.aggregator.get_quote.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_same_token_needs_no_network(self, parts, wallet):
        result = await make_service(parts).execute_swap(SwapRequest("SOL", "sol", "0.1"), wallet)

        assert result.error_kind == OperationErrorKind.SAME_TOKEN
        assert result.message == "Cannot swap a token to itself"
        parts.wallet_data.get_fresh_balances.assert_not_awaited()
        wallet.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsupported_token(self, parts, wallet):
        result = await make_service(parts).execute_swap(SwapRequest("SOL", "DOGE", "1"), wallet)

        assert result.error_kind == OperationErrorKind.UNSUPPORTED_TOKEN
        assert result.message == (
            "DOGE is not supported yet in our utilities. Please try other supported coins like USDT, USDC, SOL."
        )

    @pytest.mark.asyncio
    async def test_read_only_wallet(self, parts):
        read_only = MagicMock(connected=True, public_key=OWNER, can_sign=False)

        result = await make_service(parts).execute_swap(SwapRequest("SOL", "USDC", "0.1"), read_only)

        assert result.error_kind == OperationErrorKind.WALLET_NOT_CONNECTED


class TestValidation:
    @pytest.mark.parametrize("amount", ["0", "-1", "abc", ""])
    def test_invalid_amounts(self, parts, amount):
        result = make_service(parts).validate_request(SwapRequest("SOL", "USDC", amount))
        assert result.error_kind == OperationErrorKind.INVALID_AMOUNT

    def test_snapshot_balance_checks(self, parts):
        service = make_service(parts)
        snapshot = WalletSnapshot.build(Decimal("0.5"), [])

        assert service.validate(SwapRequest("SOL", "USDC", "0.49"), snapshot).valid
        rejected = service.validate(SwapRequest("SOL", "USDC", "0.495"), snapshot)
        assert rejected.error_kind == OperationErrorKind.INSUFFICIENT_BALANCE

        missing = service.validate(SwapRequest("USDC", "SOL", "1"), snapshot)
        assert missing.reason == "You don't have any USDC in your wallet"


class TestEstimate:
    @pytest.mark.asyncio
    async def test_estimate_from_quote(self, parts):
        estimate = await make_service(parts).get_swap_estimate(SwapRequest("SOL", "USDC", "0.1"))

        assert estimate.source == "jupiter"
        assert estimate.to_amount == Decimal("14.5")
        assert estimate.usd_value == Decimal("14.5")
        assert estimate.price_impact == 0.01
        assert estimate.trend == "stable"

    @pytest.mark.asyncio
    async def test_estimate_falls_back_to_prices(self, parts):
        parts.aggregator.get_quote.side_effect = JupiterQuoteError("quote API down")

        estimate = await make_service(parts).get_swap_estimate(SwapRequest("SOL", "USDC", "2"))

        assert estimate.source == "prices"
        assert estimate.to_amount == Decimal("290")
        assert estimate.price_impact is None

    @pytest.mark.asyncio
    async def test_estimate_rejects_invalid_request(self, parts):
        with pytest.raises(ValueError, match="Cannot swap a token to itself"):
            await make_service(parts).get_swap_estimate(SwapRequest("USDC", "USDC", "1"))


class TestFormatting:
    def test_input_amounts(self):
        assert format_input_amount(Decimal("0.1"), "SOL") == "0.10000"
        assert format_input_amount(Decimal("12.346"), "USDC") == "12.35"
        assert format_input_amount(Decimal("0.000001"), "USDC") == "0.000001"

    def test_output_amounts(self):
        assert format_output_amount(Decimal("0.005"), "USDC") == "0.00500000"
        assert format_output_amount(Decimal("14.5"), "USDT") == "14.50"
        assert format_output_amount(Decimal("0.00005"), "BONK") == "0.000050"
        assert format_output_amount(Decimal("1.234567"), "SOL") == "1.23457"
        assert format_output_amount(Decimal("250.5"), "JUP") == "250.50"
