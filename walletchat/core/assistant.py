"""
Chat orchestrator: one user turn in, one reply out.

``WalletAssistant.process_request`` classifies the text, dispatches to the
wallet, market, transfer or swap collaborators and renders a conversational
reply. It never raises; unexpected errors become an apology.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from ..logging_config import bind_chat_context
from ..services.address import format_address_short
from .intents import Balance, Greeting, Help, History, Intent, IntentParser, Meme, Price, Send, Swap
from .market.market_data import MarketDataService
from .market.meme import MemeCoinAnalyzer
from .models import OperationErrorKind, OperationResult, SwapRequest, TransferRequest
from .swap.service import SwapService
from .transfer.service import TransferService
from .wallet.data_provider import WalletDataProvider
from .wallet.history import (
    TransactionHistoryService,
    TransactionQuery,
    format_transactions_for_display,
    parse_date_query,
)
from .wallet.signer import WalletSigner

logger = logging.getLogger(__name__)

GREETINGS = (
    "Hello! I'm your professional crypto assistant.",
    "Welcome! How may I assist you with your crypto needs today?",
    "Greetings! I'm here to help with your blockchain transactions.",
    "Hello there! Ready to assist with your Web3 requirements.",
    "Welcome back! I'm your dedicated crypto wallet assistant.",
)

FAREWELLS = (
    "Take care!",
    "Have a great day!",
    "See you later!",
    "Bye for now!",
    "Until next time!",
)

CAPABILITIES = (
    "I can assist you with the following services:\n\n"
    '• Send tokens (e.g., "send 0.001 SOL to [wallet address]")\n'
    '• Swap tokens (e.g., "swap 0.001 SOL to USDC")\n'
    '• Check your balance (e.g., "how much do I have?")\n'
    '• View transaction history (e.g., "show my recent transactions")\n'
    "• Check crypto prices (e.g., \"what's the price of BTC?\")\n"
    '• Analyze meme coins (e.g., "analyze this token: [address]")\n\n'
    "Please let me know how I can help you with your crypto needs today."
)

HELP_REPLY = (
    "I can help you with crypto transactions and information. I can:\n\n"
    "• Send and swap tokens\n"
    "• Check your wallet balance\n"
    "• Show transaction history\n"
    "• Provide crypto price information\n"
    "• Analyze token information\n\n"
    "Just tell me what you'd like to do!"
)

CONNECT_WALLET_REPLY = "Please connect your wallet first to perform transactions."

APOLOGY_REPLY = (
    "Sorry, something went wrong while handling that request. "
    "Please try again in a moment."
)


@dataclass
class AssistantResponse:
    message: str
    intent: Optional[Intent] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "intent": self.intent.to_dict() if self.intent is not None else None,
        }


def _format_amount(value: Decimal, places: int = 4) -> str:
    return f"{value:,.{places}f}"


class WalletAssistant:
    def __init__(
        self,
        wallet_data: WalletDataProvider,
        transfers: TransferService,
        swaps: SwapService,
        market_data: MarketDataService,
        meme_analyzer: MemeCoinAnalyzer,
        history: TransactionHistoryService,
        parser: Optional[IntentParser] = None,
        choice: Callable[[Sequence[str]], str] = random.choice,
    ):
        self.wallet_data = wallet_data
        self.transfers = transfers
        self.swaps = swaps
        self.market_data = market_data
        self.meme_analyzer = meme_analyzer
        self.history = history
        self.parser = parser or IntentParser()
        self._choice = choice

        self._handlers: Dict[type, Callable[[Any, WalletSigner], Awaitable[str]]] = {
            Greeting: self._handle_greeting,
            Help: self._handle_help,
            Balance: self._handle_balance,
            History: self._handle_history,
            Price: self._handle_price,
            Meme: self._handle_meme,
            Send: self._handle_send,
            Swap: self._handle_swap,
        }
        self._wallet_bound = (Balance, History, Send, Swap)

    def greeting(self) -> str:
        return self._choice(GREETINGS)

    def farewell(self) -> str:
        return self._choice(FAREWELLS)

    async def process_request(self, text: str, wallet: WalletSigner) -> AssistantResponse:
        try:
            intent = self.parser.parse(text)
            bind_chat_context(
                wallet=format_address_short(wallet.public_key),
                intent=type(intent).__name__.lower() if intent else None,
            )
            if intent is None:
                return AssistantResponse(message=f"{self.greeting()}\n\n{CAPABILITIES}")

            if isinstance(intent, self._wallet_bound) and not (wallet.connected and wallet.public_key):
                return AssistantResponse(message=CONNECT_WALLET_REPLY, intent=intent)

            handler = self._handlers[type(intent)]
            message = await handler(intent, wallet)
            return AssistantResponse(message=message, intent=intent)
        except Exception:
            logger.exception("Unhandled error while processing chat request")
            return AssistantResponse(message=APOLOGY_REPLY)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_greeting(self, intent: Greeting, wallet: WalletSigner) -> str:
        return self.greeting()

    async def _handle_help(self, intent: Help, wallet: WalletSigner) -> str:
        return HELP_REPLY

    async def _handle_balance(self, intent: Balance, wallet: WalletSigner) -> str:
        snapshot = await self.wallet_data.get_wallet_data(wallet.public_key)
        if snapshot.degraded:
            return (
                "I couldn't reach the Solana network to read your balance right now. "
                "The network may be busy; please try again in a moment."
            )

        lines = [f"{self.greeting()} Here's your current balance:", ""]
        lines.append(f"• SOL: {_format_amount(snapshot.native_balance)}")
        for token in snapshot.tokens:
            if token.is_native:
                continue
            if token.usd_value is None:
                value = "value unknown"
            else:
                value = f"${token.usd_value:,.2f}"
            lines.append(f"• {token.symbol}: {token.balance.normalize():f} ({value})")

        lines.append("")
        total = f"Total value: ${snapshot.total_value_usd:,.2f}"
        if snapshot.unvalued_tokens:
            total += " (some tokens could not be priced)"
        lines.append(total)
        lines.append("")
        lines.append("Would you like to:\n• View your transaction history\n• Send a transaction\n• Swap tokens")
        return "\n".join(lines)

    async def _handle_history(self, intent: History, wallet: WalletSigner) -> str:
        query = TransactionQuery(limit=10)
        if intent.period:
            query.date_range = parse_date_query(intent.period)
            query.limit = 50
        try:
            records = await self.history.get_transactions(wallet.public_key, query)
        except Exception as e:
            logger.warning("History fetch failed for %s: %s", wallet.public_key, e)
            return (
                f"{self.greeting()} I encountered an error while fetching your transactions. "
                "Please check your connection and try again."
            )

        if not records and not intent.period:
            return f"{self.greeting()} I don't see any recent transactions in your wallet."
        return format_transactions_for_display(records)

    async def _handle_price(self, intent: Price, wallet: WalletSigner) -> str:
        if intent.symbol is None:
            return await self.market_data.get_market_overview()
        return await self.market_data.get_market_analysis(intent.symbol)

    async def _handle_meme(self, intent: Meme, wallet: WalletSigner) -> str:
        return await self.meme_analyzer.get_analysis_text(intent.address)

    async def _handle_send(self, intent: Send, wallet: WalletSigner) -> str:
        request = TransferRequest(recipient=intent.recipient, amount=intent.amount, token=intent.token)
        result = await self.transfers.transfer(request, wallet)
        return self._render_result(result, "Great!", "transfer")

    async def _handle_swap(self, intent: Swap, wallet: WalletSigner) -> str:
        request = SwapRequest(from_token=intent.from_token, to_token=intent.to_token, amount=intent.amount)
        result = await self.swaps.execute_swap(request, wallet)
        return self._render_result(result, "Perfect!", "swap")

    def _render_result(self, result: OperationResult, opener: str, noun: str) -> str:
        if result.success:
            message = f"{opener} {result.message} {self.farewell()}"
            if result.explorer_url:
                message += f"\n\nView on explorer: {result.explorer_url}"
            return message

        if result.error_kind == OperationErrorKind.CONFIRMATION_UNKNOWN:
            message = (
                f"Your {noun} was submitted, but I couldn't verify its confirmation because the "
                "network's confirmation service is limited right now. It has most likely succeeded."
            )
            if result.explorer_url:
                message += f" You can check it here: {result.explorer_url}"
            return message

        if result.error_kind == OperationErrorKind.USER_REJECTED:
            return result.message

        return f"{result.message} Would you like to try again?"
