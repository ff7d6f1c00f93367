"""
Free-text intent classification.

The parser walks an ordered list of (predicate, handler) pairs and the first
predicate that matches wins, so the order of ``IntentParser.rules`` is part of
the behavior: greeting, help, history, balance, meme, price, send, swap.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..services.address import (
    detect_account_address,
    extract_amount_and_token,
    has_address_format,
)

_B58 = "1-9A-HJ-NP-Za-km-z"


@dataclass(frozen=True)
class Greeting:
    action = "greeting"

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action}


@dataclass(frozen=True)
class Help:
    action = "help_query"

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action}


@dataclass(frozen=True)
class Balance:
    action = "balance"

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action}


@dataclass(frozen=True)
class History:
    action = "history"
    period: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"action": self.action}
        if self.period:
            data["period"] = self.period
        return data


@dataclass(frozen=True)
class Price:
    """``symbol`` is None for a whole-market overview."""

    action = "price"
    symbol: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "symbol": self.symbol}


@dataclass(frozen=True)
class Meme:
    action = "meme"
    address: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "address": self.address}


@dataclass(frozen=True)
class Send:
    action = "send"
    recipient: str = ""
    amount: Decimal = Decimal(0)
    token: str = "SOL"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "amount": f"{self.amount.normalize():f}",
            "fromToken": self.token,
            "recipient": self.recipient,
        }


@dataclass(frozen=True)
class Swap:
    action = "swap"
    from_token: str = ""
    to_token: str = ""
    amount: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "amount": self.amount,
            "fromToken": self.from_token,
            "toToken": self.to_token,
        }


Intent = Union[Greeting, Help, Balance, History, Price, Meme, Send, Swap]

GREETING_PATTERNS = [
    re.compile(
        r"^(?:hi|hello|hey|howdy|greetings|good\s+(?:morning|afternoon|evening)|what'?s\s+up"
        r"|yo|hiya|heya|sup|hola|hi\s+there|hello\s+there)$",
        re.IGNORECASE,
    ),
]

HELP_PATTERNS = [
    re.compile(r"^(?:how|what) can you (?:help|do|assist)", re.IGNORECASE),
    re.compile(r"^what (?:can|could) you (?:help|do|assist)", re.IGNORECASE),
    re.compile(r"^(?:help|assist) me", re.IGNORECASE),
    re.compile(r"^help$", re.IGNORECASE),
    re.compile(r"^what (?:are your|are the) (?:capabilities|functions)", re.IGNORECASE),
    re.compile(r"^(?:tell me|show me) (?:what|how) you can (?:do|help)", re.IGNORECASE),
    re.compile(r"^what (?:do|can) you (?:offer|provide)", re.IGNORECASE),
]

HISTORY_PATTERNS = [
    re.compile(r"(?:show|display|get|check|tell me) (?:my )?(?:transaction|tx|history|recent activity)", re.IGNORECASE),
    re.compile(r"(?:what|how) (?:are|were) (?:my )?(?:recent|last) (?:transactions|activity)", re.IGNORECASE),
    re.compile(r"(?:show|display|get|check) (?:my )?(?:recent|last) (?:transactions|activity)", re.IGNORECASE),
    re.compile(r"(?:transaction|tx) history", re.IGNORECASE),
]

HISTORY_PERIOD_RE = re.compile(
    r"\b(today|yesterday|this week|last week|this month|last month|\d{1,2}/\d{1,2}(?:/\d{2,4})?)\b",
    re.IGNORECASE,
)

BALANCE_PATTERNS = [
    re.compile(r"(?:what'?s|show|get|check|tell me) (?:my )?(?:current )?(?:balance|balances)", re.IGNORECASE),
    re.compile(r"(?:how much|what) (?:do i have|do i own|is in my wallet)", re.IGNORECASE),
    re.compile(r"(?:show|display|list) (?:my )?(?:tokens|holdings)", re.IGNORECASE),
    re.compile(r"(?:check|get) (?:my )?(?:wallet|account)", re.IGNORECASE),
    re.compile(r"^(?:my )?balances?\??$", re.IGNORECASE),
]

MEME_RE = re.compile(
    r"(?:analy[sz]e|check|what (?:is|about)) (?:this )?(?:token|coin|meme coin|meme)"
    rf"\s*(?::|at)?\s+([{_B58}]{{32,44}})",
    re.IGNORECASE,
)

SYMBOL_ALIASES = {
    "BTC": "BTC",
    "BITCOIN": "BTC",
    "ETH": "ETH",
    "ETHEREUM": "ETH",
    "SOL": "SOL",
    "SOLANA": "SOL",
    "USDC": "USDC",
    "USDT": "USDT",
    "BNB": "BNB",
    "BINANCE": "BNB",
    "XRP": "XRP",
    "ADA": "ADA",
    "CARDANO": "ADA",
    "DOGE": "DOGE",
    "DOGECOIN": "DOGE",
    "BONK": "BONK",
    "JUP": "JUP",
    "JUPITER": "JUP",
    "WIF": "WIF",
    "JTO": "JTO",
    "RAY": "RAY",
    "RAYDIUM": "RAY",
    "PYTH": "PYTH",
}

MARKET_OVERVIEW_RE = re.compile(
    r"\b(?:market overview|market summary|crypto market|how(?:'s| is) the market|market today|top coins)\b",
    re.IGNORECASE,
)

PRICE_PATTERNS = [
    re.compile(r"(?:price|value|worth) of (\w+)", re.IGNORECASE),
    re.compile(r"(\w+) (?:price|value)\b", re.IGNORECASE),
    re.compile(r"how much is (\w+)", re.IGNORECASE),
    re.compile(r"(?:what'?s|show|get|check|tell me) (?:the )?(?:current )?(\w+)\??$", re.IGNORECASE),
]

SEND_RE = re.compile(
    rf"\b(?:send|transfer)\s+(\d+(?:\.\d+)?)\s+(\w+)\s+to\s+([{_B58}]{{32,44}})",
    re.IGNORECASE,
)
SEND_KEYWORDS_RE = re.compile(r"\b(?:send|transfer|pay|give)\b", re.IGNORECASE)

SWAP_RE = re.compile(
    r"\b(?:swap|convert)\s+(\d+(?:\.\d+)?)\s+(\w+)\s+(?:to|for|into)\s+(\w+)",
    re.IGNORECASE,
)

Predicate = Callable[[str], Optional[Any]]
Handler = Callable[[str, Any], Optional[Intent]]


def _normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _first_match(patterns: List[re.Pattern], text: str) -> Optional[re.Match]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match
    return None


def _price_symbol(text: str) -> Optional[str]:
    match = _first_match(PRICE_PATTERNS, text)
    if not match:
        return None
    return SYMBOL_ALIASES.get(match.group(1).upper())


class IntentParser:
    def __init__(self) -> None:
        self.rules: List[Tuple[Predicate, Handler]] = [
            (self._match_greeting, lambda text, _: Greeting()),
            (self._match_help, lambda text, _: Help()),
            (self._match_history, self._history),
            (self._match_balance, lambda text, _: Balance()),
            (self._match_meme, self._meme),
            (self._match_price, self._price),
            (self._match_send, self._send),
            (self._match_swap, self._swap),
        ]

    def parse(self, text: str) -> Optional[Intent]:
        """Return the first intent whose predicate matches, or None."""
        normalized = _normalize_text(text)
        if not normalized:
            return None
        for predicate, handler in self.rules:
            match = predicate(normalized)
            if match:
                intent = handler(normalized, match)
                if intent is not None:
                    return intent
        return None

    # Predicates ---------------------------------------------------------

    def _match_greeting(self, text: str):
        return _first_match(GREETING_PATTERNS, text.rstrip("!.?"))

    def _match_help(self, text: str):
        return _first_match(HELP_PATTERNS, text)

    def _match_history(self, text: str):
        return _first_match(HISTORY_PATTERNS, text)

    def _match_balance(self, text: str):
        return _first_match(BALANCE_PATTERNS, text)

    def _match_meme(self, text: str):
        return MEME_RE.search(text)

    def _match_price(self, text: str):
        if MARKET_OVERVIEW_RE.search(text):
            return ("overview", None)
        symbol = _price_symbol(text)
        if symbol:
            return ("symbol", symbol)
        return None

    def _match_send(self, text: str):
        match = SEND_RE.search(text)
        if match:
            return match
        if SEND_KEYWORDS_RE.search(text) and detect_account_address(text):
            return extract_amount_and_token(text)
        return None

    def _match_swap(self, text: str):
        return SWAP_RE.search(text)

    # Handlers -----------------------------------------------------------

    def _history(self, text: str, _match) -> History:
        period = HISTORY_PERIOD_RE.search(text)
        return History(period=period.group(1).lower() if period else None)

    def _meme(self, text: str, match: re.Match) -> Optional[Meme]:
        address = detect_account_address(match.group(1))
        if address is None:
            return None
        return Meme(address=address)

    def _price(self, text: str, match) -> Price:
        kind, symbol = match
        return Price(symbol=symbol if kind == "symbol" else None)

    def _send(self, text: str, match) -> Optional[Send]:
        if isinstance(match, re.Match):
            raw_amount, token, raw_recipient = match.groups()
            try:
                amount = Decimal(raw_amount)
            except InvalidOperation:
                return None
            if amount <= 0 or not has_address_format(raw_recipient):
                return None
            # Undecodable recipients are passed through so the transfer
            # reports them as invalid instead of the turn falling back to help.
            recipient = detect_account_address(raw_recipient) or raw_recipient
            return Send(recipient=recipient, amount=amount, token=token.upper())

        recipient = detect_account_address(text)
        if recipient is None:
            return None
        return Send(recipient=recipient, amount=match.amount, token=match.token)

    def _swap(self, text: str, match: re.Match) -> Swap:
        amount, from_token, to_token = match.groups()
        return Swap(from_token=from_token.upper(), to_token=to_token.upper(), amount=amount)


_default_parser = IntentParser()


def parse_intent(text: str) -> Optional[Intent]:
    return _default_parser.parse(text)
