from decimal import Decimal

import pytest

from walletchat.core.intents import (
    Balance,
    Greeting,
    Help,
    History,
    IntentParser,
    Meme,
    Price,
    Send,
    Swap,
    parse_intent,
)

ADDRESS = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


@pytest.fixture
def parser():
    return IntentParser()


def test_send_with_explicit_grammar(parser):
    intent = parser.parse(f"send 0.1 SOL to {ADDRESS}")

    assert intent == Send(recipient=ADDRESS, amount=Decimal("0.1"), token="SOL")
    assert intent.to_dict() == {
        "action": "send",
        "amount": "0.1",
        "fromToken": "SOL",
        "recipient": ADDRESS,
    }


def test_send_fallback_finds_amount_and_address(parser):
    intent = parser.parse(f"please pay my friend 2.5 usdc, wallet {ADDRESS}.")
    assert intent == Send(recipient=ADDRESS, amount=Decimal("2.5"), token="USDC")


def test_send_passes_undecodable_recipient_through(parser):
    bogus = "z" * 44
    intent = parser.parse(f"transfer 1 SOL to {bogus}")
    assert intent == Send(recipient=bogus, amount=Decimal("1"), token="SOL")


def test_send_without_amount_is_not_an_intent(parser):
    assert parser.parse(f"give {ADDRESS}") is None


def test_swap(parser):
    intent = parser.parse("Swap 0.5 sol for usdc")
    assert intent == Swap(from_token="SOL", to_token="USDC", amount="0.5")
    assert intent.to_dict() == {"action": "swap", "amount": "0.5", "fromToken": "SOL", "toToken": "USDC"}


@pytest.mark.parametrize("text", ["hi", "Hello!", "good   morning", "what's up?"])
def test_greetings(parser, text):
    assert parser.parse(text) == Greeting()


@pytest.mark.parametrize("text", ["help", "what can you do?", "how can you help me"])
def test_help(parser, text):
    intent = parser.parse(text)
    assert intent == Help()
    assert intent.to_dict() == {"action": "help_query"}


def test_history_with_and_without_period(parser):
    assert parser.parse("show my transaction history") == History()
    assert parser.parse("show my transaction history for last week") == History(period="last week")
    assert parser.parse("check my recent transactions from 3/14/2024") == History(period="3/14/2024")


@pytest.mark.parametrize("text", ["what's my balance?", "how much do I have", "show my tokens", "balance"])
def test_balance(parser, text):
    assert parser.parse(text) == Balance()


def test_meme_analysis(parser):
    assert parser.parse(f"analyze this token: {MINT}") == Meme(address=MINT)


@pytest.mark.parametrize(
    "text,symbol",
    [
        ("what's the price of bitcoin?", "BTC"),
        ("SOL price", "SOL"),
        ("how much is eth", "ETH"),
        ("check bonk", "BONK"),
    ],
)
def test_price(parser, text, symbol):
    assert parser.parse(text) == Price(symbol=symbol)


def test_market_overview(parser):
    intent = parser.parse("how's the market today?")
    assert intent == Price(symbol=None)
    assert intent.to_dict() == {"action": "price", "symbol": None}


def test_unknown_words_are_not_prices(parser):
    assert parser.parse("what's the weather") is None


def test_first_matching_rule_wins(parser):
    assert parser.parse("help me") == Help()
    # history is checked before price
    assert parser.parse("show my transaction history for SOL price changes") == History()
    # meme is checked before send
    assert isinstance(parser.parse(f"check this token {MINT} before I send"), Meme)


def test_rules_are_ordered():
    names = [predicate.__name__ for predicate, _ in IntentParser().rules]
    assert names == [
        "_match_greeting",
        "_match_help",
        "_match_history",
        "_match_balance",
        "_match_meme",
        "_match_price",
        "_match_send",
        "_match_swap",
    ]


@pytest.mark.parametrize("text", ["", "   ", "blah blah"])
def test_no_intent(text):
    assert parse_intent(text) is None
