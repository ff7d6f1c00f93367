from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from walletchat.cache import TTLCache
from walletchat.core.market.meme import (
    BEARISH,
    BULLISH,
    NEUTRAL,
    MemeCoinAnalyzer,
    calculate_sentiment,
    generate_prediction,
)

MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"

PAIR = {
    "name": "Bonk",
    "symbol": "BONK",
    "price": Decimal("0.00002345"),
    "price_change_24h": Decimal("15.5"),
    "volume_24h": Decimal("2000000"),
    "liquidity": Decimal("1500000"),
    "market_cap": Decimal("1500000000"),
}


@pytest.mark.parametrize(
    "change,volume,liquidity,expected",
    [
        (15, 2_000_000, 1_500_000, BULLISH),
        (-15, 5_000, 90_000, BEARISH),
        (0.5, 50_000, 200_000, NEUTRAL),
        (5, 100, 0, NEUTRAL),
    ],
)
def test_sentiment_thresholds(change, volume, liquidity, expected):
    assert calculate_sentiment(change, volume, liquidity) == expected


def test_prediction_for_a_liquid_rising_token():
    prediction = generate_prediction(15, 2_000_000, 1_500_000)
    assert (prediction.short_term, prediction.long_term) == (BULLISH, BULLISH)
    assert prediction.confidence == 100


def test_prediction_for_an_illiquid_token():
    prediction = generate_prediction(-5, 50_000, 5_000)
    assert prediction.short_term == NEUTRAL
    assert prediction.long_term == BEARISH
    assert prediction.confidence == 60


@pytest.mark.asyncio
async def test_analysis_text():
    dexscreener = MagicMock(get_token_pair=AsyncMock(return_value=PAIR))
    analyzer = MemeCoinAnalyzer(dexscreener)

    text = await analyzer.get_analysis_text(MINT)

    assert text.startswith("Bonk (BONK) Analysis")
    assert "Current Price: $0.00002345" in text
    assert "24h Change: 15.50%" in text
    assert "Market Cap: $1,500.00M" in text
    assert "Liquidity: $1.50M" in text
    assert "Sentiment: BULLISH" in text
    assert "Confidence: 100%" in text
    assert "not a forecast or financial advice" in text


@pytest.mark.asyncio
async def test_analysis_is_cached():
    dexscreener = MagicMock(get_token_pair=AsyncMock(return_value=PAIR))
    analyzer = MemeCoinAnalyzer(dexscreener)

    first = await analyzer.analyze(MINT)
    second = await analyzer.analyze(MINT)

    assert first is second
    dexscreener.get_token_pair.assert_awaited_once()


@pytest.mark.asyncio
async def test_stale_analysis_served_when_dexscreener_fails():
    now = [0.0]
    dexscreener = MagicMock(get_token_pair=AsyncMock(return_value=PAIR))
    analyzer = MemeCoinAnalyzer(dexscreener, TTLCache(default_ttl=300, clock=lambda: now[0]))
    await analyzer.analyze(MINT)

    now[0] = 1000.0
    dexscreener.get_token_pair.side_effect = httpx.ConnectError("down")

    analysis = await analyzer.analyze(MINT)
    assert analysis is not None
    assert analysis.symbol == "BONK"


@pytest.mark.asyncio
async def test_unknown_token():
    dexscreener = MagicMock(get_token_pair=AsyncMock(return_value=None))
    text = await MemeCoinAnalyzer(dexscreener).get_analysis_text(MINT)
    assert text.startswith(f"Sorry, I couldn't analyze the token at address {MINT}")
