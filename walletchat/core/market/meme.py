"""
Meme-coin analysis from DEX pair data.

Sentiment, prediction and confidence are fixed-threshold heuristics over
24h price change, volume and liquidity. They are not forecasts and every
reply says so.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from ...cache import TTLCache
from ...providers.dexscreener import DexScreenerProvider

logger = logging.getLogger(__name__)

BULLISH = "bullish"
BEARISH = "bearish"
NEUTRAL = "neutral"


@dataclass(frozen=True)
class Prediction:
    short_term: str
    long_term: str
    confidence: int


@dataclass(frozen=True)
class MemeCoinAnalysis:
    mint: str
    name: str
    symbol: str
    price: Decimal
    price_change_24h: Decimal
    volume_24h: Decimal
    liquidity: Decimal
    market_cap: Decimal
    sentiment: str
    prediction: Prediction


def _price_change_score(change: float) -> int:
    if change > 10:
        return 2
    if change > 0:
        return 1
    if change < -10:
        return -2
    if change < 0:
        return -1
    return 0


def _label(score: int) -> str:
    if score > 0:
        return BULLISH
    if score < 0:
        return BEARISH
    return NEUTRAL


def calculate_sentiment(price_change: float, volume_24h: float, liquidity: float) -> str:
    score = _price_change_score(price_change)

    if liquidity > 0:
        ratio = volume_24h / liquidity
        score += 1 if ratio > 1 else -1 if ratio < 0.1 else 0
    elif volume_24h > 0:
        score += 1

    score += 1 if liquidity > 1_000_000 else -1 if liquidity < 100_000 else 0

    if score > 1:
        return BULLISH
    if score < -1:
        return BEARISH
    return NEUTRAL


def generate_prediction(price_change: float, volume_24h: float, liquidity: float) -> Prediction:
    short_term = _price_change_score(price_change)
    short_term += 1 if volume_24h > liquidity else -1 if volume_24h < liquidity * 0.1 else 0

    if liquidity > 1_000_000:
        long_term = 2
    elif liquidity > 100_000:
        long_term = 1
    elif liquidity < 10_000:
        long_term = -2
    else:
        long_term = -1
    long_term += 1 if volume_24h > 1_000_000 else -1 if volume_24h < 100_000 else 0

    confidence = min(abs(short_term + long_term) * 20, 100)
    return Prediction(short_term=_label(short_term), long_term=_label(long_term), confidence=confidence)


def _millions(value: Decimal) -> str:
    return f"${value / Decimal(1_000_000):,.2f}M"


class MemeCoinAnalyzer:
    def __init__(self, dexscreener: DexScreenerProvider, cache: Optional[TTLCache] = None):
        self.dexscreener = dexscreener
        self.cache = cache or TTLCache(default_ttl=300.0)

    async def analyze(self, mint: str) -> Optional[MemeCoinAnalysis]:
        cached = self.cache.get(mint)
        if cached is not None:
            return cached

        try:
            pair = await self.dexscreener.get_token_pair(mint)
        except (httpx.HTTPError, ValueError, ArithmeticError) as e:
            logger.warning("DexScreener lookup failed for %s: %s", mint, e)
            return self.cache.get_stale(mint)
        if pair is None:
            return None

        change = float(pair["price_change_24h"])
        volume = float(pair["volume_24h"])
        liquidity = float(pair["liquidity"])
        analysis = MemeCoinAnalysis(
            mint=mint,
            name=pair["name"],
            symbol=pair["symbol"],
            price=pair["price"],
            price_change_24h=pair["price_change_24h"],
            volume_24h=pair["volume_24h"],
            liquidity=pair["liquidity"],
            market_cap=pair["market_cap"],
            sentiment=calculate_sentiment(change, volume, liquidity),
            prediction=generate_prediction(change, volume, liquidity),
        )
        self.cache.set(mint, analysis)
        return analysis

    async def get_analysis_text(self, mint: str) -> str:
        data = await self.analyze(mint)
        if data is None:
            return (
                f"Sorry, I couldn't analyze the token at address {mint}. "
                "Please check the address and try again."
            )

        return (
            f"{data.name} ({data.symbol}) Analysis\n\n"
            f"Current Price: ${data.price:f}\n"
            f"24h Change: {data.price_change_24h:.2f}%\n"
            f"Market Cap: {_millions(data.market_cap)}\n"
            f"24h Volume: {_millions(data.volume_24h)}\n"
            f"Liquidity: {_millions(data.liquidity)}\n\n"
            f"Sentiment: {data.sentiment.upper()}\n"
            f"Short-term: {data.prediction.short_term.upper()}\n"
            f"Long-term: {data.prediction.long_term.upper()}\n"
            f"Confidence: {data.prediction.confidence}%\n\n"
            "These signals are simple threshold heuristics over price change, volume "
            "and liquidity, not a forecast or financial advice."
        )
