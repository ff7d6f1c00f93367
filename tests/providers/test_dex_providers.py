from decimal import Decimal

import httpx
import pytest

from walletchat.providers.dexscreener import DexScreenerProvider
from walletchat.providers.jupiter import JupiterQuoteError, JupiterSwapProvider

MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


@pytest.fixture
def serve(monkeypatch):
    """Route every httpx.AsyncClient created by the providers to ``handler``."""

    real_client = httpx.AsyncClient

    def install(handler):
        def factory(**kwargs):
            return real_client(transport=httpx.MockTransport(handler), **kwargs)

        monkeypatch.setattr(httpx, "AsyncClient", factory)

    return install


@pytest.mark.asyncio
async def test_dexscreener_picks_most_liquid_solana_pair(serve):
    def handler(request):
        assert request.url.path.endswith(f"/tokens/{MINT}")
        return httpx.Response(
            200,
            json={
                "pairs": [
                    {"chainId": "ethereum", "liquidity": {"usd": 9_000_000}, "baseToken": {"symbol": "WRONG"}},
                    {
                        "chainId": "solana",
                        "dexId": "orca",
                        "liquidity": {"usd": 50_000},
                        "baseToken": {"name": "Bonk", "symbol": "BONK"},
                        "priceUsd": "0.00002",
                    },
                    {
                        "chainId": "solana",
                        "dexId": "raydium",
                        "pairAddress": "Pair1",
                        "liquidity": {"usd": 1_500_000},
                        "baseToken": {"name": "Bonk", "symbol": "BONK"},
                        "priceUsd": "0.00002345",
                        "priceChange": {"h24": 15.5},
                        "volume": {"h24": 2_000_000},
                        "fdv": 1_500_000_000,
                    },
                ]
            },
        )

    serve(handler)
    pair = await DexScreenerProvider(base_url="https://dex.test/latest/dex").get_token_pair(MINT)

    assert pair["dex"] == "raydium"
    assert pair["symbol"] == "BONK"
    assert pair["price"] == Decimal("0.00002345")
    assert pair["liquidity"] == Decimal("1500000")
    assert pair["market_cap"] == Decimal("1500000000")


@pytest.mark.asyncio
async def test_dexscreener_without_pairs(serve):
    serve(lambda request: httpx.Response(200, json={"pairs": None}))
    assert await DexScreenerProvider(base_url="https://dex.test").get_token_pair(MINT) is None


@pytest.mark.asyncio
async def test_jupiter_quote(serve):
    seen = {}

    def handler(request):
        seen.update(dict(request.url.params))
        return httpx.Response(
            200,
            json={
                "inputMint": SOL_MINT,
                "outputMint": USDC_MINT,
                "inAmount": "100000000",
                "outAmount": "14500000",
                "otherAmountThreshold": "14427500",
                "priceImpactPct": "0.01",
            },
        )

    serve(handler)
    quote = await JupiterSwapProvider(base_url="https://jup.test/v6").get_quote(
        SOL_MINT, USDC_MINT, 100_000_000, slippage_bps=50
    )

    assert quote.out_amount == 14_500_000
    assert quote.other_amount_threshold == 14_427_500
    assert quote.price_impact_pct == 0.01
    assert quote.is_valid
    assert seen["amount"] == "100000000"
    assert seen["slippageBps"] == "50"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500),
        httpx.Response(200, json={"error": "No routes found"}),
        httpx.Response(200, json={"inputMint": SOL_MINT}),
    ],
)
async def test_jupiter_quote_failures(serve, response):
    serve(lambda request: response)

    with pytest.raises(JupiterQuoteError):
        await JupiterSwapProvider(base_url="https://jup.test/v6").get_quote(SOL_MINT, USDC_MINT, 1000)


@pytest.mark.asyncio
async def test_jupiter_rejects_non_positive_amount():
    with pytest.raises(JupiterQuoteError):
        await JupiterSwapProvider(base_url="https://jup.test/v6").get_quote(SOL_MINT, USDC_MINT, 0)
