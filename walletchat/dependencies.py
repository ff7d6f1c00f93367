"""Composition root: builds the service graph from settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .cache import TTLCache
from .config import Settings, settings as default_settings
from .core.assistant import WalletAssistant
from .core.connection import ConnectionManager
from .core.market.market_data import MarketDataService
from .core.market.meme import MemeCoinAnalyzer
from .core.recovery.strategies import RetryConfig, RetryStrategy
from .core.swap.service import SwapService
from .core.transfer.service import TransferService
from .core.wallet.data_provider import WalletDataProvider
from .core.wallet.history import TransactionHistoryService
from .providers.coingecko import CoingeckoProvider
from .providers.coinmarketcap import CoinMarketCapProvider
from .providers.dexscreener import DexScreenerProvider
from .providers.helius import HeliusTokenProvider
from .providers.jupiter import JupiterSwapProvider
from .services.prices import PriceService


@dataclass
class Services:
    settings: Settings
    connections: ConnectionManager
    prices: PriceService
    wallet_data: WalletDataProvider
    market_data: MarketDataService
    swaps: SwapService
    assistant: WalletAssistant

    async def close(self) -> None:
        await self.connections.close()


def build_services(config: Optional[Settings] = None) -> Services:
    config = config or default_settings

    connections = ConnectionManager.from_settings(config)

    coingecko = CoingeckoProvider(api_key=config.coingecko_api_key, timeout_s=config.http_timeout_seconds)
    # CoinMarketCap first; it reports not-ready without a key and is skipped
    coinmarketcap = CoinMarketCapProvider(
        api_key=config.coinmarketcap_api_key,
        timeout_s=config.http_timeout_seconds,
    )
    prices = PriceService(
        [coinmarketcap, coingecko],
        TTLCache(default_ttl=config.price_cache_ttl_seconds),
    )

    wallet_data = WalletDataProvider(
        connections,
        prices,
        HeliusTokenProvider(config.solana_helius_api_key, config.helius_rpc_base_url)
        if config.has_helius_key
        else None,
        wallet_cache=TTLCache(default_ttl=config.wallet_cache_ttl_seconds),
        token_cache=TTLCache(default_ttl=config.token_cache_ttl_seconds),
        retry=RetryStrategy(
            RetryConfig(
                max_attempts=config.wallet_max_retries,
                initial_delay_seconds=config.wallet_retry_delay_seconds,
                max_delay_seconds=config.wallet_retry_delay_seconds * config.wallet_max_retries,
                linear=True,
            )
        ),
    )

    market_data = MarketDataService(
        coingecko,
        prices,
        TTLCache(default_ttl=config.price_cache_ttl_seconds),
    )

    transfers = TransferService(
        connections,
        network_fee=config.network_fee_sol,
        min_reserve=config.min_reserve_sol,
        explorer_base_url=config.explorer_base_url,
        confirmation_timeout_s=config.confirmation_timeout_seconds,
        poll_interval_s=config.confirmation_poll_interval_seconds,
    )

    swaps = SwapService(
        wallet_data,
        JupiterSwapProvider(base_url=config.jupiter_quote_api_url, timeout_s=config.http_timeout_seconds),
        connections,
        prices,
        market_data,
        fee_reserve=config.swap_fee_reserve_sol,
        settle_seconds=config.swap_settle_seconds,
        explorer_base_url=config.explorer_base_url,
        confirmation_timeout_s=config.confirmation_timeout_seconds,
        poll_interval_s=config.confirmation_poll_interval_seconds,
    )

    assistant = WalletAssistant(
        wallet_data=wallet_data,
        transfers=transfers,
        swaps=swaps,
        market_data=market_data,
        meme_analyzer=MemeCoinAnalyzer(
            DexScreenerProvider(
                base_url=config.dexscreener_base_url,
                timeout_s=config.http_timeout_seconds,
            ),
            TTLCache(default_ttl=config.meme_cache_ttl_seconds),
        ),
        history=TransactionHistoryService(connections),
    )

    return Services(
        settings=config,
        connections=connections,
        prices=prices,
        wallet_data=wallet_data,
        market_data=market_data,
        swaps=swaps,
        assistant=assistant,
    )


_services: Optional[Services] = None


def get_services() -> Services:
    """Get or create the process-wide service graph used by the API."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


async def shutdown_services() -> None:
    global _services
    if _services is not None:
        await _services.close()
        _services = None
