from decimal import Decimal
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Solana RPC
    solana_rpc_urls: List[str] = Field(
        default_factory=lambda: [
            "https://api.mainnet-beta.solana.com",
            "https://rpc.ankr.com/solana",
            "https://solana-api.projectserum.com",
        ],
        description="Ordered RPC endpoints; the Helius RPC is prepended when a key is set",
    )
    solana_rpc_timeout_seconds: float = Field(default=8.0, description="Per-call RPC timeout")
    solana_commitment: str = Field(default="confirmed", description="Commitment level for reads")
    rpc_max_failures: int = Field(default=3, description="Failures before an endpoint is skipped")
    rpc_failure_reset_seconds: float = Field(
        default=60.0,
        description="Idle window after which endpoint failure counters reset",
    )
    rpc_cache_ttl_seconds: float = Field(default=20.0, description="RPC response cache TTL")
    rpc_backoff_initial_seconds: float = Field(default=0.2, description="First backoff delay")
    rpc_backoff_max_seconds: float = Field(default=2.0, description="Backoff ceiling")
    rpc_unreliable_for_tokens: List[str] = Field(
        default_factory=lambda: ["api.mainnet-beta.solana.com"],
        description="Endpoint substrings skipped for token account enumeration",
    )

    # Helius (fast indexed token holdings)
    solana_helius_api_key: str = Field(default="", description="Helius API key")
    helius_rpc_base_url: str = Field(
        default="https://mainnet.helius-rpc.com",
        description="Helius RPC base URL",
    )

    # Jupiter swap aggregator
    jupiter_quote_api_url: str = Field(
        default="https://quote-api.jup.ag/v6",
        description="Jupiter quote/swap API base URL",
    )
    swap_slippage_bps: int = Field(default=50, description="Default swap slippage in bps")

    # Pricing providers
    coingecko_api_key: str = Field(default="", description="Coingecko API key")
    coinmarketcap_api_key: str = Field(default="", description="CoinMarketCap API key")
    dexscreener_base_url: str = Field(
        default="https://api.dexscreener.com/latest/dex",
        description="DexScreener API base URL",
    )
    http_timeout_seconds: float = Field(default=5.0, description="Outbound HTTP timeout")
    price_cache_ttl_seconds: float = Field(default=60.0, description="Spot price cache TTL")
    meme_cache_ttl_seconds: float = Field(default=300.0, description="Meme analysis cache TTL")

    # Wallet data
    wallet_cache_ttl_seconds: float = Field(default=5.0, description="Wallet snapshot cache TTL")
    token_cache_ttl_seconds: float = Field(default=15.0, description="Token list cache TTL")
    wallet_max_retries: int = Field(default=3, description="Snapshot fetch attempts")
    wallet_retry_delay_seconds: float = Field(
        default=1.0,
        description="Linear backoff step between snapshot attempts",
    )

    # Transfers
    network_fee_sol: Decimal = Field(default=Decimal("0.000005"), description="Flat network fee")
    min_reserve_sol: Decimal = Field(
        default=Decimal("0.001"),
        description="Native balance that must remain after a transfer",
    )
    confirmation_timeout_seconds: float = Field(default=30.0, description="Confirmation polling bound")
    confirmation_poll_interval_seconds: float = Field(default=1.0, description="Initial poll interval")

    # Swaps
    swap_fee_reserve_sol: Decimal = Field(
        default=Decimal("0.01"),
        description="SOL held back for fees when swapping from SOL",
    )
    swap_settle_seconds: float = Field(
        default=2.0,
        description="Delay before re-reading balances after a swap",
    )

    explorer_base_url: str = Field(
        default="https://explorer.solana.com/tx/",
        description="Block explorer transaction URL prefix",
    )

    @property
    def has_helius_key(self) -> bool:
        return bool(self.solana_helius_api_key)

    @property
    def has_coingecko_key(self) -> bool:
        return bool(self.coingecko_api_key)

    @property
    def has_coinmarketcap_key(self) -> bool:
        return bool(self.coinmarketcap_api_key)

    @property
    def helius_rpc_url(self) -> str:
        if not self.has_helius_key:
            return ""
        return f"{self.helius_rpc_base_url.rstrip('/')}/?api-key={self.solana_helius_api_key}"

    def rpc_endpoints(self) -> List[str]:
        """Endpoint list in priority order, without duplicates."""

        endpoints: List[str] = []
        if self.helius_rpc_url:
            endpoints.append(self.helius_rpc_url)
        for url in self.solana_rpc_urls:
            if url and url not in endpoints:
                endpoints.append(url)
        return endpoints


settings = Settings()
