from decimal import Decimal

from walletchat.config import Settings


def test_defaults_match_service_constants(monkeypatch):
    """Defaults carry the fee, reserve and retry constants the services rely on."""

    monkeypatch.delenv("SOLANA_HELIUS_API_KEY", raising=False)
    settings = Settings(_env_file=None)

    assert settings.network_fee_sol == Decimal("0.000005")
    assert settings.min_reserve_sol == Decimal("0.001")
    assert settings.swap_fee_reserve_sol == Decimal("0.01")
    assert settings.rpc_max_failures == 3
    assert settings.rpc_failure_reset_seconds == 60
    assert settings.rpc_cache_ttl_seconds == 20
    assert settings.wallet_cache_ttl_seconds == 5


def test_helius_endpoint_is_prepended_when_key_set(monkeypatch):
    """A Helius key puts the Helius RPC first in the endpoint list."""

    monkeypatch.setenv("SOLANA_HELIUS_API_KEY", "secret")
    settings = Settings(_env_file=None)

    endpoints = settings.rpc_endpoints()
    assert settings.has_helius_key
    assert endpoints[0] == "https://mainnet.helius-rpc.com/?api-key=secret"
    assert "https://api.mainnet-beta.solana.com" in endpoints


def test_rpc_endpoints_are_deduplicated(monkeypatch):
    """Repeated URLs in SOLANA_RPC_URLS are only used once."""

    monkeypatch.delenv("SOLANA_HELIUS_API_KEY", raising=False)
    monkeypatch.setenv("SOLANA_RPC_URLS", '["https://a.example", "https://b.example", "https://a.example"]')
    settings = Settings(_env_file=None)

    assert settings.rpc_endpoints() == ["https://a.example", "https://b.example"]


def test_decimal_settings_parse_from_env(monkeypatch):
    monkeypatch.setenv("MIN_RESERVE_SOL", "0.002")
    settings = Settings(_env_file=None)

    assert settings.min_reserve_sol == Decimal("0.002")
