from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 5

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class TokenIndexerProvider(Provider):
    """Provider returning enriched token holdings for a wallet in one call"""

    @abstractmethod
    async def get_token_holdings(self, address: str) -> List[Dict[str, Any]]:
        """Fungible holdings with symbol, name, logo, amount and decimals"""
        pass


class PriceProvider(Provider):
    """Provider for spot prices and market-wide data"""

    @abstractmethod
    async def get_spot_price(self, symbol: str) -> Optional[Decimal]:
        """Current USD price for a ticker symbol, or None if unknown"""
        pass

    @abstractmethod
    async def get_listings(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Top coins by market cap"""
        pass

    @abstractmethod
    async def get_global_metrics(self) -> Dict[str, Any]:
        """Total market cap, volume and dominance figures"""
        pass
