from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..dependencies import Services, get_services

router = APIRouter()


@router.get("/healthz")
async def health_check(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Health check endpoint that verifies provider and RPC endpoint status"""

    provider_status = {"coingecko": await services.market_data.coingecko.health_check()}
    indexer = services.wallet_data.token_indexer
    if indexer is not None:
        provider_status[indexer.name] = await indexer.health_check()

    manager = services.connections
    endpoints = [
        {"endpoint": connection.label, "failures": manager.failure_count(connection)}
        for connection in manager.connections
    ]
    exhausted = sum(1 for e in endpoints if e["failures"] >= manager.max_failures)

    available_providers = sum(
        1 for status in provider_status.values()
        if status["status"] in ("healthy", "configured")
    )

    return {
        "status": "healthy" if exhausted < len(endpoints) else "degraded",
        "providers": provider_status,
        "available_providers": available_providers,
        "rpc_endpoints": endpoints,
    }
