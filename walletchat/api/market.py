from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import Services, get_services
from ..types import ListingsResponse

router = APIRouter(prefix="/market")


def _jsonable(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: (str(value) if value is not None and not isinstance(value, (str, int, float, bool)) else value)
            for key, value in data.items()}


@router.get("/global")
async def global_metrics(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Total market cap, volume and dominance figures."""

    metrics = await services.prices.get_global_metrics()
    if not metrics:
        raise HTTPException(status_code=503, detail="Market data unavailable")
    return _jsonable(metrics)


@router.get("/listings")
async def listings(
    limit: int = Query(default=10, ge=1, le=100),
    services: Services = Depends(get_services),
) -> ListingsResponse:
    coins = await services.prices.get_listings(limit)
    return ListingsResponse(coins=[_jsonable(c) for c in coins], count=len(coins))
