from fastapi import APIRouter, Depends, HTTPException

from ..core.models import SwapRequest
from ..dependencies import Services, get_services
from ..types import SwapEstimateRequest, SwapEstimateResponse

router = APIRouter()


@router.post("/swap/estimate")
async def swap_estimate(
    request: SwapEstimateRequest,
    services: Services = Depends(get_services),
) -> SwapEstimateResponse:
    """Preview a swap without signing or sending anything."""

    try:
        estimate = await services.swaps.get_swap_estimate(
            SwapRequest(from_token=request.from_token, to_token=request.to_token, amount=request.amount)
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SwapEstimateResponse(**estimate.to_dict())
