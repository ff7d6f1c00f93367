from .requests import ChatRequest, SwapEstimateRequest
from .responses import ChatResponse, ListingsResponse, SwapEstimateResponse

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ListingsResponse",
    "SwapEstimateRequest",
    "SwapEstimateResponse",
]
