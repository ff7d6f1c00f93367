from fastapi import APIRouter, Depends

from ..core.wallet.signer import ReadOnlyWallet
from ..dependencies import Services, get_services
from ..types import ChatRequest, ChatResponse

router = APIRouter()


@router.post("/chat")
async def chat_endpoint(request: ChatRequest, services: Services = Depends(get_services)) -> ChatResponse:
    """One chat turn against the wallet at ``address``.

    Sessions over HTTP are read-only: balance, history and market queries
    work, while sends and swaps report that a signing wallet is required.
    """

    wallet = ReadOnlyWallet(request.address)
    response = await services.assistant.process_request(request.message, wallet)
    return ChatResponse(**response.to_dict())
