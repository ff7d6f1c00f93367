from typing import Optional
from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str = Field(description="User message text")
    address: Optional[str] = Field(default=None, description="Connected wallet address, if any")


class SwapEstimateRequest(BaseModel):
    from_token: str = Field(description="Symbol of the token being sold")
    to_token: str = Field(description="Symbol of the token being bought")
    amount: str = Field(description="Amount of from_token, as a decimal string")
