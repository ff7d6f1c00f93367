from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ChatResponse(BaseModel):
    message: str = Field(description="Assistant reply text")
    intent: Optional[Dict[str, Any]] = Field(default=None, description="Classified intent for the turn")


class SwapEstimateResponse(BaseModel):
    from_amount: str = Field(description="Amount being sold")
    to_amount: Optional[str] = Field(default=None, description="Expected amount received")
    price_impact: Optional[float] = Field(default=None, description="Aggregator price impact in percent")
    usd_value: Optional[str] = Field(default=None, description="USD value of the amount being sold")
    trend: str = Field(description="24h trend of the output token: up, down or stable")
    source: str = Field(description="Where to_amount came from: jupiter or prices")


class ListingsResponse(BaseModel):
    coins: List[Dict[str, Any]] = Field(default_factory=list, description="Top coins by market cap")
    count: int = Field(default=0, description="Number of coins returned")
