"""
Prize pool schemas.

PUT  /prizes/{period}          → PrizePoolConfigRequest → PrizeStatusResponse
GET  /prizes/{period}          → PrizeStatusResponse
POST /prizes/{period}/finalize → FinalizeRequest        → FinalizeResponse

Amounts are USDC decimals and serialize as strings.
"""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field


class PrizePoolConfigRequest(BaseModel):
    total_prize_pool: Annotated[Decimal, Field(ge=0, max_digits=18, decimal_places=6)]
    sponsor: Optional[str] = Field(default=None, max_length=128)


class FinalizeRequest(BaseModel):
    next_prize_pool: Optional[Annotated[Decimal, Field(ge=0, max_digits=18, decimal_places=6)]] = Field(
        default=None,
        description="If set, configures the following week's pool in the same call.",
    )
    next_sponsor: Optional[str] = Field(default=None, max_length=128)


class PayoutOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    user_id: str
    score: int
    amount: Decimal


class PrizeStatusResponse(BaseModel):
    period: str
    status: str = Field(description='"unconfigured" | "active" | "completed"')
    total_prize_pool: Optional[Decimal] = None
    sponsor: Optional[str] = None
    finalized_at: Optional[datetime] = None
    distribution: Optional[list[PayoutOut]] = None


class FinalizeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period: str
    status: str
    total_prize_pool: Decimal
    finalized_at: datetime
    already_finalized: bool
    distribution: list[PayoutOut]
