"""
POST /token-pools → TokenPoolRequest → TokenPoolResponse
"""
from typing import Annotated

from pydantic import BaseModel, Field, field_validator

from leaderboard_engine.services.sequencing import Token


class TokenIn(BaseModel):
    id: Annotated[str, Field(min_length=1, max_length=128)]
    symbol: str = ""
    name: str = ""
    market_cap: Annotated[float, Field(ge=0, description="Market cap in USD.")]

    def to_token(self) -> Token:
        return Token(id=self.id, market_cap=self.market_cap, symbol=self.symbol, name=self.name)


class TokenPoolRequest(BaseModel):
    snapshot_id: Annotated[str, Field(min_length=1, max_length=128)]
    tokens: Annotated[list[TokenIn], Field(min_length=2)]

    @field_validator("tokens")
    @classmethod
    def unique_ids(cls, v: list[TokenIn]) -> list[TokenIn]:
        ids = [t.id for t in v]
        if len(set(ids)) != len(ids):
            raise ValueError("token ids must be unique within a snapshot")
        return v


class TokenPoolResponse(BaseModel):
    snapshot_id: str
    token_count: int
    created: bool = Field(description="False when an identical snapshot was already registered.")
