"""
Read-side schemas.

GET /leaderboard/{period}                      → LeaderboardResponse
GET /leaderboard/{period}/users/{user_id}      → StandingResponse
GET /leaderboard/{period}/users/{user_id}/stats → WeeklyStatsResponse
GET /positions/{board}/{user_id}               → PositionChangeResponse
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class LeaderboardRowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    user_id: str
    score: int
    display_name: str
    avatar_url: Optional[str] = None


class LeaderboardResponse(BaseModel):
    period: str
    start: int
    end: int
    entries: list[LeaderboardRowOut]


class StandingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period: str
    user_id: str
    rank: int
    score: int


class WeeklyStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period: str
    user_id: str
    cumulative_score: int = Field(description="Ranking metric: sum of streaks this week.")
    best_streak: int
    run_count: int
    engagement_score: int = Field(description="best_streak * 10 + run_count. Display only.")
    last_updated: datetime


class PositionChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    changed: bool
    previous_rank: Optional[int] = None
    current_rank: Optional[int] = None
    direction: Optional[Literal["up", "down"]] = None
    rank_change: int = 0
