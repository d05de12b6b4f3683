"""
Leaderboard router.

GET /leaderboard/{period}                        — ranked slice
GET /leaderboard/{period}/users/{user_id}        — one user's rank and score
GET /leaderboard/{period}/users/{user_id}/stats  — weekly running totals

`period` is "global", "weekly:<YYYY-MM-DD>" or "weekly" (current window).
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from leaderboard_engine.core.errors import InvalidRangeError, StandingNotFoundError
from leaderboard_engine.routers.deps import get_engine
from leaderboard_engine.schemas.common import ErrorResponse
from leaderboard_engine.schemas.leaderboard import (
    LeaderboardResponse,
    LeaderboardRowOut,
    StandingResponse,
    WeeklyStatsResponse,
)
from leaderboard_engine.services.engine import LeaderboardEngine

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])

MAX_PAGE = 100


@router.get(
    "/{period}",
    response_model=LeaderboardResponse,
    summary="Ranked entries for a period",
    responses={
        422: {"model": ErrorResponse, "description": "Unknown period or bad range."},
        503: {"model": ErrorResponse, "description": "Leaderboard temporarily unavailable."},
    },
)
def get_leaderboard(
    period: str,
    start: int = Query(default=1, ge=1, description="First rank (1-indexed, inclusive)."),
    end: int = Query(default=25, ge=1, description="Last rank (inclusive)."),
    engine: LeaderboardEngine = Depends(get_engine),
):
    """Ties are broken by user id ascending, so ranks are always 1..N."""
    if end < start or end - start + 1 > MAX_PAGE:
        raise InvalidRangeError(start, end)
    key = engine.resolve_period(period)
    rows = engine.get_leaderboard(key, start, end)
    return LeaderboardResponse(
        period=key,
        start=start,
        end=end,
        entries=[LeaderboardRowOut.model_validate(r) for r in rows],
    )


@router.get(
    "/{period}/users/{user_id}",
    response_model=StandingResponse,
    summary="A user's standing in a period",
    responses={404: {"model": ErrorResponse, "description": "User has no entry."}},
)
def get_user_standing(
    period: str,
    user_id: str,
    engine: LeaderboardEngine = Depends(get_engine),
):
    standing = engine.get_user_standing(period, user_id)
    if standing is None:
        raise StandingNotFoundError(engine.resolve_period(period), user_id)
    return StandingResponse.model_validate(standing)


@router.get(
    "/{period}/users/{user_id}/stats",
    response_model=WeeklyStatsResponse,
    summary="A user's weekly totals",
    responses={404: {"model": ErrorResponse, "description": "No runs this period."}},
)
def get_weekly_stats(
    period: str,
    user_id: str,
    engine: LeaderboardEngine = Depends(get_engine),
):
    """`engagement_score` is informational; ranking uses `cumulative_score`."""
    stats = engine.get_weekly_stats(period, user_id)
    if stats is None:
        raise StandingNotFoundError(engine.resolve_period(period), user_id)
    return WeeklyStatsResponse.model_validate(stats)
