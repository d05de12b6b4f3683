"""
Positions router.

GET /positions/{board}/{user_id} — rank movement since the previous check
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from leaderboard_engine.routers.deps import get_engine
from leaderboard_engine.schemas.common import ErrorResponse
from leaderboard_engine.schemas.leaderboard import PositionChangeResponse
from leaderboard_engine.services.engine import LeaderboardEngine

router = APIRouter(prefix="/positions", tags=["positions"])


@router.get(
    "/{board}/{user_id}",
    response_model=PositionChangeResponse,
    summary="Check and advance a user's position baseline",
    responses={422: {"model": ErrorResponse, "description": "Board is not global or weekly."}},
)
def check_position_change(
    board: str,
    user_id: str,
    engine: LeaderboardEngine = Depends(get_engine),
):
    """
    Not idempotent: every call stores the current rank as the new baseline,
    so an immediate second call reports `changed=false`.
    """
    return PositionChangeResponse.model_validate(engine.check_position_change(user_id, board))
