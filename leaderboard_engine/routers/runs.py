"""
Runs router.

POST /runs/submit — submit a completed run for validation and ranking
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from leaderboard_engine.routers.deps import get_engine
from leaderboard_engine.schemas.common import ErrorResponse
from leaderboard_engine.schemas.runs import RunSubmitRequest, SubmitRunResponse
from leaderboard_engine.services.engine import LeaderboardEngine

router = APIRouter(prefix="/runs", tags=["runs"])


@router.post(
    "/submit",
    response_model=SubmitRunResponse,
    summary="Submit a completed run",
    responses={
        200: {"description": "Run processed. Check `accepted` for the outcome."},
        422: {"model": ErrorResponse, "description": "Malformed run payload."},
    },
)
def submit_run(
    body: RunSubmitRequest,
    engine: LeaderboardEngine = Depends(get_engine),
):
    """
    Validate and rank a finished run.

    Runs claiming a streak at or above the verification threshold are replayed
    against their token pool snapshot; shorter runs are accepted as-is.

    ### Rejection reasons
    | Reason | Meaning |
    |---|---|
    | `guest_user` | anonymous players are never ranked |
    | `duplicate_run` | this `run_id` was already submitted |
    | `pool_snapshot_not_found` | verification needed but snapshot unknown |
    | `replay_failed` | replay contradicted the log; see `failed_at_round` |
    | `leaderboard_unavailable` | storage is down; retry later |
    """
    result = engine.submit_run(body.to_run())
    return SubmitRunResponse.model_validate(result)
