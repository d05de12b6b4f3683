"""
Prize pool router.

PUT  /prizes/{period}          — configure the period's pool (admin)
GET  /prizes/{period}          — pool status and archived distribution
POST /prizes/{period}/finalize — snapshot and archive payouts (admin, idempotent)
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends

from leaderboard_engine.routers.deps import get_engine, require_admin
from leaderboard_engine.schemas.common import ErrorResponse
from leaderboard_engine.schemas.prizes import (
    FinalizeRequest,
    FinalizeResponse,
    PayoutOut,
    PrizePoolConfigRequest,
    PrizeStatusResponse,
)
from leaderboard_engine.services.engine import LeaderboardEngine, PrizeStatus

router = APIRouter(prefix="/prizes", tags=["prizes"])


def _status_response(status: PrizeStatus) -> PrizeStatusResponse:
    if status.archive is not None:
        archive = status.archive
        return PrizeStatusResponse(
            period=status.period,
            status=archive.status,
            total_prize_pool=archive.total_prize_pool,
            sponsor=status.pool.sponsor if status.pool else None,
            finalized_at=archive.finalized_at,
            distribution=[PayoutOut.model_validate(p) for p in archive.distribution],
        )
    if status.pool is not None:
        return PrizeStatusResponse(
            period=status.period,
            status="active",
            total_prize_pool=status.pool.total_prize_pool,
            sponsor=status.pool.sponsor,
        )
    return PrizeStatusResponse(period=status.period, status="unconfigured")


@router.put(
    "/{period}",
    response_model=PrizeStatusResponse,
    summary="Configure a weekly prize pool",
    dependencies=[Depends(require_admin)],
    responses={
        401: {"model": ErrorResponse, "description": "Missing or wrong admin key."},
        409: {"model": ErrorResponse, "description": "Period already finalized."},
    },
)
def configure_prize_pool(
    period: str,
    body: PrizePoolConfigRequest,
    engine: LeaderboardEngine = Depends(get_engine),
):
    engine.configure_prize_pool(period, body.total_prize_pool, body.sponsor)
    return _status_response(engine.get_prize_status(period))


@router.get(
    "/{period}",
    response_model=PrizeStatusResponse,
    summary="Prize pool status",
)
def get_prize_status(
    period: str,
    engine: LeaderboardEngine = Depends(get_engine),
):
    return _status_response(engine.get_prize_status(period))


@router.post(
    "/{period}/finalize",
    response_model=FinalizeResponse,
    summary="Finalize a weekly period",
    dependencies=[Depends(require_admin)],
    responses={
        401: {"model": ErrorResponse, "description": "Missing or wrong admin key."},
        404: {"model": ErrorResponse, "description": "No prize pool configured."},
    },
)
def finalize_period(
    period: str,
    body: Optional[FinalizeRequest] = Body(default=None),
    engine: LeaderboardEngine = Depends(get_engine),
):
    """
    One-way: the first call snapshots the top of the weekly board and archives
    the payouts. Later calls return that archive unchanged
    (`already_finalized=true`).
    """
    body = body or FinalizeRequest()
    result = engine.finalize_period(period, body.next_prize_pool, body.next_sponsor)
    return FinalizeResponse.model_validate(result)
