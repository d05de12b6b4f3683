"""
Token pool router.

POST /token-pools — register an immutable token pool snapshot
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from leaderboard_engine.db.base import get_db
from leaderboard_engine.schemas.common import ErrorResponse
from leaderboard_engine.schemas.token_pool import TokenPoolRequest, TokenPoolResponse
from leaderboard_engine.services.token_pools import register_snapshot

router = APIRouter(prefix="/token-pools", tags=["token-pools"])


@router.post(
    "",
    response_model=TokenPoolResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a token pool snapshot",
    responses={
        200: {"description": "Identical snapshot already registered."},
        409: {"model": ErrorResponse, "description": "Same id, different tokens."},
    },
)
def create_token_pool(
    body: TokenPoolRequest,
    response: Response,
    db: Session = Depends(get_db),
):
    created = register_snapshot(db, body.snapshot_id, [t.to_token() for t in body.tokens])
    if not created:
        response.status_code = status.HTTP_200_OK
    return TokenPoolResponse(
        snapshot_id=body.snapshot_id,
        token_count=len(body.tokens),
        created=created,
    )
