"""
Shared router dependencies.

The identity cache, resolver and notifier are created once at startup and
kept on `app.state`; everything else is built per request around the
request's Session.
"""
from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from leaderboard_engine.core.config import settings
from leaderboard_engine.core.errors import UnauthorizedError
from leaderboard_engine.db.base import get_db
from leaderboard_engine.services.engine import LeaderboardEngine
from leaderboard_engine.services.identity import IdentityService
from leaderboard_engine.services.periods import Clock, utcnow


def get_clock() -> Clock:
    return utcnow


def get_identity_service(
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> IdentityService:
    state = request.app.state
    return IdentityService(db, state.identity_cache, state.identity_resolver, clock=clock)


def get_engine(
    request: Request,
    db: Session = Depends(get_db),
    identities: IdentityService = Depends(get_identity_service),
    clock: Clock = Depends(get_clock),
) -> LeaderboardEngine:
    return LeaderboardEngine(db, identities, request.app.state.notifier, clock=clock)


def require_admin(authorization: Optional[str] = Header(default=None)) -> None:
    """Accept only `Authorization: Bearer <ADMIN_API_KEY>`."""
    if not authorization:
        raise UnauthorizedError()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), settings.ADMIN_API_KEY):
        raise UnauthorizedError()
