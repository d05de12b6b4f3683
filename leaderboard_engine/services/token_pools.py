"""
Token pool snapshots: the frozen token list a run was played against.

Registered once per snapshot_id and never changed. Registering the same id
again with identical tokens is a no-op; different tokens is a conflict.
"""
from __future__ import annotations

import json
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from leaderboard_engine.core.errors import TokenPoolConflictError
from leaderboard_engine.db.base import insert_if_missing, store_errors
from leaderboard_engine.models.token_pool import TokenPoolSnapshot
from leaderboard_engine.services.sequencing import Token


def _encode(tokens: Sequence[Token]) -> str:
    return json.dumps(
        [
            {"id": t.id, "symbol": t.symbol, "name": t.name, "market_cap": t.market_cap}
            for t in tokens
        ],
        sort_keys=True,
    )


def _decode(raw: str) -> list[Token]:
    return [
        Token(id=item["id"], market_cap=item["market_cap"], symbol=item["symbol"], name=item["name"])
        for item in json.loads(raw)
    ]


def load_snapshot(db: Session, snapshot_id: str) -> Optional[list[Token]]:
    with store_errors("load_token_pool"):
        raw = db.execute(
            select(TokenPoolSnapshot.tokens).where(TokenPoolSnapshot.snapshot_id == snapshot_id)
        ).scalar_one_or_none()
    return None if raw is None else _decode(raw)


def register_snapshot(db: Session, snapshot_id: str, tokens: Sequence[Token]) -> bool:
    """
    Store a snapshot. Returns True if created, False if an identical one
    already existed. Commits.
    """
    encoded = _encode(tokens)
    with store_errors("register_token_pool"):
        created = insert_if_missing(
            db, TokenPoolSnapshot, {"snapshot_id": snapshot_id, "tokens": encoded}, ("snapshot_id",)
        )
        if not created:
            existing = db.execute(
                select(TokenPoolSnapshot.tokens).where(TokenPoolSnapshot.snapshot_id == snapshot_id)
            ).scalar_one()
            db.rollback()
            if existing != encoded:
                raise TokenPoolConflictError(snapshot_id)
            return False
        db.commit()
    return True
