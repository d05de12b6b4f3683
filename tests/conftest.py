"""
Shared pytest fixtures.

Every test gets a fresh in-memory SQLite database (StaticPool, so the
session and the TestClient share one connection) and a frozen clock set
to Wednesday 2026-10-14 12:00 UTC, inside window weekly:2026-10-11.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leaderboard_engine import models  # noqa: F401  (registers tables)
from leaderboard_engine.db.base import Base, get_db
from leaderboard_engine.main import app
from leaderboard_engine.routers.deps import get_clock
from leaderboard_engine.services.engine import LeaderboardEngine
from leaderboard_engine.services.identity import (
    FallbackIdentityResolver,
    IdentityCache,
    IdentityService,
)
from leaderboard_engine.services.notifications import RecordingNotifier
from leaderboard_engine.services.ranked_store import RankedScoreStore
from leaderboard_engine.services.sequencing import Token, expected_pairs
from leaderboard_engine.services.token_pools import register_snapshot

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)
CURRENT_WEEK = "weekly:2026-10-11"
SNAPSHOT_ID = "pool-1"
STARTED_AT = 1_760_000_000_000

# 40 tokens with distinct market caps (37 is invertible mod 101).
POOL = [
    Token(id=f"tok{i:02d}", market_cap=float(1_000 + (i * 37 % 101) * 1_000), symbol=f"T{i}", name=f"Token {i}")
    for i in range(40)
]


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture()
def db_engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture()
def db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture()
def clock():
    return FrozenClock(NOW)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def identity_cache():
    return IdentityCache()


@pytest.fixture()
def identities(db, identity_cache, clock):
    return IdentityService(db, identity_cache, FallbackIdentityResolver(), clock=clock)


@pytest.fixture()
def store(db, clock):
    return RankedScoreStore(db, clock)


@pytest.fixture()
def engine(db, identities, notifier, clock):
    return LeaderboardEngine(db, identities, notifier, clock=clock)


@pytest.fixture()
def registered_pool(db):
    register_snapshot(db, SNAPSHOT_ID, POOL)
    return SNAPSHOT_ID


# ---------------------------------------------------------------------------
# Run builder
# ---------------------------------------------------------------------------

def _correct_guess(pair) -> str:
    return "cap" if pair.next.market_cap >= pair.current.market_cap else "slap"


def _wrong_guess(pair) -> str:
    return "slap" if _correct_guess(pair) == "cap" else "cap"


@pytest.fixture()
def make_run():
    """
    Build a faithfully played run payload: every round but the last guessed
    correctly, the last one lost, `interval_ms` between guesses.
    `delays` overrides the elapsed time before a given round's guess.
    """
    def _make(
        user_id: str,
        streak: int,
        *,
        run_id: Optional[str] = None,
        seed: Optional[str] = None,
        snapshot_id: Optional[str] = SNAPSHOT_ID,
        reprieve_rounds: tuple = (),
        interval_ms: int = 1_500,
        delays: Optional[dict] = None,
        pool=POOL,
    ) -> dict:
        seed = seed or f"seed-{uuid.uuid4().hex}"
        total_rounds = streak + 1
        pairs = expected_pairs(seed, pool, total_rounds)
        delays = delays or {}
        guesses = []
        ts = STARTED_AT
        for r, pair in enumerate(pairs):
            ts += delays.get(r, interval_ms)
            if r in reprieve_rounds:
                continue
            final = r == total_rounds - 1
            guesses.append({
                "round_number": r,
                "current_token_id": pair.current.id,
                "next_token_id": pair.next.id,
                "guess": _wrong_guess(pair) if final else _correct_guess(pair),
                "timestamp": ts,
            })
        return {
            "run_id": run_id or f"run-{uuid.uuid4().hex}",
            "user_id": user_id,
            "seed": seed,
            "started_at": STARTED_AT,
            "streak": streak,
            "pool_snapshot_id": snapshot_id,
            "reprieve_rounds": list(reprieve_rounds),
            "guesses": guesses,
        }

    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(session_factory, clock, notifier):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as c:
        app.state.notifier = notifier
        app.state.identity_resolver = FallbackIdentityResolver()
        yield c
    app.dependency_overrides.clear()
