"""
Tests for error handling: structured error responses, HTTP status codes,
and the custom exception classes.
"""
import pytest

from leaderboard_engine.core.config import settings
from leaderboard_engine.core.errors import (
    IdentityResolutionError,
    InvalidPeriodError,
    InvalidRangeError,
    PrizePoolCompletedError,
    PrizePoolNotFoundError,
    StandingNotFoundError,
    StoreUnavailableError,
    TokenPoolConflictError,
    UnauthorizedError,
)
from leaderboard_engine.db.base import Base


# ---------------------------------------------------------------------------
# Unit tests on exception classes
# ---------------------------------------------------------------------------

class TestExceptionClasses:
    def test_invalid_period_error(self):
        err = InvalidPeriodError("monthly")
        assert err.http_status == 422
        assert err.code == "INVALID_PERIOD"
        assert "monthly" in err.message
        assert err.to_dict()["details"] == {"period": "monthly"}

    def test_invalid_range_error(self):
        err = InvalidRangeError(start=10, end=3)
        assert err.http_status == 422
        assert err.code == "INVALID_RANGE"
        d = err.to_dict()
        assert d["details"]["start"] == 10
        assert d["details"]["end"] == 3

    def test_not_found_errors(self):
        assert StandingNotFoundError("global", "alice").http_status == 404
        assert PrizePoolNotFoundError("weekly:2026-10-11").code == "PRIZE_POOL_NOT_FOUND"

    def test_conflict_errors(self):
        assert PrizePoolCompletedError("weekly:2026-10-11").http_status == 409
        err = TokenPoolConflictError("pool-1")
        assert err.http_status == 409
        assert err.details["snapshot_id"] == "pool-1"

    def test_store_unavailable_error(self):
        err = StoreUnavailableError("get_range", "OperationalError")
        assert err.http_status == 503
        assert err.code == "LEADERBOARD_UNAVAILABLE"
        assert err.details == {"operation": "get_range", "reason": "OperationalError"}
        assert StoreUnavailableError("size").details == {"operation": "size"}

    def test_identity_resolution_error(self):
        err = IdentityResolutionError("alice", "timeout")
        assert "timeout" in err.message
        assert err.details == {"user_id": "alice"}

    def test_to_dict_without_details(self):
        d = UnauthorizedError().to_dict()
        assert d["code"] == "UNAUTHORIZED"
        assert "message" in d
        # details should not be in dict when empty
        assert "details" not in d


# ---------------------------------------------------------------------------
# Integration tests on HTTP error responses
# ---------------------------------------------------------------------------

class TestValidationErrors:
    def test_missing_fields(self, client):
        r = client.post("/runs/submit", json={"run_id": "r1"})
        assert r.status_code == 422
        body = r.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert isinstance(body["details"]["errors"], list)
        fields = {e["field"] for e in body["details"]["errors"]}
        assert {"user_id", "seed", "started_at", "streak", "guesses"} <= fields

    def test_negative_streak(self, client, make_run):
        payload = make_run("alice", 2, snapshot_id=None)
        payload["streak"] = -1
        r = client.post("/runs/submit", json=payload)
        assert r.status_code == 422
        fields = [e["field"] for e in r.json()["details"]["errors"]]
        assert "streak" in fields

    @pytest.mark.parametrize("amount", ["-1", "abc", "1.1234567"])
    def test_bad_prize_amount(self, client, amount):
        r = client.put(
            "/prizes/weekly",
            json={"total_prize_pool": amount},
            headers={"Authorization": f"Bearer {settings.ADMIN_API_KEY}"},
        )
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_single_token_pool_rejected(self, client):
        r = client.post("/token-pools", json={
            "snapshot_id": "tiny",
            "tokens": [{"id": "a", "market_cap": 1}],
        })
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"


class TestServiceUnavailable:
    def test_read_returns_503_when_store_down(self, client, db_engine):
        Base.metadata.drop_all(bind=db_engine)
        r = client.get("/leaderboard/global")
        assert r.status_code == 503
        body = r.json()
        assert body["code"] == "LEADERBOARD_UNAVAILABLE"
        assert body["details"]["operation"] == "get_range"

    def test_submit_soft_fails_when_store_down(self, client, db_engine, make_run):
        Base.metadata.drop_all(bind=db_engine)
        r = client.post("/runs/submit", json=make_run("alice", 3, snapshot_id=None))
        assert r.status_code == 200
        assert r.json()["accepted"] is False
        assert r.json()["rejection_reason"] == "leaderboard_unavailable"
