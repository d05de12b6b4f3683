"""
LeaderboardEngine — the operations exposed to callers.

  submit_run            validate -> persist run -> global best -> weekly total
                        -> commit -> identities, overtakes (deduplicated
                        across periods) -> notify
  get_leaderboard       ranked slice of a period, with display identities
  get_user_standing     rank + score, or None
  check_position_change movement since the last check on a board
  finalize_period       one-way prize finalization

Submission never raises for storage trouble: StoreUnavailableError is
rolled back, logged and returned as accepted=False with reason
"leaderboard_unavailable". The score transaction is committed once,
so a run counts fully or not at all. Identity resolution happens only after
that commit, so a slow or failing resolver never holds score rows locked.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from leaderboard_engine.core.errors import StoreUnavailableError
from leaderboard_engine.db.base import insert_if_missing, store_errors
from leaderboard_engine.models.prize import PrizePool
from leaderboard_engine.models.run_record import RunRecord
from leaderboard_engine.services.identity import IdentityService, fallback_identity
from leaderboard_engine.services.notifications import EventKind, Notifier, safe_notify
from leaderboard_engine.services.overtake import (
    OvertakeDetector,
    OvertakeEvent,
    SubmissionOutcome,
    merge_overtakes,
)
from leaderboard_engine.services.periods import (
    GLOBAL,
    WEEKLY,
    Clock,
    current_period,
    parse_period,
    utcnow,
)
from leaderboard_engine.services.position_tracker import PositionChange, PositionChangeTracker
from leaderboard_engine.services.prize_distribution import (
    FinalizedDistribution,
    PrizeDistributionCalculator,
)
from leaderboard_engine.services.ranked_store import RankedScoreStore
from leaderboard_engine.services.replay_validator import ReplayValidator, Run
from leaderboard_engine.services.token_pools import load_snapshot
from leaderboard_engine.services.weekly_aggregator import (
    WeeklyScoreAggregator,
    WeeklyStatsView,
    is_guest,
)

logger = logging.getLogger(__name__)


class RejectionReason:
    GUEST_USER              = "guest_user"
    DUPLICATE_RUN           = "duplicate_run"
    POOL_SNAPSHOT_NOT_FOUND = "pool_snapshot_not_found"
    REPLAY_FAILED           = "replay_failed"
    LEADERBOARD_UNAVAILABLE = "leaderboard_unavailable"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class SubmitResult:
    accepted: bool
    rejection_reason: Optional[str] = None
    failed_at_round: Optional[int] = None
    detail: Optional[str] = None
    verified: bool = False
    is_new_best: bool = False
    previous_rank: Optional[int] = None
    new_rank: Optional[int] = None
    weekly_period: Optional[str] = None
    weekly_score: Optional[int] = None
    weekly_rank: Optional[int] = None
    overtakes: list[OvertakeEvent] = field(default_factory=list)


@dataclass
class LeaderboardRow:
    rank: int
    user_id: str
    score: int
    display_name: str
    avatar_url: Optional[str]


@dataclass
class Standing:
    period: str
    user_id: str
    rank: int
    score: int


@dataclass
class PrizeStatus:
    period: str
    pool: Optional[PrizePool]
    archive: Optional[FinalizedDistribution]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class LeaderboardEngine:
    def __init__(
        self,
        db: Session,
        identities: IdentityService,
        notifier: Notifier,
        clock: Clock = utcnow,
        validator: Optional[ReplayValidator] = None,
    ):
        self.db = db
        self.identities = identities
        self.notifier = notifier
        self._clock = clock
        self.store = RankedScoreStore(db, clock)
        self.validator = validator or ReplayValidator()
        self.aggregator = WeeklyScoreAggregator(db, clock)
        self.detector = OvertakeDetector(self.store, identities)
        self.tracker = PositionChangeTracker(db, self.store, notifier, clock)
        self.prizes = PrizeDistributionCalculator(db, self.store, clock)

    # ---- submitRun -------------------------------------------------------

    def submit_run(self, run: Run) -> SubmitResult:
        if is_guest(run.user_id):
            return SubmitResult(accepted=False, rejection_reason=RejectionReason.GUEST_USER)

        try:
            result, outcomes = self._submit(run)
        except StoreUnavailableError as exc:
            self.db.rollback()
            logger.error(
                "Leaderboard unavailable while submitting run %s: %s",
                run.run_id, exc.details,
            )
            return SubmitResult(
                accepted=False, rejection_reason=RejectionReason.LEADERBOARD_UNAVAILABLE,
            )

        if result.accepted:
            self._announce(run, result, outcomes)
        return result

    def _submit(self, run: Run) -> tuple[SubmitResult, list[SubmissionOutcome]]:
        """Validate and apply the run. Commits; does no identity resolution."""
        if self._run_exists(run.run_id):
            return SubmitResult(accepted=False, rejection_reason=RejectionReason.DUPLICATE_RUN), []

        verified = False
        if self.validator.requires_verification(run.streak):
            pool = load_snapshot(self.db, run.pool_snapshot_id) if run.pool_snapshot_id else None
            if pool is None:
                logger.warning(
                    "Rejected run %s: token pool snapshot %r not found",
                    run.run_id, run.pool_snapshot_id,
                )
                return SubmitResult(
                    accepted=False,
                    rejection_reason=RejectionReason.POOL_SNAPSHOT_NOT_FOUND,
                ), []
            replay = self.validator.replay(run, pool)
            if not replay.valid:
                logger.warning(
                    "Rejected run %s for %s at round %s: %s",
                    run.run_id, run.user_id, replay.failed_at_round, replay.reason,
                )
                return SubmitResult(
                    accepted=False,
                    rejection_reason=RejectionReason.REPLAY_FAILED,
                    failed_at_round=replay.failed_at_round,
                    detail=replay.reason,
                ), []
            verified = True

        if not self._record_run(run, verified):
            self.db.rollback()
            return SubmitResult(accepted=False, rejection_reason=RejectionReason.DUPLICATE_RUN), []

        global_outcome = self.detector.detect(GLOBAL, run.user_id, run.streak)
        weekly, weekly_score, weekly_outcome = self._record_weekly_run(run)

        with store_errors("submit_commit"):
            self.db.commit()

        return SubmitResult(
            accepted=True,
            verified=verified,
            is_new_best=global_outcome.is_new_best,
            previous_rank=global_outcome.previous_rank,
            new_rank=global_outcome.new_rank,
            weekly_period=weekly,
            weekly_score=weekly_score,
            weekly_rank=weekly_outcome.new_rank,
        ), [global_outcome, weekly_outcome]

    def _record_weekly_run(self, run: Run) -> tuple[str, int, SubmissionOutcome]:
        """Add the run to this week's totals and mirror the new total into the weekly board."""
        weekly = current_period(WEEKLY, self._clock())
        stats = self.aggregator.accumulate(run.user_id, weekly, run.streak)
        outcome = self.detector.detect(weekly, run.user_id, stats.cumulative_score)
        return weekly, stats.cumulative_score, outcome

    def _announce(
        self,
        run: Run,
        result: SubmitResult,
        outcomes: list[SubmissionOutcome],
    ) -> None:
        """
        Post-commit work for an accepted run: persist the submitter's identity,
        describe overtakes and notify the overtaken users. The run already
        counts, so storage trouble here only costs the extras.
        """
        try:
            self.identities.resolve_submitter(run.user_id)
            with store_errors("profile_commit"):
                self.db.commit()
            result.overtakes = merge_overtakes(*(self.detector.describe(o) for o in outcomes))
        except StoreUnavailableError as exc:
            self.db.rollback()
            logger.warning(
                "Run %s accepted but overtakes could not be described: %s",
                run.run_id, exc.details,
            )
            return

        for event in result.overtakes:
            safe_notify(self.notifier, event.overtaken_user_id, EventKind.OVERTAKEN, {
                "by_user_id": run.user_id,
                "period": event.period,
                "previous_rank": event.previous_rank,
                "new_rank": event.new_rank,
            })

    def _run_exists(self, run_id: str) -> bool:
        with store_errors("run_exists"):
            return self.db.execute(
                select(RunRecord.id).where(RunRecord.run_id == run_id)
            ).first() is not None

    def _record_run(self, run: Run, verified: bool) -> bool:
        values = {
            "run_id": run.run_id,
            "user_id": run.user_id,
            "seed": run.seed,
            "started_at": run.started_at,
            "streak": run.streak,
            "pool_snapshot_id": run.pool_snapshot_id,
            "reprieve_rounds": json.dumps(list(run.reprieve_rounds)),
            "guesses": json.dumps([
                {
                    "round_number": g.round_number,
                    "current_token_id": g.current_token_id,
                    "next_token_id": g.next_token_id,
                    "guess": g.guess,
                    "timestamp": g.timestamp,
                }
                for g in run.guesses
            ]),
            "verified": verified,
            "submitted_at": self._clock(),
        }
        with store_errors("record_run"):
            return insert_if_missing(self.db, RunRecord, values, ("run_id",))

    # ---- reads -----------------------------------------------------------

    def resolve_period(self, period: str) -> str:
        return parse_period(period, self._clock()).key

    def get_leaderboard(self, period: str, start: int, end: int) -> list[LeaderboardRow]:
        key = self.resolve_period(period)
        entries = self.store.get_range(key, start, end)
        identities = self.identities.resolve_many(e.user_id for e in entries)
        rows = []
        for entry in entries:
            identity = identities.get(entry.user_id) or fallback_identity(entry.user_id)
            rows.append(LeaderboardRow(
                rank=entry.rank,
                user_id=entry.user_id,
                score=entry.score,
                display_name=identity.display_name,
                avatar_url=identity.avatar_url,
            ))
        return rows

    def get_user_standing(self, period: str, user_id: str) -> Optional[Standing]:
        key = self.resolve_period(period)
        score = self.store.get_score(key, user_id)
        if score is None:
            return None
        rank = self.store.count_ahead_of(key, score, user_id) + 1
        return Standing(period=key, user_id=user_id, rank=rank, score=score)

    def get_weekly_stats(self, period: str, user_id: str) -> Optional[WeeklyStatsView]:
        return self.aggregator.get_stats(self.resolve_period(period), user_id)

    # ---- checkPositionChange ---------------------------------------------

    def check_position_change(self, user_id: str, board: str) -> PositionChange:
        change = self.tracker.check(user_id, board)
        with store_errors("position_commit"):
            self.db.commit()
        return change

    # ---- prizes ----------------------------------------------------------

    def configure_prize_pool(
        self,
        period: str,
        total_prize_pool: Decimal,
        sponsor: Optional[str] = None,
    ) -> PrizePool:
        return self.prizes.configure(period, total_prize_pool, sponsor)

    def get_prize_status(self, period: str) -> PrizeStatus:
        key = self.prizes.period_key(period)
        return PrizeStatus(
            period=key,
            pool=self.prizes.get_pool(key),
            archive=self.prizes.get_archive(key),
        )

    def finalize_period(
        self,
        period: str,
        next_prize_pool: Optional[Decimal] = None,
        next_sponsor: Optional[str] = None,
    ) -> FinalizedDistribution:
        return self.prizes.finalize(period, next_prize_pool, next_sponsor)

    # ---- retention -------------------------------------------------------

    def purge_expired(self, now: Optional[datetime] = None) -> dict[str, int]:
        now = now or self._clock()
        purged = {
            "score_periods": len(self.store.purge_expired(now)),
            "weekly_stats": self.aggregator.purge_expired(now),
            "position_records": self.tracker.purge_expired(now),
        }
        with store_errors("purge_commit"):
            self.db.commit()
        return purged
