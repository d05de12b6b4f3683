"""
Prize distribution for weekly periods.

calculate() is pure:
  snapshot (user_id, score) -> sort score DESC, user_id ASC -> ranks 1..N
  amount(rank) = total * pct[rank] / 100, rounded DOWN to 6 dp (USDC)
  ranks outside the table, or beyond N, get nothing

finalize() is one-way:
  active    -> snapshot top PRIZE_SNAPSHOT_LIMIT, archive, mark completed
  completed -> return the archived distribution untouched

The archive's unique period constraint settles concurrent finalizers: the
loser rolls back and returns the winner's archive.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import Mapping, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from leaderboard_engine.core.config import settings
from leaderboard_engine.core.errors import (
    InvalidPeriodError,
    PrizePoolCompletedError,
    PrizePoolNotFoundError,
    StoreUnavailableError,
)
from leaderboard_engine.db.base import store_errors
from leaderboard_engine.models.prize import PrizeArchive, PrizePool, PrizePoolStatus
from leaderboard_engine.services.periods import Clock, next_period, parse_period, utcnow
from leaderboard_engine.services.ranked_store import RankedScoreStore

logger = logging.getLogger(__name__)

USDC_QUANTUM = Decimal("0.000001")


def _table(shares: Sequence[tuple[range, str]]) -> dict[int, Decimal]:
    return {rank: Decimal(pct) for ranks, pct in shares for rank in ranks}


# Percent of the pool per rank; sums to exactly 100.
DEFAULT_PERCENTAGE_TABLE: dict[int, Decimal] = _table([
    (range(1, 2), "30"),
    (range(2, 3), "20"),
    (range(3, 4), "15"),
    (range(4, 5), "8"),
    (range(5, 6), "5"),
    (range(6, 7), "4"),
    (range(7, 9), "3"),
    (range(9, 11), "2"),
    (range(11, 15), "1"),
    (range(15, 21), "0.5"),
    (range(21, 26), "0.2"),
])


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Payout:
    rank: int
    user_id: str
    score: int
    amount: Decimal

    def to_dict(self) -> dict:
        return {"rank": self.rank, "user_id": self.user_id, "score": self.score, "amount": str(self.amount)}


@dataclass
class FinalizedDistribution:
    period: str
    total_prize_pool: Decimal
    distribution: list[Payout]
    finalized_at: datetime
    status: str
    already_finalized: bool


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------

def validate_table(table: Mapping[int, Decimal]) -> None:
    total = sum(table.values(), Decimal("0"))
    if total > 100:
        raise ValueError(f"Percentage table sums to {total}%, more than 100%")
    ranks = sorted(table)
    for higher, lower in zip(ranks, ranks[1:]):
        if table[higher] < table[lower]:
            raise ValueError(f"Rank {higher} pays less than rank {lower}")


def calculate(
    snapshot: Sequence[tuple[str, int]],
    total_prize_pool: Decimal,
    percentage_table: Mapping[int, Decimal] = DEFAULT_PERCENTAGE_TABLE,
) -> list[Payout]:
    if total_prize_pool < 0:
        raise ValueError("total_prize_pool must be >= 0")
    validate_table(percentage_table)

    ordered = sorted(snapshot, key=lambda entry: (-entry[1], entry[0]))
    payouts = []
    for rank, (user_id, score) in enumerate(ordered, start=1):
        pct = percentage_table.get(rank)
        if pct is None:
            continue
        amount = (total_prize_pool * pct / 100).quantize(USDC_QUANTUM, rounding=ROUND_DOWN)
        payouts.append(Payout(rank=rank, user_id=user_id, score=score, amount=amount))
    return payouts


# ---------------------------------------------------------------------------
# Persistence: configure / read / finalize
# ---------------------------------------------------------------------------

class PrizeDistributionCalculator:
    def __init__(
        self,
        db: Session,
        store: RankedScoreStore,
        clock: Clock = utcnow,
        snapshot_limit: Optional[int] = None,
        percentage_table: Mapping[int, Decimal] = DEFAULT_PERCENTAGE_TABLE,
    ):
        self.db = db
        self.store = store
        self._clock = clock
        self.snapshot_limit = (
            settings.PRIZE_SNAPSHOT_LIMIT if snapshot_limit is None else snapshot_limit
        )
        self.percentage_table = percentage_table

    def period_key(self, period: str) -> str:
        parsed = parse_period(period, self._clock())
        if not parsed.is_weekly:
            raise InvalidPeriodError(period)
        return parsed.key

    def get_pool(self, period: str) -> Optional[PrizePool]:
        key = self.period_key(period)
        with store_errors("prize_get_pool"):
            return self.db.execute(
                select(PrizePool).where(PrizePool.period == key)
            ).scalar_one_or_none()

    def configure(
        self,
        period: str,
        total_prize_pool: Decimal,
        sponsor: Optional[str] = None,
        commit: bool = True,
    ) -> PrizePool:
        """Create or update an active pool. A completed pool is frozen."""
        key = self.period_key(period)
        amount = Decimal(total_prize_pool).quantize(USDC_QUANTUM, rounding=ROUND_DOWN)
        pool = self.get_pool(key)
        if pool is not None and pool.status == PrizePoolStatus.completed:
            raise PrizePoolCompletedError(key)

        if pool is None:
            pool = PrizePool(
                period=key,
                total_prize_pool=amount,
                sponsor=sponsor,
                status=PrizePoolStatus.active,
            )
            self.db.add(pool)
        else:
            pool.total_prize_pool = amount
            pool.sponsor = sponsor

        if commit:
            with store_errors("prize_configure"):
                self.db.commit()
                self.db.refresh(pool)
        return pool

    def get_archive(self, period: str) -> Optional[FinalizedDistribution]:
        key = self.period_key(period)
        with store_errors("prize_get_archive"):
            row = self.db.execute(
                select(
                    PrizeArchive.period,
                    PrizeArchive.total_prize_pool,
                    PrizeArchive.distribution,
                    PrizeArchive.finalized_at,
                    PrizeArchive.status,
                ).where(PrizeArchive.period == key)
            ).one_or_none()
        if row is None:
            return None
        return FinalizedDistribution(
            period=row.period,
            total_prize_pool=Decimal(row.total_prize_pool).quantize(USDC_QUANTUM),
            distribution=[
                Payout(
                    rank=item["rank"],
                    user_id=item["user_id"],
                    score=item["score"],
                    amount=Decimal(item["amount"]),
                )
                for item in json.loads(row.distribution)
            ],
            finalized_at=row.finalized_at,
            status=_status_value(row.status),
            already_finalized=True,
        )

    def finalize(
        self,
        period: str,
        next_prize_pool: Optional[Decimal] = None,
        next_sponsor: Optional[str] = None,
    ) -> FinalizedDistribution:
        key = self.period_key(period)

        archived = self.get_archive(key)
        if archived is not None:
            logger.info("Period %s already finalized; returning archived distribution", key)
            return archived

        pool = self.get_pool(key)
        if pool is None:
            raise PrizePoolNotFoundError(key)

        snapshot = [
            (entry.user_id, entry.score)
            for entry in self.store.get_range(key, 1, self.snapshot_limit)
        ]
        payouts = calculate(snapshot, Decimal(pool.total_prize_pool), self.percentage_table)

        self.db.add(PrizeArchive(
            period=key,
            total_prize_pool=pool.total_prize_pool,
            distribution=json.dumps([p.to_dict() for p in payouts]),
            status=PrizePoolStatus.completed,
            finalized_at=self._clock(),
        ))
        try:
            self.db.execute(
                update(PrizePool)
                .where(PrizePool.id == pool.id)
                .values(status=PrizePoolStatus.completed)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except IntegrityError:
            # Another finalizer archived this period first.
            self.db.rollback()
            logger.info("Concurrent finalize for %s lost the race; using existing archive", key)
            return self.get_archive(key)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreUnavailableError("prize_finalize", exc.__class__.__name__) from exc

        logger.info(
            "Finalized %s: %d payouts from a %d-entry snapshot",
            key, len(payouts), len(snapshot),
        )
        if next_prize_pool is not None:
            self._configure_next(key, next_prize_pool, next_sponsor)

        result = self.get_archive(key)
        result.already_finalized = False
        return result

    def _configure_next(self, key: str, amount: Decimal, sponsor: Optional[str]) -> None:
        upcoming = next_period(key)
        try:
            self.configure(upcoming, amount, sponsor)
        except PrizePoolCompletedError:
            logger.warning("Next period %s is already finalized; pool not changed", upcoming)


def _status_value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)
