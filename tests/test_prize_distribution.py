"""
Tests for prize calculation and one-way period finalization.

Covered:
  - table sums to <= 100%, payouts never exceed the pool, non-increasing by rank
  - ranks beyond the table or beyond N get nothing
  - finalize twice returns identical distributions
  - the archive ignores scores that arrive after finalization
  - concurrent finalizer returns the winner's archive
"""
from decimal import Decimal

import pytest

from leaderboard_engine.core.errors import (
    InvalidPeriodError,
    PrizePoolCompletedError,
    PrizePoolNotFoundError,
)
from leaderboard_engine.models.prize import PrizeArchive, PrizePool, PrizePoolStatus
from leaderboard_engine.services.prize_distribution import (
    DEFAULT_PERCENTAGE_TABLE,
    PrizeDistributionCalculator,
    calculate,
    validate_table,
)

from conftest import CURRENT_WEEK


@pytest.fixture()
def prizes(db, store, clock):
    return PrizeDistributionCalculator(db, store, clock)


def _seed_week(store, db, n: int, period: str = CURRENT_WEEK) -> None:
    for i in range(n):
        store.raise_if_greater(period, f"user{i:03d}", 1_000 - i * 3)
    db.commit()


class TestCalculate:
    def test_default_table_shape(self):
        assert sorted(DEFAULT_PERCENTAGE_TABLE) == list(range(1, 26))
        assert sum(DEFAULT_PERCENTAGE_TABLE.values()) == Decimal("100")
        validate_table(DEFAULT_PERCENTAGE_TABLE)

    def test_top_three_amounts(self):
        payouts = calculate([("a", 30), ("b", 20), ("c", 10)], Decimal("1000"))
        assert [(p.rank, p.user_id, p.amount) for p in payouts] == [
            (1, "a", Decimal("300.000000")),
            (2, "b", Decimal("200.000000")),
            (3, "c", Decimal("150.000000")),
        ]

    def test_ties_follow_store_order(self):
        payouts = calculate([("C", 15), ("A", 20), ("B", 15)], Decimal("100"))
        assert [p.user_id for p in payouts] == ["A", "B", "C"]

    def test_ranks_beyond_table_get_nothing(self):
        snapshot = [(f"u{i:02d}", 100 - i) for i in range(40)]
        payouts = calculate(snapshot, Decimal("5000"))
        assert len(payouts) == 25
        assert payouts[-1].rank == 25

    @pytest.mark.parametrize("n", [0, 1, 7, 25, 60])
    @pytest.mark.parametrize("pool", ["0", "1", "999.99", "12345.678901"])
    def test_distribution_bound(self, n, pool):
        total = Decimal(pool)
        payouts = calculate([(f"u{i:02d}", 500 - i) for i in range(n)], total)
        assert sum((p.amount for p in payouts), Decimal("0")) <= total
        for higher, lower in zip(payouts, payouts[1:]):
            assert higher.amount >= lower.amount

    def test_amounts_rounded_down_to_usdc_precision(self):
        payouts = calculate([("a", 1)], Decimal("0.0000019"))
        assert payouts[0].amount == Decimal("0.000000")

    def test_custom_table(self):
        payouts = calculate([("a", 2), ("b", 1)], Decimal("10"), {1: Decimal("60"), 2: Decimal("40")})
        assert [p.amount for p in payouts] == [Decimal("6.000000"), Decimal("4.000000")]

    @pytest.mark.parametrize("table", [
        {1: Decimal("70"), 2: Decimal("40")},
        {1: Decimal("10"), 2: Decimal("20")},
    ])
    def test_invalid_tables_rejected(self, table):
        with pytest.raises(ValueError):
            calculate([("a", 1)], Decimal("10"), table)


class TestConfigure:
    def test_configure_and_update(self, prizes):
        prizes.configure(CURRENT_WEEK, Decimal("100"), sponsor="acme")
        pool = prizes.configure(CURRENT_WEEK, Decimal("250.5"))
        assert pool.total_prize_pool == Decimal("250.5")
        assert pool.sponsor is None
        assert pool.status == PrizePoolStatus.active

    def test_global_period_rejected(self, prizes):
        with pytest.raises(InvalidPeriodError):
            prizes.configure("global", Decimal("100"))

    def test_completed_pool_is_frozen(self, prizes, store, db):
        _seed_week(store, db, 3)
        prizes.configure(CURRENT_WEEK, Decimal("100"))
        prizes.finalize(CURRENT_WEEK)
        with pytest.raises(PrizePoolCompletedError):
            prizes.configure(CURRENT_WEEK, Decimal("999"))


class TestFinalize:
    def test_requires_config(self, prizes):
        with pytest.raises(PrizePoolNotFoundError):
            prizes.finalize(CURRENT_WEEK)

    def test_finalize_archives_and_completes(self, prizes, store, db):
        _seed_week(store, db, 30)
        prizes.configure(CURRENT_WEEK, Decimal("1000"))
        result = prizes.finalize(CURRENT_WEEK)

        assert result.already_finalized is False
        assert result.status == "completed"
        assert len(result.distribution) == 25
        assert result.distribution[0].user_id == "user000"
        assert result.distribution[0].amount == Decimal("300.000000")
        assert db.query(PrizePool).one().status == PrizePoolStatus.completed
        assert db.query(PrizeArchive).count() == 1

    def test_finalize_twice_is_identical(self, prizes, store, db):
        _seed_week(store, db, 12)
        prizes.configure(CURRENT_WEEK, Decimal("777.77"))
        first = prizes.finalize(CURRENT_WEEK)
        second = prizes.finalize(CURRENT_WEEK)

        assert second.already_finalized is True
        assert [p.to_dict() for p in first.distribution] == [p.to_dict() for p in second.distribution]
        assert first.finalized_at == second.finalized_at
        assert first.total_prize_pool == second.total_prize_pool

    def test_archive_ignores_later_scores(self, prizes, store, db):
        _seed_week(store, db, 5)
        prizes.configure(CURRENT_WEEK, Decimal("100"))
        first = prizes.finalize(CURRENT_WEEK)

        store.raise_if_greater(CURRENT_WEEK, "latecomer", 1_000_000)
        db.commit()
        second = prizes.finalize(CURRENT_WEEK)

        assert [p.user_id for p in second.distribution] == [p.user_id for p in first.distribution]
        assert "latecomer" not in {p.user_id for p in second.distribution}

    def test_snapshot_limit(self, db, store, clock):
        prizes = PrizeDistributionCalculator(db, store, clock, snapshot_limit=3)
        _seed_week(store, db, 10)
        prizes.configure(CURRENT_WEEK, Decimal("100"))
        assert len(prizes.finalize(CURRENT_WEEK).distribution) == 3

    def test_empty_week_finalizes_with_no_payouts(self, prizes):
        prizes.configure(CURRENT_WEEK, Decimal("100"))
        result = prizes.finalize(CURRENT_WEEK)
        assert result.distribution == []
        assert result.status == "completed"

    def test_configures_next_window(self, prizes, store, db):
        _seed_week(store, db, 2)
        prizes.configure(CURRENT_WEEK, Decimal("100"))
        prizes.finalize(CURRENT_WEEK, next_prize_pool=Decimal("150"), next_sponsor="acme")
        upcoming = prizes.get_pool("weekly:2026-10-18")
        assert upcoming.total_prize_pool == Decimal("150")
        assert upcoming.sponsor == "acme"
        assert upcoming.status == PrizePoolStatus.active

    def test_weekly_alias(self, prizes, store, db):
        _seed_week(store, db, 2)
        prizes.configure("weekly", Decimal("100"))
        assert prizes.finalize("weekly").period == CURRENT_WEEK

    def test_losing_a_concurrent_finalize_returns_winner_archive(self, prizes, store, db, clock, monkeypatch):
        _seed_week(store, db, 4)
        prizes.configure(CURRENT_WEEK, Decimal("100"))
        winner = prizes.finalize(CURRENT_WEEK)

        # A second finalizer that read "no archive yet" just before the winner committed.
        late = PrizeDistributionCalculator(db, store, clock)
        real_get_archive = late.get_archive
        calls = {"n": 0}

        def stale_first_read(period):
            calls["n"] += 1
            return None if calls["n"] == 1 else real_get_archive(period)

        monkeypatch.setattr(late, "get_archive", stale_first_read)
        loser = late.finalize(CURRENT_WEEK)

        assert loser.already_finalized is True
        assert [p.to_dict() for p in loser.distribution] == [p.to_dict() for p in winner.distribution]
        assert db.query(PrizeArchive).count() == 1
