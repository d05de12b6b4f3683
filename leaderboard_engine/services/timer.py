"""Difficulty schedule: seconds allowed per round, shrinking as the streak grows."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TimerTier:
    below_streak: int | None   # upper bound (exclusive); None = open-ended
    seconds: int
    name: str


TIERS: tuple[TimerTier, ...] = (
    TimerTier(5, 60, "Easy"),
    TimerTier(10, 45, "Medium"),
    TimerTier(15, 30, "Hard"),
    TimerTier(20, 20, "Expert"),
    TimerTier(25, 15, "Insane"),
    TimerTier(None, 10, "Legendary"),
)


def tier_for(round_index: int) -> TimerTier:
    for tier in TIERS:
        if tier.below_streak is None or round_index < tier.below_streak:
            return tier
    return TIERS[-1]


def tier_time_limit(round_index: int) -> int:
    """Seconds on the clock for the given 0-indexed round (== streak so far)."""
    return tier_for(round_index).seconds
