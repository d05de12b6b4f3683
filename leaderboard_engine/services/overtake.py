"""
OvertakeDetector — who did a submission just pass?

For one (period, user_id, new_score), detect() does the store work:

  1. read old rank and stored score (before any write)
  2. new_score <= stored          -> not a personal best, nothing written
  3. new_rank = #others sorting ahead of (new_score, user_id) + 1
  4. passed = pre-raise ranks new_rank .. old_rank-1
              (first appearance: new_rank .. new_rank+SEARCH_WINDOW-1)
     capped to OVERTAKE_LIMIT, nearest first
  5. raise_if_greater

describe() turns the passed entries into events. It resolves identities, and
an overtaken user whose resolution fails is dropped. It does no writes, so
callers run it after committing the raise.

If the raise is not applied (a concurrent write got there first with an equal
or higher score) no overtakes are reported. Under-reporting is acceptable;
over-reporting is not.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from leaderboard_engine.core.config import settings
from leaderboard_engine.services.identity import Identity, IdentityService
from leaderboard_engine.services.ranked_store import RankedEntry, RankedScoreStore

logger = logging.getLogger(__name__)


@dataclass
class OvertakeEvent:
    overtaken_user_id: str
    previous_rank: int      # overtaken user's rank before the raise
    new_rank: int           # submitter's rank after the raise
    period: str
    identity: Identity      # display identity of the overtaken user

    def to_dict(self) -> dict:
        return {
            "overtaken_user_id": self.overtaken_user_id,
            "previous_rank": self.previous_rank,
            "new_rank": self.new_rank,
            "period": self.period,
            "identity": self.identity.to_dict(),
        }


@dataclass
class SubmissionOutcome:
    period: str
    success: bool
    is_new_best: bool
    previous_rank: Optional[int]
    new_rank: Optional[int]
    passed: list[RankedEntry] = field(default_factory=list)
    overtakes: list[OvertakeEvent] = field(default_factory=list)


class OvertakeDetector:
    def __init__(
        self,
        store: RankedScoreStore,
        identities: IdentityService,
        limit: Optional[int] = None,
        search_window: Optional[int] = None,
    ):
        self.store = store
        self.identities = identities
        self.limit = settings.OVERTAKE_LIMIT if limit is None else limit
        self.search_window = (
            settings.OVERTAKE_SEARCH_WINDOW if search_window is None else search_window
        )

    def submit(self, period: str, user_id: str, new_score: int) -> SubmissionOutcome:
        """detect() followed by describe(), for callers without a transaction to close."""
        outcome = self.detect(period, user_id, new_score)
        self.describe(outcome)
        return outcome

    def detect(self, period: str, user_id: str, new_score: int) -> SubmissionOutcome:
        old_rank = self.store.get_rank(period, user_id)
        current = self.store.get_score(period, user_id)

        if current is not None and new_score <= current:
            return SubmissionOutcome(
                period=period, success=True, is_new_best=False,
                previous_rank=old_rank, new_rank=old_rank,
            )

        new_rank = self.store.count_ahead_of(
            period, new_score, user_id, exclude_user_id=user_id
        ) + 1
        candidates = self._candidates(period, user_id, new_rank, old_rank)

        raised = self.store.raise_if_greater(period, user_id, new_score)
        if not raised.applied:
            logger.info(
                "Raise for %s in %s superseded by a concurrent write", user_id, period
            )
            return SubmissionOutcome(
                period=period,
                success=True,
                is_new_best=False,
                previous_rank=old_rank,
                new_rank=self.store.get_rank(period, user_id),
            )

        return SubmissionOutcome(
            period=period,
            success=True,
            is_new_best=True,
            previous_rank=old_rank,
            new_rank=new_rank,
            passed=candidates,
        )

    def describe(self, outcome: SubmissionOutcome) -> list[OvertakeEvent]:
        """Resolve identities for the passed entries and fill `outcome.overtakes`."""
        if not outcome.passed:
            outcome.overtakes = []
            return outcome.overtakes
        identities = self.identities.resolve_many(e.user_id for e in outcome.passed)
        events = []
        for entry in outcome.passed:
            identity = identities.get(entry.user_id)
            if identity is None:
                logger.warning(
                    "Dropping overtake of %s in %s: identity unresolved",
                    entry.user_id, outcome.period,
                )
                continue
            events.append(OvertakeEvent(
                overtaken_user_id=entry.user_id,
                previous_rank=entry.rank,
                new_rank=outcome.new_rank,
                period=outcome.period,
                identity=identity,
            ))
        outcome.overtakes = events
        return events

    def _candidates(
        self,
        period: str,
        user_id: str,
        new_rank: int,
        old_rank: Optional[int],
    ) -> list[RankedEntry]:
        if old_rank is None:
            end = new_rank + self.search_window - 1
        else:
            end = old_rank - 1
        end = min(end, new_rank + self.limit - 1)
        if end < new_rank:
            return []
        entries = self.store.get_range(period, new_rank, end)
        return [e for e in entries if e.user_id != user_id][: self.limit]


def merge_overtakes(*groups: Iterable[OvertakeEvent]) -> list[OvertakeEvent]:
    """Concatenate per-period results keeping the first event per overtaken user."""
    seen: set[str] = set()
    merged = []
    for group in groups:
        for event in group:
            if event.overtaken_user_id in seen:
                continue
            seen.add(event.overtaken_user_id)
            merged.append(event)
    return merged
