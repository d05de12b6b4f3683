"""
ReplayValidator — decides whether a submitted run could have been played.

Replay walks the expected pair sequence (see sequencing.TokenSequence) round
by round against the guess log and checks, per round, in this order:

  1. pair      — logged (current, next) ids equal the expected pair
  2. ordering  — logged round_number equals the round being replayed
  3. timing    — MIN_GUESS_INTERVAL_MS <= elapsed <= limit + NETWORK_BUFFER_MS
  4. outcome   — every round except the final one was guessed correctly

Reprieves
---------
A reprieved round has no log entry: the player lost it and paid to carry on.
Its pair is still consumed from the sequence, the clock across it gets that
round's limit plus REPRIEVE_GRACE_MS, and it counts toward the streak:

  claimed streak == len(guesses) - 1 + len(reprieve_rounds)

Runs claiming less than VERIFICATION_THRESHOLD are accepted without replay.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from leaderboard_engine.core.config import settings
from leaderboard_engine.services.sequencing import SequenceExhaustedError, Token, TokenSequence
from leaderboard_engine.services.timer import tier_time_limit

MAX_REPRIEVES_PER_RUN = 1
MIN_STREAK_FOR_REPRIEVE = 5


# ---------------------------------------------------------------------------
# Input / output types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GuessEntry:
    round_number: int
    current_token_id: str
    next_token_id: str
    guess: str          # "cap" | "slap"
    timestamp: int      # epoch ms


@dataclass(frozen=True)
class Run:
    run_id: str
    user_id: str
    seed: str
    started_at: int     # epoch ms
    streak: int         # claimed
    guesses: tuple[GuessEntry, ...]
    reprieve_rounds: tuple[int, ...] = ()
    pool_snapshot_id: Optional[str] = None


@dataclass
class ReplayResult:
    valid: bool
    failed_at_round: Optional[int] = None
    reason: Optional[str] = None
    replayed: bool = field(default=False)   # False when below threshold


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

class ReplayValidator:
    def __init__(
        self,
        threshold: Optional[int] = None,
        network_buffer_ms: Optional[int] = None,
        min_interval_ms: Optional[int] = None,
        reprieve_grace_ms: Optional[int] = None,
        time_limit: Callable[[int], int] = tier_time_limit,
    ):
        self.threshold = settings.VERIFICATION_THRESHOLD if threshold is None else threshold
        self.network_buffer_ms = (
            settings.NETWORK_BUFFER_MS if network_buffer_ms is None else network_buffer_ms
        )
        self.min_interval_ms = (
            settings.MIN_GUESS_INTERVAL_MS if min_interval_ms is None else min_interval_ms
        )
        self.reprieve_grace_ms = (
            settings.REPRIEVE_GRACE_MS if reprieve_grace_ms is None else reprieve_grace_ms
        )
        self.time_limit = time_limit

    def requires_verification(self, streak: int) -> bool:
        return streak >= self.threshold

    def validate(self, run: Run, pool: Sequence[Token]) -> ReplayResult:
        if not self.requires_verification(run.streak):
            return ReplayResult(valid=True)
        return self.replay(run, pool)

    def replay(self, run: Run, pool: Sequence[Token]) -> ReplayResult:
        """Full replay regardless of threshold."""
        guesses = run.guesses
        if not guesses:
            return _fail(0, "Guess log is empty")

        reprieves = set(run.reprieve_rounds)
        if len(run.reprieve_rounds) > MAX_REPRIEVES_PER_RUN:
            return _fail(None, f"At most {MAX_REPRIEVES_PER_RUN} reprieve allowed per run")

        total_rounds = len(guesses) + len(reprieves)
        final_round = total_rounds - 1
        for r in sorted(reprieves):
            if r < MIN_STREAK_FOR_REPRIEVE:
                return _fail(r, f"Round {r}: reprieve used before streak {MIN_STREAK_FOR_REPRIEVE}")
            if r >= final_round:
                return _fail(r, f"Round {r}: reprieve cannot be the final round")

        sequence = TokenSequence(run.seed, pool)
        log_index = 0
        last_timestamp = run.started_at
        carried_allowance_ms = 0

        for round_number in range(total_rounds):
            try:
                pair = sequence.advance()
            except SequenceExhaustedError:
                return _fail(round_number, f"Round {round_number}: token pool exhausted")

            if round_number in reprieves:
                carried_allowance_ms += (
                    self.time_limit(round_number) * 1000 + self.reprieve_grace_ms
                )
                continue

            entry = guesses[log_index]
            log_index += 1

            if entry.current_token_id != pair.current.id:
                return _fail(
                    round_number,
                    f"Round {round_number}: expected current token {pair.current.id}, "
                    f"got {entry.current_token_id}",
                )
            if entry.next_token_id != pair.next.id:
                return _fail(
                    round_number,
                    f"Round {round_number}: expected next token {pair.next.id}, "
                    f"got {entry.next_token_id}",
                )
            if entry.round_number != round_number:
                return _fail(
                    round_number,
                    f"Round {round_number}: logged as round {entry.round_number}",
                )

            elapsed = entry.timestamp - last_timestamp
            max_allowed = (
                self.time_limit(round_number) * 1000
                + self.network_buffer_ms
                + carried_allowance_ms
            )
            if elapsed > max_allowed:
                return _fail(
                    round_number,
                    f"Round {round_number}: guess took {elapsed}ms, max allowed {max_allowed}ms",
                )
            if elapsed < self.min_interval_ms:
                return _fail(
                    round_number,
                    f"Round {round_number}: guess was suspiciously fast ({elapsed}ms)",
                )
            last_timestamp = entry.timestamp
            carried_allowance_ms = 0

            if round_number < final_round and not pair.is_correct(entry.guess):
                return _fail(
                    round_number,
                    f"Round {round_number}: guess was incorrect but the run continued",
                )

        expected_streak = len(guesses) - 1 + len(reprieves)
        if run.streak > expected_streak:
            # The log stops before the claimed streak; the first unmatched round is total_rounds.
            return _fail(
                total_rounds,
                f"Claimed streak {run.streak} but guess log supports {expected_streak}",
            )
        if run.streak < expected_streak:
            return _fail(
                None,
                f"Claimed streak {run.streak} but guess log records {expected_streak}",
            )

        return ReplayResult(valid=True, replayed=True)


def _fail(round_number: Optional[int], reason: str) -> ReplayResult:
    return ReplayResult(valid=False, failed_at_round=round_number, reason=reason, replayed=True)
