"""
Deterministic token-pair sequencing.

  seed -> SHA-256 -> first 8 bytes (big-endian uint64) -> random.Random

Round 0 pair    : two picks from the full pool with seed "<seed>_initial"
Round r >= 1    : the previous `next` becomes `current`; one new pick with
                  seed "<seed>_round_<r>" from tokens not used so far

Given the same seed and pool snapshot the sequence is identical on every
call; verification needs no per-round server state.
"""
from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence


class SequenceExhaustedError(Exception):
    """The pool has no unused token left to draw for a round."""

    def __init__(self, round_number: int):
        self.round_number = round_number
        super().__init__(f"Token pool exhausted at round {round_number}")


@dataclass(frozen=True)
class Token:
    id: str
    market_cap: float
    symbol: str = ""
    name: str = ""


@dataclass(frozen=True)
class TokenPair:
    current: Token
    next: Token

    def is_correct(self, guess: str) -> bool:
        """`cap`: next is at least as large. `slap`: next is smaller."""
        if guess == "cap":
            return self.next.market_cap >= self.current.market_cap
        if guess == "slap":
            return self.next.market_cap < self.current.market_cap
        raise ValueError(f"Unknown guess {guess!r}")


def seed_to_int(seed: str) -> int:
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def select_tokens(
    pool: Sequence[Token],
    seed: str,
    count: int,
    exclude_ids: Iterable[str] = (),
) -> list[Token]:
    """Pick up to `count` distinct tokens from `pool` minus `exclude_ids`."""
    excluded = set(exclude_ids)
    available = [t for t in pool if t.id not in excluded]
    rng = random.Random(seed_to_int(seed))

    selected: list[Token] = []
    used_indices: set[int] = set()
    while len(selected) < count and len(used_indices) < len(available):
        index = int(rng.random() * len(available))
        if index in used_indices:
            continue
        used_indices.add(index)
        selected.append(available[index])
    return selected


class TokenSequence:
    """Walks the expected pairs of one run, round by round."""

    def __init__(self, seed: str, pool: Sequence[Token]):
        self.seed = seed
        self.pool = list(pool)
        self._used: set[str] = set()
        self._pair: Optional[TokenPair] = None
        self._round = -1

    @property
    def round_number(self) -> int:
        return self._round

    def advance(self) -> TokenPair:
        """Return the expected pair for the next round."""
        self._round += 1
        if self._pair is None:
            picks = select_tokens(self.pool, f"{self.seed}_initial", 2)
            if len(picks) < 2:
                raise SequenceExhaustedError(self._round)
            self._pair = TokenPair(current=picks[0], next=picks[1])
        else:
            picks = select_tokens(
                self.pool, f"{self.seed}_round_{self._round}", 1, self._used
            )
            if not picks:
                raise SequenceExhaustedError(self._round)
            self._pair = TokenPair(current=self._pair.next, next=picks[0])

        self._used.add(self._pair.current.id)
        self._used.add(self._pair.next.id)
        return self._pair


def expected_pairs(seed: str, pool: Sequence[Token], rounds: int) -> list[TokenPair]:
    """First `rounds` expected pairs; used by clients and tests to play a run."""
    sequence = TokenSequence(seed, pool)
    return [sequence.advance() for _ in range(rounds)]
