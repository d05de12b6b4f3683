"""
Run submission schemas.

POST /runs/submit → RunSubmitRequest → SubmitRunResponse

A rejected run is still a 200: `accepted=false` plus `rejection_reason`
(and `failed_at_round` when replay validation failed).
"""
from __future__ import annotations

from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from leaderboard_engine.schemas.identity import IdentityOut
from leaderboard_engine.services.replay_validator import GuessEntry, Run

RUN_MAX_GUESSES = 1_000


class GuessIn(BaseModel):
    round_number: Annotated[int, Field(ge=0)]
    current_token_id: str
    next_token_id: str
    guess: Literal["cap", "slap"]
    timestamp: Annotated[int, Field(ge=0, description="Epoch milliseconds.")]


class RunSubmitRequest(BaseModel):
    run_id: Annotated[str, Field(min_length=1, max_length=128)]
    user_id: Annotated[str, Field(min_length=1, max_length=128)]
    seed: Annotated[str, Field(min_length=1, max_length=256)]
    started_at: Annotated[int, Field(ge=0, description="Epoch milliseconds.")]
    streak: Annotated[int, Field(ge=0, description="Claimed final streak.")]
    pool_snapshot_id: Optional[str] = Field(
        default=None,
        description="Token pool the run was played against. Required at or above the verification threshold.",
    )
    reprieve_rounds: list[Annotated[int, Field(ge=0)]] = Field(
        default_factory=list,
        description="Rounds whose losing guess was discarded by a reprieve (no log entry).",
    )
    guesses: Annotated[list[GuessIn], Field(max_length=RUN_MAX_GUESSES)]

    def to_run(self) -> Run:
        return Run(
            run_id=self.run_id,
            user_id=self.user_id,
            seed=self.seed,
            started_at=self.started_at,
            streak=self.streak,
            pool_snapshot_id=self.pool_snapshot_id,
            reprieve_rounds=tuple(self.reprieve_rounds),
            guesses=tuple(
                GuessEntry(
                    round_number=g.round_number,
                    current_token_id=g.current_token_id,
                    next_token_id=g.next_token_id,
                    guess=g.guess,
                    timestamp=g.timestamp,
                )
                for g in self.guesses
            ),
        )


class OvertakeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    overtaken_user_id: str
    previous_rank: int = Field(description="Overtaken user's rank before this run.")
    new_rank: int = Field(description="Submitter's rank after this run.")
    period: str
    identity: IdentityOut


class SubmitRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    accepted: bool
    rejection_reason: Optional[str] = Field(
        default=None,
        description='"guest_user" | "duplicate_run" | "pool_snapshot_not_found" | '
                    '"replay_failed" | "leaderboard_unavailable"',
    )
    failed_at_round: Optional[int] = None
    detail: Optional[str] = None
    verified: bool = False
    is_new_best: bool = False
    previous_rank: Optional[int] = None
    new_rank: Optional[int] = None
    weekly_period: Optional[str] = None
    weekly_score: Optional[int] = None
    weekly_rank: Optional[int] = None
    overtakes: list[OvertakeOut] = Field(default_factory=list)
