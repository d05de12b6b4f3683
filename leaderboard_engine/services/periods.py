"""
Scoring periods.

Period keys
-----------
  "global"              — unbounded, never expires
  "weekly:<YYYY-MM-DD>" — 7-day window starting Sunday 00:00 UTC on that date

The bare alias "weekly" is accepted anywhere a key is and resolves to the
window containing `now`.

Retention
---------
Weekly data (score entries, stats) is kept until window start +
WEEKLY_RETENTION_DAYS; the extra day past the window leaves room for
finalization and audit.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from leaderboard_engine.core.config import settings
from leaderboard_engine.core.errors import InvalidPeriodError

GLOBAL = "global"
WEEKLY = "weekly"
WEEKLY_PREFIX = "weekly:"
BOARDS = (GLOBAL, WEEKLY)

WINDOW_LENGTH = timedelta(days=7)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class Period:
    key: str
    board: str                         # "global" | "weekly"
    window_start: Optional[date] = None

    @property
    def is_weekly(self) -> bool:
        return self.board == WEEKLY


# ---------------------------------------------------------------------------
# Window arithmetic
# ---------------------------------------------------------------------------

def window_start_for(now: datetime) -> date:
    """Sunday (UTC) on or before `now`."""
    day = now.astimezone(timezone.utc).date()
    # date.weekday(): Monday == 0 ... Sunday == 6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def weekly_key(start: date) -> str:
    return f"{WEEKLY_PREFIX}{start.isoformat()}"


def current_period(board: str, now: datetime) -> str:
    if board == GLOBAL:
        return GLOBAL
    if board == WEEKLY:
        return weekly_key(window_start_for(now))
    raise InvalidPeriodError(board)


def next_period(key: str) -> str:
    """Key of the weekly window following `key`."""
    period = parse_period(key)
    if not period.is_weekly:
        raise InvalidPeriodError(key)
    return weekly_key(period.window_start + WINDOW_LENGTH)


def parse_period(key: str, now: Optional[datetime] = None) -> Period:
    """Validate a period key (or the "weekly" alias) and return its parts."""
    if key == GLOBAL:
        return Period(key=GLOBAL, board=GLOBAL)
    if key == WEEKLY:
        start = window_start_for(now or utcnow())
        return Period(key=weekly_key(start), board=WEEKLY, window_start=start)
    if not key.startswith(WEEKLY_PREFIX):
        raise InvalidPeriodError(key)
    try:
        start = date.fromisoformat(key[len(WEEKLY_PREFIX):])
    except ValueError:
        raise InvalidPeriodError(key)
    if start.weekday() != 6:
        raise InvalidPeriodError(key)
    return Period(key=weekly_key(start), board=WEEKLY, window_start=start)


def window_bounds(key: str) -> tuple[datetime, datetime]:
    """[start, end) of a weekly window as aware UTC datetimes."""
    period = parse_period(key)
    if not period.is_weekly:
        raise InvalidPeriodError(key)
    start = datetime.combine(period.window_start, time.min, tzinfo=timezone.utc)
    return start, start + WINDOW_LENGTH


def time_until_next_window(now: datetime) -> timedelta:
    _, end = window_bounds(weekly_key(window_start_for(now)))
    return end - now.astimezone(timezone.utc)


def retention_deadline(key: str, retention_days: Optional[int] = None) -> Optional[datetime]:
    """When a period's data may be purged; None for the global period."""
    period = parse_period(key)
    if not period.is_weekly:
        return None
    start, _ = window_bounds(period.key)
    days = settings.WEEKLY_RETENTION_DAYS if retention_days is None else retention_days
    return start + timedelta(days=days)


def is_expired(key: str, now: datetime, retention_days: Optional[int] = None) -> bool:
    deadline = retention_deadline(key, retention_days)
    return deadline is not None and now >= deadline
