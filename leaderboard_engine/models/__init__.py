from .score_entry import ScoreEntry
from .weekly_stats import WeeklyStats
from .position_record import PositionRecord
from .prize import PrizePool, PrizeArchive, PrizePoolStatus
from .run_record import RunRecord
from .token_pool import TokenPoolSnapshot
from .user_profile import UserProfile, ProfileKind

__all__ = [
    "ScoreEntry",
    "WeeklyStats",
    "PositionRecord",
    "PrizePool",
    "PrizeArchive",
    "PrizePoolStatus",
    "RunRecord",
    "TokenPoolSnapshot",
    "UserProfile",
    "ProfileKind",
]
