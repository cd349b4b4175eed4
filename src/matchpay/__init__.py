from matchpay.domain.allocation import allocate
from matchpay.domain.matches import (
    Match,
    MatchFilter,
    MatchStatus,
    Participant,
    new_match,
    new_participant,
    payment_progress,
)
from matchpay.domain.settlement import derive_status

__all__ = [
    "Match",
    "MatchFilter",
    "MatchStatus",
    "Participant",
    "allocate",
    "derive_status",
    "new_match",
    "new_participant",
    "payment_progress",
]

__version__ = "0.1.0"
