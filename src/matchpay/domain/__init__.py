from matchpay.domain.allocation import allocate, compute_share
from matchpay.domain.filtering import (
    PendingPayment,
    apply_filter,
    pending_payments,
    search_matches,
)
from matchpay.domain.matches import (
    Match,
    MatchFilter,
    MatchStatus,
    Participant,
    new_match,
    new_participant,
    payment_progress,
    to_utc,
    with_utc_timestamps,
)
from matchpay.domain.settlement import apply_payment, derive_status, settle_participant

__all__ = [
    "Match",
    "MatchFilter",
    "MatchStatus",
    "Participant",
    "PendingPayment",
    "allocate",
    "apply_filter",
    "apply_payment",
    "compute_share",
    "derive_status",
    "new_match",
    "new_participant",
    "payment_progress",
    "pending_payments",
    "search_matches",
    "settle_participant",
    "to_utc",
    "with_utc_timestamps",
]
