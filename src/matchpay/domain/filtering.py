"""Read-side projections over lists of matches.

Everything here is a pure function of its inputs; nothing recomputes
allocation or status.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from matchpay.domain.matches import Match, MatchFilter, MatchStatus

DEFAULT_DATE_FORMAT = "%d/%m/%Y"


@dataclass(frozen=True)
class PendingPayment:
    match_id: UUID
    participant_id: UUID
    participant_name: str
    amount: Decimal | None
    occurs_at: datetime
    payout_key: str


def has_unpaid(match: Match, participant_id: UUID) -> bool:
    return any(p.id == participant_id and not p.settled for p in match.participants)


def apply_filter(
    matches: Iterable[Match],
    match_filter: MatchFilter,
    participant_id: UUID | None = None,
) -> list[Match]:
    """Select matches by status or by one participant's unpaid share.

    UNPAID_BY_PARTICIPANT without a participant id selects everything.
    """
    if match_filter == MatchFilter.PENDING:
        return [m for m in matches if m.status == MatchStatus.PENDING]
    if match_filter == MatchFilter.COMPLETE:
        return [m for m in matches if m.status == MatchStatus.COMPLETE]
    if match_filter == MatchFilter.UNPAID_BY_PARTICIPANT and participant_id is not None:
        return [m for m in matches if has_unpaid(m, participant_id)]
    return list(matches)


def format_cost(amount: Decimal) -> str:
    """Render a cost the way a user would type it: ``100``, ``100.5``."""
    return format(amount.normalize(), "f")


def matches_term(match: Match, term: str, date_format: str = DEFAULT_DATE_FORMAT) -> bool:
    needle = term.lower()
    if needle in match.occurs_at.strftime(date_format).lower():
        return True
    if needle in format_cost(match.total_cost):
        return True
    return any(needle in p.name.lower() for p in match.participants)


def search_matches(
    matches: Iterable[Match],
    term: str | None,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> list[Match]:
    """Narrow ``matches`` to those whose date, cost or participant names contain ``term``.

    A blank term keeps everything.
    """
    if term is None or not term.strip():
        return list(matches)
    needle = term.strip()
    return [m for m in matches if matches_term(m, needle, date_format)]


def pending_payments(matches: Iterable[Match]) -> list[PendingPayment]:
    """One row per participant who still owes, across all given matches."""
    return [
        PendingPayment(
            match_id=match.id,
            participant_id=participant.id,
            participant_name=participant.display_name,
            amount=participant.owed_amount,
            occurs_at=match.occurs_at,
            payout_key=match.payout_key,
        )
        for match in matches
        for participant in match.unsettled()
    ]
