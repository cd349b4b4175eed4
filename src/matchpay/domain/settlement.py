"""Settlement state of a match.

A match is pending until every participant has settled, at which point it
becomes complete and records when. Unsettling anyone reverts it to pending.
"""

from dataclasses import replace
from datetime import UTC, datetime
from uuid import UUID

from matchpay.domain.matches import Match, MatchStatus, Participant
from matchpay.exceptions import ParticipantNotFoundError


def derive_status(match: Match, now: datetime | None = None) -> Match:
    """Re-evaluate ``match.status`` from its participants' payment flags.

    The status a caller passed in is ignored whenever there are participants.
    An empty participant collection keeps its status, but ``completed_at`` is
    still made to agree with it. A match that was already complete keeps its
    original ``completed_at``.
    """
    if match.participants:
        complete = not match.unsettled()
    else:
        complete = match.is_complete

    if not complete:
        if match.status == MatchStatus.PENDING and match.completed_at is None:
            return match
        return replace(match, status=MatchStatus.PENDING, completed_at=None)

    if match.is_complete and match.completed_at is not None:
        return match
    return replace(
        match,
        status=MatchStatus.COMPLETE,
        completed_at=now or datetime.now(UTC),
    )


def apply_payment(
    participant: Participant,
    paid: bool,
    receipt_ref: str | None = None,
    now: datetime | None = None,
) -> Participant:
    """Return ``participant`` with its payment flag set to ``paid``.

    Marking paid keeps an existing receipt unless a new one is given.
    Marking unpaid clears both the settlement time and the receipt.
    """
    if paid:
        return replace(
            participant,
            settled=True,
            settled_at=now or datetime.now(UTC),
            receipt_ref=receipt_ref or participant.receipt_ref,
        )
    return replace(participant, settled=False, settled_at=None, receipt_ref=None)


def settle_participant(
    match: Match,
    participant_id: UUID,
    paid: bool,
    receipt_ref: str | None = None,
    now: datetime | None = None,
) -> Match:
    """Apply a payment change to one participant and re-derive the match status."""
    now = now or datetime.now(UTC)
    participants = []
    found = False
    for participant in match.participants:
        if participant.id == participant_id:
            participant = apply_payment(participant, paid, receipt_ref, now)
            found = True
        participants.append(participant)
    if not found:
        raise ParticipantNotFoundError(match.id, participant_id, "set_participant_payment")
    return derive_status(replace(match, participants=participants), now)
