"""Proportional allocation of a match's cost across its participants.

Each participant owes ``contribution / sum(contributions) * total_cost``,
rounded half-up to cents on its own. Rounding is per participant, so the
shares may differ from the total by up to half a cent each; the remainder is
left as is rather than pushed onto any one participant.
"""

from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal

from matchpay.domain.matches import Match

CENT = Decimal("0.01")


def compute_share(contribution: Decimal, weight_sum: Decimal, total_cost: Decimal) -> Decimal:
    return (contribution / weight_sum * total_cost).quantize(CENT, rounding=ROUND_HALF_UP)


def allocate(match: Match) -> Match:
    """Return a copy of ``match`` with every participant's owed amount set.

    A zero weight sum (no participants, or only zero contributions) returns
    the match unchanged.
    """
    weight_sum = match.weight_sum
    if weight_sum == 0:
        return match

    participants = [
        replace(p, owed_amount=compute_share(p.contribution, weight_sum, match.total_cost))
        for p in match.participants
    ]
    return replace(match, participants=participants)
