from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import UUID, uuid4

from matchpay.exceptions import InvalidMatchError


def _utc_now() -> datetime:
    return datetime.now(UTC)


def to_utc(value: datetime) -> datetime:
    """Express ``value`` in UTC; naive datetimes are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class MatchStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"


class MatchFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    COMPLETE = "complete"
    UNPAID_BY_PARTICIPANT = "unpaid_by_participant"


@dataclass
class Participant:
    name: str
    contribution: Decimal
    id: UUID = field(default_factory=uuid4)
    owed_amount: Decimal | None = None
    settled: bool = False
    settled_at: datetime | None = None
    receipt_ref: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or "unnamed"


@dataclass
class Match:
    total_cost: Decimal
    total_weight: Decimal
    occurs_at: datetime
    payout_key: str
    participants: list[Participant] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)
    status: MatchStatus = MatchStatus.PENDING
    completed_at: datetime | None = None

    @property
    def is_complete(self) -> bool:
        return self.status == MatchStatus.COMPLETE

    @property
    def weight_sum(self) -> Decimal:
        return sum((p.contribution for p in self.participants), Decimal("0"))

    @property
    def allocated_total(self) -> Decimal:
        return sum(
            (p.owed_amount for p in self.participants if p.owed_amount is not None),
            Decimal("0"),
        )

    def find_participant(self, participant_id: UUID) -> Participant | None:
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        return None

    def unsettled(self) -> list[Participant]:
        return [p for p in self.participants if not p.settled]

    def ordered_for_display(self) -> list[Participant]:
        """Unpaid participants first, then alphabetically by name."""
        return sorted(self.participants, key=lambda p: (p.settled, p.name.lower()))

    def validate(self) -> None:
        if self.total_cost < 0:
            raise InvalidMatchError(self.id, "total cost must not be negative")
        if self.total_weight <= 0:
            raise InvalidMatchError(self.id, "total weight must be positive")
        for participant in self.participants:
            if participant.contribution < 0:
                raise InvalidMatchError(
                    self.id,
                    f"participant {participant.id} has a negative contribution",
                )


def with_utc_timestamps(match: Match) -> Match:
    """Copy of ``match`` with every timestamp expressed in UTC.

    Stored matches always carry UTC timestamps, so formatting a date for
    display or search gives the same day whichever backend returned it.
    """
    return replace(
        match,
        occurs_at=to_utc(match.occurs_at),
        completed_at=to_utc(match.completed_at) if match.completed_at else None,
        participants=[
            replace(p, settled_at=to_utc(p.settled_at) if p.settled_at else None)
            for p in match.participants
        ],
    )


def new_participant(name: str = "", contribution: Decimal | int = 1) -> Participant:
    return Participant(name=name, contribution=Decimal(contribution))


def new_match() -> Match:
    return Match(
        total_cost=Decimal("0"),
        total_weight=Decimal("1"),
        occurs_at=_utc_now(),
        payout_key="",
    )


def payment_progress(match: Match) -> int:
    """Percentage of participants who have settled, as a whole number."""
    if not match.participants:
        return 0
    paid = sum(1 for p in match.participants if p.settled)
    ratio = Decimal(paid * 100) / Decimal(len(match.participants))
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
