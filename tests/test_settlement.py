from dataclasses import replace
from datetime import datetime
from itertools import product
from uuid import uuid4

import pytest

from matchpay.domain.matches import Match, MatchStatus, Participant
from matchpay.domain.settlement import apply_payment, derive_status, settle_participant
from matchpay.exceptions import ParticipantNotFoundError


def _with_flags(match: Match, flags: tuple[bool, ...]) -> Match:
    return replace(
        match,
        participants=[
            replace(p, settled=flag) for p, flag in zip(match.participants, flags)
        ],
    )


class TestDeriveStatus:
    def test_all_settled_completes_pending_match(self, sample_match: Match, now: datetime):
        match = _with_flags(sample_match, (True, True))

        derived = derive_status(match, now)

        assert derived.status == MatchStatus.COMPLETE
        assert derived.completed_at == now

    def test_partially_settled_stays_pending(self, sample_match: Match, now: datetime):
        match = _with_flags(sample_match, (True, False))

        derived = derive_status(match, now)

        assert derived.status == MatchStatus.PENDING
        assert derived.completed_at is None

    def test_unsettling_reverts_complete_match(self, sample_match: Match, now: datetime):
        complete = derive_status(_with_flags(sample_match, (True, True)), now)

        reverted = derive_status(_with_flags(complete, (True, False)), now)

        assert reverted.status == MatchStatus.PENDING
        assert reverted.completed_at is None

    def test_already_complete_keeps_original_timestamp(
        self, sample_match: Match, now: datetime
    ):
        complete = derive_status(_with_flags(sample_match, (True, True)), now)

        again = derive_status(complete, datetime(2030, 1, 1))

        assert again.completed_at == now

    def test_empty_pending_match_is_not_completed(self, make_match):
        match = make_match()

        assert derive_status(match) is match
        assert match.status == MatchStatus.PENDING

    def test_empty_complete_match_is_left_alone(self, make_match, now: datetime):
        match = replace(make_match(), status=MatchStatus.COMPLETE, completed_at=now)

        derived = derive_status(match)

        assert derived.status == MatchStatus.COMPLETE
        assert derived.completed_at == now

    def test_complete_without_timestamp_gets_one(self, sample_match: Match, now: datetime):
        match = replace(
            _with_flags(sample_match, (True, True)), status=MatchStatus.COMPLETE
        )

        derived = derive_status(match, now)

        assert derived.status == MatchStatus.COMPLETE
        assert derived.completed_at == now

    def test_caller_supplied_complete_is_overridden_by_flags(
        self, sample_match: Match, now: datetime
    ):
        match = replace(
            _with_flags(sample_match, (True, False)),
            status=MatchStatus.COMPLETE,
            completed_at=now,
        )

        derived = derive_status(match, now)

        assert derived.status == MatchStatus.PENDING
        assert derived.completed_at is None

    def test_empty_complete_match_without_timestamp_gets_one(
        self, make_match, now: datetime
    ):
        match = replace(make_match(), status=MatchStatus.COMPLETE)

        derived = derive_status(match, now)

        assert derived.status == MatchStatus.COMPLETE
        assert derived.completed_at == now

    def test_empty_pending_match_drops_stray_timestamp(self, make_match, now: datetime):
        match = replace(make_match(), completed_at=now)

        derived = derive_status(match)

        assert derived.status == MatchStatus.PENDING
        assert derived.completed_at is None

    @pytest.mark.parametrize("flags", list(product([True, False], repeat=3)))
    def test_complete_iff_everyone_settled(self, make_match, flags: tuple[bool, ...]):
        match = _with_flags(make_match(1, 2, 3), flags)

        derived = derive_status(match)

        assert derived.is_complete == all(flags)
        assert (derived.completed_at is not None) == all(flags)


class TestApplyPayment:
    @pytest.fixture
    def participant(self) -> Participant:
        return Participant(name="Ana", contribution=1, receipt_ref="receipts/ana-1.png")

    def test_paid_sets_timestamp_and_keeps_existing_receipt(
        self, participant: Participant, now: datetime
    ):
        paid = apply_payment(participant, True, now=now)

        assert paid.settled is True
        assert paid.settled_at == now
        assert paid.receipt_ref == "receipts/ana-1.png"

    def test_paid_with_new_receipt_replaces_it(self, participant: Participant, now: datetime):
        paid = apply_payment(participant, True, "receipts/ana-2.png", now)

        assert paid.receipt_ref == "receipts/ana-2.png"

    def test_unpaid_clears_timestamp_and_receipt(
        self, participant: Participant, now: datetime
    ):
        paid = apply_payment(participant, True, now=now)

        unpaid = apply_payment(paid, False, "ignored.png")

        assert unpaid.settled is False
        assert unpaid.settled_at is None
        assert unpaid.receipt_ref is None


class TestSettleParticipant:
    def test_settling_everyone_completes_match(self, sample_match: Match, now: datetime):
        ana, bruno = sample_match.participants

        match = settle_participant(sample_match, ana.id, True, now=now)
        assert match.status == MatchStatus.PENDING

        match = settle_participant(match, bruno.id, True, now=now)
        assert match.status == MatchStatus.COMPLETE
        assert match.completed_at == now

    def test_unknown_participant_raises(self, sample_match: Match):
        missing = uuid4()

        with pytest.raises(ParticipantNotFoundError) as exc_info:
            settle_participant(sample_match, missing, True)

        assert exc_info.value.context["participant_id"] == str(missing)
        assert exc_info.value.context["match_id"] == str(sample_match.id)
