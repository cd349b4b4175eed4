from __future__ import annotations

from uuid import UUID

from matchpay.domain.allocation import allocate
from matchpay.domain.filtering import (
    DEFAULT_DATE_FORMAT,
    PendingPayment,
    pending_payments,
    search_matches,
)
from matchpay.domain.matches import Match, MatchFilter
from matchpay.logging_config import get_logger, match_context
from matchpay.repositories.interfaces import MatchRepository

logger = get_logger(__name__)


class MatchService:
    """Write and read workflows over a MatchRepository.

    Writes run through validation and allocation before reaching storage;
    repository errors are not caught here.
    """

    def __init__(
        self,
        repository: MatchRepository,
        date_format: str = DEFAULT_DATE_FORMAT,
    ) -> None:
        self._repository = repository
        self._date_format = date_format

    async def create_match(self, match: Match) -> Match:
        match.validate()
        created = await self._repository.create(allocate(match))
        logger.debug("match_allocated", match_id=str(created.id), total=str(created.allocated_total))
        return created

    async def update_match(self, match: Match) -> Match:
        match.validate()
        return await self._repository.update(allocate(match))

    async def get_match(self, match_id: UUID) -> Match | None:
        return await self._repository.get(match_id)

    async def delete_match(self, match_id: UUID) -> None:
        await self._repository.delete(match_id)

    async def mark_paid(self, match_id: UUID, participant_id: UUID) -> Match:
        return await self._repository.set_participant_payment(
            match_id, participant_id, paid=True
        )

    async def mark_unpaid(self, match_id: UUID, participant_id: UUID) -> Match:
        return await self._repository.set_participant_payment(
            match_id, participant_id, paid=False
        )

    async def attach_receipt(
        self, match_id: UUID, participant_id: UUID, receipt_ref: str
    ) -> Match:
        """Attach proof of payment; the participant is marked paid as well."""
        with match_context(match_id, participant_id):
            logger.info("receipt_attached")
            return await self._repository.set_participant_payment(
                match_id, participant_id, paid=True, receipt_ref=receipt_ref
            )

    async def history(
        self,
        match_filter: MatchFilter = MatchFilter.ALL,
        participant_id: UUID | None = None,
        search: str | None = None,
    ) -> list[Match]:
        matches = await self._repository.query(match_filter, participant_id)
        return search_matches(matches, search, self._date_format)

    async def pending_payments(self) -> list[PendingPayment]:
        return pending_payments(await self._repository.list_all())
