from abc import ABC, abstractmethod
from uuid import UUID

from matchpay.domain.matches import Match, MatchFilter


class MatchRepository(ABC):
    """Storage contract for match aggregates.

    Every operation may suspend while the backend performs I/O. Missing
    identities raise MatchNotFoundError / ParticipantNotFoundError, backend
    failures raise StorageUnavailableError or PartialWriteError. Deleting an
    unknown match is a no-op.
    """

    @abstractmethod
    async def open(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def list_all(self) -> list[Match]:
        pass

    @abstractmethod
    async def get(self, match_id: UUID) -> Match | None:
        pass

    @abstractmethod
    async def create(self, match: Match) -> Match:
        pass

    @abstractmethod
    async def update(self, match: Match) -> Match:
        pass

    @abstractmethod
    async def delete(self, match_id: UUID) -> None:
        pass

    @abstractmethod
    async def set_participant_payment(
        self,
        match_id: UUID,
        participant_id: UUID,
        paid: bool,
        receipt_ref: str | None = None,
    ) -> Match:
        pass

    @abstractmethod
    async def query(
        self, match_filter: MatchFilter, participant_id: UUID | None = None
    ) -> list[Match]:
        pass

    async def __aenter__(self) -> "MatchRepository":
        await self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
