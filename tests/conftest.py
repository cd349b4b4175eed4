from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from decimal import Decimal

import pytest
import pytest_asyncio

from matchpay.domain.matches import Match, Participant
from matchpay.repositories.sqlite import SQLiteKeyValueStore, SQLiteMatchRepository

MatchFactory = Callable[..., Match]


@pytest.fixture
def occurs_at() -> datetime:
    return datetime(2025, 3, 15, 19, 30, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 3, 16, 9, 0, tzinfo=UTC)


@pytest.fixture
def make_match(occurs_at: datetime) -> MatchFactory:
    def _make(
        *contributions: int | str,
        total_cost: str = "100",
        total_weight: str = "4",
        names: list[str] | None = None,
        payout_key: str = "court-owner@example.com",
    ) -> Match:
        participant_names = names or [f"Player {i + 1}" for i in range(len(contributions))]
        return Match(
            total_cost=Decimal(total_cost),
            total_weight=Decimal(total_weight),
            occurs_at=occurs_at,
            payout_key=payout_key,
            participants=[
                Participant(name=name, contribution=Decimal(str(c)))
                for name, c in zip(participant_names, contributions)
            ],
        )

    return _make


@pytest.fixture
def sample_match(make_match: MatchFactory) -> Match:
    """Court booked for 100 over four hours: Ana played one hour, Bruno three."""
    return make_match(1, 3, names=["Ana", "Bruno"])


@pytest_asyncio.fixture
async def sqlite_repo() -> AsyncIterator[SQLiteMatchRepository]:
    repo = SQLiteMatchRepository(SQLiteKeyValueStore(":memory:"))
    async with repo:
        yield repo
