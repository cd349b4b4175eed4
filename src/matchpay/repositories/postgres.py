"""PostgreSQL implementation of MatchRepository.

Matches and participants live in two tables joined by ``participants.match_id``.
An aggregate is assembled by fetching the match rows, fetching the
participants of those matches in one query, grouping them by match id and
attaching each group to its match.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import defaultdict
from collections.abc import Callable
from typing import Any, TypeVar
from uuid import UUID

import psycopg2
import psycopg2.extras

from matchpay.domain.matches import (
    Match,
    MatchFilter,
    MatchStatus,
    Participant,
    to_utc,
    with_utc_timestamps,
)
from matchpay.domain.settlement import derive_status, settle_participant
from matchpay.exceptions import (
    DuplicateMatchError,
    MatchNotFoundError,
    MatchPayError,
    ParticipantNotFoundError,
    PartialWriteError,
    StorageUnavailableError,
)
from matchpay.logging_config import get_logger, match_context
from matchpay.repositories.interfaces import MatchRepository

logger = get_logger(__name__)

T = TypeVar("T")


class PostgresDatabase:
    """PostgreSQL database connection manager."""

    def __init__(self, connection_string: str) -> None:
        self._connection_string = connection_string
        self._connection: psycopg2.extensions.connection | None = None

    def get_connection(self) -> psycopg2.extensions.connection:
        """Get or create the database connection."""
        if self._connection is None or self._connection.closed:
            self._connection = psycopg2.connect(
                self._connection_string,
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
        return self._connection

    def initialize(self) -> None:
        """Create the matches and participants tables."""
        conn = self.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS matches (
                    id TEXT PRIMARY KEY,
                    total_cost NUMERIC NOT NULL,
                    total_hours NUMERIC NOT NULL,
                    occurs_at TIMESTAMPTZ NOT NULL,
                    payout_key TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'pending',
                    completed_at TIMESTAMPTZ
                );

                CREATE TABLE IF NOT EXISTS participants (
                    id TEXT PRIMARY KEY,
                    match_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    name TEXT NOT NULL DEFAULT '',
                    hours_played NUMERIC NOT NULL,
                    owed_amount NUMERIC,
                    paid BOOLEAN NOT NULL DEFAULT FALSE,
                    settled_at TIMESTAMPTZ,
                    receipt_ref TEXT,
                    FOREIGN KEY (match_id) REFERENCES matches(id) ON DELETE CASCADE
                );
                CREATE INDEX IF NOT EXISTS idx_participants_match ON participants(match_id);
                CREATE INDEX IF NOT EXISTS idx_matches_status ON matches(status);
                """
            )
        conn.commit()

    def rollback(self) -> None:
        if self._connection is not None and not self._connection.closed:
            # a broken connection cannot roll back; the next call reconnects
            with contextlib.suppress(psycopg2.Error):
                self._connection.rollback()

    def close(self) -> None:
        if self._connection is not None and not self._connection.closed:
            self._connection.close()
        self._connection = None


class PostgresMatchRepository(MatchRepository):
    """MatchRepository over the two-table relational layout."""

    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    async def _run(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except MatchPayError:
            self._db.rollback()
            raise
        except psycopg2.Error as exc:
            self._db.rollback()
            logger.error("storage_unavailable", operation=operation, error=str(exc))
            raise StorageUnavailableError(operation, str(exc), backend="postgres") from exc

    async def open(self) -> None:
        await self._run("open", self._db.initialize)
        logger.info("match_store_opened", backend="postgres")

    async def close(self) -> None:
        await self._run("close", self._db.close)

    # ===== READS =====

    def _select(self, where: str = "", params: tuple[Any, ...] = ()) -> list[Match]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(f"SELECT * FROM matches {where} ORDER BY occurs_at, id", params)
            rows = cur.fetchall()
        return self._assemble(conn, rows)

    def _assemble(self, conn: Any, rows: list[dict[str, Any]]) -> list[Match]:
        if not rows:
            return []
        match_ids = [row["id"] for row in rows]
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT * FROM participants
                    WHERE match_id = ANY(%s)
                    ORDER BY match_id, position
                    """,
                    (match_ids,),
                )
                participant_rows = cur.fetchall()
        except psycopg2.Error as exc:
            # an empty participant list here would be indistinguishable from a real one
            raise StorageUnavailableError(
                "fetch_participants", str(exc), match_ids=match_ids
            ) from exc

        by_match: dict[str, list[Participant]] = defaultdict(list)
        for participant_row in participant_rows:
            by_match[participant_row["match_id"]].append(
                self._row_to_participant(participant_row)
            )
        return [self._row_to_match(row, by_match.get(row["id"], [])) for row in rows]

    def _get(self, match_id: UUID) -> Match | None:
        matches = self._select("WHERE id = %s", (str(match_id),))
        return matches[0] if matches else None

    async def list_all(self) -> list[Match]:
        return await self._run("list_all", self._select)

    async def get(self, match_id: UUID) -> Match | None:
        return await self._run("get", self._get, match_id)

    def _query(self, match_filter: MatchFilter, participant_id: UUID | None) -> list[Match]:
        if match_filter in (MatchFilter.PENDING, MatchFilter.COMPLETE):
            return self._select("WHERE status = %s", (match_filter.value,))
        if match_filter == MatchFilter.UNPAID_BY_PARTICIPANT and participant_id is not None:
            return self._select(
                """
                WHERE EXISTS (
                    SELECT 1 FROM participants p
                    WHERE p.match_id = matches.id AND p.id = %s AND NOT p.paid
                )
                """,
                (str(participant_id),),
            )
        return self._select()

    async def query(
        self, match_filter: MatchFilter, participant_id: UUID | None = None
    ) -> list[Match]:
        return await self._run("query", self._query, match_filter, participant_id)

    # ===== WRITES =====

    def _insert_participants(self, cur: Any, match: Match) -> None:
        for position, participant in enumerate(match.participants):
            cur.execute(
                """
                INSERT INTO participants (id, match_id, position, name, hours_played,
                                          owed_amount, paid, settled_at, receipt_ref)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    str(participant.id),
                    str(match.id),
                    position,
                    participant.name,
                    participant.contribution,
                    participant.owed_amount,
                    participant.settled,
                    participant.settled_at,
                    participant.receipt_ref,
                ),
            )

    def _create(self, match: Match) -> Match:
        stored = derive_status(with_utc_timestamps(match))
        conn = self._db.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO matches (id, total_cost, total_hours, occurs_at,
                                         payout_key, status, completed_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        str(stored.id),
                        stored.total_cost,
                        stored.total_weight,
                        stored.occurs_at,
                        stored.payout_key,
                        stored.status.value,
                        stored.completed_at,
                    ),
                )
        except psycopg2.IntegrityError as exc:
            raise DuplicateMatchError(stored.id) from exc

        try:
            with conn.cursor() as cur:
                self._insert_participants(cur, stored)
        except psycopg2.Error as exc:
            logger.error("partial_write", operation="create")
            raise PartialWriteError("create", stored.id, str(exc)) from exc
        conn.commit()
        return stored

    async def create(self, match: Match) -> Match:
        with match_context(match.id):
            stored = await self._run("create", self._create, match)
            logger.info(
                "match_created",
                participants=len(stored.participants),
                status=stored.status.value,
            )
        return stored

    def _update(self, match: Match) -> Match:
        stored = derive_status(with_utc_timestamps(match))
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE matches SET
                    total_cost = %s,
                    total_hours = %s,
                    occurs_at = %s,
                    payout_key = %s,
                    status = %s,
                    completed_at = %s
                WHERE id = %s
                """,
                (
                    stored.total_cost,
                    stored.total_weight,
                    stored.occurs_at,
                    stored.payout_key,
                    stored.status.value,
                    stored.completed_at,
                    str(stored.id),
                ),
            )
            if cur.rowcount == 0:
                raise MatchNotFoundError(stored.id, "update")

        try:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM participants WHERE match_id = %s", (str(stored.id),)
                )
                self._insert_participants(cur, stored)
        except psycopg2.Error as exc:
            logger.error("partial_write", operation="update")
            raise PartialWriteError("update", stored.id, str(exc)) from exc
        conn.commit()
        return stored

    async def update(self, match: Match) -> Match:
        with match_context(match.id):
            stored = await self._run("update", self._update, match)
            logger.info("match_updated", status=stored.status.value)
        return stored

    def _delete(self, match_id: UUID) -> bool:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute("DELETE FROM matches WHERE id = %s", (str(match_id),))
            deleted = cur.rowcount > 0
        conn.commit()
        return deleted

    async def delete(self, match_id: UUID) -> None:
        with match_context(match_id):
            deleted = await self._run("delete", self._delete, match_id)
            if deleted:
                logger.info("match_deleted")
            else:
                logger.debug("match_delete_noop")

    def _set_payment(
        self,
        match_id: UUID,
        participant_id: UUID,
        paid: bool,
        receipt_ref: str | None,
    ) -> Match:
        match = self._get(match_id)
        if match is None:
            raise MatchNotFoundError(match_id, "set_participant_payment")
        position = next(
            (i for i, p in enumerate(match.participants) if p.id == participant_id), None
        )
        if position is None:
            raise ParticipantNotFoundError(match_id, participant_id, "set_participant_payment")
        stored = settle_participant(match, participant_id, paid, receipt_ref)
        participant = stored.participants[position]

        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE participants SET paid = %s, settled_at = %s, receipt_ref = %s
                WHERE id = %s AND match_id = %s
                """,
                (
                    participant.settled,
                    participant.settled_at,
                    participant.receipt_ref,
                    str(participant_id),
                    str(match_id),
                ),
            )
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE matches SET status = %s, completed_at = %s WHERE id = %s",
                    (stored.status.value, stored.completed_at, str(match_id)),
                )
        except psycopg2.Error as exc:
            logger.error("partial_write", operation="set_participant_payment")
            raise PartialWriteError("set_participant_payment", match_id, str(exc)) from exc
        conn.commit()
        return stored

    async def set_participant_payment(
        self,
        match_id: UUID,
        participant_id: UUID,
        paid: bool,
        receipt_ref: str | None = None,
    ) -> Match:
        with match_context(match_id, participant_id):
            stored = await self._run(
                "set_participant_payment",
                self._set_payment,
                match_id,
                participant_id,
                paid,
                receipt_ref,
            )
            logger.info("participant_payment_set", paid=paid, status=stored.status.value)
        return stored

    # ===== ROW MAPPING =====

    def _row_to_match(self, row: dict[str, Any], participants: list[Participant]) -> Match:
        return Match(
            id=UUID(row["id"]),
            total_cost=row["total_cost"],
            total_weight=row["total_hours"],
            occurs_at=to_utc(row["occurs_at"]),
            payout_key=row["payout_key"],
            status=MatchStatus(row["status"]),
            completed_at=to_utc(row["completed_at"]) if row["completed_at"] else None,
            participants=participants,
        )

    def _row_to_participant(self, row: dict[str, Any]) -> Participant:
        return Participant(
            id=UUID(row["id"]),
            name=row["name"],
            contribution=row["hours_played"],
            owed_amount=row["owed_amount"],
            settled=bool(row["paid"]),
            settled_at=to_utc(row["settled_at"]) if row["settled_at"] else None,
            receipt_ref=row["receipt_ref"],
        )
