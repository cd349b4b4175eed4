"""Embedded key-value implementation of MatchRepository.

All matches, with their participants nested inside, are stored as one JSON
document under a single key of a SQLite-backed key-value table.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, TypeVar
from uuid import UUID

from matchpay.domain.filtering import apply_filter
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
    CorruptStoreError,
    DuplicateMatchError,
    MatchNotFoundError,
    StorageUnavailableError,
)
from matchpay.logging_config import get_logger, match_context
from matchpay.repositories.interfaces import MatchRepository

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_KEY = "matches"


class SQLiteKeyValueStore:
    """SQLite connection manager exposing a string key-value table."""

    def __init__(
        self, path: str | Path = ":memory:", check_same_thread: bool = False
    ) -> None:
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._connection: sqlite3.Connection | None = None

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self._connection = sqlite3.connect(
                self._path, check_same_thread=self._check_same_thread
            )
            self._connection.row_factory = sqlite3.Row
        return self._connection

    def initialize(self) -> None:
        conn = self.get_connection()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.commit()

    def get(self, key: str) -> str | None:
        row = (
            self.get_connection()
            .execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            .fetchone()
        )
        if row is None:
            return None
        return row["value"]

    def put(self, key: str, value: str) -> None:
        conn = self.get_connection()
        conn.execute(
            """
            INSERT INTO kv_store (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
        conn.commit()

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None


def _participant_to_document(participant: Participant) -> dict[str, Any]:
    return {
        "id": str(participant.id),
        "name": participant.name,
        "hours_played": str(participant.contribution),
        "owed_amount": str(participant.owed_amount)
        if participant.owed_amount is not None
        else None,
        "paid": participant.settled,
        "settled_at": participant.settled_at.isoformat()
        if participant.settled_at
        else None,
        "receipt_ref": participant.receipt_ref,
    }


def _match_to_document(match: Match) -> dict[str, Any]:
    return {
        "id": str(match.id),
        "total_cost": str(match.total_cost),
        "total_hours": str(match.total_weight),
        "occurs_at": match.occurs_at.isoformat(),
        "payout_key": match.payout_key,
        "status": match.status.value,
        "completed_at": match.completed_at.isoformat() if match.completed_at else None,
        "participants": [_participant_to_document(p) for p in match.participants],
    }


def _document_to_participant(doc: dict[str, Any]) -> Participant:
    return Participant(
        id=UUID(doc["id"]),
        name=doc["name"],
        contribution=Decimal(doc["hours_played"]),
        owed_amount=Decimal(doc["owed_amount"])
        if doc.get("owed_amount") is not None
        else None,
        settled=bool(doc["paid"]),
        settled_at=to_utc(datetime.fromisoformat(doc["settled_at"]))
        if doc.get("settled_at")
        else None,
        receipt_ref=doc.get("receipt_ref"),
    )


def _document_to_match(doc: dict[str, Any]) -> Match:
    return Match(
        id=UUID(doc["id"]),
        total_cost=Decimal(doc["total_cost"]),
        total_weight=Decimal(doc["total_hours"]),
        occurs_at=to_utc(datetime.fromisoformat(doc["occurs_at"])),
        payout_key=doc["payout_key"],
        status=MatchStatus(doc["status"]),
        completed_at=to_utc(datetime.fromisoformat(doc["completed_at"]))
        if doc.get("completed_at")
        else None,
        participants=[_document_to_participant(p) for p in doc.get("participants", [])],
    )


class SQLiteMatchRepository(MatchRepository):
    """MatchRepository over an embedded key-value store."""

    def __init__(self, store: SQLiteKeyValueStore, key: str = DEFAULT_KEY) -> None:
        self._store = store
        self._key = key

    async def _run(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            logger.error("storage_unavailable", operation=operation, error=str(exc))
            raise StorageUnavailableError(operation, str(exc), backend="sqlite") from exc

    def _load(self) -> list[Match]:
        raw = self._store.get(self._key)
        if raw is None:
            return []
        try:
            return [_document_to_match(doc) for doc in json.loads(raw)]
        except (ValueError, KeyError, TypeError, InvalidOperation) as exc:
            raise CorruptStoreError(self._key, str(exc)) from exc

    def _save(self, matches: list[Match]) -> None:
        self._store.put(self._key, json.dumps([_match_to_document(m) for m in matches]))

    async def open(self) -> None:
        await self._run("open", self._store.initialize)
        logger.info("match_store_opened", backend="sqlite", key=self._key)

    async def close(self) -> None:
        await self._run("close", self._store.close)

    async def list_all(self) -> list[Match]:
        return await self._run("list_all", self._load)

    async def get(self, match_id: UUID) -> Match | None:
        matches = await self._run("get", self._load)
        for match in matches:
            if match.id == match_id:
                return match
        return None

    def _create(self, match: Match) -> Match:
        matches = self._load()
        if any(m.id == match.id for m in matches):
            raise DuplicateMatchError(match.id)
        stored = derive_status(with_utc_timestamps(match))
        matches.append(stored)
        self._save(matches)
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
        matches = self._load()
        for index, existing in enumerate(matches):
            if existing.id == match.id:
                stored = derive_status(with_utc_timestamps(match))
                matches[index] = stored
                self._save(matches)
                return stored
        raise MatchNotFoundError(match.id, "update")

    async def update(self, match: Match) -> Match:
        with match_context(match.id):
            stored = await self._run("update", self._update, match)
            logger.info("match_updated", status=stored.status.value)
        return stored

    def _delete(self, match_id: UUID) -> bool:
        matches = self._load()
        remaining = [m for m in matches if m.id != match_id]
        if len(remaining) == len(matches):
            return False
        self._save(remaining)
        return True

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
        matches = self._load()
        for index, existing in enumerate(matches):
            if existing.id == match_id:
                stored = settle_participant(existing, participant_id, paid, receipt_ref)
                matches[index] = stored
                self._save(matches)
                return stored
        raise MatchNotFoundError(match_id, "set_participant_payment")

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

    async def query(
        self, match_filter: MatchFilter, participant_id: UUID | None = None
    ) -> list[Match]:
        matches = await self._run("query", self._load)
        return apply_filter(matches, match_filter, participant_id)

