from matchpay.repositories.interfaces import MatchRepository
from matchpay.repositories.postgres import PostgresDatabase, PostgresMatchRepository
from matchpay.repositories.sqlite import SQLiteKeyValueStore, SQLiteMatchRepository

__all__ = [
    "MatchRepository",
    "PostgresDatabase",
    "PostgresMatchRepository",
    "SQLiteKeyValueStore",
    "SQLiteMatchRepository",
]
