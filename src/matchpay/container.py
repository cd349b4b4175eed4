"""Explicit wiring of the configured repository and service.

There is no module-level store: callers build a Container, open it, hand its
service (or repository) to whatever needs it, and close it when done.

Usage:
    async with Container(settings) as container:
        match = await container.match_service.create_match(match)
"""

from functools import cached_property

from matchpay.config import DatabaseType, Settings, get_settings
from matchpay.logging_config import get_logger
from matchpay.repositories.interfaces import MatchRepository
from matchpay.repositories.postgres import PostgresDatabase, PostgresMatchRepository
from matchpay.repositories.sqlite import SQLiteKeyValueStore, SQLiteMatchRepository
from matchpay.services.matches import MatchService

logger = get_logger(__name__)


class Container:
    """Builds the repository selected by settings and the service on top of it.

    For tests, pass custom settings:

        Container(Settings(database_type=DatabaseType.SQLITE, sqlite_path=":memory:"))
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        logger.debug(
            "container_created",
            database_type=self._settings.database_type.value,
            environment=self._settings.environment.value,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @cached_property
    def repository(self) -> MatchRepository:
        if self._settings.database_type == DatabaseType.POSTGRES:
            return self._create_postgres_repository()
        return self._create_sqlite_repository()

    def _create_sqlite_repository(self) -> MatchRepository:
        path = str(self._settings.sqlite_path)
        logger.info("configuring_sqlite_store", path=path, key=self._settings.storage_key)
        return SQLiteMatchRepository(
            SQLiteKeyValueStore(path), key=self._settings.storage_key
        )

    def _create_postgres_repository(self) -> MatchRepository:
        url = self._settings.database_url
        if not url:
            raise ValueError("database_url must be set when database_type is postgres")

        logger.info(
            "configuring_postgres_store",
            # Don't log the full URL as it may contain credentials
            host=url.split("@")[-1].split("/")[0] if "@" in url else "localhost",
        )
        return PostgresMatchRepository(PostgresDatabase(url))

    @cached_property
    def match_service(self) -> MatchService:
        return MatchService(self.repository, date_format=self._settings.date_display_format)

    async def open(self) -> None:
        await self.repository.open()

    async def close(self) -> None:
        logger.info("closing_match_store")
        await self.repository.close()

    async def __aenter__(self) -> "Container":
        await self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
