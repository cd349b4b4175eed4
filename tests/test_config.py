import logging
from collections.abc import Iterator
from pathlib import Path
from uuid import uuid4

import pytest
import structlog

from matchpay.config import DatabaseType, Environment, LogLevel, Settings, get_settings
from matchpay.container import Container
from matchpay.logging_config import (
    _add_store_context,
    build_processors,
    configure_logging,
    get_logger,
    match_context,
)
from matchpay.repositories.postgres import PostgresMatchRepository
from matchpay.repositories.sqlite import SQLiteMatchRepository


@pytest.fixture(autouse=True)
def fresh_settings() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.database_type == DatabaseType.SQLITE
        assert settings.sqlite_path == Path("matchpay.db")
        assert settings.storage_key == "matches"
        assert settings.date_display_format == "%d/%m/%Y"
        assert settings.database_url is None

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MATCHPAY_DATABASE_TYPE", "postgres")
        monkeypatch.setenv("MATCHPAY_DATABASE_URL", "postgresql://u:p@db.internal/matchpay")
        monkeypatch.setenv("MATCHPAY_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("MATCHPAY_ENVIRONMENT", "production")

        settings = Settings()

        assert settings.database_type == DatabaseType.POSTGRES
        assert settings.database_url == "postgresql://u:p@db.internal/matchpay"
        assert settings.log_level == LogLevel.DEBUG
        assert settings.is_production is True
        assert settings.log_format == "json"

    @pytest.mark.parametrize(
        "environment", [Environment.DEVELOPMENT, Environment.TESTING, Environment.STAGING]
    )
    def test_console_logs_outside_production(self, environment: Environment):
        assert Settings(environment=environment).log_format == "console"

    def test_production_defaults_to_json_logs(self):
        assert Settings(environment=Environment.PRODUCTION).log_format == "json"

    def test_explicit_log_format_wins_in_production(self):
        settings = Settings(environment=Environment.PRODUCTION, log_format="console")

        assert settings.log_format == "console"

    def test_get_settings_is_cached(self, monkeypatch: pytest.MonkeyPatch):
        first = get_settings()
        monkeypatch.setenv("MATCHPAY_STORAGE_KEY", "league")

        assert get_settings() is first

        get_settings.cache_clear()
        assert get_settings().storage_key == "league"

    def test_empty_storage_key_rejected(self):
        with pytest.raises(ValueError):
            Settings(storage_key="")


class TestContainer:
    def test_sqlite_is_default(self):
        container = Container(Settings(sqlite_path=":memory:"))

        assert isinstance(container.repository, SQLiteMatchRepository)
        assert container.match_service is container.match_service

    def test_postgres_requires_url(self):
        container = Container(Settings(database_type=DatabaseType.POSTGRES))

        with pytest.raises(ValueError, match="database_url"):
            _ = container.repository

    def test_postgres_repository_built_lazily(self):
        container = Container(
            Settings(
                database_type=DatabaseType.POSTGRES,
                database_url="postgresql://u:p@db.internal/matchpay",
            )
        )

        assert isinstance(container.repository, PostgresMatchRepository)

    @pytest.mark.asyncio
    async def test_round_trip_through_service(self, sample_match):
        settings = Settings(sqlite_path=":memory:", date_display_format="%Y-%m-%d")

        async with Container(settings) as container:
            await container.match_service.create_match(sample_match)
            found = await container.match_service.history(search="2025-03-15")

        assert [m.id for m in found] == [sample_match.id]

    @pytest.mark.asyncio
    async def test_containers_do_not_share_state(self, sample_match):
        async with Container(Settings(sqlite_path=":memory:")) as first:
            await first.match_service.create_match(sample_match)
            async with Container(Settings(sqlite_path=":memory:")) as second:
                assert await second.match_service.history() == []


class TestLogging:
    @pytest.fixture(autouse=True)
    def reset_structlog(self) -> Iterator[None]:
        yield
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()

    def test_json_events_carry_store_context(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MATCHPAY_ENVIRONMENT", "testing")
        monkeypatch.setenv("MATCHPAY_DATABASE_TYPE", "postgres")

        event = _add_store_context(None, "info", {"event": "match_created"})

        assert event["app"] == "matchpay"
        assert event["environment"] == Environment.TESTING.value
        assert event["backend"] == "postgres"

    def test_explicit_backend_is_not_overwritten(self):
        event = _add_store_context(None, "info", {"event": "x", "backend": "sqlite"})

        assert event["backend"] == "sqlite"

    def test_processor_chains(self):
        json_chain = build_processors("json")
        console_chain = build_processors("console")

        assert isinstance(json_chain[-1], structlog.processors.JSONRenderer)
        assert _add_store_context in json_chain
        assert isinstance(console_chain[-1], structlog.dev.ConsoleRenderer)
        assert _add_store_context not in console_chain

    def test_match_context_binds_ids_for_the_block(self):
        match_id, participant_id = uuid4(), uuid4()

        with match_context(match_id, participant_id):
            assert structlog.contextvars.get_contextvars() == {
                "match_id": str(match_id),
                "participant_id": str(participant_id),
            }

        assert structlog.contextvars.get_contextvars() == {}

    def test_match_context_without_participant(self):
        match_id = uuid4()

        with match_context(match_id):
            assert structlog.contextvars.get_contextvars() == {"match_id": str(match_id)}

    def test_configure_json_logging(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "matchpay.log"

        configure_logging(Settings(environment=Environment.PRODUCTION, log_file=log_file))
        get_logger("matchpay.test").info("match_created", participants=2)

        assert log_file.parent.exists()
        root = logging.getLogger()
        for handler in list(root.handlers):
            if isinstance(handler, logging.FileHandler):
                handler.close()
                root.removeHandler(handler)
