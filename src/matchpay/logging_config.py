"""structlog setup for matchpay.

Console rendering while developing, one JSON object per line in production.
Repository writes run inside ``match_context`` so every event they emit,
including those logged from the storage worker thread, carries the match id
and, for payments, the participant id.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from matchpay.config import Settings, get_settings


def _add_store_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp JSON events with the app, environment and configured backend."""
    settings = get_settings()
    event_dict.setdefault("app", settings.app_name)
    event_dict.setdefault("environment", settings.environment.value)
    event_dict.setdefault("backend", settings.database_type.value)
    return event_dict


def build_processors(log_format: str) -> list[Processor]:
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if log_format == "json":
        return [
            *shared,
            _add_store_context,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [
        *shared,
        structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        ),
    ]


def configure_logging(settings: Settings | None = None) -> None:
    """Route structlog through stdlib logging at the configured level.

    Call once at startup, before the first repository is opened.
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.value)

    structlog.configure(
        processors=build_processors(settings.log_format or "console"),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file)
        file_handler.setLevel(level)
        logging.getLogger().addHandler(file_handler)

    # storage calls run in worker threads, which asyncio reports at DEBUG
    logging.getLogger("asyncio").setLevel(max(level, logging.INFO))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger(name)


@contextmanager
def match_context(match_id: UUID, participant_id: UUID | None = None) -> Iterator[None]:
    """Bind the match (and participant) being written to every event in the block."""
    ids = {"match_id": str(match_id)}
    if participant_id is not None:
        ids["participant_id"] = str(participant_id)
    with structlog.contextvars.bound_contextvars(**ids):
        yield
