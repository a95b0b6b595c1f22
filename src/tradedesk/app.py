"""Application wiring: logging configuration and shared service construction.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **SQLite** record store and event log on one connection
- **TradeDesk** lifecycle façade bound to both
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TextIO

import structlog

from tradedesk.config import Settings, get_settings
from tradedesk.lifecycle.facade import TradeDesk
from tradedesk.store.event_log import EventLog
from tradedesk.store.records import SQLiteRecordStore
from tradedesk.store.schema import init_database

logger = structlog.get_logger()


def configure_logging(production: bool = False, file: TextIO | None = None) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        file: Stream log lines are written to; stdout if ``None``.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=file),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service="tradedesk")


def initialize_services(
    settings: Settings | None = None, db_path: Path | str | None = None
) -> dict[str, Any]:
    """Open the database and build the shared services.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.
        db_path: Overrides ``settings.database_path``; ``":memory:"`` is
            accepted for throwaway databases.

    Returns:
        A dict with ``conn``, ``store``, ``event_log`` and ``desk``.
    """
    if settings is None:
        settings = get_settings()

    path = Path(db_path) if db_path is not None else settings.database_path
    if str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    conn = init_database(path)

    store = SQLiteRecordStore(conn)
    event_log = EventLog(conn)
    desk = TradeDesk(store, event_log, settings=settings)

    logger.info("services_initialized", database_path=str(path))
    return {"conn": conn, "store": store, "event_log": event_log, "desk": desk}
