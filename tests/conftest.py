"""Shared pytest fixtures for the trade desk test suite."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from typing import Any

import pytest
from structlog.testing import capture_logs

from tradedesk.config import Settings
from tradedesk.domain.types import EntityType
from tradedesk.lifecycle.facade import TradeDesk
from tradedesk.store.event_log import EventLog
from tradedesk.store.records import SQLiteRecordStore
from tradedesk.store.schema import close_database, init_database


class FakeClock:
    """Deterministic epoch-millisecond clock that ticks on every read."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1_000) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def log_output() -> Iterator[list[dict[str, Any]]]:
    """Capture structlog events so tests can assert on them and stdout stays clean."""
    with capture_logs() as logs:
        yield logs


@pytest.fixture
def conn() -> Iterator[sqlite3.Connection]:
    """An in-memory trade desk database with every table created."""
    connection = init_database(":memory:")
    yield connection
    close_database(connection)


@pytest.fixture
def store(conn: sqlite3.Connection) -> SQLiteRecordStore:
    return SQLiteRecordStore(conn)


@pytest.fixture
def event_log(conn: sqlite3.Connection) -> EventLog:
    return EventLog(conn)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from .env files, with retries that do not sleep."""
    return Settings(_env_file=None, saga_retry_wait_seconds=0)  # type: ignore[call-arg]


@pytest.fixture
def desk(
    store: SQLiteRecordStore, event_log: EventLog, settings: Settings, clock: FakeClock
) -> TradeDesk:
    return TradeDesk(store, event_log, settings=settings, clock=clock)


@pytest.fixture
def refs(store: SQLiteRecordStore) -> dict[str, str]:
    """Seed one of each reference record and return their ids by role."""
    return {
        "vessel": store.insert(
            EntityType.VESSEL, {"name": "Nordic Star", "imo_number": "9387421", "created_at": 1}
        ),
        "owner": store.insert(EntityType.COMPANY, {"name": "Frontline Shipping", "created_at": 1}),
        "charterer": store.insert(EntityType.COMPANY, {"name": "Aramco Trading", "created_at": 1}),
        "counterparty": store.insert(EntityType.COMPANY, {"name": "Clarksons", "created_at": 1}),
        "load_port": store.insert(
            EntityType.PORT, {"name": "Ras Tanura", "country": "Saudi Arabia", "created_at": 1}
        ),
        "discharge_port": store.insert(
            EntityType.PORT, {"name": "Ningbo", "country": "China", "created_at": 1}
        ),
        "cargo": store.insert(EntityType.CARGO_TYPE, {"name": "Crude Oil", "created_at": 1}),
        "user": store.insert(EntityType.USER, {"name": "Dana Trader", "created_at": 1}),
    }


@pytest.fixture
def order_fields(refs: dict[str, str]) -> dict[str, Any]:
    return {
        "title": "AG to China VLCC",
        "load_port_id": refs["load_port"],
        "discharge_port_id": refs["discharge_port"],
        "cargo_type_id": refs["cargo"],
        "quantity": 270000,
        "quantity_unit": "MT",
    }
