"""SQLite schema for the record store and the event log.

Business and reference records share one ``records`` table keyed by
``(record_type, id)`` with a JSON body.  The activity log and field change
log are append-only tables of their own.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

# JSON body fields that back a named index, across all record types.
INDEXED_FIELDS: tuple[str, ...] = (
    "order_id",
    "fixture_id",
    "negotiation_id",
    "contract_id",
    "status",
    "counterparty_id",
)


def init_database(db_path: Path | str) -> sqlite3.Connection:
    """Open (or create) the trade desk database and ensure every table exists.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        An open sqlite3.Connection with WAL mode enabled.
    """
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    init_records_table(conn)
    init_activity_tables(conn)
    return conn


def init_records_table(conn: sqlite3.Connection) -> None:
    """Create the generic ``records`` table and its per-field expression indexes.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS records (
            record_type TEXT NOT NULL,
            id TEXT NOT NULL,
            body TEXT NOT NULL,
            PRIMARY KEY (record_type, id)
        )
    """)

    for field in INDEXED_FIELDS:
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_records_{field} "
            f"ON records (record_type, json_extract(body, '$.{field}'))"
        )

    conn.commit()


def init_activity_tables(conn: sqlite3.Connection) -> None:
    """Create the ``activity_logs`` and ``field_changes`` tables.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS activity_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            entity_type TEXT NOT NULL,
            entity_id TEXT NOT NULL,
            action TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            timestamp INTEGER NOT NULL,
            status TEXT,
            expandable TEXT,
            metadata TEXT,
            user_id TEXT
        )
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_activity_entity "
        "ON activity_logs (entity_type, entity_id, timestamp)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_activity_timestamp ON activity_logs (timestamp)"
    )

    conn.execute("""
        CREATE TABLE IF NOT EXISTS field_changes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            entity_type TEXT NOT NULL,
            entity_id TEXT NOT NULL,
            field_name TEXT NOT NULL,
            old_value TEXT,
            new_value TEXT,
            change_reason TEXT,
            user_id TEXT,
            timestamp INTEGER NOT NULL
        )
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_field_changes_entity "
        "ON field_changes (entity_type, entity_id)"
    )

    conn.commit()


def close_database(conn: sqlite3.Connection) -> None:
    """Close the database connection.

    Args:
        conn: The database connection to close.
    """
    conn.close()
