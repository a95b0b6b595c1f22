"""SQLite-backed append-only event log and field change log.

Provides functions to append activity entries and field changes and to read
an entity's history back in timestamp order.  Uses parameterized queries
exclusively (never string concatenation).
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from tradedesk.domain.models import ActivityLogEntry, FieldChange
from tradedesk.domain.types import EntityType


def insert_activity(conn: sqlite3.Connection, entry: ActivityLogEntry) -> int:
    """Append an activity entry.

    Serializes the status tag, expandable payload and metadata to JSON.

    Args:
        conn: An open database connection.
        entry: The entry to append.

    Returns:
        The row ID of the inserted entry.
    """
    status_json = entry.status.model_dump_json() if entry.status is not None else None
    expandable_json: str | None = None
    if entry.expandable is not None:
        expandable_json = json.dumps([item.model_dump() for item in entry.expandable])
    metadata_json = json.dumps(entry.metadata) if entry.metadata is not None else None

    cursor = conn.execute(
        """
        INSERT INTO activity_logs (
            entity_type, entity_id, action, description, timestamp,
            status, expandable, metadata, user_id
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            entry.entity_type.value,
            entry.entity_id,
            entry.action,
            entry.description,
            entry.timestamp,
            status_json,
            expandable_json,
            metadata_json,
            entry.user_id,
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def _row_to_entry(row: sqlite3.Row) -> ActivityLogEntry:
    data: dict[str, Any] = dict(row)
    for key in ("status", "expandable", "metadata"):
        if data.get(key) is not None:
            data[key] = json.loads(data[key])
    return ActivityLogEntry.model_validate(data)


def query_activity(
    conn: sqlite3.Connection, entity_type: EntityType, entity_id: str
) -> list[ActivityLogEntry]:
    """Return an entity's activity history, oldest first.

    Entries sharing a timestamp keep their append order.

    Args:
        conn: An open database connection.
        entity_type: The entity type to filter on.
        entity_id: The entity id to filter on.

    Returns:
        The matching entries in ascending timestamp order.
    """
    prev_factory = conn.row_factory
    conn.row_factory = sqlite3.Row
    try:
        cursor = conn.execute(
            "SELECT * FROM activity_logs WHERE entity_type = ? AND entity_id = ? "
            "ORDER BY timestamp ASC, id ASC",
            (entity_type.value, entity_id),
        )
        rows = cursor.fetchall()
    finally:
        conn.row_factory = prev_factory

    return [_row_to_entry(row) for row in rows]


def query_recent_activity(conn: sqlite3.Connection, limit: int = 50) -> list[ActivityLogEntry]:
    """Return the most recent activity across all entities, newest first."""
    prev_factory = conn.row_factory
    conn.row_factory = sqlite3.Row
    try:
        cursor = conn.execute(
            "SELECT * FROM activity_logs ORDER BY timestamp DESC, id DESC LIMIT ?",
            (limit,),
        )
        rows = cursor.fetchall()
    finally:
        conn.row_factory = prev_factory

    return [_row_to_entry(row) for row in rows]


def insert_field_change(conn: sqlite3.Connection, change: FieldChange) -> int:
    """Append a field change record.

    Args:
        conn: An open database connection.
        change: The before/after record.

    Returns:
        The row ID of the inserted record.
    """
    cursor = conn.execute(
        """
        INSERT INTO field_changes (
            entity_type, entity_id, field_name, old_value, new_value,
            change_reason, user_id, timestamp
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            change.entity_type.value,
            change.entity_id,
            change.field_name,
            change.old_value,
            change.new_value,
            change.change_reason,
            change.user_id,
            change.timestamp,
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def query_field_changes(
    conn: sqlite3.Connection, entity_type: EntityType, entity_id: str
) -> list[FieldChange]:
    """Return an entity's field changes, newest first."""
    prev_factory = conn.row_factory
    conn.row_factory = sqlite3.Row
    try:
        cursor = conn.execute(
            "SELECT entity_type, entity_id, field_name, old_value, new_value, "
            "change_reason, user_id, timestamp FROM field_changes "
            "WHERE entity_type = ? AND entity_id = ? ORDER BY timestamp DESC, id DESC",
            (entity_type.value, entity_id),
        )
        rows = cursor.fetchall()
    finally:
        conn.row_factory = prev_factory

    return [FieldChange.model_validate(dict(row)) for row in rows]


class EventLog:
    """Append-only event log over an open connection.

    Args:
        conn: An open SQLite connection whose database has the activity tables.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def append(self, entry: ActivityLogEntry) -> int:
        return insert_activity(self._conn, entry)

    def query_by_entity(self, entity_type: EntityType, entity_id: str) -> list[ActivityLogEntry]:
        return query_activity(self._conn, entity_type, entity_id)

    def recent(self, limit: int = 50) -> list[ActivityLogEntry]:
        return query_recent_activity(self._conn, limit)

    def append_field_change(self, change: FieldChange) -> int:
        return insert_field_change(self._conn, change)

    def field_changes(self, entity_type: EntityType, entity_id: str) -> list[FieldChange]:
        return query_field_changes(self._conn, entity_type, entity_id)
