"""Per-record document store backed by SQLite.

Mirrors the state store pattern: accepts a sqlite3.Connection, uses
parameterized queries exclusively, and commits synchronously after every
write.  Each write touches exactly one record, so atomicity is per record
and never spans records.
"""

from __future__ import annotations

import sqlite3
import uuid
from typing import Any, Protocol

from tradedesk.domain.errors import RecordNotFoundError
from tradedesk.domain.types import EntityType
from tradedesk.store.schema import INDEXED_FIELDS
from tradedesk.store.serializers import deserialize_fields, serialize_fields

# Named secondary indexes per record type: index name -> body field.
INDEXES: dict[EntityType, dict[str, str]] = {
    EntityType.ORDER: {"by_status": "status"},
    EntityType.NEGOTIATION: {
        "by_order": "order_id",
        "by_status": "status",
        "by_counterparty": "counterparty_id",
    },
    EntityType.CONTRACT: {
        "by_fixture": "fixture_id",
        "by_negotiation": "negotiation_id",
        "by_order": "order_id",
        "by_status": "status",
    },
    EntityType.RECAP_MANAGER: {
        "by_fixture": "fixture_id",
        "by_negotiation": "negotiation_id",
        "by_order": "order_id",
        "by_status": "status",
    },
    EntityType.FIXTURE: {"by_order": "order_id"},
    EntityType.CONTRACT_APPROVAL: {"by_contract": "contract_id"},
    EntityType.CONTRACT_SIGNATURE: {"by_contract": "contract_id"},
}


class RecordStore(Protocol):
    """Per-record get/put/insert/delete plus indexed queries.

    No operation spans more than one record.
    """

    def get(self, record_type: EntityType, record_id: str) -> dict[str, Any] | None: ...

    def put(self, record_type: EntityType, record_id: str, fields: dict[str, Any]) -> None: ...

    def insert(self, record_type: EntityType, fields: dict[str, Any]) -> str: ...

    def query_by_index(
        self, record_type: EntityType, index: str, key: str
    ) -> list[dict[str, Any]]: ...

    def delete(self, record_type: EntityType, record_id: str) -> None: ...

    def list_ids(self, record_type: EntityType) -> list[str]: ...


def _index_field(record_type: EntityType, index: str) -> str:
    try:
        field = INDEXES[record_type][index]
    except KeyError:
        msg = f"Unknown index {index!r} for record type {record_type!s}"
        raise ValueError(msg) from None
    # Guards the f-string below: only declared fields ever reach SQL text.
    if field not in INDEXED_FIELDS:
        msg = f"Index field {field!r} is not declared in the schema"
        raise ValueError(msg)
    return field


class SQLiteRecordStore:
    """Persist and retrieve record bodies in the ``records`` table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize with an open database connection.

        Args:
            conn: An open sqlite3.Connection whose database already has the
                  ``records`` table (see ``init_records_table``).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def insert(self, record_type: EntityType, fields: dict[str, Any]) -> str:
        """Insert a new record and return its generated id.

        Args:
            record_type: The record type.
            fields: The record body.  Any ``id`` key is replaced.

        Returns:
            The new record id.
        """
        record_id = uuid.uuid4().hex
        body = {**fields, "id": record_id}
        self._conn.execute(
            "INSERT INTO records (record_type, id, body) VALUES (?, ?, ?)",
            (str(record_type), record_id, serialize_fields(body)),
        )
        self._conn.commit()
        return record_id

    def put(self, record_type: EntityType, record_id: str, fields: dict[str, Any]) -> None:
        """Merge *fields* into an existing record.

        Args:
            record_type: The record type.
            record_id: The record to patch.
            fields: Partial body; keys present overwrite, keys absent are kept.

        Raises:
            RecordNotFoundError: If the record does not exist.
        """
        current = self.get(record_type, record_id)
        if current is None:
            raise RecordNotFoundError(str(record_type), record_id)

        body = {**current, **fields, "id": record_id}
        self._conn.execute(
            "UPDATE records SET body = ? WHERE record_type = ? AND id = ?",
            (serialize_fields(body), str(record_type), record_id),
        )
        self._conn.commit()

    def delete(self, record_type: EntityType, record_id: str) -> None:
        """Delete a record.  Deleting a missing record is a no-op.

        Args:
            record_type: The record type.
            record_id: The record to remove.
        """
        self._conn.execute(
            "DELETE FROM records WHERE record_type = ? AND id = ?",
            (str(record_type), record_id),
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, record_type: EntityType, record_id: str) -> dict[str, Any] | None:
        """Return a record body, or ``None`` if it does not exist."""
        row = self._conn.execute(
            "SELECT body FROM records WHERE record_type = ? AND id = ?",
            (str(record_type), record_id),
        ).fetchone()
        if row is None:
            return None
        return deserialize_fields(row[0])

    def query_by_index(
        self, record_type: EntityType, index: str, key: str
    ) -> list[dict[str, Any]]:
        """Return every record whose indexed field equals *key*, in insertion order.

        Args:
            record_type: The record type.
            index: A name declared in ``INDEXES`` for this record type.
            key: The value to match.

        Raises:
            ValueError: If the index is not declared for the record type.
        """
        field = _index_field(record_type, index)
        cursor = self._conn.execute(
            f"SELECT body FROM records WHERE record_type = ? "
            f"AND json_extract(body, '$.{field}') = ? ORDER BY rowid",
            (str(record_type), key),
        )
        return [deserialize_fields(row[0]) for row in cursor.fetchall()]

    def list_ids(self, record_type: EntityType) -> list[str]:
        """Return every id of *record_type*, in insertion order."""
        cursor = self._conn.execute(
            "SELECT id FROM records WHERE record_type = ? ORDER BY rowid",
            (str(record_type),),
        )
        return [row[0] for row in cursor.fetchall()]
