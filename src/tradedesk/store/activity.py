"""Convenience class for appending activity log entries.

Each method creates a properly structured :class:`ActivityLogEntry` for one
kind of lifecycle fact and appends it via the :class:`EventLog`.
"""

from __future__ import annotations

from typing import Any

from tradedesk.domain.models import (
    ActivityLogEntry,
    Correction,
    ExpandableItem,
    StatusTag,
)
from tradedesk.domain.types import EntityType
from tradedesk.store.event_log import EventLog


def status_tag(entity_type: EntityType, status: str) -> StatusTag:
    """Build the status tag for an entity, e.g. ``contract-final`` / ``Final``.

    Args:
        entity_type: The entity the status belongs to.
        status: The status value.

    Returns:
        A ``StatusTag`` with a prefixed value and a human label.
    """
    label = status.replace("-", " ").capitalize()
    return StatusTag(value=f"{entity_type.value.replace('_', '-')}-{status}", label=label)


def _corrections_metadata(corrections: list[Correction]) -> list[dict[str, Any]]:
    return [
        {
            "rule": c.rule,
            "entity_type": c.entity_type.value,
            "entity_id": c.entity_id,
            "changes": dict(c.changes),
            "previous": dict(c.previous),
        }
        for c in corrections
    ]


class ActivityLogger:
    """Typed convenience API for appending activity entries.

    Args:
        event_log: The event log to append to.
    """

    def __init__(self, event_log: EventLog) -> None:
        self._event_log = event_log

    def log_created(
        self,
        entity_type: EntityType,
        entity_id: str,
        number: str,
        timestamp: int,
        status: str | None = None,
        expandable: list[ExpandableItem] | None = None,
        user_id: str | None = None,
    ) -> int:
        """Log the creation of a record.

        Args:
            entity_type: The record type.
            entity_id: The new record's id.
            number: Its human-readable number (``NEG12345`` etc.).
            timestamp: Creation time in epoch milliseconds.
            status: Initial status, if the record has one.
            expandable: Structured payload snapshot.
            user_id: Acting user, if known.

        Returns:
            The row ID of the appended entry.
        """
        entry = ActivityLogEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action="created",
            description=f"Created {entity_type.value.replace('_', ' ')} {number}",
            timestamp=timestamp,
            status=status_tag(entity_type, status) if status else None,
            expandable=expandable or None,
            metadata={"number": number},
            user_id=user_id,
        )
        return self._event_log.append(entry)

    def log_updated(
        self,
        entity_type: EntityType,
        entity_id: str,
        changed_fields: list[str],
        timestamp: int,
        expandable: list[ExpandableItem] | None = None,
        corrections: list[Correction] | None = None,
        user_id: str | None = None,
    ) -> int:
        """Log a business field update.

        Stores the changed field names (and any corrections) in metadata.

        Returns:
            The row ID of the appended entry.
        """
        metadata: dict[str, Any] = {"changed_fields": sorted(changed_fields)}
        if corrections:
            metadata["corrections"] = _corrections_metadata(corrections)

        entry = ActivityLogEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action="updated",
            description=f"Updated {', '.join(sorted(changed_fields)) or 'no fields'}",
            timestamp=timestamp,
            expandable=expandable or None,
            metadata=metadata,
            user_id=user_id,
        )
        return self._event_log.append(entry)

    def log_status_change(
        self,
        entity_type: EntityType,
        entity_id: str,
        from_status: str,
        to_status: str,
        timestamp: int,
        expandable: list[ExpandableItem] | None = None,
        corrections: list[Correction] | None = None,
        user_id: str | None = None,
    ) -> int:
        """Log a status transition.

        Stores from_status, to_status and any corrections in metadata and tags
        the entry with the new status.

        Returns:
            The row ID of the appended entry.
        """
        metadata: dict[str, Any] = {"from_status": from_status, "to_status": to_status}
        if corrections:
            metadata["corrections"] = _corrections_metadata(corrections)

        entry = ActivityLogEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action="status_changed",
            description=f"Status changed from {from_status} to {to_status}",
            timestamp=timestamp,
            status=status_tag(entity_type, to_status),
            expandable=expandable or None,
            metadata=metadata,
            user_id=user_id,
        )
        return self._event_log.append(entry)

    def log_consistency_repair(
        self,
        negotiation_id: str,
        corrections: list[Correction],
        timestamp: int,
        user_id: str | None = None,
    ) -> int:
        """Log corrections applied by an explicit repair run.

        Returns:
            The row ID of the appended entry.
        """
        entry = ActivityLogEntry(
            entity_type=EntityType.NEGOTIATION,
            entity_id=negotiation_id,
            action="status_corrected",
            description=f"Applied {len(corrections)} status correction(s)",
            timestamp=timestamp,
            metadata={"corrections": _corrections_metadata(corrections)},
            user_id=user_id,
        )
        return self._event_log.append(entry)
