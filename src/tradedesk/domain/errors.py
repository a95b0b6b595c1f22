"""Domain-specific exception classes for the trade desk."""

from __future__ import annotations


class TradeDeskError(Exception):
    """Base class for all domain errors in the trade desk."""


class RecordNotFoundError(TradeDeskError):
    """Raised when a referenced record does not exist.

    Attributes:
        entity_type: The record type that was looked up.
        entity_id: The id that was not found.
    """

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} '{entity_id}' not found")


class InvalidTransitionError(TradeDeskError):
    """Raised when a status change is not allowed from the current status.

    Attributes:
        entity_type: The record type whose status was changed.
        current_status: The status the record was in.
        target_status: The status that was rejected.
    """

    def __init__(self, entity_type: str, current_status: str, target_status: str) -> None:
        self.entity_type = entity_type
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot move {entity_type} from '{current_status}' to '{target_status}'"
        )


class LinkageError(TradeDeskError):
    """Raised when a record's links to other records are inconsistent."""


class DerivedFieldError(TradeDeskError):
    """Raised when a caller tries to hand-set a rollup or analytics field.

    Attributes:
        fields: The derived field names found in the write.
    """

    def __init__(self, fields: list[str]) -> None:
        self.fields = sorted(fields)
        super().__init__(f"Derived fields cannot be written directly: {', '.join(self.fields)}")
