"""Read-only lookups from reference ids to display strings."""

from __future__ import annotations

from collections.abc import Callable

from tradedesk.domain.models import CargoType, Company, Port, Record, User, Vessel
from tradedesk.domain.types import EntityType
from tradedesk.store.records import RecordStore


def _vessel_tokens(vessel: Vessel) -> list[str]:
    return [vessel.name, *([vessel.imo_number] if vessel.imo_number else [])]


def _port_tokens(port: Port) -> list[str]:
    return [port.name, *([port.country] if port.country else [])]


_RESOLVERS: dict[EntityType, tuple[type[Record], Callable[..., list[str]]]] = {
    EntityType.VESSEL: (Vessel, _vessel_tokens),
    EntityType.COMPANY: (Company, lambda c: [c.name]),
    EntityType.PORT: (Port, _port_tokens),
    EntityType.CARGO_TYPE: (CargoType, lambda c: [c.name]),
    EntityType.USER: (User, lambda u: [u.name]),
}


class ReferenceResolver:
    """Resolve Vessel/Company/Port/CargoType/User ids to display tokens.

    Vessels resolve to name and IMO number, ports to name and country, the
    rest to their name.  Unknown ids resolve to nothing.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def display_tokens(self, kind: EntityType, record_id: str) -> list[str]:
        """Return the display strings for one reference record.

        Args:
            kind: One of the reference entity types.
            record_id: The reference id.

        Returns:
            The record's display strings, or an empty list if it is missing.

        Raises:
            ValueError: If *kind* is not a reference type.
        """
        if kind not in _RESOLVERS:
            raise ValueError(f"{kind} is not a reference type")
        body = self._store.get(kind, record_id)
        if body is None:
            return []
        model, tokens = _RESOLVERS[kind]
        return tokens(model.model_validate(body))
