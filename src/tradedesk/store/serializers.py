"""Serialization helpers for record bodies.

Handles the Decimal <-> JSON round-trip by converting Decimal values to
strings so no precision is lost.  Pydantic models coerce the strings back to
``Decimal`` when a record is loaded, so string representation is the correct
contract.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any


class _DecimalEncoder(json.JSONEncoder):
    """JSON encoder that converts Decimal values to strings."""

    def default(self, o: object) -> Any:
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


def serialize_fields(fields: dict[str, Any]) -> str:
    """JSON-encode a record body, converting Decimals to strings.

    Keys are sorted so identical bodies always serialize to identical text.

    Args:
        fields: The record fields.

    Returns:
        A JSON string with Decimal values represented as strings.
    """
    return json.dumps(fields, cls=_DecimalEncoder, sort_keys=True)


def deserialize_fields(json_str: str) -> dict[str, Any]:
    """Decode a JSON record body back to a dict.

    Args:
        json_str: JSON string produced by ``serialize_fields``.

    Returns:
        The reconstructed field dictionary.
    """
    result: dict[str, Any] = json.loads(json_str)
    return result
