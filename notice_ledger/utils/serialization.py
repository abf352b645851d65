"""
JSON serialization helpers for audit and call-log payloads.

Payload columns are plain JSON: every Decimal, UUID and datetime is turned
into a string before it is stored, so the stored document reads back
exactly as written on every backend.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Decimals keep their exponent ("15000.00" stays "15000.00").

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Deterministic JSON text: sorted keys, no whitespace."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def json_safe(data: Any) -> Any:
    """Return ``data`` with every non-JSON value converted to a string."""
    if data is None:
        return None
    return json.loads(canonicalize_json(data))
