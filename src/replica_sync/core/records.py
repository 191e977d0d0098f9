"""Record and collection helpers shared by the sync core.

A record is an application-defined mapping carrying at least an ``id`` and an
``updatedAt`` timestamp. The sync core treats records as immutable values:
it never edits one in place, it only builds replacements.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

Record = dict[str, Any]
Collection = list[Record]

ID_FIELD = "id"
UPDATED_AT_FIELD = "updatedAt"
LINE_ITEMS_FIELD = "lineItems"


def record_id(record: Mapping[str, Any]) -> Any:
    """Return the record's identity key (``None`` when absent)."""
    return record.get(ID_FIELD)


def parse_timestamp_ms(value: Any) -> int:
    """Convert an ``updatedAt`` value to epoch milliseconds.

    Accepts ISO-8601 strings, ``datetime`` objects and numbers (already epoch
    milliseconds). Missing, unparseable or non-finite values map to 0 so they
    always lose a newer-wins comparison.
    """
    if value is None or isinstance(value, bool):
        return 0

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        # NaN and infinities survive json.loads
        return int(value) if math.isfinite(value) else 0

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unparseable timestamp %r treated as epoch 0", value)
            return 0
    else:
        return 0

    # Naive timestamps are read as UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp() * 1000)


def serialize_collection(items: Iterable[Mapping[str, Any]]) -> str:
    """Serialize a collection to compact JSON, preserving key order."""
    return json.dumps(list(items), separators=(",", ":"), ensure_ascii=False, default=str)


def deserialize_collection(raw: str) -> Collection:
    """Parse a JSON collection.

    Raises:
        ValueError: If the payload is not valid JSON or not a list of objects
    """
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON list, got {type(data).__name__}")
    return [dict(item) for item in data if isinstance(item, dict)]
