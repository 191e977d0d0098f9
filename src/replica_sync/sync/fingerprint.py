"""Change-detection fingerprints for record collections.

A fingerprint is a short, order-sensitive digest of a collection's JSON form.
It exists only to answer "did this collection change?" cheaply; collisions
are tolerated because nothing relies on it for correctness.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from replica_sync.core.records import serialize_collection

# Reserved digest for an empty collection. Real digests are 8 hex digits,
# so they can never spell this.
EMPTY_FINGERPRINT = "empty"

# Rolling hash multiplier and 32-bit mask
_MULTIPLIER = 31
_MASK = (1 << 32) - 1


def _rolling_hash(text: str) -> int:
    """Unsigned 32-bit polynomial hash over the UTF-16 code units of *text*."""
    data = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * _MULTIPLIER + unit) & _MASK
    return h


def fingerprint(items: Sequence[Mapping[str, Any]] | None) -> str:
    """Compute the fingerprint of a collection.

    Args:
        items: The collection to fingerprint (``None`` is treated as empty)

    Returns:
        ``EMPTY_FINGERPRINT`` for an empty collection, otherwise an
        8-character hex digest
    """
    if not items:
        return EMPTY_FINGERPRINT
    return f"{_rolling_hash(serialize_collection(items)):08x}"
