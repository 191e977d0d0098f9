"""Collection merge with configurable conflict resolution."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from replica_sync.core.records import (
    LINE_ITEMS_FIELD,
    UPDATED_AT_FIELD,
    Record,
    parse_timestamp_ms,
    record_id,
)
from replica_sync.sync.protocol import ConflictStrategy, MergeResult, RecordConflict

logger = logging.getLogger(__name__)


def _pick_latest(local: Record, remote: Record) -> Record:
    """Keep the strictly newer record; ties go to remote."""
    local_time = parse_timestamp_ms(local.get(UPDATED_AT_FIELD))
    remote_time = parse_timestamp_ms(remote.get(UPDATED_AT_FIELD))
    winner = local if local_time > remote_time else remote

    logger.debug(
        "Conflict for record %s: %s wins (local: %d, remote: %d)",
        record_id(local),
        "local" if winner is local else "remote",
        local_time,
        remote_time,
    )
    return winner


def _entry_count(value: Any) -> int:
    return len(value) if isinstance(value, (list, tuple)) else 0


def _merge_fields(local: Record, remote: Record) -> Record:
    """Field-level merge of two versions of one record.

    Rules:
    - updatedAt: the newer timestamp (ties keep remote)
    - lineItems: local list only if it has strictly more entries
    - other fields: local value fills a falsy remote value
    - fields only on remote are kept
    """
    merged: Record = {**remote}

    for key, local_value in local.items():
        if key == UPDATED_AT_FIELD:
            local_time = parse_timestamp_ms(local_value)
            remote_time = parse_timestamp_ms(remote.get(UPDATED_AT_FIELD))
            merged[key] = local_value if local_time > remote_time else remote.get(key)
        elif key == LINE_ITEMS_FIELD:
            if not isinstance(local_value, (list, tuple)):
                continue
            if len(local_value) > _entry_count(remote.get(key)):
                merged[key] = local_value
        elif local_value and not remote.get(key):
            merged[key] = local_value

    return merged


def merge_collections(
    local: Sequence[Record],
    remote: Sequence[Record],
    strategy: ConflictStrategy = ConflictStrategy.LATEST_WINS,
) -> MergeResult:
    """Combine the local and remote collections under *strategy*.

    Pure and deterministic. Remote records seed the result, so records that
    exist only remotely always survive; records that exist only locally are
    appended verbatim. Records present on both sides are resolved according
    to the strategy. Under ``MANUAL`` differing versions are left out of the
    result and returned as conflicts instead.

    Args:
        local: The local replica's collection
        remote: The remote replica's collection
        strategy: Conflict resolution strategy

    Returns:
        MergeResult holding the merged items and any unresolved conflicts
    """
    logger.debug("Merging collections with strategy: %s", strategy)

    if strategy == ConflictStrategy.SERVER_WINS:
        return MergeResult(items=list(remote), strategy=strategy)

    if strategy == ConflictStrategy.LOCAL_WINS:
        return MergeResult(items=list(local), strategy=strategy)

    by_id: dict[Any, Record] = {}
    for record in remote:
        by_id[record_id(record)] = record

    conflicts: list[RecordConflict] = []

    for local_record in local:
        key = record_id(local_record)
        remote_record = by_id.get(key)

        if remote_record is None:
            by_id[key] = local_record
            continue

        if strategy == ConflictStrategy.LATEST_WINS:
            by_id[key] = _pick_latest(local_record, remote_record)
        elif strategy == ConflictStrategy.MERGE:
            by_id[key] = _merge_fields(local_record, remote_record)
        elif strategy == ConflictStrategy.MANUAL:
            if local_record != remote_record:
                conflicts.append(
                    RecordConflict(record_id=key, local=local_record, remote=remote_record)
                )

    conflicted = {c.record_id for c in conflicts}
    items = [record for key, record in by_id.items() if key not in conflicted]

    logger.debug("Merge complete: %d records, %d conflicts", len(items), len(conflicts))

    return MergeResult(items=items, strategy=strategy, conflicts=tuple(conflicts))


def resolve_conflicts(
    result: MergeResult,
    chooser: Callable[[RecordConflict], Record | None],
) -> list[Record]:
    """Complete a manual merge using a caller-supplied chooser.

    The chooser receives each conflict and returns the record to keep, or
    ``None`` to drop the record altogether.
    """
    resolved = list(result.items)
    for conflict in result.conflicts:
        choice = chooser(conflict)
        if choice is not None:
            resolved.append(choice)
    return resolved
