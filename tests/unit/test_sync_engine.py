"""Tests for sync/sync_engine.py: the sync coordinator."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from replica_sync.storage.memory_store import InMemoryLocalStore, InMemoryRemoteStore
from replica_sync.sync.errors import RemoteStoreError
from replica_sync.sync.fingerprint import EMPTY_FINGERPRINT, fingerprint
from replica_sync.sync.identity import SessionIdentity
from replica_sync.sync.local_replica import LocalReplica
from replica_sync.sync.protocol import (
    ConflictStrategy,
    SnapshotMetadata,
    SyncDirection,
    SyncStatus,
)
from replica_sync.sync.sync_engine import (
    NOT_AUTHENTICATED,
    SYNC_CANCELLED,
    SyncEngine,
)
from replica_sync.utils.config import Config

REMOTE_KEY = "userCollections/user-1"

OLD = "2026-01-01T00:00:00Z"
NEW = "2026-01-02T00:00:00Z"


def _make_record(record_id: str, updated_at: str = OLD, **fields: Any) -> dict[str, Any]:
    return {"id": record_id, "updatedAt": updated_at, **fields}


def _record_statuses(engine: SyncEngine) -> list[tuple[SyncStatus, bool]]:
    statuses: list[tuple[SyncStatus, bool]] = []
    engine.on_sync_status_change(lambda status, busy: statuses.append((status, busy)))
    return statuses


# ── Configuration ──────────────────────────────────────────────


class TestConfiguration:
    """Tests for strategy, auto-sync and construction."""

    def test_default_strategy(self, engine: SyncEngine) -> None:
        assert engine.conflict_strategy == ConflictStrategy.LATEST_WINS

    def test_set_strategy_from_string(self, engine: SyncEngine) -> None:
        engine.set_conflict_strategy("merge")
        assert engine.conflict_strategy == ConflictStrategy.MERGE

    def test_invalid_strategy_rejected(self, engine: SyncEngine) -> None:
        with pytest.raises(ValueError, match="Invalid conflict strategy: newest"):
            engine.set_conflict_strategy("newest")
        assert engine.conflict_strategy == ConflictStrategy.LATEST_WINS

    def test_initial_status(self, engine: SyncEngine) -> None:
        status = engine.get_sync_status()
        assert status.is_syncing is False
        assert status.last_sync_time is None
        assert status.auto_sync_enabled is True
        assert status.queued_uploads == 0
        assert status.realtime_active is False

    def test_set_auto_sync(self, engine: SyncEngine) -> None:
        engine.set_auto_sync(False)
        assert engine.get_sync_status().auto_sync_enabled is False

    def test_from_stores_uses_config(
        self,
        local_store: InMemoryLocalStore,
        remote_store: InMemoryRemoteStore,
        identity: SessionIdentity,
    ) -> None:
        config = Config(
            conflict_strategy=ConflictStrategy.MANUAL,
            key_prefix="invoices",
            remote_collection="shared",
            max_retries=1,
        )

        engine = SyncEngine.from_stores(local_store, remote_store, identity, config)

        assert engine.conflict_strategy == ConflictStrategy.MANUAL
        assert engine.local.storage_key() == "invoices:user-1"
        assert engine.remote.document_key("user-1") == "shared/user-1"
        assert engine.remote.retry_policy.max_retries == 1


# ── Status listeners ───────────────────────────────────────────


class TestStatusListeners:
    """Tests for on_sync_status_change()."""

    async def test_failing_listener_does_not_block_others(self, engine: SyncEngine) -> None:
        def broken(status: SyncStatus, busy: bool) -> None:
            raise RuntimeError("listener bug")

        engine.on_sync_status_change(broken)
        statuses = _record_statuses(engine)

        outcome = await engine.upload_collection([_make_record("a")])

        assert outcome.success is True
        assert statuses == [(SyncStatus.SYNCING, True), (SyncStatus.SUCCESS, False)]

    async def test_unsubscribe(self, engine: SyncEngine) -> None:
        statuses: list[SyncStatus] = []
        unsubscribe = engine.on_sync_status_change(lambda status, busy: statuses.append(status))
        unsubscribe()
        unsubscribe()  # idempotent

        await engine.upload_collection([_make_record("a")])

        assert statuses == []


# ── Upload ─────────────────────────────────────────────────────


class TestUpload:
    """Tests for upload_collection()."""

    async def test_unauthenticated_short_circuits(
        self, engine: SyncEngine, identity: SessionIdentity, remote_store: InMemoryRemoteStore
    ) -> None:
        identity.sign_out()
        statuses = _record_statuses(engine)

        outcome = await engine.upload_collection([_make_record("a")])

        assert outcome.success is False
        assert outcome.error == NOT_AUTHENTICATED
        assert outcome.direction == SyncDirection.UPLOAD
        assert remote_store.save_calls == []
        assert statuses == []

    async def test_success_updates_both_replicas(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        items = [_make_record("a"), _make_record("b")]
        statuses = _record_statuses(engine)

        outcome = await engine.upload_collection(items)

        assert outcome.success is True
        assert outcome.items == items
        assert remote_store.document(REMOTE_KEY)["items"] == items
        assert engine.load_local() == items
        assert engine.state.last_synced_fingerprint == fingerprint(items)
        assert engine.get_sync_status().last_sync_time is not None
        assert engine.get_sync_status().is_syncing is False
        assert statuses == [(SyncStatus.SYNCING, True), (SyncStatus.SUCCESS, False)]

    async def test_failure_reports_error(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        remote_store.fail_next_save(RemoteStoreError("denied", "permission-denied"))
        statuses = _record_statuses(engine)

        outcome = await engine.upload_collection([_make_record("a")])

        assert outcome.success is False
        assert outcome.error == "denied"
        assert statuses[-1] == (SyncStatus.ERROR, False)
        assert engine.state.in_progress is False
        assert engine.state.last_synced_fingerprint == EMPTY_FINGERPRINT

    async def test_concurrent_uploads_are_single_flight(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        remote_store.save_delay = 0.02
        first = [_make_record("a")]
        second = [_make_record("b")]

        results = await asyncio.gather(
            engine.upload_collection(first),
            engine.upload_collection(second),
        )

        assert [r.success for r in results] == [True, True]
        assert [r.items for r in results] == [first, second]
        assert remote_store.max_concurrent_saves == 1
        assert [call[1]["items"] for call in remote_store.save_calls] == [first, second]
        assert remote_store.document(REMOTE_KEY)["items"] == second

    async def test_queue_is_fifo(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        remote_store.save_delay = 0.01
        batches = [[_make_record(str(n))] for n in range(4)]

        results = await asyncio.gather(*(engine.upload_collection(b) for b in batches))

        assert all(r.success for r in results)
        assert [call[1]["items"] for call in remote_store.save_calls] == batches
        assert remote_store.max_concurrent_saves == 1
        assert engine.get_sync_status().queued_uploads == 0

    async def test_failed_upload_does_not_block_queue(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        remote_store.save_delay = 0.01
        remote_store.fail_next_save(RemoteStoreError("denied", "permission-denied"))

        results = await asyncio.gather(
            engine.upload_collection([_make_record("a")]),
            engine.upload_collection([_make_record("b")]),
        )

        assert [r.success for r in results] == [False, True]
        assert remote_store.document(REMOTE_KEY)["items"] == [_make_record("b")]

    async def test_queued_upload_rechecks_auth(
        self,
        engine: SyncEngine,
        identity: SessionIdentity,
        remote_store: InMemoryRemoteStore,
    ) -> None:
        remote_store.save_delay = 0.02

        first = asyncio.create_task(engine.upload_collection([_make_record("a")]))
        await asyncio.sleep(0)
        second = asyncio.create_task(engine.upload_collection([_make_record("b")]))
        await asyncio.sleep(0)
        identity.sign_out()

        assert (await first).success is True
        queued = await second
        assert queued.success is False
        assert queued.error == NOT_AUTHENTICATED
        assert len(remote_store.save_calls) == 1
        assert engine.state.in_progress is False

    async def test_queued_uploads_reported_in_status(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        remote_store.save_delay = 0.02

        first = asyncio.create_task(engine.upload_collection([_make_record("a")]))
        await asyncio.sleep(0)
        second = asyncio.create_task(engine.upload_collection([_make_record("b")]))
        await asyncio.sleep(0)

        status = engine.get_sync_status()
        assert status.is_syncing is True
        assert status.queued_uploads == 1

        await asyncio.gather(first, second)


# ── Download ───────────────────────────────────────────────────


class TestDownload:
    """Tests for download_collection()."""

    async def test_unauthenticated_short_circuits(
        self, engine: SyncEngine, identity: SessionIdentity, remote_store: InMemoryRemoteStore
    ) -> None:
        identity.sign_out()

        outcome = await engine.download_collection()

        assert outcome.success is False
        assert outcome.error == NOT_AUTHENTICATED
        assert outcome.direction == SyncDirection.MERGE
        assert remote_store.fetch_calls == []

    async def test_into_empty_local(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        items = [_make_record("a")]
        remote_store.put(REMOTE_KEY, {"items": items})

        outcome = await engine.download_collection()

        assert outcome.success is True
        assert outcome.items == items
        assert engine.load_local() == items
        assert engine.state.last_synced_fingerprint == fingerprint(items)

    async def test_merges_with_local(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        engine.save_local([_make_record("a", NEW, name="local"), _make_record("l")])
        remote_store.put(REMOTE_KEY, {"items": [_make_record("a", OLD, name="remote")]})

        outcome = await engine.download_collection(merge_with_local=True)

        assert outcome.success is True
        assert outcome.direction == SyncDirection.MERGE
        assert [r["id"] for r in outcome.items] == ["a", "l"]
        assert outcome.items[0]["name"] == "local"
        assert engine.load_local() == outcome.items

    async def test_without_merge_replaces_local(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        engine.save_local([_make_record("l")])
        remote_store.put(REMOTE_KEY, {"items": [_make_record("r")]})

        outcome = await engine.download_collection(merge_with_local=False)

        assert outcome.direction == SyncDirection.DOWNLOAD
        assert engine.load_local() == [_make_record("r")]

    async def test_malformed_remote_keeps_local(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        local = [_make_record("l")]
        engine.save_local(local)
        remote_store.put(REMOTE_KEY, {"items": "garbage"})
        statuses = _record_statuses(engine)

        outcome = await engine.download_collection(merge_with_local=False)

        assert outcome.success is False
        assert engine.load_local() == local
        assert engine.state.last_synced_fingerprint == EMPTY_FINGERPRINT
        assert statuses == [(SyncStatus.ERROR, False)]

    async def test_manual_conflicts_leave_local_untouched(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        local = [_make_record("a", NEW, name="local")]
        engine.save_local(local)
        remote_store.put(REMOTE_KEY, {"items": [_make_record("a", OLD, name="remote")]})
        engine.set_conflict_strategy(ConflictStrategy.MANUAL)
        statuses = _record_statuses(engine)

        outcome = await engine.download_collection()

        assert outcome.success is False
        assert len(outcome.conflicts) == 1
        assert outcome.conflicts[0].record_id == "a"
        assert "1 conflicting records" in (outcome.error or "")
        assert engine.load_local() == local
        assert engine.state.last_synced_fingerprint == EMPTY_FINGERPRINT
        assert statuses == [(SyncStatus.CONFLICT, False)]

    async def test_fetch_failure_notifies_error(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        remote_store.fail_next_fetch(RemoteStoreError("denied", "permission-denied"))
        statuses = _record_statuses(engine)

        outcome = await engine.download_collection()

        assert outcome.success is False
        assert outcome.error == "denied"
        assert statuses == [(SyncStatus.ERROR, False)]

    async def test_offline_download_served_from_cache(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        remote_store.put(REMOTE_KEY, {"items": [_make_record("a")]})
        await engine.download_collection()
        remote_store.online = False

        outcome = await engine.download_collection(merge_with_local=False)

        assert outcome.success is True
        assert outcome.from_cache is True


# ── Realtime ───────────────────────────────────────────────────


class TestRealtime:
    """Tests for start_realtime_sync() / stop_realtime_sync()."""

    def test_unauthenticated_returns_none(
        self, engine: SyncEngine, identity: SessionIdentity
    ) -> None:
        identity.sign_out()
        assert engine.start_realtime_sync() is None
        assert engine.get_sync_status().realtime_active is False

    def test_start_is_idempotent(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        stop = engine.start_realtime_sync()

        assert stop is not None
        assert engine.start_realtime_sync() is stop
        assert remote_store.subscriber_count(REMOTE_KEY) == 1
        assert engine.get_sync_status().realtime_active is True

    def test_stop_unsubscribes(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        engine.start_realtime_sync()
        engine.stop_realtime_sync()

        assert remote_store.subscriber_count(REMOTE_KEY) == 0
        assert engine.get_sync_status().realtime_active is False

    def test_returned_handle_stops(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        stop = engine.start_realtime_sync()
        assert stop is not None
        stop()

        assert remote_store.subscriber_count(REMOTE_KEY) == 0
        assert engine.get_sync_status().realtime_active is False

    def test_external_change_applied(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        updates: list[tuple[list[dict[str, Any]], SnapshotMetadata]] = []
        engine.start_realtime_sync(lambda items, meta: updates.append((items, meta)))

        items = [_make_record("from-other-device")]
        remote_store.put(REMOTE_KEY, {"items": items})

        assert len(updates) == 1
        assert updates[0][0] == items
        assert engine.load_local() == items
        assert engine.state.last_synced_fingerprint == fingerprint(items)

    def test_repeated_snapshot_ignored(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        updates: list[list[dict[str, Any]]] = []
        engine.start_realtime_sync(lambda items, meta: updates.append(items))

        document = {"items": [_make_record("a")]}
        remote_store.put(REMOTE_KEY, document)
        remote_store.put(REMOTE_KEY, document)

        assert len(updates) == 1

    async def test_own_upload_not_echoed(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        updates: list[list[dict[str, Any]]] = []
        engine.start_realtime_sync(lambda items, meta: updates.append(items))

        outcome = await engine.upload_collection([_make_record("mine")])
        # The store may deliver the echo again after the upload settles
        remote_store.put(REMOTE_KEY, remote_store.document(REMOTE_KEY) or {})

        assert outcome.success is True
        assert updates == []

    def test_subscription_error_notifies(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        statuses = _record_statuses(engine)
        engine.start_realtime_sync()

        remote_store.emit_error(REMOTE_KEY, RemoteStoreError("gone", "unavailable"))

        assert statuses == [(SyncStatus.ERROR, False)]

    def test_malformed_snapshot_not_applied(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        local = [_make_record("l")]
        engine.save_local(local)
        updates: list[list[dict[str, Any]]] = []
        statuses = _record_statuses(engine)
        engine.start_realtime_sync(lambda items, meta: updates.append(items))

        remote_store.put(REMOTE_KEY, {"items": 42})

        assert updates == []
        assert engine.load_local() == local
        assert statuses == [(SyncStatus.ERROR, False)]


# ── Lifecycle ──────────────────────────────────────────────────


class TestClearSyncState:
    """Tests for clear_sync_state()."""

    async def test_resets_state(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        await engine.upload_collection([_make_record("a")])
        engine.start_realtime_sync()

        engine.clear_sync_state()

        status = engine.get_sync_status()
        assert status.last_sync_time is None
        assert status.realtime_active is False
        assert engine.state.last_synced_fingerprint == EMPTY_FINGERPRINT
        assert remote_store.subscriber_count(REMOTE_KEY) == 0

    async def test_cancels_queued_uploads(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        remote_store.save_delay = 0.02

        first = asyncio.create_task(engine.upload_collection([_make_record("a")]))
        await asyncio.sleep(0)
        second = asyncio.create_task(engine.upload_collection([_make_record("b")]))
        await asyncio.sleep(0)

        engine.clear_sync_state()

        cancelled = await second
        assert cancelled.success is False
        assert cancelled.error == SYNC_CANCELLED
        assert (await first).success is True
        assert len(remote_store.save_calls) == 1
        assert engine.get_sync_status().queued_uploads == 0

    async def test_running_upload_keeps_slot_after_clear(
        self,
        engine: SyncEngine,
        remote_store: InMemoryRemoteStore,
        identity: SessionIdentity,
    ) -> None:
        remote_store.save_delay = 0.02
        alice_items = [_make_record("alice")]
        bob_items = [_make_record("bob")]

        first = asyncio.create_task(engine.upload_collection(alice_items))
        await asyncio.sleep(0)
        engine.clear_sync_state()
        identity.sign_out()
        identity.sign_in("bob")
        second = asyncio.create_task(engine.upload_collection(bob_items))

        assert (await first).success is True
        assert (await second).success is True
        assert remote_store.max_concurrent_saves == 1
        assert engine.load_local() == bob_items
        assert engine.state.last_synced_fingerprint == fingerprint(bob_items)
        assert engine.state.stale_upload is False
        assert engine.state.in_progress is False

    async def test_cleared_upload_not_mirrored_into_next_session(
        self,
        engine: SyncEngine,
        remote_store: InMemoryRemoteStore,
        identity: SessionIdentity,
    ) -> None:
        remote_store.save_delay = 0.02

        upload = asyncio.create_task(engine.upload_collection([_make_record("alice")]))
        await asyncio.sleep(0)
        engine.clear_sync_state()
        identity.sign_out()
        identity.sign_in("bob")

        assert (await upload).success is True
        assert engine.load_local() == []
        assert engine.state.last_synced_fingerprint == EMPTY_FINGERPRINT
        assert engine.get_sync_status().last_sync_time is None


# ── Local pass-throughs ────────────────────────────────────────


class TestCollectionAccess:
    """Tests for save_collection() / load_collection()."""

    async def test_save_collection_uploads_when_signed_in(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        items = [_make_record("a")]

        outcome = await engine.save_collection(items)

        assert outcome.success is True
        assert engine.load_local() == items
        assert remote_store.document(REMOTE_KEY)["items"] == items

    async def test_save_collection_local_only_when_anonymous(
        self,
        local_store: InMemoryLocalStore,
        remote_store: InMemoryRemoteStore,
        engine: SyncEngine,
        identity: SessionIdentity,
    ) -> None:
        identity.sign_out()
        items = [_make_record("a")]

        outcome = await engine.save_collection(items)

        assert outcome.success is True
        assert remote_store.save_calls == []
        assert LocalReplica(local_store, SessionIdentity()).load() == items

    async def test_save_collection_respects_auto_sync(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        engine.set_auto_sync(False)

        outcome = await engine.save_collection([_make_record("a")])

        assert outcome.success is True
        assert remote_store.save_calls == []

    async def test_save_collection_reports_local_failure(
        self,
        engine: SyncEngine,
        local_store: InMemoryLocalStore,
        identity: SessionIdentity,
    ) -> None:
        identity.sign_out()
        local_store.fail_writes = True

        outcome = await engine.save_collection([_make_record("a")])

        assert outcome.success is False

    async def test_load_collection_merges_remote(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        engine.save_local([_make_record("l")])
        remote_store.put(REMOTE_KEY, {"items": [_make_record("r")]})

        items = await engine.load_collection()

        assert sorted(r["id"] for r in items) == ["l", "r"]

    async def test_load_collection_falls_back_to_local(
        self, engine: SyncEngine, remote_store: InMemoryRemoteStore
    ) -> None:
        engine.save_local([_make_record("l")])
        remote_store.fail_next_fetch(RemoteStoreError("denied", "permission-denied"))

        assert await engine.load_collection() == [_make_record("l")]
