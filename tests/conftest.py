"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from replica_sync.storage.memory_store import InMemoryLocalStore, InMemoryRemoteStore
from replica_sync.sync.identity import SessionIdentity
from replica_sync.sync.local_replica import LocalReplica
from replica_sync.sync.remote_replica import RemoteReplica
from replica_sync.sync.retry import RetryPolicy
from replica_sync.sync.sync_engine import SyncEngine
from replica_sync.utils.config import reset_config

USER_ID = "user-1"


class RecordingSleep:
    """Awaitable sleep replacement that records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep config files and env-driven settings out of the real home directory."""
    monkeypatch.setenv("REPLICA_SYNC_DIR", str(tmp_path / ".replicasync"))
    for name in (
        "REPLICA_SYNC_MAX_RETRIES",
        "REPLICA_SYNC_INITIAL_DELAY",
        "REPLICA_SYNC_DRAIN_DELAY",
        "REPLICA_SYNC_CONFLICT_STRATEGY",
        "REPLICA_SYNC_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def identity() -> SessionIdentity:
    """A signed-in session."""
    return SessionIdentity(USER_ID)


@pytest.fixture
def local_store() -> InMemoryLocalStore:
    return InMemoryLocalStore()


@pytest.fixture
def remote_store() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    """Two retries, no waiting."""
    return RetryPolicy(max_retries=2, initial_delay=0.0, max_delay=0.0)


@pytest.fixture
def local_replica(local_store: InMemoryLocalStore, identity: SessionIdentity) -> LocalReplica:
    return LocalReplica(local_store, identity)


@pytest.fixture
def remote_replica(
    remote_store: InMemoryRemoteStore,
    identity: SessionIdentity,
    retry_policy: RetryPolicy,
    sleeper: RecordingSleep,
) -> RemoteReplica:
    return RemoteReplica(remote_store, identity, retry_policy, sleep=sleeper)


@pytest.fixture
def engine(
    local_replica: LocalReplica,
    remote_replica: RemoteReplica,
    identity: SessionIdentity,
) -> SyncEngine:
    """Engine over in-memory stores that drains its queue without delay."""
    return SyncEngine(local_replica, remote_replica, identity, drain_delay=0.0)
