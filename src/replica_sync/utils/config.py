"""Runtime configuration for replica-sync."""

from __future__ import annotations

import os
from dataclasses import dataclass

from replica_sync.sync.protocol import ConflictStrategy
from replica_sync.sync.retry import RetryPolicy


@dataclass
class Config:
    """
    Engine configuration.

    Loaded from environment variables with sensible defaults. Invalid values
    fall back to the default rather than failing start-up.
    """

    # Retry settings
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    # Coordinator settings
    drain_delay: float = 0.1  # pause before the next queued upload starts
    conflict_strategy: ConflictStrategy = ConflictStrategy.LATEST_WINS

    # Storage naming
    key_prefix: str = "replicaSyncCollection"
    remote_collection: str = "userCollections"

    debug: bool = False

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""

        def get_bool(key: str, default: bool) -> bool:
            value = os.getenv(key)
            if value is None:
                return default
            return value.lower() in ("true", "1", "yes")

        def get_int(key: str, default: int) -> int:
            value = os.getenv(key)
            if value is None:
                return default
            try:
                parsed = int(value)
            except ValueError:
                return default
            return parsed if parsed >= 0 else default

        def get_float(key: str, default: float) -> float:
            value = os.getenv(key)
            if value is None:
                return default
            try:
                parsed = float(value)
            except ValueError:
                return default
            return parsed if parsed >= 0 else default

        def get_strategy(key: str, default: ConflictStrategy) -> ConflictStrategy:
            value = os.getenv(key)
            if value is None:
                return default
            try:
                return ConflictStrategy(value.strip().lower())
            except ValueError:
                return default

        return cls(
            max_retries=get_int("REPLICA_SYNC_MAX_RETRIES", 3),
            initial_delay=get_float("REPLICA_SYNC_INITIAL_DELAY", 1.0),
            max_delay=get_float("REPLICA_SYNC_MAX_DELAY", 10.0),
            backoff_multiplier=get_float("REPLICA_SYNC_BACKOFF_MULTIPLIER", 2.0),
            drain_delay=get_float("REPLICA_SYNC_DRAIN_DELAY", 0.1),
            conflict_strategy=get_strategy(
                "REPLICA_SYNC_CONFLICT_STRATEGY", ConflictStrategy.LATEST_WINS
            ),
            key_prefix=os.getenv("REPLICA_SYNC_KEY_PREFIX", "replicaSyncCollection"),
            remote_collection=os.getenv("REPLICA_SYNC_REMOTE_COLLECTION", "userCollections"),
            debug=get_bool("REPLICA_SYNC_DEBUG", False),
        )

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy described by this config."""
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier,
        )


# Singleton config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None
