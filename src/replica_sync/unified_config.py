"""Persistent configuration for the replica-sync CLI.

Configuration is stored in ~/.replicasync/config.toml
The local replica database is stored in ~/.replicasync/replica.db (SQLite)
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from replica_sync.sync.protocol import ConflictStrategy
from replica_sync.utils.config import Config

logger = logging.getLogger(__name__)

# Valid user identifier: alphanumeric, hyphens, underscores, dots, @ (for emails)
_USER_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\.@]*$")
_USER_ID_MAX_LEN = 128


def get_replicasync_dir() -> Path:
    """Get the replica-sync data directory.

    Priority:
    1. REPLICA_SYNC_DIR environment variable
    2. ~/.replicasync/
    """
    env_dir = os.environ.get("REPLICA_SYNC_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".replicasync"


def sanitize_user_id(value: Any) -> str:
    """Strip and validate a user id; returns "" when it is not acceptable."""
    if not isinstance(value, str):
        return ""
    cleaned = value.strip()[:_USER_ID_MAX_LEN]
    if not _USER_ID_PATTERN.match(cleaned):
        return ""
    return cleaned


def _float_or(value: Any, default: float) -> float:
    """Non-negative float from a config value, or *default* if it is unusable."""
    try:
        parsed = float(value)
    except (ValueError, TypeError):
        return default
    return parsed if parsed >= 0 else default


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def _toml_str(value: str) -> str:
    # JSON string escaping is valid for TOML basic strings
    return json.dumps(value)


@dataclass(frozen=True)
class RemoteSettings:
    """Remote document server connection."""

    server_url: str = ""
    api_key: str = ""
    timeout: float = 30.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "server_url": self.server_url,
            "api_key": self.api_key,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteSettings:
        timeout = _float_or(data.get("timeout", 30.0), 30.0)
        return cls(
            server_url=str(data.get("server_url", "")),
            api_key=str(data.get("api_key", "")),
            timeout=timeout if timeout > 0 else 30.0,
        )


@dataclass(frozen=True)
class SyncSettings:
    """Coordinator behavior."""

    conflict_strategy: ConflictStrategy = ConflictStrategy.LATEST_WINS
    auto_sync: bool = True
    drain_delay: float = 0.1
    key_prefix: str = "replicaSyncCollection"

    def to_dict(self) -> dict[str, Any]:
        return {
            "conflict_strategy": self.conflict_strategy.value,
            "auto_sync": self.auto_sync,
            "drain_delay": self.drain_delay,
            "key_prefix": self.key_prefix,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSettings:
        try:
            strategy = ConflictStrategy(data.get("conflict_strategy", "latest_wins"))
        except ValueError:
            strategy = ConflictStrategy.LATEST_WINS
        return cls(
            conflict_strategy=strategy,
            auto_sync=bool(data.get("auto_sync", True)),
            drain_delay=_float_or(data.get("drain_delay", 0.1), 0.1),
            key_prefix=str(data.get("key_prefix", "replicaSyncCollection")),
        )


@dataclass(frozen=True)
class RetrySettings:
    """Backoff for remote operations."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "initial_delay": self.initial_delay,
            "max_delay": self.max_delay,
            "backoff_multiplier": self.backoff_multiplier,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetrySettings:
        max_retries = data.get("max_retries", 3)
        try:
            max_retries = max(0, min(int(max_retries), 10))
        except (ValueError, TypeError):
            max_retries = 3
        return cls(
            max_retries=max_retries,
            initial_delay=_float_or(data.get("initial_delay", 1.0), 1.0),
            max_delay=_float_or(data.get("max_delay", 10.0), 10.0),
            backoff_multiplier=_float_or(data.get("backoff_multiplier", 2.0), 2.0),
        )


@dataclass
class UnifiedConfig:
    """Configuration shared by every replica-sync command.

    Storage location: ~/.replicasync/config.toml
    Local replica: ~/.replicasync/replica.db
    """

    # Base directory for all replica-sync data
    data_dir: Path = field(default_factory=get_replicasync_dir)

    remote: RemoteSettings = field(default_factory=RemoteSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)

    # Signed-in user (empty = anonymous)
    user_id: str = ""

    version: str = "1.0"

    @classmethod
    def load(cls, config_path: Path | None = None) -> UnifiedConfig:
        """Load configuration from file, or create default if doesn't exist."""
        if config_path is None:
            data_dir = get_replicasync_dir()
            config_path = data_dir / "config.toml"
        else:
            data_dir = config_path.parent

        if not config_path.exists():
            config = cls(data_dir=data_dir)
            config.save()
            logger.info("Created default config at %s", config_path)
            return config

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        return cls(
            data_dir=data_dir,
            remote=RemoteSettings.from_dict(data.get("remote", {})),
            sync=SyncSettings.from_dict(data.get("sync", {})),
            retry=RetrySettings.from_dict(data.get("retry", {})),
            user_id=sanitize_user_id(data.get("session", {}).get("user_id", "")),
            version=data.get("version", "1.0"),
        )

    def save(self) -> None:
        """Save configuration to TOML file (atomic write via temp+rename)."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        config_path = self.config_path

        lines = [
            "# replica-sync configuration",
            "",
            f"version = {_toml_str(self.version)}",
            "",
            "# Remote document server",
            "[remote]",
            f"server_url = {_toml_str(self.remote.server_url)}",
            f"api_key = {_toml_str(self.remote.api_key)}",
            f"timeout = {float(self.remote.timeout)}",
            "",
            "# Signed-in user",
            "[session]",
            f"user_id = {_toml_str(sanitize_user_id(self.user_id))}",
            "",
            "# Sync behavior",
            "[sync]",
            f"conflict_strategy = {_toml_str(self.sync.conflict_strategy.value)}",
            f"auto_sync = {_toml_bool(self.sync.auto_sync)}",
            f"drain_delay = {float(self.sync.drain_delay)}",
            f"key_prefix = {_toml_str(self.sync.key_prefix)}",
            "",
            "# Retry with exponential backoff",
            "[retry]",
            f"max_retries = {int(self.retry.max_retries)}",
            f"initial_delay = {float(self.retry.initial_delay)}",
            f"max_delay = {float(self.retry.max_delay)}",
            f"backoff_multiplier = {float(self.retry.backoff_multiplier)}",
        ]

        # Atomic write: write to temp file, then rename
        content = "\n".join(lines) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=str(self.data_dir), suffix=".toml.tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(tmp_path).replace(config_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    @property
    def config_path(self) -> Path:
        """Get path to config file."""
        return self.data_dir / "config.toml"

    @property
    def local_db_path(self) -> Path:
        """Get path to the local replica database."""
        return self.data_dir / "replica.db"

    def set_server(self, server_url: str, api_key: str | None = None) -> None:
        """Point at a document server and save."""
        if not server_url.startswith(("http://", "https://")):
            raise ValueError("Server URL must start with http:// or https://")
        self.remote = RemoteSettings(
            server_url=server_url.rstrip("/"),
            api_key=self.remote.api_key if api_key is None else api_key,
            timeout=self.remote.timeout,
        )
        self.save()

    def set_user(self, user_id: str) -> None:
        """Record the signed-in user ("" signs out) and save."""
        cleaned = sanitize_user_id(user_id)
        if user_id and not cleaned:
            raise ValueError(
                "Invalid user id: must contain only alphanumeric characters, "
                "hyphens, underscores, dots, or @"
            )
        self.user_id = cleaned
        self.save()

    def set_strategy(self, strategy: ConflictStrategy | str) -> None:
        self.sync = replace(self.sync, conflict_strategy=ConflictStrategy(strategy))
        self.save()

    def set_auto_sync(self, enabled: bool) -> None:
        self.sync = replace(self.sync, auto_sync=enabled)
        self.save()

    def to_engine_config(self) -> Config:
        """Runtime engine settings described by this file."""
        return Config(
            max_retries=self.retry.max_retries,
            initial_delay=self.retry.initial_delay,
            max_delay=self.retry.max_delay,
            backoff_multiplier=self.retry.backoff_multiplier,
            drain_delay=self.sync.drain_delay,
            conflict_strategy=self.sync.conflict_strategy,
            key_prefix=self.sync.key_prefix,
        )


# Singleton instance for easy access
_config: UnifiedConfig | None = None


def get_config(reload: bool = False) -> UnifiedConfig:
    """Get the unified configuration (singleton).

    Args:
        reload: Force reload from disk

    Returns:
        UnifiedConfig instance
    """
    global _config
    if _config is None or reload:
        _config = UnifiedConfig.load()
    return _config
