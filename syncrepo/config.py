"""
Configuration management for SyncRepo.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets (API keys) are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep environment variable names prefixed with SYNCREPO_ (except the
      shared LOG_LEVEL/LOG_FORMAT)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        data_dir: Directory for the SQLite database
        db_name: Database name (file name without extension)
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    data_dir: str = "./.syncrepo"
    db_name: str = "syncrepo"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("SYNCREPO_DATA_DIR", "./.syncrepo"),
            db_name=os.getenv("SYNCREPO_DB_NAME", "syncrepo"),
            wal_mode=_env_bool("SYNCREPO_SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SYNCREPO_SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class RemoteConfig:
    """Remote store configuration.

    Attributes:
        base_url: Root URL of the remote REST API
        timeout_seconds: Per-request timeout
        api_key: Optional bearer token (never logged)
    """

    base_url: str | None = None
    timeout_seconds: float = 10.0
    api_key: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> RemoteConfig:
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("SYNCREPO_REMOTE_URL"),
            timeout_seconds=float(os.getenv("SYNCREPO_REMOTE_TIMEOUT", "10")),
            api_key=os.getenv("SYNCREPO_REMOTE_API_KEY"),
        )


@dataclass(frozen=True)
class ConnectivityConfig:
    """Connectivity probe configuration.

    Attributes:
        probe_url: URL probed to decide online/offline (defaults to remote URL)
        interval_seconds: Delay between probes
        timeout_seconds: Probe timeout
    """

    probe_url: str | None = None
    interval_seconds: float = 5.0
    timeout_seconds: float = 2.0

    @classmethod
    def from_env(cls) -> ConnectivityConfig:
        """Load configuration from environment variables."""
        return cls(
            probe_url=os.getenv("SYNCREPO_PROBE_URL"),
            interval_seconds=float(os.getenv("SYNCREPO_PROBE_INTERVAL", "5")),
            timeout_seconds=float(os.getenv("SYNCREPO_PROBE_TIMEOUT", "2")),
        )


@dataclass(frozen=True)
class SyncConfig:
    """Repository sync behavior.

    Attributes:
        initially_online: Connectivity state assumed before the first signal
    """

    initially_online: bool = True

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Load configuration from environment variables."""
        return cls(initially_online=_env_bool("SYNCREPO_INITIALLY_ONLINE", "true"))


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class SyncRepoConfig:
    """Complete configuration.

    Attributes:
        storage: Local storage configuration
        remote: Remote store configuration
        connectivity: Connectivity probe configuration
        sync: Sync behavior
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    connectivity: ConnectivityConfig = field(default_factory=ConnectivityConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> SyncRepoConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            remote=RemoteConfig.from_env(),
            connectivity=ConnectivityConfig.from_env(),
            sync=SyncConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    @property
    def probe_url(self) -> str | None:
        """Effective connectivity probe URL."""
        return self.connectivity.probe_url or self.remote.base_url

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.remote.timeout_seconds <= 0:
            raise ValueError("SYNCREPO_REMOTE_TIMEOUT must be positive")
        if self.connectivity.interval_seconds <= 0:
            raise ValueError("SYNCREPO_PROBE_INTERVAL must be positive")
        if self.connectivity.timeout_seconds <= 0:
            raise ValueError("SYNCREPO_PROBE_TIMEOUT must be positive")
        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SYNCREPO_SQLITE_BUSY_TIMEOUT_MS must not be negative")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "SyncRepo configuration loaded",
            extra={
                "data_dir": self.storage.data_dir,
                "db_name": self.storage.db_name,
                "remote_url": self.remote.base_url,
                "remote_auth": self.remote.api_key is not None,
                "probe_url": self.probe_url,
                "initially_online": self.sync.initially_online,
                "log_level": self.observability.log_level,
            },
        )
