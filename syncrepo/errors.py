"""
Error types for SyncRepo.

This module defines all exception types raised by the package:
- SyncRepoError: Base exception
- ConfigurationError: Invalid entity binding or settings
- ValidationError: Record does not match the entity type
- LocalStoreError: Local store driver failure
- RemoteStoreError: Remote store request failure
- RemoteUnavailableError: Remote store unreachable
- ReplayError: Transaction log replay aborted

Invariants:
    - All errors inherit from SyncRepoError
    - Errors include context for debugging
    - Secrets (API keys) never appear in messages or details
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class SyncRepoError(Exception):
    """Base exception for all SyncRepo errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SYNCREPO_ERROR"
        self.details = details or {}


class ConfigurationError(SyncRepoError):
    """Invalid configuration.

    Raised when:
    - The primary key field does not exist on the entity type
    - An entity type cannot be bound
    """

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"setting": setting},
        )
        self.setting = setting


class ValidationError(SyncRepoError):
    """A record could not be converted to the entity type."""

    def __init__(
        self,
        message: str,
        entity_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"entity": entity_name, "errors": errors or []},
        )
        self.entity_name = entity_name
        self.errors = errors or []


class LocalStoreError(SyncRepoError):
    """Local store driver failure.

    Raised when:
    - The database file cannot be opened
    - A table is not registered
    - A write violates a key constraint
    """

    def __init__(self, message: str, table: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="LOCAL_STORE_ERROR",
            details={"table": table},
        )
        self.table = table


class RemoteStoreError(SyncRepoError):
    """Remote store request failed.

    Attributes:
        status_code: HTTP status code, if a response was received
        url: Request URL
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="REMOTE_STORE_ERROR",
            details={"status_code": status_code, "url": url},
        )
        self.status_code = status_code
        self.url = url


class RemoteUnavailableError(RemoteStoreError):
    """Remote store could not be reached (connection refused, timeout, DNS)."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message, url=url)
        self.code = "REMOTE_UNAVAILABLE"


class ReplayError(SyncRepoError):
    """Replay of the transaction log stopped on a failing entry.

    Attributes:
        seq: Log position of the failing transaction
        action: Action name of the failing transaction
    """

    def __init__(
        self,
        message: str,
        seq: Optional[int] = None,
        action: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="REPLAY_ERROR",
            details={"seq": seq, "action": action},
        )
        self.seq = seq
        self.action = action
