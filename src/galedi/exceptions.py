"""
Galedi exception hierarchy.

All agent-specific exceptions inherit from GalediError, so a pipeline boundary
can catch every expected failure with a single base class while callers that
care can still tell transport, store and configuration problems apart.

Hierarchy::

    GalediError
    ├── ConfigurationError        - config loading, parsing, validation (fatal at startup)
    ├── InitializationError       - startup orchestration failures
    ├── RemoteChannelError        - file-transfer failures (connect, list, transfer)
    │   └── RemoteFileNotFoundError - remote file is not there
    ├── StoreError                - record store read/write failures
    │   └── StoreConnectionError  - store backend unreachable
    └── SyncCancelledError        - cancellation observed between steps
"""

from __future__ import annotations


class GalediError(Exception):
    """Base exception for all Galedi errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(GalediError):
    """Raised when configuration loading, parsing, or validation fails."""

    def __init__(self, message: str, *, problems: list[str] | None = None) -> None:
        super().__init__(message, details={"problems": list(problems or [])})
        self.problems = list(problems or [])


class InitializationError(GalediError):
    """Raised during startup when a required component fails to initialize.

    Error messages should be informative and actionable. Exception chaining
    is suppressed (``from None``) by the raiser to keep CLI output clean.
    """


# --- Remote channel ----------------------------------------------------------


class RemoteChannelError(GalediError):
    """Raised when a remote file-transfer operation fails."""

    def __init__(
        self,
        message: str,
        *,
        partner_id: str | None = None,
        file_name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, details={"partner_id": partner_id, "file_name": file_name})
        self.partner_id = partner_id
        self.file_name = file_name
        if cause is not None:
            self.__cause__ = cause


class RemoteFileNotFoundError(RemoteChannelError):
    """Raised when the requested remote file does not exist."""


# --- Record store ------------------------------------------------------------


class StoreError(GalediError):
    """Raised when the record store cannot complete an operation."""


class StoreConnectionError(StoreError):
    """Raised when the record store backend cannot be reached."""


# --- Sync ---------------------------------------------------------------------


class SyncCancelledError(GalediError):
    """Raised when a pipeline observes the cancellation signal."""


__all__ = [
    "GalediError",
    "ConfigurationError",
    "InitializationError",
    "RemoteChannelError",
    "RemoteFileNotFoundError",
    "StoreError",
    "StoreConnectionError",
    "SyncCancelledError",
]
