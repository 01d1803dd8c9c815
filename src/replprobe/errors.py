"""Exceptions raised by replprobe.

Backend failures during a trial are converted into trial outcomes by the
prober; configuration, preflight and storage errors reach the caller.
"""

from __future__ import annotations

from typing import Any


class ReplprobeError(Exception):
    """Base exception for replprobe."""


class ConfigError(ReplprobeError, ValueError):
    """Raised when a probe configuration is missing values or inconsistent."""


class BackendError(ReplprobeError):
    """Raised when a call against a key-value backend fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status {self.status_code})"
        return self.message


class PreflightError(ReplprobeError):
    """Raised when an endpoint is unreachable or rejects the credential."""

    def __init__(self, role: str, address: str, cause: BackendError) -> None:
        super().__init__(f"{role} not reachable/auth failed ({address}): {cause}")
        self.role = role
        self.address = address
        self.cause = cause


class ApprovalTimeoutError(ReplprobeError):
    """Raised when a Control Group request is not approved in time."""

    def __init__(self, accessor: str, attempts: int) -> None:
        super().__init__(f"request {accessor} not approved after {attempts} checks")
        self.accessor = accessor
        self.attempts = attempts


class StorageError(ReplprobeError):
    """Raised when a run cannot be written to the results store."""


class DuplicateRunError(StorageError, ValueError):
    def __init__(self, run_id: str) -> None:
        super().__init__(f"Run {run_id} already exists")
        self.run_id = run_id
