"""
Domain exceptions for the restore controller.

Notes
-----
Engine code does not raise generic exceptions for expected failure modes.
Every failure that can end a restore maps to a domain exception whose text is
written verbatim into the restore request's status comments, so messages are
user-facing.
"""

from __future__ import annotations


class RestoreControllerError(RuntimeError):
    """Base exception for all restore controller failures."""


class ResourceStoreError(RestoreControllerError):
    """Raised when the resource store cannot read or write an object."""


class ResourceNotFoundError(ResourceStoreError):
    """Raised when a resource does not exist in the store."""


class BackupNotFoundError(RestoreControllerError):
    """Raised when the backup referenced by a restore request does not exist."""


class BackupNotReadyError(RestoreControllerError):
    """Raised when the referenced backup has not reached the Succeeded state."""


class RestoreConflictError(RestoreControllerError):
    """Raised when another non-terminal restore targets the same cluster."""


class UnsafePITRError(RestoreControllerError):
    """Raised when the PITR readiness gate trips and no override is present."""


class WaitTimeoutError(RestoreControllerError):
    """Raised when a bounded wait exceeds its poll limit."""


class InvalidRestoreError(RestoreControllerError):
    """Raised when a restore request (or the restore triple) is invalid."""


class InvalidClusterError(RestoreControllerError):
    """Raised when cluster options cannot be defaulted or are inconsistent."""


class ConfigError(RestoreControllerError):
    """Raised when controller configuration cannot be loaded."""


class CollaboratorError(RestoreControllerError):
    """
    Raised when an external operation fails during a restore stage.

    Parameters
    ----------
    stage:
        Short description of the stage that failed (e.g. "run restore").
    message:
        Underlying error text.
    """

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage
