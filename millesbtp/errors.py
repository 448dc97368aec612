"""Error taxonomy for the worksite finance core.

All errors are recoverable by the caller. Only TransientStorageError and
StaleDerivationWarning are retried (see millesbtp.db.retry).
"""

from __future__ import annotations


class MillesBTPError(Exception):
    """Base class for every error raised by the core."""


class ValidationError(MillesBTPError):
    """Invalid input: non-positive amount, missing field, bad date ordering."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class IllegalStateTransition(MillesBTPError):
    """A state machine was asked for a transition it does not allow."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"{entity} cannot move from '{current}' to '{target}'")
        self.entity = entity
        self.current = current
        self.target = target


class NotFound(MillesBTPError):
    """Entity does not exist or is owned by another actor."""

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class TransientStorageError(MillesBTPError):
    """Network or backend failure while reading or writing."""


class StoragePermissionError(MillesBTPError):
    """Authentication or permission failure reported by the store. Never retried."""


class StaleDerivationWarning(MillesBTPError):
    """The worksite changed while derived fields were being computed."""

    def __init__(self, worksite_id: object, expected_version: int | None = None):
        message = f"Worksite {worksite_id} changed during recalculation"
        if expected_version is not None:
            message += f" (expected version {expected_version})"
        super().__init__(message)
        self.worksite_id = worksite_id
        self.expected_version = expected_version
