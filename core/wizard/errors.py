"""
Wizard Errors - Exception Hierarchy for the Wizard Engine

Fatal and degraded commit outcomes are returned as result variants, not
raised. These exceptions cover navigation, staging, and collaborator failures.
"""

from __future__ import annotations

from typing import Optional


class WizardError(Exception):
    """Base class for all wizard engine errors."""

    pass


class StepBlockedError(WizardError):
    """Raised when navigation or commit is attempted past a closed gate."""

    def __init__(self, step: str, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(f"Step '{step}' blocked: {reason}")


class WizardBusyError(WizardError):
    """Raised when a commit or upload batch is already in progress."""

    pass


class WizardClosedError(WizardError):
    """Raised when a closed wizard session is used."""

    pass


class EntityNotFoundError(WizardError):
    """Raised when an entity to edit does not exist."""

    def __init__(self, table: str, entity_id: str):
        self.table = table
        self.entity_id = entity_id
        super().__init__(f"No row {entity_id} in {table}")


class UploadRejectedError(WizardError):
    """Raised when a file fails validation before upload."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"{filename}: {reason}")


class CompensatedUploadError(WizardError):
    """
    Raised when the metadata insert failed after the blob was written.

    The blob has been deleted again unless `orphaned_path` is set, in which
    case the compensating delete also failed.
    """

    def __init__(self, filename: str, reason: str, orphaned_path: Optional[str] = None):
        self.filename = filename
        self.reason = reason
        self.orphaned_path = orphaned_path
        super().__init__(f"{filename}: {reason}")


class HousingUnavailableError(WizardError):
    """Raised when a full housing unit is selected."""

    def __init__(self, unit_id: str, label: str):
        self.unit_id = unit_id
        self.label = label
        super().__init__(f"Housing unit {unit_id} is not assignable ({label})")


# =============================================================================
# Collaborator Errors
# =============================================================================


class ServiceError(WizardError):
    """Raised by a collaborator service (records or object storage)."""

    pass


class RecordServiceError(ServiceError):
    """Raised when the record service fails."""

    pass


class ObjectStorageError(ServiceError):
    """Raised when the object storage service fails."""

    pass
