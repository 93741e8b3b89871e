"""
Stable Wizard Engine - Core Business Logic

Staged, multi-step creation of equestrian facility records:
1. Draft State (tagged-action reducer, provisional ids)
2. Step Graph (gated, conditional steps)
3. Resource Staging (media under provisional ids, migration, reaping)
4. Commit Orchestration (mandatory upsert, best-effort follow-ups)
5. Movement Wizard (location movements with a housing picker)
"""

# Horse Registration Wizard
from .wizard import (
    HorseWizard,
    HorseDraft,
    WizardMode,
    CommitSucceeded,
    CommitSucceededWithWarnings,
    CommitFailed,
    WizardError,
)

# Movement Wizard
from .movement import (
    MovementWizard,
    MovementDraft,
    MovementType,
    MovementRecorded,
    MovementRecordedWithWarnings,
    MovementFailed,
)

# Collaborator Services
from .services import (
    RecordService,
    ObjectStorageService,
    get_record_service,
    get_object_storage,
)

__all__ = [
    # Horse Registration Wizard
    "HorseWizard",
    "HorseDraft",
    "WizardMode",
    "CommitSucceeded",
    "CommitSucceededWithWarnings",
    "CommitFailed",
    "WizardError",
    # Movement Wizard
    "MovementWizard",
    "MovementDraft",
    "MovementType",
    "MovementRecorded",
    "MovementRecordedWithWarnings",
    "MovementFailed",
    # Collaborator Services
    "RecordService",
    "ObjectStorageService",
    "get_record_service",
    "get_object_storage",
]
