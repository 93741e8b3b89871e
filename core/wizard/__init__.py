"""
Horse Registration Wizard

Draft store, step graph, ownership allocation, media staging and the commit
orchestrator, wired together by HorseWizard.

Principles:
1. Nothing is written to the horses table before the final commit
2. Media is staged under a provisional id and migrated on commit
3. Only the horse upsert is fatal; follow-up writes degrade to warnings
"""

from core.wizard.errors import (
    WizardError,
    StepBlockedError,
    WizardBusyError,
    WizardClosedError,
    EntityNotFoundError,
    UploadRejectedError,
    CompensatedUploadError,
    HousingUnavailableError,
    ServiceError,
    RecordServiceError,
    ObjectStorageError,
)
from core.wizard.schema import (
    WizardMode,
    Gender,
    HorseStatus,
    HorseDraft,
    OwnershipAllocation,
    MediaAssetRef,
    coerce_horse_field,
    generate_id,
)
from core.wizard.allocation import (
    AllocationValidationResult,
    validate_allocations,
    is_valid_allocation,
    redistribute,
)
from core.wizard.steps import (
    Step,
    StepNavigator,
    StepProgress,
    effective_steps,
    horse_steps,
)
from core.wizard.draft import (
    PatchAction,
    ResetAction,
    DraftStore,
    apply_action,
    load_horse_draft,
)
from core.wizard.staging import (
    MediaUpload,
    UploadFailure,
    UploadBatchResult,
    MigrationResult,
    ReapResult,
    ResourceStager,
)
from core.wizard.commit import (
    CommitWarning,
    CommitSucceeded,
    CommitSucceededWithWarnings,
    CommitFailed,
    CommitResult,
    CommitOrchestrator,
    commit_result_to_dict,
)
from core.wizard.session import HorseWizard

__all__ = [
    # Errors
    "WizardError",
    "StepBlockedError",
    "WizardBusyError",
    "WizardClosedError",
    "EntityNotFoundError",
    "UploadRejectedError",
    "CompensatedUploadError",
    "HousingUnavailableError",
    "ServiceError",
    "RecordServiceError",
    "ObjectStorageError",
    # Schema
    "WizardMode",
    "Gender",
    "HorseStatus",
    "HorseDraft",
    "OwnershipAllocation",
    "MediaAssetRef",
    "coerce_horse_field",
    "generate_id",
    # Allocation
    "AllocationValidationResult",
    "validate_allocations",
    "is_valid_allocation",
    "redistribute",
    # Steps
    "Step",
    "StepNavigator",
    "StepProgress",
    "effective_steps",
    "horse_steps",
    # Draft store
    "PatchAction",
    "ResetAction",
    "DraftStore",
    "apply_action",
    "load_horse_draft",
    # Staging
    "MediaUpload",
    "UploadFailure",
    "UploadBatchResult",
    "MigrationResult",
    "ReapResult",
    "ResourceStager",
    # Commit
    "CommitWarning",
    "CommitSucceeded",
    "CommitSucceededWithWarnings",
    "CommitFailed",
    "CommitResult",
    "CommitOrchestrator",
    "commit_result_to_dict",
    # Session
    "HorseWizard",
]
