"""
Commit Orchestrator - Partial-Failure-Tolerant Horse Commit

Sequences the writes that turn a finished draft into a stored horse:

1. Upsert the horse row (insert in create mode, update in edit mode).
   This is the only mandatory step. Failure aborts the commit.
2. Create mode: migrate staged media from the provisional id to the new id.
   A failed migration is recorded as pending so the reaper re-links the
   assets instead of deleting them.
3. Replace ownership rows (delete existing in edit mode, insert new). A
   partial insert is rolled back so no share set below 100% is left behind.

Steps 2 and 3 degrade to warnings. The outcome is always returned as a
result variant so callers must handle "committed with warnings".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, Optional, Union

from core.services.base import RecordService
from core.wizard.errors import ServiceError
from core.wizard.schema import HORSES_TABLE, OWNERSHIP_TABLE, HorseDraft, WizardMode
from core.wizard.staging import ResourceStager

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STAGE_UPSERT: Final[str] = "upsert"
STAGE_MIGRATION: Final[str] = "migration"
STAGE_OWNERSHIP_DELETE: Final[str] = "ownership_delete"
STAGE_OWNERSHIP_INSERT: Final[str] = "ownership_insert"


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class CommitWarning:
    """A degraded, non-fatal commit step."""

    stage: str
    message: str

    def to_dict(self) -> dict:
        return {"stage": self.stage, "message": self.message}


@dataclass(frozen=True)
class CommitSucceeded:
    """Returned when every commit step succeeded."""

    entity_id: str
    mode: WizardMode
    migrated_assets: int = 0
    ownership_rows: int = 0


@dataclass(frozen=True)
class CommitSucceededWithWarnings:
    """Returned when the horse is stored but an optional step failed."""

    entity_id: str
    mode: WizardMode
    warnings: tuple[CommitWarning, ...]
    migrated_assets: int = 0
    ownership_rows: int = 0
    # Set when staged media is still on the provisional key
    provisional_id: Optional[str] = None


@dataclass(frozen=True)
class CommitFailed:
    """Returned when the horse upsert failed. Nothing was committed."""

    stage: str
    reason: str


CommitResult = Union[
    CommitSucceeded,
    CommitSucceededWithWarnings,
    CommitFailed,
]


def commit_result_to_dict(result: CommitResult) -> dict:
    """Serialise any commit result variant."""
    if isinstance(result, CommitFailed):
        return {"status": "failed", "stage": result.stage, "reason": result.reason}

    data = {
        "status": "committed",
        "entity_id": result.entity_id,
        "mode": result.mode.value,
        "migrated_assets": result.migrated_assets,
        "ownership_rows": result.ownership_rows,
        "warnings": [],
    }
    if isinstance(result, CommitSucceededWithWarnings):
        data["status"] = "committed_with_warnings"
        data["warnings"] = [w.to_dict() for w in result.warnings]
        data["provisional_id"] = result.provisional_id
    return data


# =============================================================================
# Orchestrator
# =============================================================================


class CommitOrchestrator:
    """
    Runs the horse commit sequence against the record service.

    Usage:
        orchestrator = CommitOrchestrator(records, stager, tenant_id)
        result = orchestrator.commit(draft, WizardMode.CREATE, provisional_id)

        if isinstance(result, CommitFailed):
            # keep the wizard open, show result.reason
    """

    def __init__(self, records: RecordService, stager: ResourceStager, tenant_id: str):
        self._records = records
        self._stager = stager
        self._tenant_id = tenant_id

    def commit(
        self,
        draft: HorseDraft,
        mode: WizardMode,
        provisional_id: Optional[str] = None,
    ) -> CommitResult:
        """
        Commit a finished draft.

        Args:
            draft: The draft to store
            mode: Create or edit
            provisional_id: Staging key used for media in create mode

        Returns:
            CommitSucceeded, CommitSucceededWithWarnings or CommitFailed
        """
        # =====================================================================
        # STEP 1: Upsert horse (MANDATORY)
        # =====================================================================

        try:
            payload = draft.to_payload(self._tenant_id)
            entity_id = self._upsert(payload, draft, mode)
        except (ServiceError, ValueError) as e:
            logger.error("Horse commit aborted at upsert: %s", e)
            return CommitFailed(stage=STAGE_UPSERT, reason=str(e))

        warnings: list[CommitWarning] = []

        # =====================================================================
        # STEP 2: Migrate staged media (create mode, best effort)
        # =====================================================================

        migrated = 0
        pending_key: Optional[str] = None
        if mode == WizardMode.CREATE and provisional_id:
            try:
                migrated = self._stager.migrate(provisional_id, entity_id).migrated
            except ServiceError as e:
                pending_key = provisional_id
                logger.warning(
                    "Media migration %s -> %s failed, assets stay on provisional key: %s",
                    provisional_id, entity_id, e,
                )
                warnings.append(CommitWarning(STAGE_MIGRATION, f"Media could not be linked: {e}"))
                try:
                    self._stager.record_pending_migration(provisional_id, entity_id)
                except ServiceError as record_error:
                    logger.error(
                        "Could not record pending migration %s -> %s: %s",
                        provisional_id, entity_id, record_error,
                    )

        # =====================================================================
        # STEP 3: Replace ownership rows (best effort)
        # =====================================================================

        ownership_rows = 0
        replace_owners = True
        if mode == WizardMode.EDIT:
            try:
                self._records.delete_where(OWNERSHIP_TABLE, {"horse_id": entity_id})
            except ServiceError as e:
                # Inserting on top of the old set would double the shares
                replace_owners = False
                logger.warning("Could not clear ownership for %s: %s", entity_id, e)
                warnings.append(
                    CommitWarning(STAGE_OWNERSHIP_DELETE, f"Previous owners could not be removed: {e}")
                )

        if replace_owners and draft.owners:
            try:
                for allocation in draft.owners:
                    self._records.create(OWNERSHIP_TABLE, allocation.to_row(entity_id))
                    ownership_rows += 1
            except ServiceError as e:
                logger.warning(
                    "Ownership insert for %s stopped after %d rows: %s", entity_id, ownership_rows, e
                )
                message = f"Owners could not be saved: {e}"
                if ownership_rows:
                    try:
                        self._records.delete_where(OWNERSHIP_TABLE, {"horse_id": entity_id})
                        ownership_rows = 0
                    except ServiceError as rollback_error:
                        logger.error(
                            "Could not roll back %d ownership rows for %s: %s",
                            ownership_rows, entity_id, rollback_error,
                        )
                        message += f" ({ownership_rows} partial rows remain)"
                warnings.append(CommitWarning(STAGE_OWNERSHIP_INSERT, message))

        if warnings:
            return CommitSucceededWithWarnings(
                entity_id=entity_id,
                mode=mode,
                warnings=tuple(warnings),
                migrated_assets=migrated,
                ownership_rows=ownership_rows,
                provisional_id=pending_key,
            )

        logger.info("Committed horse %s (%s)", entity_id, mode.value)
        return CommitSucceeded(
            entity_id=entity_id,
            mode=mode,
            migrated_assets=migrated,
            ownership_rows=ownership_rows,
        )

    def _upsert(self, payload: dict, draft: HorseDraft, mode: WizardMode) -> str:
        if mode == WizardMode.EDIT:
            if not draft.entity_id:
                raise ValueError("Edit commit needs the horse id")
            self._records.update(HORSES_TABLE, draft.entity_id, payload)
            return draft.entity_id

        row = self._records.create(HORSES_TABLE, payload)
        return row["id"]
