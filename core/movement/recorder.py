"""
Movement Recorder - Writes a Finished Movement

1. Validate the draft and load the horse (fatal).
2. Re-check destination unit capacity (fatal if the unit filled up).
3. Insert the movement row (fatal).
4. Update the horse's location and housing, then unit occupancy.
   These degrade to warnings: the movement itself is already on record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Final, Optional, Union

from core.movement.schema import (
    HOUSING_UNITS_TABLE,
    MOVEMENTS_TABLE,
    HousingDecision,
    HousingUnit,
    MovementDraft,
    MovementType,
)
from core.movement.steps import locations_complete
from core.services.base import RecordService
from core.wizard.commit import CommitWarning
from core.wizard.errors import ServiceError
from core.wizard.schema import HORSES_TABLE, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STAGE_VALIDATION: Final[str] = "validation"
STAGE_CAPACITY: Final[str] = "capacity"
STAGE_INSERT: Final[str] = "insert"
STAGE_HORSE_UPDATE: Final[str] = "horse_update"
STAGE_OCCUPANCY: Final[str] = "occupancy"


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class MovementRecorded:
    """Movement stored and every follow-up update applied."""

    movement_id: str


@dataclass(frozen=True)
class MovementRecordedWithWarnings:
    """Movement stored, but the horse or unit occupancy could not be updated."""

    movement_id: str
    warnings: tuple[CommitWarning, ...]


@dataclass(frozen=True)
class MovementFailed:
    """Nothing was recorded."""

    stage: str
    reason: str


MovementResult = Union[
    MovementRecorded,
    MovementRecordedWithWarnings,
    MovementFailed,
]


def movement_result_to_dict(result: MovementResult) -> dict:
    if isinstance(result, MovementFailed):
        return {"status": "failed", "stage": result.stage, "reason": result.reason}
    if isinstance(result, MovementRecordedWithWarnings):
        return {
            "status": "recorded_with_warnings",
            "movement_id": result.movement_id,
            "warnings": [w.to_dict() for w in result.warnings],
        }
    return {"status": "recorded", "movement_id": result.movement_id, "warnings": []}


# =============================================================================
# Recorder
# =============================================================================


class MovementRecorder:
    """
    Records movements against the record service.

    Usage:
        recorder = MovementRecorder(records, tenant_id)
        result = recorder.record(draft)
    """

    def __init__(
        self,
        records: RecordService,
        tenant_id: str,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._records = records
        self._tenant_id = tenant_id
        self._clock = clock

    def record(self, draft: MovementDraft) -> MovementResult:
        # =====================================================================
        # STEP 1: Validate and load the horse (MANDATORY)
        # =====================================================================

        if draft.movement_type is None or not draft.horse_id:
            return MovementFailed(STAGE_VALIDATION, "Movement type and horse are required")
        if not locations_complete(draft):
            return MovementFailed(STAGE_VALIDATION, "Movement locations are incomplete")

        try:
            horses = self._records.list_where(
                HORSES_TABLE, {"id": draft.horse_id, "tenant_id": self._tenant_id}
            )
        except ServiceError as e:
            return MovementFailed(STAGE_VALIDATION, str(e))
        if not horses:
            return MovementFailed(STAGE_VALIDATION, f"Horse {draft.horse_id} not found")
        horse = horses[0]
        previous_unit_id = horse.get("housing_unit_id") or None

        assign = (
            draft.movement_type != MovementType.OUT
            and draft.housing_decision == HousingDecision.ASSIGNED
            and bool(draft.to_unit_id)
        )

        # =====================================================================
        # STEP 2: Re-check destination capacity (MANDATORY)
        # =====================================================================

        unit: Optional[HousingUnit] = None
        if assign and draft.to_unit_id != previous_unit_id:
            try:
                rows = self._records.list_where(
                    HOUSING_UNITS_TABLE, {"id": draft.to_unit_id, "tenant_id": self._tenant_id}
                )
            except ServiceError as e:
                return MovementFailed(STAGE_CAPACITY, str(e))
            if not rows:
                return MovementFailed(STAGE_CAPACITY, f"Housing unit {draft.to_unit_id} not found")
            unit = HousingUnit.from_row(rows[0])
            if not unit.is_assignable:
                return MovementFailed(
                    STAGE_CAPACITY, f"Housing unit {unit.code} is full ({unit.capacity_label})"
                )

        # =====================================================================
        # STEP 3: Insert the movement row (MANDATORY)
        # =====================================================================

        clear_housing = self._clears_housing(draft)
        try:
            row = self._records.create(MOVEMENTS_TABLE, self._movement_row(draft, previous_unit_id, clear_housing))
        except ServiceError as e:
            logger.error("Movement insert failed for horse %s: %s", draft.horse_id, e)
            return MovementFailed(STAGE_INSERT, str(e))
        movement_id = row["id"]

        warnings: list[CommitWarning] = []

        # =====================================================================
        # STEP 4: Horse location/housing and unit occupancy (best effort)
        # =====================================================================

        horse_update = self._horse_update(draft, assign, clear_housing)
        try:
            self._records.update(HORSES_TABLE, draft.horse_id, horse_update)
        except ServiceError as e:
            logger.warning("Movement %s recorded but horse %s not updated: %s", movement_id, draft.horse_id, e)
            warnings.append(CommitWarning(STAGE_HORSE_UPDATE, f"Horse location could not be updated: {e}"))
        else:
            warnings.extend(self._update_occupancy(previous_unit_id, horse_update, unit))

        if warnings:
            return MovementRecordedWithWarnings(movement_id, tuple(warnings))

        logger.info("Recorded %s movement %s for horse %s", draft.movement_type.value, movement_id, draft.horse_id)
        return MovementRecorded(movement_id)

    @staticmethod
    def _clears_housing(draft: MovementDraft) -> bool:
        """Outgoing moves and explicit skips leave the horse without housing."""
        if draft.movement_type == MovementType.OUT:
            return True
        if draft.housing_decision == HousingDecision.SKIPPED:
            return True
        # Undecided: keep housing only when staying at the same location
        return draft.housing_decision == HousingDecision.UNSET and not draft.is_internal_relocation

    def _movement_row(self, draft: MovementDraft, previous_unit_id: Optional[str], clear_housing: bool) -> dict:
        return {
            "tenant_id": self._tenant_id,
            "horse_id": draft.horse_id,
            "movement_type": draft.movement_type.value,
            "from_location_id": draft.from_location_id or None,
            "to_location_id": draft.to_location_id or None,
            "from_unit_id": previous_unit_id,
            "to_area_id": draft.to_area_id or None,
            "to_unit_id": draft.to_unit_id or None,
            "housing_decision": draft.housing_decision.value,
            "clear_housing": clear_housing,
            "movement_at": draft.movement_at or self._clock().isoformat(),
            "reason": draft.reason.strip() or None,
            "notes": draft.notes.strip() or None,
            "internal_location_note": draft.internal_location_note.strip() or None,
        }

    @staticmethod
    def _horse_update(draft: MovementDraft, assign: bool, clear_housing: bool) -> dict:
        update: dict = {}
        if draft.movement_type == MovementType.OUT:
            update["branch_id"] = None
        else:
            update["branch_id"] = draft.to_location_id
        if assign:
            update["housing_unit_id"] = draft.to_unit_id
        elif clear_housing:
            update["housing_unit_id"] = None
        return update

    def _update_occupancy(
        self,
        previous_unit_id: Optional[str],
        horse_update: dict,
        new_unit: Optional[HousingUnit],
    ) -> list[CommitWarning]:
        warnings: list[CommitWarning] = []
        if "housing_unit_id" not in horse_update or horse_update["housing_unit_id"] == previous_unit_id:
            return warnings

        if previous_unit_id:
            try:
                rows = self._records.list_where(HOUSING_UNITS_TABLE, {"id": previous_unit_id})
                if rows:
                    count = max(int(rows[0].get("current_occupants") or 0) - 1, 0)
                    self._records.update(HOUSING_UNITS_TABLE, previous_unit_id, {"current_occupants": count})
            except ServiceError as e:
                logger.warning("Could not release housing unit %s: %s", previous_unit_id, e)
                warnings.append(CommitWarning(STAGE_OCCUPANCY, f"Previous unit occupancy not updated: {e}"))

        if new_unit is not None:
            try:
                self._records.update(
                    HOUSING_UNITS_TABLE,
                    new_unit.id,
                    {"current_occupants": new_unit.current_occupant_count + 1},
                )
            except ServiceError as e:
                logger.warning("Could not occupy housing unit %s: %s", new_unit.id, e)
                warnings.append(CommitWarning(STAGE_OCCUPANCY, f"Destination unit occupancy not updated: {e}"))

        return warnings
