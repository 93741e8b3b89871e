"""
Movement steps.

type -> subject -> location -> housing -> details -> review, with the
housing step dropped for outgoing movements (an exiting horse has no
destination housing).
"""

from __future__ import annotations

from core.movement.schema import HousingDecision, MovementDraft, MovementType
from core.wizard.steps import Step

TYPE_STEP = "type"
SUBJECT_STEP = "subject"
LOCATION_STEP = "location"
HOUSING_STEP = "housing"
DETAILS_STEP = "details"
REVIEW_STEP = "review"


def type_chosen(draft: MovementDraft) -> bool:
    return draft.movement_type is not None


def subject_chosen(draft: MovementDraft) -> bool:
    return bool(draft.horse_id)


def locations_complete(draft: MovementDraft) -> bool:
    """
    In needs a destination, out an origin, transfer both. A transfer
    within one location must be explained in internal_location_note.
    """
    if draft.movement_type == MovementType.IN:
        return bool(draft.to_location_id)
    if draft.movement_type == MovementType.OUT:
        return bool(draft.from_location_id)
    if draft.movement_type == MovementType.TRANSFER:
        if not draft.from_location_id or not draft.to_location_id:
            return False
        if draft.is_internal_relocation and not draft.internal_location_note.strip():
            return False
        return True
    return False


def has_destination_housing(draft: MovementDraft) -> bool:
    return draft.movement_type != MovementType.OUT


def needs_housing_reminder(draft: MovementDraft) -> bool:
    """True when housing applies but was never decided (skipped does not count)."""
    return has_destination_housing(draft) and draft.housing_decision == HousingDecision.UNSET


def movement_steps() -> tuple[Step, ...]:
    """Declared steps of the movement wizard."""
    return (
        Step(TYPE_STEP, "Movement Type", gate=type_chosen),
        Step(SUBJECT_STEP, "Horse", gate=subject_chosen),
        Step(LOCATION_STEP, "Location", gate=locations_complete),
        Step(HOUSING_STEP, "Housing", applies=has_destination_housing, skippable=True),
        Step(DETAILS_STEP, "Details"),
        Step(REVIEW_STEP, "Review"),
    )
