"""
Movement Wizard

Records a horse moving in, out, or between locations, with an optional
destination housing unit.
"""

from core.movement.schema import (
    MovementType,
    OccupancyPolicy,
    HousingDecision,
    HousingUnit,
    MovementDraft,
    coerce_movement_field,
)
from core.movement.steps import (
    movement_steps,
    locations_complete,
    needs_housing_reminder,
)
from core.movement.housing import HousingOption, HousingPicker
from core.movement.recorder import (
    MovementRecorded,
    MovementRecordedWithWarnings,
    MovementFailed,
    MovementResult,
    MovementRecorder,
    movement_result_to_dict,
)
from core.movement.session import MovementWizard

__all__ = [
    "MovementType",
    "OccupancyPolicy",
    "HousingDecision",
    "HousingUnit",
    "MovementDraft",
    "coerce_movement_field",
    "movement_steps",
    "locations_complete",
    "needs_housing_reminder",
    "HousingOption",
    "HousingPicker",
    "MovementRecorded",
    "MovementRecordedWithWarnings",
    "MovementFailed",
    "MovementResult",
    "MovementRecorder",
    "movement_result_to_dict",
    "MovementWizard",
]
