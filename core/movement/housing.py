"""
Housing picker for the movement wizard.

Lists the destination location's housing units, marks full ones as
unselectable, and writes the chosen unit (or an explicit skip) into the
movement draft.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from core.movement.schema import HOUSING_UNITS_TABLE, HousingDecision, HousingUnit, MovementDraft
from core.services.base import RecordService
from core.wizard.draft import DraftStore
from core.wizard.errors import HousingUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HousingOption:
    """A unit as presented to the user."""

    unit: HousingUnit
    selectable: bool
    label: str

    def to_dict(self) -> dict:
        return {
            "unit": self.unit.to_dict(),
            "selectable": self.selectable,
            "label": self.label,
        }


class HousingPicker:
    """
    Reads housing units and records the housing decision on a draft store.

    Usage:
        picker = HousingPicker(records, tenant_id)
        options = picker.options(picker.list_units(branch_id))
        picker.select(store, options[0].unit)
    """

    def __init__(self, records: RecordService, tenant_id: str):
        self._records = records
        self._tenant_id = tenant_id

    def list_units(self, branch_id: str, area_id: Optional[str] = None) -> list[HousingUnit]:
        """Active units at a location, optionally narrowed to one area, ordered by code."""
        predicate = {"tenant_id": self._tenant_id, "branch_id": branch_id}
        if area_id:
            predicate["area_id"] = area_id
        rows = self._records.list_where(HOUSING_UNITS_TABLE, predicate)
        units = [HousingUnit.from_row(row) for row in rows if row.get("is_active", True)]
        return sorted(units, key=lambda u: u.code)

    def get_unit(self, unit_id: str) -> Optional[HousingUnit]:
        rows = self._records.list_where(
            HOUSING_UNITS_TABLE, {"id": unit_id, "tenant_id": self._tenant_id}
        )
        return HousingUnit.from_row(rows[0]) if rows else None

    @staticmethod
    def options(units: list[HousingUnit]) -> list[HousingOption]:
        return [HousingOption(unit=u, selectable=u.is_assignable, label=u.capacity_label) for u in units]

    def select(self, store: DraftStore[MovementDraft], unit: HousingUnit) -> MovementDraft:
        """
        Assign a unit to the draft.

        Raises:
            HousingUnavailableError: If the unit is full
        """
        if not unit.is_assignable:
            raise HousingUnavailableError(unit.id, unit.capacity_label)
        return store.patch(
            to_area_id=unit.area_id or "",
            to_unit_id=unit.id,
            housing_decision=HousingDecision.ASSIGNED,
        )

    def select_area(self, store: DraftStore[MovementDraft], area_id: str) -> MovementDraft:
        """Change the area filter. Any unit chosen under the old area is dropped."""
        return store.patch(to_area_id=area_id, to_unit_id="", housing_decision=HousingDecision.UNSET)

    def skip(self, store: DraftStore[MovementDraft]) -> MovementDraft:
        """Record an explicit "no housing" decision."""
        return store.patch(to_area_id="", to_unit_id="", housing_decision=HousingDecision.SKIPPED)

    def clear(self, store: DraftStore[MovementDraft]) -> MovementDraft:
        return store.patch(to_area_id="", to_unit_id="", housing_decision=HousingDecision.UNSET)
