"""
Movement Wizard Session

Same lifecycle as the horse wizard (open, patch, navigate, submit) over a
MovementDraft, with a housing picker instead of media staging.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from core.movement.housing import HousingOption, HousingPicker
from core.movement.recorder import MovementFailed, MovementRecorder, MovementResult
from core.movement.schema import HOUSING_UNITS_TABLE, MovementDraft, coerce_movement_field
from core.movement.steps import HOUSING_STEP, movement_steps, needs_housing_reminder
from core.services.base import RecordService
from core.wizard.draft import DraftStore
from core.wizard.errors import (
    EntityNotFoundError,
    StepBlockedError,
    WizardBusyError,
    WizardClosedError,
)
from core.wizard.schema import generate_id
from core.wizard.steps import Step, StepNavigator, StepProgress

logger = logging.getLogger(__name__)

# Changing any of these invalidates a chosen housing unit
_DESTINATION_FIELDS = frozenset({"movement_type", "to_location_id"})


class MovementWizard:
    """
    A location-movement wizard session.

    Usage:
        wizard = MovementWizard(records, tenant_id="t-1")
        wizard.open(horse_id="h-1")
        wizard.patch(movement_type="in")
        ...
        result = wizard.submit()
    """

    def __init__(
        self,
        records: RecordService,
        tenant_id: str,
        id_generator: Callable[[], str] = generate_id,
        recorder: Optional[MovementRecorder] = None,
    ):
        self._store: DraftStore[MovementDraft] = DraftStore(MovementDraft, id_generator)
        self._picker = HousingPicker(records, tenant_id)
        self._recorder = recorder or MovementRecorder(records, tenant_id)
        self._navigator: Optional[StepNavigator] = None
        self._busy = False

    def open(self, horse_id: str = "") -> MovementDraft:
        """Open with an empty draft, optionally preselecting the horse."""
        seed = MovementDraft(horse_id=horse_id) if horse_id else None
        self._store.reset(seed)
        self._navigator = StepNavigator(movement_steps())
        return self._store.draft

    def close(self) -> None:
        self._store.reset()
        self._navigator = None

    @property
    def is_open(self) -> bool:
        return self._navigator is not None

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def draft(self) -> MovementDraft:
        return self._store.draft

    @property
    def needs_housing_reminder(self) -> bool:
        return needs_housing_reminder(self.draft)

    def _require_open(self) -> StepNavigator:
        if self._navigator is None:
            raise WizardClosedError("Movement wizard is not open")
        return self._navigator

    @contextmanager
    def _working(self) -> Iterator[None]:
        if self._busy:
            raise WizardBusyError("A movement is already being recorded")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    def patch(self, **fields: Any) -> MovementDraft:
        """
        Merge field values into the draft.

        Changing the movement type or destination drops any housing choice.

        Raises:
            ValueError: If a field is unknown or a value cannot be converted
        """
        self._require_open()
        known = MovementDraft.field_names()
        for name in fields:
            if name not in known:
                raise ValueError(f"Unknown draft field: {name}")
        values = {k: coerce_movement_field(k, v) for k, v in fields.items()}
        before = self.draft
        draft = self._store.patch(**values)
        if any(getattr(before, f) != getattr(draft, f) for f in _DESTINATION_FIELDS & values.keys()):
            draft = self._picker.clear(self._store)
        return draft

    # =========================================================================
    # Housing
    # =========================================================================

    def housing_options(self) -> list[HousingOption]:
        """Units at the destination (narrowed to the chosen area, if any)."""
        self._require_open()
        if not self.draft.to_location_id:
            return []
        units = self._picker.list_units(self.draft.to_location_id, self.draft.to_area_id or None)
        return self._picker.options(units)

    def select_housing(self, unit_id: str) -> MovementDraft:
        """
        Raises:
            EntityNotFoundError: If the unit is not at the destination
            HousingUnavailableError: If the unit is full
        """
        self._require_open()
        units = self._picker.list_units(self.draft.to_location_id) if self.draft.to_location_id else []
        for unit in units:
            if unit.id == unit_id:
                return self._picker.select(self._store, unit)
        raise EntityNotFoundError(HOUSING_UNITS_TABLE, unit_id)

    def select_area(self, area_id: str) -> MovementDraft:
        self._require_open()
        return self._picker.select_area(self._store, area_id)

    def skip_housing(self) -> Step:
        """Record "no housing" and advance past the housing step."""
        navigator = self._require_open()
        step = navigator.current(self.draft)
        if step.name != HOUSING_STEP:
            raise StepBlockedError(step.name, "housing can only be skipped on the housing step")
        self._picker.skip(self._store)
        return navigator.next(self.draft)

    # =========================================================================
    # Navigation
    # =========================================================================

    def current_step(self) -> Step:
        return self._require_open().current(self.draft)

    def can_advance(self) -> bool:
        return self._require_open().can_advance(self.draft)

    def progress(self) -> StepProgress:
        return self._require_open().progress(self.draft)

    def next(self) -> Step:
        return self._require_open().next(self.draft)

    def back(self) -> Step:
        return self._require_open().back(self.draft)

    def jump_to(self, name: str) -> Step:
        return self._require_open().jump_to(name, self.draft)

    # =========================================================================
    # Commit
    # =========================================================================

    def submit(self) -> MovementResult:
        """
        Record the movement from the review step.

        Closes on success; stays open with the draft intact on MovementFailed.

        Raises:
            StepBlockedError: If not on the last step or its gate is closed
        """
        navigator = self._require_open()
        step = navigator.current(self.draft)
        if not navigator.is_last(self.draft):
            raise StepBlockedError(step.name, "movement can only be recorded from the review step")
        if not step.gate(self.draft):
            raise StepBlockedError(step.name, "required fields are missing or invalid")

        with self._working():
            result = self._recorder.record(self.draft)

        if not isinstance(result, MovementFailed):
            self.close()
        return result

    def to_dict(self) -> dict:
        data = {
            "open": self.is_open,
            "busy": self._busy,
            "draft": self.draft.to_dict(),
            "needs_housing_reminder": self.needs_housing_reminder,
        }
        if self.is_open:
            data["progress"] = self.progress().to_dict()
            data["can_advance"] = self.can_advance()
        return data
