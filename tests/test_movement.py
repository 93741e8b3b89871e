"""
Tests for the Movement Wizard

Tests covering:
1. Location gating per movement type (internal relocation needs a note)
2. Housing unit capacity rules and labels
3. Housing skip vs never decided
4. Recorder fatal and degraded stages
5. Session flow end to end
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from core.movement import (
    HousingDecision,
    HousingPicker,
    HousingUnit,
    MovementDraft,
    MovementFailed,
    MovementRecorded,
    MovementRecordedWithWarnings,
    MovementRecorder,
    MovementType,
    MovementWizard,
    OccupancyPolicy,
    locations_complete,
    movement_result_to_dict,
    needs_housing_reminder,
)
from core.movement.schema import HOUSING_UNITS_TABLE, MOVEMENTS_TABLE
from core.movement.steps import DETAILS_STEP, HOUSING_STEP, LOCATION_STEP, REVIEW_STEP
from core.wizard.draft import DraftStore
from core.wizard.errors import (
    EntityNotFoundError,
    HousingUnavailableError,
    StepBlockedError,
    WizardClosedError,
)
from core.wizard.schema import HORSES_TABLE


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def stable(records):
    """A horse in stall S-1 at branch b-1, plus units at branch b-2."""
    records.create(
        HORSES_TABLE,
        {"id": "h-1", "tenant_id": "t-1", "name": "Storm", "branch_id": "b-1", "housing_unit_id": "s-1"},
    )
    units = [
        {"id": "s-1", "code": "S-1", "occupancy": "single", "capacity": 1, "current_occupants": 1, "branch_id": "b-1"},
        {"id": "s-2", "code": "S-2", "occupancy": "single", "capacity": 1, "current_occupants": 0, "branch_id": "b-1"},
        {"id": "p-1", "code": "P-1", "occupancy": "multi", "capacity": 4, "current_occupants": 3,
         "branch_id": "b-2", "area_id": "a-1"},
        {"id": "p-2", "code": "P-2", "occupancy": "multi", "capacity": 4, "current_occupants": 4,
         "branch_id": "b-2", "area_id": "a-1"},
        {"id": "p-3", "code": "P-0", "occupancy": "single", "capacity": 1, "current_occupants": 0,
         "branch_id": "b-2", "area_id": "a-2"},
        {"id": "p-9", "code": "P-9", "occupancy": "single", "capacity": 1, "current_occupants": 0,
         "branch_id": "b-2", "is_active": False},
    ]
    for unit in units:
        records.create(HOUSING_UNITS_TABLE, {"tenant_id": "t-1", **unit})
    return records


@pytest.fixture
def recorder(stable):
    return MovementRecorder(stable, "t-1")


def _unit(policy, capacity, current):
    return HousingUnit(id="u", code="U", occupancy_policy=policy, capacity=capacity, current_occupant_count=current)


# =============================================================================
# Location Gate
# =============================================================================


class TestLocationGate:
    def test_in_needs_destination(self):
        assert not locations_complete(MovementDraft(movement_type=MovementType.IN))
        assert locations_complete(MovementDraft(movement_type=MovementType.IN, to_location_id="b-1"))

    def test_out_needs_origin(self):
        assert not locations_complete(MovementDraft(movement_type=MovementType.OUT, to_location_id="b-1"))
        assert locations_complete(MovementDraft(movement_type=MovementType.OUT, from_location_id="b-1"))

    def test_transfer_needs_both(self):
        assert not locations_complete(
            MovementDraft(movement_type=MovementType.TRANSFER, from_location_id="b-1")
        )
        assert locations_complete(
            MovementDraft(movement_type=MovementType.TRANSFER, from_location_id="b-1", to_location_id="b-2")
        )

    def test_same_location_transfer_needs_note(self):
        draft = MovementDraft(movement_type=MovementType.TRANSFER, from_location_id="b-1", to_location_id="b-1")
        assert draft.is_internal_relocation
        assert not locations_complete(draft)
        assert not locations_complete(replace(draft, internal_location_note="  "))
        noted = MovementDraft(
            movement_type=MovementType.TRANSFER,
            from_location_id="b-1",
            to_location_id="b-1",
            internal_location_note="Moved to quarantine barn",
        )
        assert locations_complete(noted)

    def test_no_type_blocks(self):
        assert not locations_complete(MovementDraft(to_location_id="b-1", from_location_id="b-2"))


# =============================================================================
# Housing Units
# =============================================================================


class TestHousingUnit:
    def test_occupied_single_unit_is_not_assignable(self):
        unit = _unit(OccupancyPolicy.SINGLE, 1, 1)
        assert not unit.is_assignable
        assert unit.capacity_label == "occupied"

    def test_empty_single_unit(self):
        unit = _unit(OccupancyPolicy.SINGLE, 1, 0)
        assert unit.is_assignable
        assert unit.capacity_label == "available"

    def test_full_multi_unit_is_not_assignable(self):
        unit = _unit(OccupancyPolicy.MULTI, 4, 4)
        assert not unit.is_assignable
        assert unit.capacity_label == "4/4"

    def test_multi_unit_with_room(self):
        unit = _unit(OccupancyPolicy.MULTI, 4, 3)
        assert unit.is_assignable
        assert unit.capacity_label == "3/4"

    def test_from_row_defaults(self):
        unit = HousingUnit.from_row({"id": "x"})
        assert unit.code == "x"
        assert unit.occupancy_policy == OccupancyPolicy.SINGLE
        assert unit.capacity == 1


class TestHousingPicker:
    def test_lists_active_units_sorted_by_code(self, stable):
        picker = HousingPicker(stable, "t-1")
        assert [u.code for u in picker.list_units("b-2")] == ["P-0", "P-1", "P-2"]
        assert [u.code for u in picker.list_units("b-2", area_id="a-1")] == ["P-1", "P-2"]

    def test_options_mark_full_units(self, stable):
        picker = HousingPicker(stable, "t-1")
        options = picker.options(picker.list_units("b-2", area_id="a-1"))
        assert [(o.unit.code, o.selectable, o.label) for o in options] == [
            ("P-1", True, "3/4"),
            ("P-2", False, "4/4"),
        ]

    def test_select_full_unit_raises(self, stable):
        picker = HousingPicker(stable, "t-1")
        store = DraftStore(MovementDraft)
        full = picker.get_unit("p-2")
        with pytest.raises(HousingUnavailableError):
            picker.select(store, full)
        assert store.draft.housing_decision == HousingDecision.UNSET

    def test_select_and_skip(self, stable):
        picker = HousingPicker(stable, "t-1")
        store = DraftStore(MovementDraft)

        picker.select(store, picker.get_unit("p-1"))
        assert store.draft.to_unit_id == "p-1"
        assert store.draft.to_area_id == "a-1"
        assert store.draft.housing_decision == HousingDecision.ASSIGNED

        picker.skip(store)
        assert store.draft.to_unit_id == ""
        assert store.draft.housing_decision == HousingDecision.SKIPPED

    def test_changing_area_drops_unit(self, stable):
        picker = HousingPicker(stable, "t-1")
        store = DraftStore(MovementDraft)
        picker.select(store, picker.get_unit("p-1"))
        picker.select_area(store, "a-2")
        assert store.draft.to_unit_id == ""
        assert store.draft.housing_decision == HousingDecision.UNSET


class TestHousingReminder:
    def test_undecided_housing_needs_reminder(self):
        assert needs_housing_reminder(MovementDraft(movement_type=MovementType.IN))

    def test_skipped_housing_does_not(self):
        draft = MovementDraft(movement_type=MovementType.IN, housing_decision=HousingDecision.SKIPPED)
        assert not needs_housing_reminder(draft)

    def test_out_movement_never_needs_housing(self):
        assert not needs_housing_reminder(MovementDraft(movement_type=MovementType.OUT))


# =============================================================================
# Recorder
# =============================================================================


class TestRecorder:
    def test_transfer_with_housing(self, recorder, stable):
        draft = MovementDraft(
            movement_type=MovementType.TRANSFER,
            horse_id="h-1",
            from_location_id="b-1",
            to_location_id="b-2",
            to_area_id="a-1",
            to_unit_id="p-1",
            housing_decision=HousingDecision.ASSIGNED,
        )

        result = recorder.record(draft)

        assert isinstance(result, MovementRecorded)
        movement = stable.get(MOVEMENTS_TABLE, result.movement_id)
        assert movement["from_unit_id"] == "s-1"
        assert movement["to_unit_id"] == "p-1"
        assert movement["clear_housing"] is False
        horse = stable.get(HORSES_TABLE, "h-1")
        assert horse["branch_id"] == "b-2"
        assert horse["housing_unit_id"] == "p-1"
        assert stable.get(HOUSING_UNITS_TABLE, "p-1")["current_occupants"] == 4
        assert stable.get(HOUSING_UNITS_TABLE, "s-1")["current_occupants"] == 0

    def test_out_clears_location_and_housing(self, recorder, stable):
        draft = MovementDraft(movement_type=MovementType.OUT, horse_id="h-1", from_location_id="b-1")

        result = recorder.record(draft)

        assert isinstance(result, MovementRecorded)
        horse = stable.get(HORSES_TABLE, "h-1")
        assert horse["branch_id"] is None
        assert horse["housing_unit_id"] is None
        assert stable.get(MOVEMENTS_TABLE, result.movement_id)["clear_housing"] is True

    def test_internal_relocation_keeps_housing_when_undecided(self, recorder, stable):
        draft = MovementDraft(
            movement_type=MovementType.TRANSFER,
            horse_id="h-1",
            from_location_id="b-1",
            to_location_id="b-1",
            internal_location_note="Back from clinic",
        )

        result = recorder.record(draft)

        assert isinstance(result, MovementRecorded)
        assert stable.get(HORSES_TABLE, "h-1")["housing_unit_id"] == "s-1"
        assert stable.get(HOUSING_UNITS_TABLE, "s-1")["current_occupants"] == 1

    def test_full_unit_is_fatal(self, recorder, stable):
        draft = MovementDraft(
            movement_type=MovementType.IN,
            horse_id="h-1",
            to_location_id="b-2",
            to_unit_id="p-2",
            housing_decision=HousingDecision.ASSIGNED,
        )

        result = recorder.record(draft)

        assert isinstance(result, MovementFailed)
        assert result.stage == "capacity"
        assert stable.count(MOVEMENTS_TABLE) == 0

    def test_unknown_horse_is_fatal(self, recorder):
        draft = MovementDraft(movement_type=MovementType.IN, horse_id="ghost", to_location_id="b-2")
        result = recorder.record(draft)
        assert isinstance(result, MovementFailed)
        assert result.stage == "validation"

    def test_insert_failure_is_fatal(self, recorder, stable):
        stable.fail_on.add(("create", MOVEMENTS_TABLE))
        draft = MovementDraft(movement_type=MovementType.IN, horse_id="h-1", to_location_id="b-2")

        result = recorder.record(draft)

        assert isinstance(result, MovementFailed)
        assert result.stage == "insert"
        assert stable.get(HORSES_TABLE, "h-1")["branch_id"] == "b-1"

    def test_horse_update_failure_is_a_warning(self, recorder, stable):
        stable.fail_on.add(("update", HORSES_TABLE))
        draft = MovementDraft(movement_type=MovementType.IN, horse_id="h-1", to_location_id="b-2")

        result = recorder.record(draft)

        assert isinstance(result, MovementRecordedWithWarnings)
        assert result.warnings[0].stage == "horse_update"
        assert stable.count(MOVEMENTS_TABLE) == 1

    def test_occupancy_failure_is_a_warning(self, recorder, stable):
        stable.fail_on.add(("update", HOUSING_UNITS_TABLE))
        draft = MovementDraft(
            movement_type=MovementType.IN,
            horse_id="h-1",
            to_location_id="b-2",
            to_unit_id="p-1",
            housing_decision=HousingDecision.ASSIGNED,
        )

        result = recorder.record(draft)

        assert isinstance(result, MovementRecordedWithWarnings)
        assert {w.stage for w in result.warnings} == {"occupancy"}
        assert stable.get(HORSES_TABLE, "h-1")["housing_unit_id"] == "p-1"

    def test_result_serialisation(self):
        assert movement_result_to_dict(MovementRecorded("m-1")) == {
            "status": "recorded",
            "movement_id": "m-1",
            "warnings": [],
        }


# =============================================================================
# Session
# =============================================================================


class TestMovementWizard:
    @pytest.fixture
    def wizard(self, stable):
        return MovementWizard(stable, "t-1")

    def _to_location_step(self, wizard, movement_type, **locations):
        wizard.patch(movement_type=movement_type)
        wizard.next()
        wizard.next()
        wizard.patch(**locations)
        assert wizard.current_step().name == LOCATION_STEP

    def test_closed_wizard_rejects_use(self, wizard):
        with pytest.raises(WizardClosedError):
            wizard.next()

    def test_open_preselects_horse(self, wizard):
        wizard.open(horse_id="h-1")
        assert wizard.draft.horse_id == "h-1"
        assert wizard.current_step().name == "type"

    def test_out_flow_skips_housing(self, wizard):
        wizard.open(horse_id="h-1")
        self._to_location_step(wizard, "out", from_location_id="b-1")
        assert wizard.next().name == DETAILS_STEP

    def test_same_location_transfer_blocked_without_note(self, wizard):
        wizard.open(horse_id="h-1")
        self._to_location_step(wizard, "transfer", from_location_id="b-1", to_location_id="b-1")
        with pytest.raises(StepBlockedError):
            wizard.next()
        wizard.patch(internal_location_note="Isolation box")
        assert wizard.next().name == HOUSING_STEP

    def test_housing_options_and_select(self, wizard, stable):
        wizard.open(horse_id="h-1")
        self._to_location_step(wizard, "in", to_location_id="b-2")
        wizard.next()

        options = wizard.housing_options()
        assert [o.unit.code for o in options] == ["P-0", "P-1", "P-2"]

        with pytest.raises(HousingUnavailableError):
            wizard.select_housing("p-2")
        with pytest.raises(EntityNotFoundError):
            wizard.select_housing("s-2")

        wizard.select_housing("p-1")
        assert wizard.draft.housing_decision == HousingDecision.ASSIGNED
        assert not wizard.needs_housing_reminder

    def test_changing_destination_drops_housing(self, wizard):
        wizard.open(horse_id="h-1")
        self._to_location_step(wizard, "in", to_location_id="b-2")
        wizard.next()
        wizard.select_housing("p-1")

        wizard.patch(to_location_id="b-1")

        assert wizard.draft.to_unit_id == ""
        assert wizard.draft.housing_decision == HousingDecision.UNSET

    def test_skip_only_on_housing_step(self, wizard):
        wizard.open(horse_id="h-1")
        with pytest.raises(StepBlockedError):
            wizard.skip_housing()

    def test_full_flow_with_skip(self, wizard, stable):
        wizard.open(horse_id="h-1")
        self._to_location_step(wizard, "in", to_location_id="b-2")
        wizard.next()

        assert wizard.skip_housing().name == DETAILS_STEP
        assert wizard.draft.housing_decision == HousingDecision.SKIPPED
        wizard.patch(reason="Arrived from trainer")
        assert wizard.next().name == REVIEW_STEP

        result = wizard.submit()

        assert isinstance(result, MovementRecorded)
        assert not wizard.is_open
        movement = stable.get(MOVEMENTS_TABLE, result.movement_id)
        assert movement["housing_decision"] == "skipped"
        assert movement["reason"] == "Arrived from trainer"
        assert stable.get(HORSES_TABLE, "h-1")["housing_unit_id"] is None

    def test_submit_before_review_is_blocked(self, wizard):
        wizard.open(horse_id="h-1")
        with pytest.raises(StepBlockedError):
            wizard.submit()

    def test_failed_submit_keeps_session_open(self, wizard, stable):
        wizard.open(horse_id="h-1")
        self._to_location_step(wizard, "in", to_location_id="b-2")
        wizard.next()
        wizard.skip_housing()
        wizard.next()
        stable.fail_on.add(("create", MOVEMENTS_TABLE))

        result = wizard.submit()

        assert isinstance(result, MovementFailed)
        assert wizard.is_open
        assert wizard.draft.to_location_id == "b-2"

    def test_unknown_field_rejected(self, wizard):
        wizard.open()
        with pytest.raises(ValueError):
            wizard.patch(destination="b-1")

    def test_type_change_pulls_cursor_back_to_open_gate(self, wizard):
        wizard.open(horse_id="h-1")
        self._to_location_step(wizard, "out", from_location_id="b-1")
        assert wizard.next().name == DETAILS_STEP

        wizard.patch(movement_type="in")

        assert wizard.current_step().name == LOCATION_STEP
        assert not wizard.can_advance()
        with pytest.raises(StepBlockedError):
            wizard.next()

    def test_dropped_housing_step_falls_back_to_earlier_step(self, wizard):
        wizard.open(horse_id="h-1")
        self._to_location_step(wizard, "transfer", from_location_id="b-1", to_location_id="b-2")
        assert wizard.next().name == HOUSING_STEP

        wizard.patch(movement_type="out")

        assert wizard.current_step().name == LOCATION_STEP
        assert wizard.next().name == DETAILS_STEP
