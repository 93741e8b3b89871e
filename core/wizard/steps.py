"""
Step Graph Engine - Ordered, Gated Wizard Steps

A wizard is an ordered list of named steps. Each step has a gate (may the
cursor advance past it?) and an applicability predicate (is it part of this
session at all?). The effective list is recomputed from the draft on every
call, never spliced in place, and the cursor is a step name resolved against
that list each time, so a patch that adds or drops a step cannot shift it.

The navigator holds only a cursor. All entity data lives in the draft.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from core.wizard.allocation import is_valid_allocation
from core.wizard.errors import StepBlockedError
from core.wizard.schema import HorseDraft, WizardMode


Predicate = Callable[[Any], bool]


def always(_draft: Any) -> bool:
    return True


# =============================================================================
# Step
# =============================================================================


@dataclass(frozen=True)
class Step:
    """One named wizard step."""

    name: str
    title: str
    gate: Predicate = always
    applies: Predicate = always
    skippable: bool = False


@dataclass(frozen=True)
class StepProgress:
    """Position of the cursor within the effective step list."""

    position: int  # 1-based
    total: int
    step: Step

    @property
    def percent(self) -> float:
        return self.position / self.total * 100

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "total": self.total,
            "percent": round(self.percent, 1),
            "step": self.step.name,
            "title": self.step.title,
        }


def effective_steps(steps: Sequence[Step], draft: Any) -> tuple[Step, ...]:
    """Return the declared steps that apply to this draft, in order."""
    return tuple(step for step in steps if step.applies(draft))


# =============================================================================
# Navigator
# =============================================================================


class StepNavigator:
    """
    Cursor over the effective step list.

    The cursor is the name of the current step and is re-resolved against
    the draft on every call. When the current step stops applying, the
    cursor falls back to the nearest earlier step that still applies. When
    an earlier step's gate has closed, the cursor is pulled back to it.

    Usage:
        navigator = StepNavigator(horse_steps(WizardMode.CREATE))
        if navigator.can_advance(draft):
            navigator.next(draft)
    """

    def __init__(self, steps: Sequence[Step]):
        if not steps:
            raise ValueError("A wizard needs at least one step")
        self._steps = tuple(steps)
        self._order = {step.name: position for position, step in enumerate(self._steps)}
        self._current = self._steps[0].name
        self._index = 0

    @property
    def steps(self) -> tuple[Step, ...]:
        """Declared steps, before applicability filtering."""
        return self._steps

    @property
    def current_index(self) -> int:
        """Index into the effective list as of the last call."""
        return self._index

    def _resolve(self, draft: Any, enforce_gates: bool = True) -> tuple[tuple[Step, ...], int]:
        steps = effective_steps(self._steps, draft)
        declared = self._order[self._current]
        index = 0
        for position, step in enumerate(steps):
            if self._order[step.name] <= declared:
                index = position
        if enforce_gates:
            for position in range(index):
                if not steps[position].gate(draft):
                    index = position
                    break
        self._move(steps, index)
        return steps, index

    def _move(self, steps: Sequence[Step], index: int) -> None:
        self._index = index
        self._current = steps[index].name

    def effective(self, draft: Any) -> tuple[Step, ...]:
        return self._resolve(draft)[0]

    def current(self, draft: Any) -> Step:
        steps, index = self._resolve(draft)
        return steps[index]

    def can_advance(self, draft: Any) -> bool:
        return self.current(draft).gate(draft)

    def is_first(self, draft: Any) -> bool:
        return self._resolve(draft)[1] == 0

    def is_last(self, draft: Any) -> bool:
        steps, index = self._resolve(draft)
        return index == len(steps) - 1

    def next(self, draft: Any) -> Step:
        """
        Advance to the next effective step.

        Raises:
            StepBlockedError: If the current gate is closed or this is the last step
        """
        steps, index = self._resolve(draft)
        step = steps[index]
        if index == len(steps) - 1:
            raise StepBlockedError(step.name, "already on the last step")
        if not step.gate(draft):
            raise StepBlockedError(step.name, "required fields are missing or invalid")
        self._move(steps, index + 1)
        return steps[index + 1]

    def back(self, draft: Any) -> Step:
        """
        Go back one effective step.

        Raises:
            StepBlockedError: If already on the first step
        """
        steps, index = self._resolve(draft, enforce_gates=False)
        if index == 0:
            raise StepBlockedError(steps[0].name, "already on the first step")
        self._move(steps, index - 1)
        return steps[index - 1]

    def jump_to(self, name: str, draft: Any) -> Step:
        """
        Return to an already-reached step by name.

        Raises:
            StepBlockedError: If the step is ahead of the cursor or not in the list
        """
        steps, current = self._resolve(draft)
        for index, step in enumerate(steps):
            if step.name == name:
                if index > current:
                    raise StepBlockedError(name, "step has not been reached yet")
                self._move(steps, index)
                return step
        raise StepBlockedError(name, "step is not part of this wizard")

    def progress(self, draft: Any) -> StepProgress:
        steps, index = self._resolve(draft)
        return StepProgress(position=index + 1, total=len(steps), step=steps[index])

    def reset(self) -> None:
        self._current = self._steps[0].name
        self._index = 0


# =============================================================================
# Horse Registration Steps
# =============================================================================

REGISTRATION_STEP = "registration"
BASIC_STEP = "basic"
DETAILS_STEP = "details"
PHYSICAL_STEP = "physical"
PEDIGREE_STEP = "pedigree"
OWNERSHIP_STEP = "ownership"
MEDIA_STEP = "media"


def identity_complete(draft: HorseDraft) -> bool:
    """Name must be non-blank and a gender selected."""
    return bool(draft.name.strip()) and draft.gender is not None


def ownership_valid(draft: HorseDraft) -> bool:
    return is_valid_allocation(draft.owners)


def horse_steps(mode: WizardMode) -> tuple[Step, ...]:
    """
    Steps of the horse-registration wizard.

    Create mode opens on the duplicate check. Edit mode leaves it out and
    opens on the identity step (declared index 1).
    """
    steps = [
        Step(REGISTRATION_STEP, "Registration Check"),
        Step(BASIC_STEP, "Basic Info", gate=identity_complete),
        Step(DETAILS_STEP, "Location & Details"),
        Step(PHYSICAL_STEP, "Physical Specs"),
        Step(PEDIGREE_STEP, "Pedigree"),
        Step(OWNERSHIP_STEP, "Ownership", gate=ownership_valid),
        Step(MEDIA_STEP, "Media"),
    ]
    if mode == WizardMode.EDIT:
        return tuple(steps[1:])
    return tuple(steps)
