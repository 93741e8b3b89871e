"""
Draft State Store - Tagged-Action Reducer for Wizard Drafts

Holds the one draft a wizard session is building. Every mutation is a
tagged action applied by a pure reducer, and the actions dispatched since
the last reset are kept as an audit trail.

The store also owns the session's provisional identifier: a fresh one is
minted on every reset so an abandoned session's staged assets are never
picked up by the next session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from core.services.base import RecordService
from core.wizard.errors import EntityNotFoundError
from core.wizard.schema import (
    HORSE_ENTITY_TYPE,
    HORSES_TABLE,
    MEDIA_ASSETS_TABLE,
    OWNERSHIP_TABLE,
    HorseDraft,
    MediaAssetRef,
    OwnershipAllocation,
    generate_id,
)

logger = logging.getLogger(__name__)

D = TypeVar("D")


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class PatchAction:
    """Set one draft field."""

    field: str
    value: Any


@dataclass(frozen=True)
class ResetAction:
    """Replace the whole draft with a seed (None means the empty template)."""

    seed: Any = None


Action = Union[PatchAction, ResetAction]


def apply_action(draft: D, action: Action, template: Callable[[], D]) -> D:
    """
    Pure reducer: return the draft that results from applying action.

    Raises:
        ValueError: If a patch targets a field the draft does not have
    """
    if isinstance(action, ResetAction):
        return action.seed if action.seed is not None else template()

    if isinstance(action, PatchAction):
        if not hasattr(draft, "__dataclass_fields__") or action.field not in draft.__dataclass_fields__:
            raise ValueError(f"Unknown draft field: {action.field}")
        return replace(draft, **{action.field: action.value})

    raise TypeError(f"Unsupported action: {action!r}")


# =============================================================================
# Store
# =============================================================================


class DraftStore(Generic[D]):
    """
    Mutable holder for one wizard draft.

    Usage:
        store = DraftStore(HorseDraft)
        store.patch(name="Shadowfax", gender=Gender.MALE)
        store.reset()  # empty draft, new provisional id
    """

    def __init__(
        self,
        template: Callable[[], D],
        id_generator: Callable[[], str] = generate_id,
    ):
        """
        Initialise store with an empty draft.

        Args:
            template: Factory for the empty draft
            id_generator: Source of provisional identifiers
        """
        self._template = template
        self._new_id = id_generator
        self._draft: D = template()
        self._provisional_id = id_generator()
        self._history: list[Action] = []

    @property
    def draft(self) -> D:
        return self._draft

    @property
    def provisional_id(self) -> str:
        return self._provisional_id

    @property
    def history(self) -> tuple[Action, ...]:
        """Actions dispatched since the last reset."""
        return tuple(self._history)

    def dispatch(self, action: Action) -> D:
        """Apply one action and record it."""
        self._draft = apply_action(self._draft, action, self._template)
        if isinstance(action, ResetAction):
            self._provisional_id = self._new_id()
            self._history = [action]
        else:
            self._history.append(action)
        return self._draft

    def patch(self, **fields: Any) -> D:
        """Shallow-merge fields into the draft, one PatchAction per field."""
        for name, value in fields.items():
            self.dispatch(PatchAction(name, value))
        return self._draft

    def reset(self, seed: Optional[D] = None) -> D:
        """Replace the draft and mint a new provisional identifier."""
        return self.dispatch(ResetAction(seed))


# =============================================================================
# Edit-Mode Projection
# =============================================================================


def load_horse_draft(records: RecordService, tenant_id: str, entity_id: str) -> HorseDraft:
    """
    Project an existing horse, its ownership rows and its media into a draft.

    Raises:
        EntityNotFoundError: If the horse does not exist for this tenant
    """
    rows = records.list_where(HORSES_TABLE, {"id": entity_id, "tenant_id": tenant_id})
    if not rows:
        raise EntityNotFoundError(HORSES_TABLE, entity_id)

    owners = tuple(
        OwnershipAllocation.from_row(row)
        for row in records.list_where(OWNERSHIP_TABLE, {"horse_id": entity_id})
    )
    media_rows = records.list_where(
        MEDIA_ASSETS_TABLE,
        {"tenant_id": tenant_id, "entity_type": HORSE_ENTITY_TYPE, "entity_id": entity_id},
    )
    media = tuple(
        MediaAssetRef.from_row(row)
        for row in sorted(media_rows, key=lambda r: r.get("display_order", 0))
    )

    logger.debug(
        "Loaded horse %s for edit: %d owners, %d media", entity_id, len(owners), len(media)
    )
    return HorseDraft.from_entity(rows[0], owners=owners, media=media)
