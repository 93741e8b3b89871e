"""
Horse Wizard Session - One Open Horse-Registration Wizard

Ties the draft store, step navigator, resource stager and commit
orchestrator together for a single create or edit session. This is the
object a UI layer drives.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Iterable, Iterator, Optional

from core.services.base import ObjectStorageService, RecordService
from core.wizard import allocation
from core.wizard.allocation import AllocationValidationResult, validate_allocations
from core.wizard.commit import CommitFailed, CommitOrchestrator, CommitResult
from core.wizard.draft import DraftStore, load_horse_draft
from core.wizard.errors import (
    EntityNotFoundError,
    StepBlockedError,
    WizardBusyError,
    WizardClosedError,
)
from core.wizard.schema import (
    MEDIA_ASSETS_TABLE,
    HorseDraft,
    MediaAssetRef,
    WizardMode,
    coerce_horse_field,
    generate_id,
)
from core.wizard.staging import MediaUpload, ResourceStager, UploadBatchResult
from core.wizard.steps import Step, StepNavigator, StepProgress, horse_steps
from utils.config import Config

logger = logging.getLogger(__name__)


class HorseWizard:
    """
    A horse-registration wizard session.

    Usage:
        wizard = HorseWizard(records, storage, tenant_id="t-1")
        wizard.open_create()
        wizard.next()                       # past the duplicate check
        wizard.patch(name="Shadowfax", gender="male")
        ...
        result = wizard.submit()            # only from the last step
    """

    def __init__(
        self,
        records: RecordService,
        storage: ObjectStorageService,
        tenant_id: str,
        config: Optional[Config] = None,
        id_generator: Callable[[], str] = generate_id,
        stager: Optional[ResourceStager] = None,
    ):
        config = config or Config.load()
        self._records = records
        self._tenant_id = tenant_id
        self._store: DraftStore[HorseDraft] = DraftStore(HorseDraft, id_generator)
        self._stager = stager or ResourceStager(
            records,
            storage,
            tenant_id,
            bucket=config.media_bucket,
            id_generator=id_generator,
            max_file_size=config.max_upload_bytes,
        )
        self._orchestrator = CommitOrchestrator(records, self._stager, tenant_id)
        self._navigator: Optional[StepNavigator] = None
        self._mode: Optional[WizardMode] = None
        self._entity_id: Optional[str] = None
        self._busy = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open_create(self) -> HorseDraft:
        """Open an empty create session with a fresh provisional id."""
        self._store.reset()
        self._navigator = StepNavigator(horse_steps(WizardMode.CREATE))
        self._mode = WizardMode.CREATE
        self._entity_id = None
        logger.debug("Opened horse create session %s", self._store.provisional_id)
        return self._store.draft

    def open_edit(self, entity_id: str) -> HorseDraft:
        """
        Open an edit session seeded from the stored horse.

        Raises:
            EntityNotFoundError: If the horse does not exist for this tenant
        """
        draft = load_horse_draft(self._records, self._tenant_id, entity_id)
        self._store.reset(draft)
        self._navigator = StepNavigator(horse_steps(WizardMode.EDIT))
        self._mode = WizardMode.EDIT
        self._entity_id = entity_id
        return self._store.draft

    def close(self) -> None:
        """Discard the draft. Staged create-mode media is left for the reaper."""
        self._store.reset()
        self._navigator = None
        self._mode = None
        self._entity_id = None

    @property
    def is_open(self) -> bool:
        return self._navigator is not None

    @property
    def mode(self) -> Optional[WizardMode]:
        return self._mode

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def draft(self) -> HorseDraft:
        return self._store.draft

    @property
    def history(self) -> tuple:
        return self._store.history

    @property
    def provisional_id(self) -> str:
        return self._store.provisional_id

    @property
    def active_key(self) -> str:
        """Owner key for media writes: provisional in create mode, real id in edit mode."""
        self._require_open()
        if self._mode == WizardMode.EDIT:
            return self._entity_id
        return self._store.provisional_id

    def _require_open(self) -> StepNavigator:
        if self._navigator is None:
            raise WizardClosedError("Horse wizard is not open")
        return self._navigator

    @contextmanager
    def _working(self) -> Iterator[None]:
        if self._busy:
            raise WizardBusyError("Another save or upload is still running")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    # =========================================================================
    # Draft Editing
    # =========================================================================

    def patch(self, **fields: Any) -> HorseDraft:
        """
        Merge field values into the draft.

        The edit id and the media list are owned by the session and cannot
        be patched.

        Raises:
            ValueError: If a field is unknown, session-managed, or a value
                cannot be converted
        """
        self._require_open()
        known = HorseDraft.field_names()
        for name in fields:
            if name not in known:
                raise ValueError(f"Unknown draft field: {name}")
        return self._store.patch(**{k: coerce_horse_field(k, v) for k, v in fields.items()})

    def add_owner(self, holder_id: str = "") -> HorseDraft:
        self._require_open()
        return self._store.patch(owners=allocation.add_holder(self.draft.owners, holder_id))

    def remove_owner(self, index: int) -> HorseDraft:
        self._require_open()
        return self._store.patch(owners=allocation.remove_holder(self.draft.owners, index))

    def set_primary_owner(self, index: int) -> HorseDraft:
        self._require_open()
        return self._store.patch(owners=allocation.set_primary(self.draft.owners, index))

    def update_owner(
        self,
        index: int,
        holder_id: Optional[str] = None,
        percentage: Optional[int] = None,
    ) -> HorseDraft:
        self._require_open()
        owners = allocation.update_holder(self.draft.owners, index, holder_id, percentage)
        return self._store.patch(owners=owners)

    def ownership_status(self) -> AllocationValidationResult:
        return validate_allocations(self.draft.owners)

    # =========================================================================
    # Media
    # =========================================================================

    def upload_media(self, uploads: Iterable[MediaUpload]) -> UploadBatchResult:
        """Upload a batch under the active key and add the results to the draft."""
        key = self.active_key
        with self._working():
            result = self._stager.upload(key, uploads)
        if result.uploaded:
            self._store.patch(media=self.draft.media + result.uploaded)
        return result

    def remove_media(self, asset_id: str) -> HorseDraft:
        """
        Delete one uploaded asset and drop it from the draft.

        Raises:
            EntityNotFoundError: If the asset is not part of this draft
            ServiceError: If the delete fails (the draft keeps the asset)
        """
        self._require_open()
        asset = self._find_media(asset_id)
        self._stager.remove(asset)
        return self._store.patch(media=tuple(m for m in self.draft.media if m.id != asset_id))

    def refresh_media(self) -> HorseDraft:
        """Reload the media read-model from the metadata table."""
        assets = tuple(self._stager.list_assets(self.active_key))
        return self._store.patch(media=assets)

    def _find_media(self, asset_id: str) -> MediaAssetRef:
        for asset in self.draft.media:
            if asset.id == asset_id:
                return asset
        raise EntityNotFoundError(MEDIA_ASSETS_TABLE, asset_id)

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

    def submit(self) -> CommitResult:
        """
        Commit the draft from the last step.

        On success (with or without warnings) the draft is reset and the
        wizard closes. On CommitFailed it stays open with the draft intact.

        Raises:
            StepBlockedError: If not on the last step or its gate is closed
        """
        navigator = self._require_open()
        step = navigator.current(self.draft)
        if not navigator.is_last(self.draft):
            raise StepBlockedError(step.name, "commit is only allowed from the last step")
        if not step.gate(self.draft):
            raise StepBlockedError(step.name, "required fields are missing or invalid")

        with self._working():
            draft = replace(self.draft, entity_id=self._entity_id)
            result = self._orchestrator.commit(draft, self._mode, self._store.provisional_id)

        if not isinstance(result, CommitFailed):
            self.close()
        return result

    def to_dict(self) -> dict:
        """Session snapshot for a UI layer."""
        data = {
            "open": self.is_open,
            "mode": self._mode.value if self._mode else None,
            "busy": self._busy,
            "provisional_id": self._store.provisional_id,
            "draft": self.draft.to_dict(),
        }
        if self.is_open:
            data["progress"] = self.progress().to_dict()
            data["can_advance"] = self.can_advance()
            data["ownership"] = self.ownership_status().to_dict()
        return data
