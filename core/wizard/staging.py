"""
Resource Staging - Uploads for Entities That Do Not Exist Yet

Lets a wizard attach files to an entity before it has a persistent id.
Files are stored under an owner key: the session's provisional id in create
mode, the real entity id in edit mode. After the entity is committed, the
metadata rows are migrated from the provisional key to the real id.

Protocol:
1. Upload: write the blob, then insert the metadata row. If the row insert
   fails the blob is deleted again (no blob without a row).
2. Batches are sequential and skip-and-continue: one bad file is reported
   and the rest of the batch still runs.
3. Migration re-keys rows still on the provisional key. Re-running it after
   a partial failure only touches the rows that were left behind.
4. Removal deletes the blob first, then the row, so a crash in between can
   never leave a row pointing at missing bytes.
5. A failed migration is recorded as pending. The reaper retries it and
   never deletes assets whose key is still pending.
6. Assets on a key that never became an entity are reaped after a TTL.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Collection, Final, Iterable, Optional

from core.services.base import ObjectStorageService, RecordService
from core.wizard.errors import (
    CompensatedUploadError,
    ServiceError,
    UploadRejectedError,
    WizardError,
)
from core.wizard.schema import (
    ALLOWED_MIME_TYPES,
    DEFAULT_MEDIA_BUCKET,
    HORSE_ENTITY_TYPE,
    HORSES_TABLE,
    MAX_FILE_SIZE_BYTES,
    MEDIA_ASSETS_TABLE,
    MEDIA_MIGRATIONS_TABLE,
    MediaAssetRef,
    as_utc,
    generate_id,
    utc_now,
)
from utils.formatting import format_file_size

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_ORPHAN_TTL: Final[timedelta] = timedelta(hours=24)

# Upload failure stages
STAGE_VALIDATION: Final[str] = "validation"
STAGE_STORAGE: Final[str] = "storage"
STAGE_METADATA: Final[str] = "metadata"


# =============================================================================
# Upload and Result Types
# =============================================================================


@dataclass(frozen=True)
class MediaUpload:
    """One file handed to the media step."""

    filename: str
    content: bytes
    mime_type: Optional[str] = None

    @property
    def extension(self) -> str:
        if "." in self.filename:
            return "." + self.filename.rsplit(".", 1)[-1].lower()
        return ""

    @property
    def resolved_mime_type(self) -> Optional[str]:
        """Declared MIME type, or one guessed from the filename."""
        if self.mime_type:
            return self.mime_type
        guessed, _ = mimetypes.guess_type(self.filename)
        return guessed


@dataclass(frozen=True)
class UploadFailure:
    """A file that was skipped within a batch."""

    filename: str
    reason: str
    stage: str

    def to_dict(self) -> dict:
        return {"filename": self.filename, "reason": self.reason, "stage": self.stage}


@dataclass(frozen=True)
class UploadBatchResult:
    """Outcome of one sequential upload batch."""

    uploaded: tuple[MediaAssetRef, ...]
    failures: tuple[UploadFailure, ...]

    @property
    def all_succeeded(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {
            "uploaded": [asset.to_dict() for asset in self.uploaded],
            "failures": [failure.to_dict() for failure in self.failures],
            "all_succeeded": self.all_succeeded,
        }


@dataclass(frozen=True)
class MigrationResult:
    """Rows moved from a provisional key to a real entity id."""

    provisional_id: str
    entity_id: str
    migrated: int


@dataclass(frozen=True)
class ReapResult:
    """Outcome of an orphan-reaping pass."""

    reaped: tuple[str, ...]  # media_assets ids
    failures: tuple[str, ...]
    dry_run: bool = False
    recovered: tuple[MigrationResult, ...] = ()

    def to_dict(self) -> dict:
        return {
            "reaped": list(self.reaped),
            "failures": list(self.failures),
            "dry_run": self.dry_run,
            "recovered": [
                {"provisional_id": m.provisional_id, "entity_id": m.entity_id, "migrated": m.migrated}
                for m in self.recovered
            ],
        }


# =============================================================================
# Stager
# =============================================================================


class ResourceStager:
    """
    Stages media for one tenant and entity type.

    Usage:
        stager = ResourceStager(records, storage, tenant_id="t-1")
        batch = stager.upload(provisional_id, [MediaUpload("a.jpg", data)])
        ...
        stager.migrate(provisional_id, horse_id)
    """

    def __init__(
        self,
        records: RecordService,
        storage: ObjectStorageService,
        tenant_id: str,
        entity_type: str = HORSE_ENTITY_TYPE,
        entity_table: str = HORSES_TABLE,
        bucket: str = DEFAULT_MEDIA_BUCKET,
        id_generator: Callable[[], str] = generate_id,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
        allowed_mime_types: Collection[str] = ALLOWED_MIME_TYPES,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._records = records
        self._storage = storage
        self._tenant_id = tenant_id
        self._entity_type = entity_type
        self._entity_table = entity_table
        self._bucket = bucket
        self._new_id = id_generator
        self._max_file_size = max_file_size
        self._allowed_mime_types = frozenset(allowed_mime_types)
        self._clock = clock

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @property
    def bucket(self) -> str:
        return self._bucket

    def _scope(self, owner_key: str) -> dict:
        return {
            "tenant_id": self._tenant_id,
            "entity_type": self._entity_type,
            "entity_id": owner_key,
        }

    def storage_path(self, owner_key: str, blob_id: str, filename: str) -> str:
        """Object path for a blob: tenant/entity_type/owner_key/blob_id.ext"""
        ext = MediaUpload(filename, b"").extension
        return f"{self._tenant_id}/{self._entity_type}/{owner_key}/{blob_id}{ext}"

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_upload(self, upload: MediaUpload) -> Optional[str]:
        """
        Validate a file before upload.

        Returns:
            Error message, or None if the file is acceptable
        """
        mime_type = upload.resolved_mime_type
        if mime_type not in self._allowed_mime_types:
            return f"Unsupported file type: {mime_type or 'unknown'}"

        size = len(upload.content)
        if size == 0:
            return "File is empty"
        if size > self._max_file_size:
            return f"File too large. Maximum size: {format_file_size(self._max_file_size)}"

        return None

    # =========================================================================
    # Upload
    # =========================================================================

    def upload_one(self, owner_key: str, upload: MediaUpload, display_order: int = 0) -> MediaAssetRef:
        """
        Store one file and record its metadata row.

        Raises:
            UploadRejectedError: If the file fails validation
            ObjectStorageError: If the blob write fails
            CompensatedUploadError: If the metadata insert fails (blob removed)
        """
        error = self.validate_upload(upload)
        if error:
            raise UploadRejectedError(upload.filename, error)

        mime_type = upload.resolved_mime_type
        path = self.storage_path(owner_key, self._new_id(), upload.filename)
        self._storage.put_object(self._bucket, path, upload.content, content_type=mime_type)

        try:
            row = self._records.create(
                MEDIA_ASSETS_TABLE,
                {
                    **self._scope(owner_key),
                    "bucket": self._bucket,
                    "path": path,
                    "filename": upload.filename,
                    "mime_type": mime_type,
                    "size_bytes": len(upload.content),
                    "visibility": "tenant",
                    "display_order": display_order,
                    "created_at": self._clock().isoformat(),
                },
            )
        except ServiceError as e:
            orphaned_path = None
            try:
                self._storage.delete_object(self._bucket, path)
            except ServiceError as cleanup_error:
                orphaned_path = path
                logger.warning(
                    "Compensating delete failed, blob %s/%s is orphaned: %s",
                    self._bucket, path, cleanup_error,
                )
            raise CompensatedUploadError(
                upload.filename, f"Could not record upload: {e}", orphaned_path
            ) from e

        return MediaAssetRef.from_row(row)

    def upload(self, owner_key: str, uploads: Iterable[MediaUpload]) -> UploadBatchResult:
        """
        Upload files one at a time, in order, skipping failures.

        File i is fully stored and recorded before file i+1 starts.
        """
        uploaded: list[MediaAssetRef] = []
        failures: list[UploadFailure] = []
        next_order = len(self.list_assets(owner_key))

        for upload in uploads:
            try:
                asset = self.upload_one(owner_key, upload, display_order=next_order)
            except UploadRejectedError as e:
                failures.append(UploadFailure(upload.filename, e.reason, STAGE_VALIDATION))
            except CompensatedUploadError as e:
                failures.append(UploadFailure(upload.filename, e.reason, STAGE_METADATA))
            except WizardError as e:
                failures.append(UploadFailure(upload.filename, str(e), STAGE_STORAGE))
            else:
                uploaded.append(asset)
                next_order += 1

        for failure in failures:
            logger.info("Skipped upload %s (%s): %s", failure.filename, failure.stage, failure.reason)

        return UploadBatchResult(uploaded=tuple(uploaded), failures=tuple(failures))

    def list_assets(self, owner_key: str) -> list[MediaAssetRef]:
        """List media recorded under an owner key, in display order."""
        rows = self._records.list_where(MEDIA_ASSETS_TABLE, self._scope(owner_key))
        rows.sort(key=lambda r: (r.get("display_order", 0), r.get("created_at") or ""))
        return [MediaAssetRef.from_row(row) for row in rows]

    # =========================================================================
    # Migration
    # =========================================================================

    def migrate(self, provisional_id: str, entity_id: str) -> MigrationResult:
        """
        Re-key every metadata row from the provisional id to the entity id.

        Safe to re-run: rows already migrated no longer match.

        Raises:
            ServiceError: If listing or updating rows fails
        """
        rows = self._records.list_where(MEDIA_ASSETS_TABLE, self._scope(provisional_id))
        for row in rows:
            self._records.update(MEDIA_ASSETS_TABLE, row["id"], {"entity_id": entity_id})

        if rows:
            logger.info(
                "Migrated %d %s assets from %s to %s",
                len(rows), self._entity_type, provisional_id, entity_id,
            )
        return MigrationResult(provisional_id=provisional_id, entity_id=entity_id, migrated=len(rows))

    def record_pending_migration(self, provisional_id: str, entity_id: str) -> None:
        """
        Remember a migration that failed so the assets stay recoverable.

        Raises:
            ServiceError: If the row cannot be written
        """
        self._records.create(
            MEDIA_MIGRATIONS_TABLE,
            {
                "tenant_id": self._tenant_id,
                "entity_type": self._entity_type,
                "provisional_id": provisional_id,
                "entity_id": entity_id,
                "created_at": self._clock().isoformat(),
            },
        )

    def pending_migrations(self) -> list[dict]:
        return self._records.list_where(
            MEDIA_MIGRATIONS_TABLE,
            {"tenant_id": self._tenant_id, "entity_type": self._entity_type},
        )

    def retry_pending_migrations(self) -> list[MigrationResult]:
        """Re-run recorded migrations. Rows that still fail are kept for the next pass."""
        completed: list[MigrationResult] = []
        for row in self.pending_migrations():
            try:
                result = self.migrate(row["provisional_id"], row["entity_id"])
                self._records.delete_where(MEDIA_MIGRATIONS_TABLE, {"id": row["id"]})
            except ServiceError as e:
                logger.warning(
                    "Pending migration %s -> %s failed again: %s",
                    row["provisional_id"], row["entity_id"], e,
                )
            else:
                completed.append(result)
        return completed

    # =========================================================================
    # Removal
    # =========================================================================

    def remove(self, asset: MediaAssetRef) -> None:
        """
        Delete an asset's blob, then its metadata row.

        Raises:
            ServiceError: If either delete fails. A storage failure leaves
                the row in place.
        """
        self._storage.delete_object(asset.bucket, asset.storage_path)
        self._records.delete_where(
            MEDIA_ASSETS_TABLE,
            {"id": asset.id, "tenant_id": self._tenant_id},
        )

    # =========================================================================
    # Orphan Reaping
    # =========================================================================

    def find_orphans(
        self,
        ttl: timedelta = DEFAULT_ORPHAN_TTL,
        live_keys: Collection[str] = (),
        now: Optional[datetime] = None,
    ) -> list[MediaAssetRef]:
        """
        Assets whose owner key never became an entity.

        An asset is orphaned when its owner key matches no entity row, is not
        the key of an open session or of a pending migration, and it is older
        than ttl.
        """
        cutoff = as_utc(now or self._clock()) - ttl
        existing = {
            row["id"]
            for row in self._records.list_where(self._entity_table, {"tenant_id": self._tenant_id})
        }
        pending = {row["provisional_id"] for row in self.pending_migrations()}
        rows = self._records.list_where(
            MEDIA_ASSETS_TABLE,
            {"tenant_id": self._tenant_id, "entity_type": self._entity_type},
        )

        orphans = []
        for row in rows:
            asset = MediaAssetRef.from_row(row)
            if asset.entity_id in existing or asset.entity_id in live_keys or asset.entity_id in pending:
                continue
            if asset.created_at is None or asset.created_at > cutoff:
                continue
            orphans.append(asset)
        return orphans

    def reap_orphans(
        self,
        ttl: timedelta = DEFAULT_ORPHAN_TTL,
        live_keys: Collection[str] = (),
        now: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> ReapResult:
        """
        Delete orphaned assets (blob then row). Failures are reported, not raised.

        Pending migrations are retried first, so assets of a committed entity
        are re-linked rather than deleted.
        """
        recovered = () if dry_run else tuple(self.retry_pending_migrations())
        orphans = self.find_orphans(ttl=ttl, live_keys=live_keys, now=now)
        if dry_run:
            return ReapResult(reaped=tuple(a.id for a in orphans), failures=(), dry_run=True)

        reaped: list[str] = []
        failures: list[str] = []
        for asset in orphans:
            try:
                self.remove(asset)
            except ServiceError as e:
                logger.warning("Could not reap orphaned asset %s: %s", asset.id, e)
                failures.append(asset.id)
            else:
                reaped.append(asset.id)

        if reaped:
            logger.info("Reaped %d orphaned %s assets", len(reaped), self._entity_type)
        return ReapResult(reaped=tuple(reaped), failures=tuple(failures), recovered=recovered)
