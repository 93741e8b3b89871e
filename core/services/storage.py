"""
Local Object Storage - Filesystem Blob Store for Wizard Media

Stores uploaded media as plain files, one directory tree per bucket.
Stands in for the hosted object store in development and tests.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Final, Optional

from core.services.base import ObjectStorageService
from core.wizard.errors import ObjectStorageError

logger = logging.getLogger(__name__)


# =============================================================================
# Storage Configuration
# =============================================================================

DEFAULT_STORAGE_PATH: Final[str] = "data/objects"


# =============================================================================
# Local Object Storage
# =============================================================================


class LocalObjectStorage(ObjectStorageService):
    """
    Filesystem-backed object storage.

    Objects are stored in a structured directory hierarchy:
    {storage_root}/{bucket}/{path}

    Object paths use forward slashes; each segment is sanitised so a path
    can never escape its bucket directory.
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Initialise object storage.

        Args:
            storage_root: Root directory for object storage.
                         Defaults to data/objects.
        """
        self._storage_root = Path(storage_root or DEFAULT_STORAGE_PATH)
        self._ensure_storage_exists()

    def _ensure_storage_exists(self) -> None:
        """Ensure storage directory exists."""
        self._storage_root.mkdir(parents=True, exist_ok=True)

    @property
    def storage_root(self) -> Path:
        """Get storage root path."""
        return self._storage_root

    def _get_object_path(self, bucket: str, path: str) -> Path:
        """Get full filesystem path for an object."""
        segments = [self._sanitise_segment(s) for s in path.split("/") if s]
        if not segments:
            raise ObjectStorageError(f"Empty object path in bucket {bucket}")
        return self._storage_root.joinpath(self._sanitise_segment(bucket), *segments)

    @staticmethod
    def _sanitise_segment(segment: str) -> str:
        """Sanitise one path segment for safe storage."""
        safe = segment.replace("\\", "_").replace("..", "_")
        safe = safe.strip().strip(".")
        if not safe:
            safe = "object"
        return safe

    # =========================================================================
    # ObjectStorageService
    # =========================================================================

    def put_object(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> None:
        target = self._get_object_path(bucket, path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise ObjectStorageError(f"Could not write {bucket}/{path}: {e}") from e

    def delete_object(self, bucket: str, path: str) -> None:
        target = self._get_object_path(bucket, path)
        try:
            if target.exists():
                target.unlink()
        except OSError as e:
            raise ObjectStorageError(f"Could not delete {bucket}/{path}: {e}") from e

    def list_objects(self, bucket: str, prefix: str) -> list[str]:
        bucket_root = self._storage_root / self._sanitise_segment(bucket)
        if not bucket_root.exists():
            return []

        paths = []
        for file_path in bucket_root.rglob("*"):
            if file_path.is_file():
                relative = file_path.relative_to(bucket_root).as_posix()
                if relative.startswith(prefix):
                    paths.append(relative)
        return sorted(paths)

    # =========================================================================
    # Inspection
    # =========================================================================

    def read_object(self, bucket: str, path: str) -> Optional[bytes]:
        """
        Read object content.

        Returns:
            File content as bytes, or None if not found
        """
        target = self._get_object_path(bucket, path)
        if target.exists():
            return target.read_bytes()
        return None

    def get_storage_stats(self, bucket: str, prefix: str = "") -> dict:
        """
        Get storage statistics for a bucket.

        Returns:
            Dict with total_files, total_size_bytes, owners_count
        """
        total_size = 0
        owners = set()
        paths = self.list_objects(bucket, prefix)

        for path in paths:
            total_size += self._get_object_path(bucket, path).stat().st_size
            # Owner key is the third segment: tenant/entity_type/owner_key/blob
            parts = path.split("/")
            if len(parts) >= 4:
                owners.add(parts[2])

        return {
            "total_files": len(paths),
            "total_size_bytes": total_size,
            "owners_count": len(owners),
        }


# =============================================================================
# Singleton Instance
# =============================================================================

_storage_instance: Optional[LocalObjectStorage] = None


def get_object_storage(storage_root: Optional[str] = None) -> LocalObjectStorage:
    """
    Get the object storage singleton.

    Args:
        storage_root: Optional custom storage root (only used on first call)

    Returns:
        LocalObjectStorage instance
    """
    global _storage_instance
    if _storage_instance is None:
        _storage_instance = LocalObjectStorage(storage_root)
    return _storage_instance


def reset_object_storage() -> None:
    """Drop the singleton (used by tests and the HTTP driver factory)."""
    global _storage_instance
    _storage_instance = None
