"""
Shared fixtures: in-memory records, temporary object storage, and
collaborators that fail on demand.
"""

from __future__ import annotations

import itertools
from typing import Any, Mapping, Optional

import pytest

from core.services import InMemoryRecordService, LocalObjectStorage
from core.wizard.errors import ObjectStorageError, RecordServiceError
from utils.config import Config


class FlakyRecordService(InMemoryRecordService):
    """Record service that raises for configured (operation, table) pairs."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.fail_on: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []
        # (operation, table) -> successful calls allowed before failing
        self.fail_after: dict[tuple[str, str], int] = {}

    def _maybe_fail(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        key = (operation, table)
        if key in self.fail_after:
            if self.fail_after[key] <= 0:
                raise RecordServiceError(f"{operation} on {table} unavailable")
            self.fail_after[key] -= 1
        if key in self.fail_on:
            raise RecordServiceError(f"{operation} on {table} unavailable")

    def create(self, table: str, payload: Mapping[str, Any]) -> dict:
        self._maybe_fail("create", table)
        return super().create(table, payload)

    def update(self, table: str, row_id: str, payload: Mapping[str, Any]) -> None:
        self._maybe_fail("update", table)
        super().update(table, row_id, payload)

    def delete_where(self, table: str, predicate: Mapping[str, Any]) -> int:
        self._maybe_fail("delete", table)
        return super().delete_where(table, predicate)

    def list_where(self, table: str, predicate: Mapping[str, Any]) -> list[dict]:
        self._maybe_fail("list", table)
        return super().list_where(table, predicate)


class FlakyObjectStorage(LocalObjectStorage):
    """Local storage that raises for configured operations."""

    def __init__(self, storage_root: Optional[str] = None):
        super().__init__(storage_root)
        self.fail_on: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def put_object(self, bucket: str, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        self.calls.append(("put", path))
        if "put" in self.fail_on:
            raise ObjectStorageError(f"put {path} unavailable")
        super().put_object(bucket, path, data, content_type)

    def delete_object(self, bucket: str, path: str) -> None:
        self.calls.append(("delete", path))
        if "delete" in self.fail_on:
            raise ObjectStorageError(f"delete {path} unavailable")
        super().delete_object(bucket, path)


@pytest.fixture
def id_generator():
    """Deterministic ids: id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def records():
    return FlakyRecordService()


@pytest.fixture
def storage(tmp_path):
    return FlakyObjectStorage(str(tmp_path / "objects"))


@pytest.fixture
def config(tmp_path):
    return Config(
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
        data_dir=str(tmp_path),
        storage_root=str(tmp_path / "objects"),
        records_path=str(tmp_path / "records.json"),
        media_bucket="horse-media",
        max_upload_mb=1,
        orphan_ttl_hours=24,
    )
