"""
In-Memory Record Service - Table Storage for Development and Tests

Provides a RecordService backed by plain dictionaries.
This is an in-memory implementation for development.
Production should use a persistent database.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from core.services.base import RecordService
from core.wizard.errors import RecordServiceError
from core.wizard.schema import generate_id, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Record Service
# =============================================================================


class InMemoryRecordService(RecordService):
    """
    Record service storing rows per table in memory.

    Rows are plain dicts keyed by ``id``. Every row gets a ``created_at``
    timestamp on insert. Uses in-memory storage with optional file persistence.
    """

    def __init__(
        self,
        persist_path: Optional[str] = None,
        id_generator: Callable[[], str] = generate_id,
    ):
        """
        Initialise record service.

        Args:
            persist_path: Optional path to persist tables to a JSON file
            id_generator: Source of ids for rows inserted without one
        """
        self._tables: dict[str, dict[str, dict]] = {}
        self._persist_path = Path(persist_path) if persist_path else None
        self._new_id = id_generator

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        """
        Persist tables to file.

        Raises:
            RecordServiceError: If the file cannot be written
        """
        if not self._persist_path:
            return

        data = {
            "tables": self._tables,
            "saved_at": utc_now().isoformat(),
        }

        try:
            self._persist_path.parent.mkdir(parents=True, exist_ok=True)
            self._persist_path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise RecordServiceError(f"Could not persist records to {self._persist_path}: {e}") from e

    def _save_or_undo(self, undo: Callable[[], None]) -> None:
        """Persist, reverting the in-memory change if the write fails."""
        try:
            self._save_to_file()
        except RecordServiceError:
            undo()
            raise

    def _load_from_file(self) -> None:
        """
        Load tables from file.

        Raises:
            RecordServiceError: If the file exists but cannot be read
        """
        if not self._persist_path or not self._persist_path.exists():
            return

        try:
            data = json.loads(self._persist_path.read_text())
            for table, rows in data.get("tables", {}).items():
                self._tables[table] = {row_id: dict(row) for row_id, row in rows.items()}
        except OSError as e:
            raise RecordServiceError(f"Could not read records from {self._persist_path}: {e}") from e
        except (json.JSONDecodeError, AttributeError, ValueError) as e:
            logger.warning("Could not load record data from %s: %s", self._persist_path, e)

    @staticmethod
    def _matches(row: Mapping[str, Any], predicate: Mapping[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in predicate.items())

    # =========================================================================
    # RecordService
    # =========================================================================

    def create(self, table: str, payload: Mapping[str, Any]) -> dict:
        rows = self._tables.setdefault(table, {})
        row = dict(payload)
        row_id = row.get("id") or self._new_id()
        if row_id in rows:
            raise RecordServiceError(f"Duplicate id {row_id} in {table}")

        row["id"] = row_id
        row.setdefault("created_at", utc_now().isoformat())
        rows[row_id] = row

        self._save_or_undo(lambda: rows.pop(row_id, None))
        return copy.deepcopy(row)

    def update(self, table: str, row_id: str, payload: Mapping[str, Any]) -> None:
        row = self._tables.get(table, {}).get(row_id)
        if row is None:
            raise RecordServiceError(f"No row {row_id} in {table}")

        before = copy.deepcopy(row)
        row.update({k: v for k, v in payload.items() if k != "id"})

        def undo() -> None:
            row.clear()
            row.update(before)

        self._save_or_undo(undo)

    def delete_where(self, table: str, predicate: Mapping[str, Any]) -> int:
        rows = self._tables.get(table, {})
        doomed = {row_id: row for row_id, row in rows.items() if self._matches(row, predicate)}
        for row_id in doomed:
            del rows[row_id]

        if doomed:
            self._save_or_undo(lambda: rows.update(doomed))
        return len(doomed)

    def list_where(self, table: str, predicate: Mapping[str, Any]) -> list[dict]:
        rows = self._tables.get(table, {}).values()
        return [copy.deepcopy(row) for row in rows if self._matches(row, predicate)]

    # =========================================================================
    # Query Helpers
    # =========================================================================

    def get(self, table: str, row_id: str) -> Optional[dict]:
        """Get a copy of one row by id."""
        row = self._tables.get(table, {}).get(row_id)
        return copy.deepcopy(row) if row is not None else None

    def count(self, table: str) -> int:
        """Get number of rows in a table."""
        return len(self._tables.get(table, {}))


# =============================================================================
# Singleton Instance
# =============================================================================

_record_service_instance: Optional[InMemoryRecordService] = None


def get_record_service(persist_path: Optional[str] = None) -> InMemoryRecordService:
    """
    Get the record service singleton.

    Args:
        persist_path: Optional path for persistence (only used on first call)

    Returns:
        InMemoryRecordService instance
    """
    global _record_service_instance
    if _record_service_instance is None:
        _record_service_instance = InMemoryRecordService(persist_path)
    return _record_service_instance


def reset_record_service() -> None:
    """Drop the singleton (used by tests and the HTTP driver factory)."""
    global _record_service_instance
    _record_service_instance = None
