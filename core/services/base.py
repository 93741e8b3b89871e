"""
Collaborator service interfaces.

The wizard engine only talks to these two contracts. Any relational backend
or blob store can sit behind them.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional


class RecordService(ABC):
    """Abstract base class for the relational record backend."""

    @abstractmethod
    def create(self, table: str, payload: Mapping[str, Any]) -> dict:
        """
        Insert a row.

        Args:
            table: Table name.
            payload: Column values. An ``id`` is assigned when absent.

        Returns:
            The stored row, including its ``id``.
        """
        pass

    @abstractmethod
    def update(self, table: str, row_id: str, payload: Mapping[str, Any]) -> None:
        """
        Update a row by id.

        Raises:
            RecordServiceError: If the row does not exist or the write fails.
        """
        pass

    @abstractmethod
    def delete_where(self, table: str, predicate: Mapping[str, Any]) -> int:
        """
        Delete every row whose columns equal all predicate values.

        Returns:
            Number of rows deleted.
        """
        pass

    @abstractmethod
    def list_where(self, table: str, predicate: Mapping[str, Any]) -> List[dict]:
        """Return copies of every row whose columns equal all predicate values."""
        pass


class ObjectStorageService(ABC):
    """Abstract base class for the binary object store."""

    @abstractmethod
    def put_object(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> None:
        """Write bytes at ``bucket/path``, replacing any existing object."""
        pass

    @abstractmethod
    def delete_object(self, bucket: str, path: str) -> None:
        """Delete the object at ``bucket/path``. Missing objects are ignored."""
        pass

    @abstractmethod
    def list_objects(self, bucket: str, prefix: str) -> List[str]:
        """List object paths in ``bucket`` starting with ``prefix``."""
        pass
