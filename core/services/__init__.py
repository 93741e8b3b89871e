"""
Collaborator services consumed by the wizard engine.

The engine depends only on the abstract contracts in ``base``; the local
implementations back the development server and the test suite.
"""

from core.services.base import ObjectStorageService, RecordService
from core.services.records import (
    InMemoryRecordService,
    get_record_service,
    reset_record_service,
)
from core.services.storage import (
    LocalObjectStorage,
    get_object_storage,
    reset_object_storage,
)

__all__ = [
    # Contracts
    "RecordService",
    "ObjectStorageService",
    # Records
    "InMemoryRecordService",
    "get_record_service",
    "reset_record_service",
    # Storage
    "LocalObjectStorage",
    "get_object_storage",
    "reset_object_storage",
]
