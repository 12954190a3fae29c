# backend/cloudstash/services/file_records.py
"""
File record store contract and an in-process implementation.

Handlers may only read a record by id and patch thumbnail_path, metadata
and tags. Updates report False when the record has been deleted.
"""

import copy
import threading
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from ..models.file_record_model import FileRecord

_UNSET: Any = object()


@runtime_checkable
class FileRecordStore(Protocol):
    """Protocol for file record dependency."""

    def get_file(self, file_id: str) -> Optional[FileRecord]: ...

    def update_file(
        self,
        file_id: str,
        thumbnail_path: Optional[str] = ...,
        metadata: Optional[Dict[str, Any]] = ...,
        tags: Optional[List[str]] = ...,
    ) -> bool: ...

    def merge_metadata(self, file_id: str, patch: Dict[str, Any]) -> bool: ...


class InMemoryFileRecordStore:
    """Dictionary-backed FileRecordStore with the same merge semantics as the database."""

    def __init__(self, records: Optional[Iterable[FileRecord]] = None):
        self._records: Dict[str, FileRecord] = {}
        self._lock = threading.Lock()
        for record in records or []:
            self._records[record.id] = record

    def add(self, record: FileRecord) -> FileRecord:
        with self._lock:
            self._records[record.id] = record
            return record

    def remove(self, file_id: str) -> bool:
        with self._lock:
            return self._records.pop(file_id, None) is not None

    def get_file(self, file_id: str) -> Optional[FileRecord]:
        with self._lock:
            record = self._records.get(file_id)
            return record.model_copy(deep=True) if record else None

    def update_file(
        self,
        file_id: str,
        thumbnail_path: Optional[str] = _UNSET,
        metadata: Optional[Dict[str, Any]] = _UNSET,
        tags: Optional[List[str]] = _UNSET,
    ) -> bool:
        with self._lock:
            record = self._records.get(file_id)
            if record is None:
                return False

            update: Dict[str, Any] = {}
            if thumbnail_path is not _UNSET:
                update["thumbnail_path"] = thumbnail_path
            if metadata is not _UNSET:
                merged = copy.deepcopy(record.metadata or {})
                merged.update(metadata or {})
                update["metadata"] = merged
            if tags is not _UNSET:
                update["tags"] = list(tags) if tags is not None else None

            self._records[file_id] = record.model_copy(update=update)
            return True

    def merge_metadata(self, file_id: str, patch: Dict[str, Any]) -> bool:
        return self.update_file(file_id, metadata=patch)
