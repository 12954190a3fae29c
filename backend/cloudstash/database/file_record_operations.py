# backend/cloudstash/database/file_record_operations.py
"""
File Record Operations - the narrow slice of the files table the pipeline touches.

Responsibilities:
- Reading a file record by id
- Patching thumbnail_path, tags and metadata (jsonb merge)

Every update reports whether a row was touched, because a file deleted
between enqueue and processing is an expected outcome, not an error.
"""

from typing import Any, Dict, List, Optional

import psycopg
from psycopg.types.json import Jsonb

from ..models.file_record_model import FileRecord
from .core import SyncDatabase
from .exceptions import FileRecordOperationError

_UNSET: Any = object()


class FileRecordQueryBuilder:
    """Centralized query builder for file record operations."""

    @staticmethod
    def get_base_select_fields() -> str:
        return """
            id, user_id, path, mime_type, original_name,
            thumbnail_path, metadata, tags
        """

    @staticmethod
    def build_get_file_query() -> str:
        fields = FileRecordQueryBuilder.get_base_select_fields()
        return f"SELECT {fields} FROM files WHERE id = %s"

    @staticmethod
    def build_update_file_query(columns: List[str]) -> str:
        """Build an UPDATE for the given columns; metadata is merged, not replaced."""
        assignments = []
        for column in columns:
            if column == "metadata":
                assignments.append(
                    "metadata = COALESCE(metadata, '{}'::jsonb) || %s::jsonb"
                )
            else:
                assignments.append(f"{column} = %s")
        assignments.append("updated_at = NOW()")
        return f"""
            UPDATE files
            SET {', '.join(assignments)}
            WHERE id = %s
            RETURNING id
        """


class FileRecordOperations:
    """
    Sync database operations for file records.

    Implements the FileRecordStore interface used by processing handlers.
    """

    def __init__(self, db: SyncDatabase) -> None:
        """Initialize with sync database instance."""
        self.db = db

    def get_file(self, file_id: str) -> Optional[FileRecord]:
        """
        Retrieve a file record by id.

        Args:
            file_id: ID of the file

        Returns:
            FileRecord, or None if the file no longer exists

        Raises:
            FileRecordOperationError: If the query fails
        """
        try:
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(FileRecordQueryBuilder.build_get_file_query(), (file_id,))
                    row = cur.fetchone()
                    return FileRecord.model_validate(row) if row else None
        except (psycopg.Error, KeyError, ValueError) as e:
            raise FileRecordOperationError(
                "Failed to retrieve file record",
                operation="get_file",
                details={"file_id": file_id},
            ) from e

    def update_file(
        self,
        file_id: str,
        thumbnail_path: Optional[str] = _UNSET,
        metadata: Optional[Dict[str, Any]] = _UNSET,
        tags: Optional[List[str]] = _UNSET,
    ) -> bool:
        """
        Patch the pipeline-owned fields of a file record.

        Only arguments that are passed are written; ``metadata`` is merged
        into the existing document.

        Args:
            file_id: ID of the file
            thumbnail_path: New thumbnail blob key
            metadata: Keys to merge into the metadata document
            tags: Replacement tag list

        Returns:
            True if the record existed and was updated, False if it is gone

        Raises:
            FileRecordOperationError: If the update fails
        """
        columns: List[str] = []
        params: List[Any] = []
        if thumbnail_path is not _UNSET:
            columns.append("thumbnail_path")
            params.append(thumbnail_path)
        if metadata is not _UNSET:
            columns.append("metadata")
            params.append(Jsonb(metadata or {}))
        if tags is not _UNSET:
            columns.append("tags")
            params.append(Jsonb(tags) if tags is not None else None)

        if not columns:
            return self.get_file(file_id) is not None

        try:
            with self.db.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        FileRecordQueryBuilder.build_update_file_query(columns),
                        (*params, file_id),
                    )
                    return cur.fetchone() is not None
        except (psycopg.Error, KeyError, ValueError) as e:
            raise FileRecordOperationError(
                "Failed to update file record",
                operation="update_file",
                details={"file_id": file_id, "columns": columns},
            ) from e

    def merge_metadata(self, file_id: str, patch: Dict[str, Any]) -> bool:
        """Merge keys into the metadata document of a file."""
        return self.update_file(file_id, metadata=patch)
