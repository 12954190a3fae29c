# backend/tests/database/test_file_record_operations.py
"""
Tests for FileRecordOperations against a mocked connection pool.
"""

import psycopg
import pytest
from psycopg.types.json import Jsonb

from cloudstash.database.exceptions import FileRecordOperationError
from cloudstash.database.file_record_operations import (
    FileRecordOperations,
    FileRecordQueryBuilder,
)
from cloudstash.services.file_records import FileRecordStore


@pytest.mark.unit
class TestFileRecordOperations:
    """Reads and pipeline-owned field patches of file records."""

    @pytest.fixture
    def ops(self, mock_sync_db):
        db, _, _ = mock_sync_db
        return FileRecordOperations(db)

    def test_satisfies_protocol(self, ops):
        assert isinstance(ops, FileRecordStore)

    def test_get_file_maps_row(self, ops, mock_sync_db):
        _, _, cursor = mock_sync_db
        cursor.fetchone.return_value = {
            "id": "file-1",
            "user_id": "u1",
            "path": "u1/a.jpg",
            "mime_type": "image/jpeg",
            "original_name": "a.jpg",
            "thumbnail_path": None,
            "metadata": None,
            "tags": ["landscape"],
        }

        record = ops.get_file("file-1")

        assert record.path == "u1/a.jpg"
        assert record.tags == ["landscape"]
        cursor.execute.assert_called_once_with(
            FileRecordQueryBuilder.build_get_file_query(), ("file-1",)
        )

    def test_get_missing_file_returns_none(self, ops, mock_sync_db):
        _, _, cursor = mock_sync_db
        cursor.fetchone.return_value = None

        assert ops.get_file("gone") is None

    def test_update_writes_only_passed_fields(self, ops, mock_sync_db):
        _, _, cursor = mock_sync_db
        cursor.fetchone.return_value = {"id": "file-1"}

        assert ops.update_file("file-1", thumbnail_path="u1/thumbnails/a_medium.jpg")

        query, params = cursor.execute.call_args[0]
        assert "thumbnail_path = %s" in query
        assert "metadata" not in query
        assert "tags" not in query
        assert params == ("u1/thumbnails/a_medium.jpg", "file-1")

    def test_metadata_is_merged_into_existing_document(self, ops, mock_sync_db):
        _, _, cursor = mock_sync_db
        cursor.fetchone.return_value = {"id": "file-1"}

        ops.merge_metadata("file-1", {"width": 800})

        query, params = cursor.execute.call_args[0]
        assert "COALESCE(metadata, '{}'::jsonb) || %s::jsonb" in query
        assert isinstance(params[0], Jsonb)
        assert params[0].obj == {"width": 800}

    def test_update_of_deleted_record_returns_false(self, ops, mock_sync_db):
        _, _, cursor = mock_sync_db
        cursor.fetchone.return_value = None

        assert ops.update_file("gone", tags=["x"]) is False

    def test_query_failure_raises_operation_error(self, ops, mock_sync_db):
        _, _, cursor = mock_sync_db
        cursor.execute.side_effect = psycopg.Error("boom")

        with pytest.raises(FileRecordOperationError) as exc_info:
            ops.update_file("file-1", thumbnail_path="x")

        assert exc_info.value.operation == "update_file"
