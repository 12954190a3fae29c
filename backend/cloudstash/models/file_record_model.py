# backend/cloudstash/models/file_record_model.py
"""File record fields the processing pipeline reads and patches."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class FileRecord(BaseModel):
    """Stored file metadata row"""

    id: str
    user_id: Optional[str] = None
    path: str
    mime_type: Optional[str] = None
    original_name: Optional[str] = None
    thumbnail_path: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    tags: Optional[List[str]] = None

    model_config = ConfigDict(from_attributes=True)
