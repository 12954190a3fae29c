# backend/cloudstash/utils/temp_file_manager.py
"""
Temporary File Management Utilities

Video decoding needs a real file path, so blobs that are not backed by the
local filesystem are spooled into a temporary file for the duration of a
transform.
"""

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..enums import LoggerName, LogSource
from ..services.logger import get_service_logger

logger = get_service_logger(LoggerName.MEDIA_TRANSFORM, LogSource.PIPELINE)


class TempFileManager:
    """
    Manager for short-lived spooled media files.

    Files are created under a cloudstash-specific temp directory and removed
    when the context exits, whether or not the transform succeeded.
    """

    def __init__(self, base_temp_dir: Optional[str] = None):
        """
        Initialize temporary file manager.

        Args:
            base_temp_dir: Base directory for temporary files (defaults to system temp)
        """
        self.base_temp_dir = (
            Path(base_temp_dir) if base_temp_dir else Path(tempfile.gettempdir())
        )
        self.spool_dir = self.base_temp_dir / "cloudstash_media"
        self.spool_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def spooled_file(self, data: bytes, suffix: str = "") -> Iterator[Path]:
        """
        Write bytes to a temporary file and yield its path.

        Args:
            data: File contents
            suffix: File extension including the dot, kept so decoders can sniff it

        Yields:
            Path of the temporary file
        """
        fd, name = tempfile.mkstemp(suffix=suffix, dir=self.spool_dir)
        path = Path(name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            yield path
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(
                    f"Failed to remove temporary file {path}: {e}",
                    extra_context={"operation": "temp_file_cleanup", "path": str(path)},
                )
