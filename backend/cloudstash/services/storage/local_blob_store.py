# backend/cloudstash/services/storage/local_blob_store.py
"""
Local disk blob store.

Keys map to files below a root directory. Writes go to a temporary sibling
first and are moved into place, so readers never observe a half-written
thumbnail.
"""

import os
import tempfile
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from ...enums import LoggerName, LogSource
from ...exceptions import BlobNotFoundError, BlobStoreError, InvalidBlobKeyError
from ...utils.time_utils import UTC_TIMEZONE
from ..logger import get_service_logger
from .blob_store import BlobStat

logger = get_service_logger(LoggerName.STORAGE, LogSource.STORAGE)


class LocalBlobStore:
    """BlobStore implementation on the local filesystem."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        """Map a key to a path below the root, rejecting traversal."""
        if not key or not key.strip("/"):
            raise InvalidBlobKeyError("Blob key must not be empty")

        relative = PurePosixPath(key.lstrip("/"))
        if ".." in relative.parts:
            raise InvalidBlobKeyError(f"Blob key escapes storage root: {key}")

        path = (self.root / Path(*relative.parts)).resolve()
        if self.root != path and self.root not in path.parents:
            raise InvalidBlobKeyError(f"Blob key escapes storage root: {key}")
        return path

    def save(self, key: str, data: bytes) -> str:
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
            )
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise BlobStoreError(f"Failed to save blob {key}: {e}") from e

        logger.debug(
            f"Saved blob {key}", extra_context={"key": key, "size": len(data)}
        )
        return key

    def read(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(key) from e
        except IsADirectoryError as e:
            raise BlobNotFoundError(key) from e
        except OSError as e:
            raise BlobStoreError(f"Failed to read blob {key}: {e}") from e

    def delete(self, key: str) -> bool:
        path = self._resolve(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise BlobStoreError(f"Failed to delete blob {key}: {e}") from e

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def stat(self, key: str) -> BlobStat:
        path = self._resolve(key)
        try:
            result = path.stat()
        except FileNotFoundError as e:
            raise BlobNotFoundError(key) from e
        return BlobStat(
            size=result.st_size,
            modified_at=datetime.fromtimestamp(result.st_mtime, tz=UTC_TIMEZONE),
        )

    def local_path(self, key: str) -> Optional[Path]:
        path = self._resolve(key)
        return path if path.is_file() else None
