# backend/cloudstash/services/storage/blob_store.py
"""
Blob store contract.

Blobs are addressed by opaque, slash-separated path keys such as
``u1/photos/a.jpg``. Handlers only read sources and write derived artifacts;
they never list or move blobs.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class BlobStat:
    """Size and modification time of a stored blob."""

    size: int
    modified_at: datetime


@runtime_checkable
class BlobStore(Protocol):
    """Protocol for blob storage dependency."""

    def save(self, key: str, data: bytes) -> str:
        """Store bytes under key, replacing any existing blob. Returns the key."""
        ...

    def read(self, key: str) -> bytes:
        """Return the blob bytes. Raises BlobNotFoundError when absent."""
        ...

    def delete(self, key: str) -> bool: ...

    def exists(self, key: str) -> bool: ...

    def stat(self, key: str) -> BlobStat: ...

    def local_path(self, key: str) -> Optional[Path]:
        """Filesystem path of the blob when the store is disk-backed, else None."""
        ...
