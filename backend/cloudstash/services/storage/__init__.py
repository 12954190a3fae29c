from .blob_store import BlobStat, BlobStore
from .local_blob_store import LocalBlobStore

__all__ = ["BlobStat", "BlobStore", "LocalBlobStore"]
