from .pipeline_utils import (
    derive_thumbnail_key,
    guess_document_type,
    media_category,
    read_source,
    run_step,
    thumbnail_edge,
)

__all__ = [
    "derive_thumbnail_key",
    "guess_document_type",
    "media_category",
    "read_source",
    "run_step",
    "thumbnail_edge",
]
