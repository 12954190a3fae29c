"""
Job Handlers

- ThumbnailHandler: generate-thumbnail jobs
- MetadataHandler: extract-metadata jobs
- AnalysisHandler: analyze-image jobs
"""

from .analysis_handler import AnalysisHandler
from .metadata_handler import MetadataHandler
from .thumbnail_handler import ThumbnailHandler

__all__ = ["AnalysisHandler", "MetadataHandler", "ThumbnailHandler"]
