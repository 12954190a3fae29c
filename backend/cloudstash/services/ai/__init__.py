from .image_analyzer import ImageAnalyzer, PaletteImageAnalyzer
from .metadata_extractor import LocalMetadataExtractor, MetadataExtractor

__all__ = [
    "ImageAnalyzer",
    "LocalMetadataExtractor",
    "MetadataExtractor",
    "PaletteImageAnalyzer",
]
