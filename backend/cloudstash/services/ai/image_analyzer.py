# backend/cloudstash/services/ai/image_analyzer.py
"""
Image analysis collaborator.

The analysis handler depends only on the ImageAnalyzer protocol. The local
implementation reports pixel statistics (palette, orientation, brightness);
it does not detect objects.
"""

import io
from typing import List, Optional, Protocol, Tuple, runtime_checkable

from PIL import Image, ImageOps, ImageStat

from ...constants import (
    ANALYSIS_BRIGHT_THRESHOLD,
    ANALYSIS_DARK_THRESHOLD,
    ANALYSIS_PALETTE_SIZE,
    ANALYSIS_SAMPLE_EDGE,
)
from ...enums import MediaCategory
from ...models.pipeline_model import ImageAnalysis
from ..processing_pipeline.utils.pipeline_utils import media_category


@runtime_checkable
class ImageAnalyzer(Protocol):
    """Returns tags, detected objects, color palette and a confidence score."""

    def analyze(self, data: bytes, mime_type: Optional[str] = None) -> ImageAnalysis:
        """Analyze an image. Raises on failure."""
        ...


class PaletteImageAnalyzer:
    """
    Heuristic analyzer built on Pillow.

    Tags are exact properties of the pixels, so confidence is always 1.0.
    """

    def __init__(
        self,
        palette_size: int = ANALYSIS_PALETTE_SIZE,
        sample_edge: int = ANALYSIS_SAMPLE_EDGE,
    ):
        self.palette_size = palette_size
        self.sample_edge = sample_edge

    def analyze(self, data: bytes, mime_type: Optional[str] = None) -> ImageAnalysis:
        if mime_type and media_category(mime_type) != MediaCategory.IMAGE:
            raise ValueError(f"Cannot analyze non-image content of type {mime_type}")

        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img).convert("RGB")
            width, height = img.size
            img.thumbnail((self.sample_edge, self.sample_edge))

            colors = self._palette(img)
            tags = [self._orientation(width, height)]
            tags.extend(self._tone_tags(img))

        return ImageAnalysis(tags=tags, objects=[], colors=colors, confidence=1.0)

    def _palette(self, img: Image.Image) -> List[str]:
        """Dominant colors as hex strings, most frequent first."""
        quantized = img.quantize(colors=self.palette_size, method=Image.Quantize.MEDIANCUT)
        palette = quantized.getpalette() or []
        counts: List[Tuple[int, int]] = sorted(
            quantized.getcolors() or [], reverse=True
        )
        hex_colors = []
        for _, index in counts:
            r, g, b = palette[index * 3 : index * 3 + 3]
            hex_color = f"#{r:02x}{g:02x}{b:02x}"
            if hex_color not in hex_colors:
                hex_colors.append(hex_color)
        return hex_colors

    def _orientation(self, width: int, height: int) -> str:
        if width == height:
            return "square"
        return "landscape" if width > height else "portrait"

    def _tone_tags(self, img: Image.Image) -> List[str]:
        tags = []
        brightness = ImageStat.Stat(img.convert("L")).mean[0]
        if brightness < ANALYSIS_DARK_THRESHOLD:
            tags.append("dark")
        elif brightness > ANALYSIS_BRIGHT_THRESHOLD:
            tags.append("bright")

        saturation = ImageStat.Stat(img.convert("HSV")).mean[1]
        tags.append("monochrome" if saturation < 20 else "colorful")
        return tags
