# backend/cloudstash/services/processing_pipeline/generators/media_transform.py
"""
Media Transform Component

Pillow and OpenCV based transforms used by the processing handlers:
cover-cropped JPEG thumbnails from image bytes or video frames, and
dimension/duration introspection. Every public method returns a StepResult
instead of raising.
"""

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from ....constants import (
    THUMBNAIL_IMAGE_FORMAT,
    THUMBNAIL_PROGRESSIVE_JPEG_ENABLED,
    THUMBNAIL_QUALITY,
    VIDEO_FRAME_POSITION_RATIO,
)
from ....enums import LoggerName, LogSource
from ....models.pipeline_model import StepResult
from ...logger import get_service_logger

logger = get_service_logger(LoggerName.MEDIA_TRANSFORM, LogSource.PIPELINE)


@dataclass
class VideoFrame:
    """A decoded video frame (RGB) and where it was taken from."""

    image: np.ndarray
    frame_index: int
    position_seconds: float
    duration_seconds: float


class MediaTransformer:
    """
    Component responsible for producing square JPEG thumbnails.

    Optimized for:
    - Deterministic output (same input bytes, same thumbnail)
    - Cover cropping centered on the source
    - Progressive, optimized JPEG encoding
    """

    def __init__(
        self,
        edge: int = 300,
        quality: int = THUMBNAIL_QUALITY,
        frame_position: float = VIDEO_FRAME_POSITION_RATIO,
    ):
        """
        Initialize media transformer.

        Args:
            edge: Thumbnail width and height in pixels
            quality: JPEG compression quality (1-95)
            frame_position: Fraction of video duration to sample a frame at
        """
        self.edge = edge
        self.quality = max(1, min(95, quality))
        self.frame_position = min(max(frame_position, 0.0), 0.99)

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def _to_rgb(self, img: Image.Image) -> Image.Image:
        """Flatten transparency onto white and convert to RGB."""
        if img.mode in ("RGBA", "LA") or (
            img.mode == "P" and "transparency" in img.info
        ):
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            return background
        if img.mode != "RGB":
            return img.convert("RGB")
        return img

    def _encode_cover_thumbnail(self, img: Image.Image) -> bytes:
        img = ImageOps.exif_transpose(img)
        img = self._to_rgb(img)
        thumbnail = ImageOps.fit(
            img,
            (self.edge, self.edge),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )

        buffer = io.BytesIO()
        thumbnail.save(
            buffer,
            THUMBNAIL_IMAGE_FORMAT,
            quality=self.quality,
            optimize=True,
            progressive=THUMBNAIL_PROGRESSIVE_JPEG_ENABLED,
        )
        return buffer.getvalue()

    def create_cover_thumbnail(self, image_bytes: bytes) -> StepResult[bytes]:
        """
        Cover-crop an image to edge x edge and encode it as JPEG.

        Args:
            image_bytes: Encoded source image

        Returns:
            StepResult with the JPEG bytes
        """
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                img.seek(0)
                return StepResult.ok(self._encode_cover_thumbnail(img))
        except UnidentifiedImageError as e:
            return StepResult.fail(f"Unsupported or corrupt image: {e}", exception=e)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            return StepResult.fail(f"Image processing failed: {e}", exception=e)

    def get_image_metadata(self, image_bytes: bytes) -> StepResult[Dict[str, Any]]:
        """
        Read dimensions and format information of an image.

        Returns:
            StepResult with width, height, format, mode, has_alpha
        """
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                has_alpha = img.mode in ("RGBA", "LA", "PA") or (
                    img.mode == "P" and "transparency" in img.info
                )
                return StepResult.ok(
                    {
                        "width": img.width,
                        "height": img.height,
                        "format": (img.format or "").lower() or None,
                        "mode": img.mode,
                        "has_alpha": has_alpha,
                        "frames": getattr(img, "n_frames", 1),
                    }
                )
        except (UnidentifiedImageError, OSError, ValueError) as e:
            return StepResult.fail(f"Could not read image metadata: {e}", exception=e)

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------

    def extract_video_frame(
        self, video_path: Union[str, Path], position: Optional[float] = None
    ) -> StepResult[VideoFrame]:
        """
        Decode the frame at a fraction of the video's duration.

        Falls back to the first frame when seeking fails, which happens with
        containers that do not report a frame count.

        Args:
            video_path: Path of the video file
            position: Fraction of the duration (defaults to frame_position)

        Returns:
            StepResult with the RGB frame and its position
        """
        ratio = self.frame_position if position is None else position
        cap = cv2.VideoCapture(str(video_path))
        try:
            if not cap.isOpened():
                return StepResult.fail(f"Could not open video: {video_path}")

            fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
            frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
            duration = frame_count / fps if fps > 0 else 0.0
            target_index = int(frame_count * ratio) if frame_count > 0 else 0

            if target_index > 0:
                cap.set(cv2.CAP_PROP_POS_FRAMES, target_index)
            ok, frame = cap.read()
            if not ok and target_index > 0:
                cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
                target_index = 0
                ok, frame = cap.read()
            if not ok or frame is None:
                return StepResult.fail(f"Could not decode a frame from {video_path}")

            return StepResult.ok(
                VideoFrame(
                    image=cv2.cvtColor(frame, cv2.COLOR_BGR2RGB),
                    frame_index=target_index,
                    position_seconds=target_index / fps if fps > 0 else 0.0,
                    duration_seconds=duration,
                )
            )
        except cv2.error as e:
            return StepResult.fail(f"Video decoding failed: {e}", exception=e)
        finally:
            cap.release()

    def frame_to_thumbnail(self, frame: VideoFrame) -> StepResult[bytes]:
        """Cover-crop a decoded frame to edge x edge JPEG bytes."""
        try:
            img = Image.fromarray(frame.image)
            return StepResult.ok(self._encode_cover_thumbnail(img))
        except (OSError, ValueError, TypeError) as e:
            return StepResult.fail(f"Frame encoding failed: {e}", exception=e)

    def create_video_thumbnail(self, video_path: Union[str, Path]) -> StepResult[bytes]:
        """Extract the sampling frame of a video and encode it as a thumbnail."""
        extracted = self.extract_video_frame(video_path)
        if not extracted.success:
            return StepResult.fail(extracted.error or "frame extraction failed")

        frame = extracted.unwrap()
        logger.debug(
            f"Extracted frame {frame.frame_index} at {frame.position_seconds:.2f}s "
            f"of {frame.duration_seconds:.2f}s",
            extra_context={"video_path": str(video_path)},
        )
        return self.frame_to_thumbnail(frame)

    def get_video_metadata(
        self, video_path: Union[str, Path]
    ) -> StepResult[Dict[str, Any]]:
        """
        Read duration, dimensions and frame rate of a video.

        Returns:
            StepResult with duration, width, height, fps, frame_count, codec
        """
        cap = cv2.VideoCapture(str(video_path))
        try:
            if not cap.isOpened():
                return StepResult.fail(f"Could not open video: {video_path}")

            fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
            frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
            fourcc = int(cap.get(cv2.CAP_PROP_FOURCC) or 0)
            codec = (
                "".join(chr((fourcc >> (8 * i)) & 0xFF) for i in range(4)).strip()
                if fourcc
                else None
            )
            return StepResult.ok(
                {
                    "duration": round(frame_count / fps, 3) if fps > 0 else None,
                    "width": int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0),
                    "height": int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0),
                    "fps": round(fps, 3) if fps > 0 else None,
                    "frame_count": frame_count,
                    "codec": codec or None,
                }
            )
        except cv2.error as e:
            return StepResult.fail(f"Could not read video metadata: {e}", exception=e)
        finally:
            cap.release()
