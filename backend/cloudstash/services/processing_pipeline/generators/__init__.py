"""
Media Generation Components

- MediaTransformer: cover-cropped JPEG thumbnails from images and video frames
"""

from .media_transform import MediaTransformer, VideoFrame

__all__ = ["MediaTransformer", "VideoFrame"]
