"""Infrastructure helpers (image loading from files and URLs)."""

from gemini_kit.infrastructure.image_loading import (
    LoadedImage,
    detect_mime_type,
    fetch_image_url,
    read_image_file,
)

__all__ = [
    "LoadedImage",
    "detect_mime_type",
    "fetch_image_url",
    "read_image_file",
]
