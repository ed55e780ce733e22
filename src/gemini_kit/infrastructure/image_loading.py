"""Image loading for multimodal requests.

Reads image bytes from the filesystem or over HTTP and works out their MIME
type. The file extension is trusted first; when it is missing or does not
name a supported image type, the bytes themselves are identified with
Pillow.

Dependencies:
    - Pillow (PIL): Format detection from image headers
    - requests: Downloading images from URLs
"""

from __future__ import annotations

import io
import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import requests
from PIL import Image, UnidentifiedImageError

from gemini_kit.core.validators import validate_not_empty, validate_present
from gemini_kit.domain.exceptions import ValidationError
from gemini_kit.domain.value_objects import SUPPORTED_IMAGE_MIME_TYPES

logger = logging.getLogger(__name__)

_EXTENSION_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


@dataclass(slots=True, frozen=True)
class LoadedImage:
    """Image bytes with their detected MIME type."""

    data: bytes = field(repr=False)
    mime_type: str
    source: str


def mime_type_from_name(name: str) -> str | None:
    """Guess a supported image MIME type from a file name or URL path.

    Returns:
        The MIME type, or None when the extension is missing or does not
        name a supported image format.
    """
    path = urlparse(name).path if "://" in name else name
    suffix = Path(path).suffix.lower()
    if not suffix:
        return None
    mime_type = _EXTENSION_MIME_TYPES.get(suffix) or mimetypes.guess_type(f"file{suffix}")[0]
    return mime_type if mime_type in SUPPORTED_IMAGE_MIME_TYPES else None


def sniff_mime_type(data: bytes) -> str | None:
    """Identify the image format from its header bytes using Pillow."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError, ValueError):
        return None

    mime_type = Image.MIME.get(image_format or "")
    return mime_type if mime_type in SUPPORTED_IMAGE_MIME_TYPES else None


def detect_mime_type(data: bytes, name: str) -> str:
    """Resolve the MIME type of image bytes.

    Args:
        data: Raw image bytes.
        name: File path or URL the bytes came from.

    Returns:
        A MIME type from SUPPORTED_IMAGE_MIME_TYPES.

    Raises:
        ValidationError: If neither the name nor the bytes identify a
            supported image format.
    """
    mime_type = mime_type_from_name(name) or sniff_mime_type(data)
    if mime_type is None:
        supported = ", ".join(SUPPORTED_IMAGE_MIME_TYPES)
        raise ValidationError(
            f"Unsupported image format. Supported formats: {supported}",
            "INVALID_ARGUMENT",
        )
    return mime_type


def read_image_file(file_path: str | Path) -> LoadedImage:
    """Read an image from disk.

    Raises:
        ValidationError: If the path does not exist, is not a regular file,
            cannot be read, or does not hold a supported image format.
    """
    path = Path(file_path)
    if not path.exists():
        raise ValidationError(f"Image file not found: {file_path}", "INVALID_ARGUMENT")
    if not path.is_file():
        raise ValidationError(f"Path is not a file: {file_path}", "INVALID_ARGUMENT")

    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ValidationError(f"Error reading image file: {exc}", "INVALID_ARGUMENT") from exc

    return LoadedImage(data=data, mime_type=detect_mime_type(data, str(path)), source=str(path))


def validate_image_url(url: str) -> None:
    """Check that ``url`` is a non-empty http(s) URL."""
    validate_present(url, "URL")
    validate_not_empty(url, "URL")
    if not url.startswith(("http://", "https://")):
        raise ValidationError("URL must start with http:// or https://", "INVALID_ARGUMENT")


def fetch_image_url(
    url: str,
    *,
    session: requests.Session | None = None,
    timeout: float = 30.0,
) -> LoadedImage:
    """Download an image over HTTP.

    Args:
        url: http:// or https:// URL of the image.
        session: Optional session to reuse. A one-off request is made when
            None.
        timeout: Download timeout in seconds.

    Returns:
        LoadedImage with the downloaded bytes. The MIME type comes from the
        URL extension, then the Content-Type header, then the image header.

    Raises:
        ValidationError: If the URL is invalid, the download fails, or the
            content is not a supported image.
    """
    validate_image_url(url)
    http = session or requests
    try:
        response = http.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else "unknown"
        logger.warning("Image download failed for %s: HTTP %s", url, status)
        raise ValidationError(
            f"Error fetching image from URL: HTTP error {status}",
            "INVALID_ARGUMENT",
        ) from exc
    except requests.exceptions.RequestException as exc:
        logger.warning("Image download failed for %s: %s", url, exc)
        raise ValidationError(f"Error fetching image from URL: {exc}", "INVALID_ARGUMENT") from exc

    data = response.content
    header_type = (response.headers.get("Content-Type") or "").split(";")[0].strip().lower()
    mime_type = mime_type_from_name(url)
    if mime_type is None and header_type in SUPPORTED_IMAGE_MIME_TYPES:
        mime_type = header_type
    if mime_type is None:
        mime_type = detect_mime_type(data, url)
    return LoadedImage(data=data, mime_type=mime_type, source=url)


__all__ = [
    "LoadedImage",
    "detect_mime_type",
    "fetch_image_url",
    "mime_type_from_name",
    "read_image_file",
    "sniff_mime_type",
    "validate_image_url",
]
