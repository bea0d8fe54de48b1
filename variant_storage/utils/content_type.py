"""
Content-Type utilities.
Detect MIME types from file names and map output formats to content types.
"""

import mimetypes
import os
from typing import Optional


# Output formats the image transformer can write
FORMAT_CONTENT_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "tiff": "image/tiff",
}

FORMAT_ALIASES = {
    "jpg": "jpeg",
    "tif": "tiff",
}


def detect_content_type(filename: str, provided_type: Optional[str] = None) -> str:
    """
    Detect Content-Type from filename extension.

    Falls back to provided type if detection fails, or 'application/octet-stream' as last resort.

    Args:
        filename: Filename or path (e.g., "photo.jpg", "path/to/file.tar.gz")
        provided_type: Optional explicitly provided Content-Type from client

    Returns:
        MIME type string (e.g., "image/jpeg")

    Examples:
        >>> detect_content_type("photo.jpg")
        'image/jpeg'

        >>> detect_content_type("unknown.xyz")
        'application/octet-stream'

        >>> detect_content_type("file.txt", "text/custom")
        'text/custom'
    """
    # If client provided a specific type (not generic), use it
    if provided_type and provided_type != "application/octet-stream":
        return provided_type

    guessed_type, _ = mimetypes.guess_type(filename)

    # Priority: guessed > provided > fallback
    return guessed_type or provided_type or "application/octet-stream"


def normalize_format(name: Optional[str]) -> Optional[str]:
    """Lower-case a format name and resolve aliases such as 'jpg'."""
    if not name:
        return None
    name = name.lower()
    return FORMAT_ALIASES.get(name, name)


def is_supported_format(name: Optional[str]) -> bool:
    """True for formats the transformer can write."""
    return normalize_format(name) in FORMAT_CONTENT_TYPES


def format_content_type(name: Optional[str]) -> Optional[str]:
    """
    Content type of an output format.

    Returns:
        MIME type, or None when no format is declared or it is unknown
    """
    return FORMAT_CONTENT_TYPES.get(normalize_format(name) or "")


def file_extension(filename: str) -> str:
    """Extension of the last path component, including the dot ('' if none)."""
    return os.path.splitext(os.path.basename(filename))[1]
