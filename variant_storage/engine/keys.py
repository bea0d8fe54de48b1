"""Object key naming."""

from typing import Optional

from variant_storage.utils.content_type import file_extension


def object_key(destination: Optional[str], filename: str) -> str:
    """
    Key of a single-output upload: ``destination/filename``.

    A filename that already starts with the destination is returned as-is.
    This holds for uploads as well as removal: a filename resolver returning
    "avatars/cat" under destination "avatars" stores "avatars/cat", and the
    recorded key removes the same object.
    """
    if not isinstance(destination, str) or not destination:
        return filename

    destination = destination.rstrip("/")
    if filename.startswith(f"{destination}/"):
        return filename
    return f"{destination}/{filename}"


def variant_key(filename: str, suffix: str, original_name: str, prefix: Optional[str] = None) -> str:
    """
    Key of one variant: ``[prefix-]filename-suffix.ext``.

    Examples:
        >>> variant_key("cat", "sm", "photo.png", "thumb")
        'thumb-cat-sm.png'

        >>> variant_key("cat", "sm", "photo.png")
        'cat-sm.png'
    """
    extension = file_extension(original_name)
    if prefix:
        return f"{prefix}-{filename}-{suffix}{extension}"
    return f"{filename}-{suffix}{extension}"
