"""Supported media extensions and the metadata family each one uses."""

import os
from enum import Enum
from typing import Dict, Tuple


class MetaType(str, Enum):
    """How timestamps are embedded in a file format."""

    EXIF = "exif"
    QUICKTIME = "quicktime"
    # Format has no writable embedded date; only the file date is corrected
    NONE = "none"


MEDIA_EXTENSIONS: Dict[str, MetaType] = {
    # Still images with EXIF/XMP support
    'jpg': MetaType.EXIF,
    'jpeg': MetaType.EXIF,
    'jpe': MetaType.EXIF,
    'jfif': MetaType.EXIF,
    'heic': MetaType.EXIF,
    'heif': MetaType.EXIF,
    'png': MetaType.EXIF,
    'webp': MetaType.EXIF,
    'tif': MetaType.EXIF,
    'tiff': MetaType.EXIF,
    # RAW
    'dng': MetaType.EXIF,
    'cr2': MetaType.EXIF,
    'cr3': MetaType.EXIF,
    'nef': MetaType.EXIF,
    'arw': MetaType.EXIF,
    'orf': MetaType.EXIF,
    'raf': MetaType.EXIF,
    'rw2': MetaType.EXIF,
    # QuickTime-based video
    'mp4': MetaType.QUICKTIME,
    'm4v': MetaType.QUICKTIME,
    'mov': MetaType.QUICKTIME,
    '3gp': MetaType.QUICKTIME,
    # Formats exiftool cannot write embedded dates to
    'gif': MetaType.NONE,
    'bmp': MetaType.NONE,
    'avi': MetaType.NONE,
    'mkv': MetaType.NONE,
    'webm': MetaType.NONE,
    'wmv': MetaType.NONE,
    'mpg': MetaType.NONE,
    'mpeg': MetaType.NONE,
}

VIDEO_EXTENSIONS = frozenset({
    'mp4', 'm4v', 'mov', '3gp', 'avi', 'mkv', 'webm', 'wmv', 'mpg', 'mpeg',
})


def normalize_extension(extension: str) -> str:
    return extension.lower().lstrip('.')


def split_name(name: str) -> Tuple[str, str]:
    """
    Split a file name into stem and extension (extension keeps its dot).

    Unlike ``os.path.splitext``, a name made only of an extension is split
    too: Takeout exports untitled items as ``.jpg``.

    Examples:
        >>> split_name('IMG_1234.JPG')
        ('IMG_1234', '.JPG')
        >>> split_name('.jpg')
        ('', '.jpg')
    """
    if name.startswith('.') and name.count('.') == 1:
        return '', name
    stem, ext = os.path.splitext(name)
    return stem, ext


def is_media_extension(extension: str) -> bool:
    """Check an extension (with or without leading dot) against the allow-list."""
    return normalize_extension(extension) in MEDIA_EXTENSIONS


def is_video_extension(extension: str) -> bool:
    return normalize_extension(extension) in VIDEO_EXTENSIONS


def meta_type_for(extension: str) -> MetaType:
    """Metadata family for an extension; unknown extensions get ``NONE``."""
    return MEDIA_EXTENSIONS.get(normalize_extension(extension), MetaType.NONE)
