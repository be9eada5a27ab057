"""Path utilities for consistent file name handling."""

import re
import unicodedata
from pathlib import Path

# Characters that are invalid in file names on at least one major platform
_UNSAFE_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_REPEATED_UNDERSCORE_RE = re.compile(r'_{2,}')


def normalize_path(path: Path | str) -> str:
    """
    Normalize a path or file name for comparison.

    Applies Unicode NFC normalization (macOS filesystems hand out NFD names)
    and converts backslashes to forward slashes.

    Args:
        path: Path object or string to normalize

    Returns:
        Normalized string

    Examples:
        >>> normalize_path(r"C:\\Users\\test\\photos")
        'C:/Users/test/photos'
    """
    normalized = unicodedata.normalize('NFC', str(path))
    return normalized.replace('\\', '/')


def sanitize_filename(name: str, fallback: str = "untitled", max_bytes: int | None = None) -> str:
    """
    Make a string usable as a file name on any platform.

    Unsafe characters become underscores, runs of underscores collapse, and
    leading/trailing dots and whitespace are stripped.

    Args:
        name: Proposed file name (without directory)
        fallback: Returned when nothing usable remains
        max_bytes: Cut the result to at most this many UTF-8 bytes, never
            inside a character

    Returns:
        A non-empty, filesystem-safe name

    Examples:
        >>> sanitize_filename('Trip: day 1/2')
        'Trip_ day 1_2'
        >>> sanitize_filename(' .. ')
        'untitled'
    """
    cleaned = _UNSAFE_CHARS_RE.sub('_', unicodedata.normalize('NFC', name))
    cleaned = _REPEATED_UNDERSCORE_RE.sub('_', cleaned)
    cleaned = cleaned.strip(' .')
    if max_bytes is not None:
        cleaned = cleaned.encode('utf-8')[:max_bytes].decode('utf-8', errors='ignore')
        cleaned = cleaned.rstrip(' .')
    return cleaned or fallback
