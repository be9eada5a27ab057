"""Media discovery for Google Takeout exports.

Walks the input tree, keeps files whose extension is on the media allow-list
and builds one sidecar index per directory for the matcher.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from .media_types import is_media_extension, split_name
from .models import MediaEntry
from .sidecar_matcher import SidecarIndex

logger = logging.getLogger(__name__)

# System files to exclude (cross-platform)
SYSTEM_FILES = {
    'thumbs.db',      # Windows thumbnail cache
    'desktop.ini',    # Windows folder settings
    '.ds_store',      # macOS folder metadata
    'icon\r',         # macOS custom folder icon
}

# Temporary file extensions to exclude
TEMP_EXTENSIONS = {'.tmp', '.temp', '.cache', '.bak', '.swp'}


def should_scan_file(name: str) -> bool:
    """
    Determine if a file name is worth considering at all.

    Excludes system and temporary files. Hidden files are kept: Takeout
    exports contain valid media such as ``.facebook_865716343.jpg``.

    Args:
        name: File name (no directory)

    Returns:
        True unless the file is a known system or temporary file
    """
    lowered = name.lower()
    if lowered in SYSTEM_FILES:
        return False
    if os.path.splitext(lowered)[1] in TEMP_EXTENSIONS:
        return False
    if lowered.endswith('_exiftool_tmp'):
        return False
    return True


@dataclass
class DiscoveryResult:
    """Result of file discovery.

    Attributes:
        entries: Discovered media files, in sorted walk order
        indexes: Sidecar index per directory containing media
        sidecar_count: Number of JSON files seen
    """
    entries: List[MediaEntry] = field(default_factory=list)
    indexes: Dict[Path, SidecarIndex] = field(default_factory=dict)
    sidecar_count: int = 0

    def index_for(self, entry: MediaEntry) -> SidecarIndex:
        return self.indexes[entry.path.parent]


def resolve_scan_root(input_dir: Path) -> Path:
    """Use ``Takeout/Google Photos`` when pointed at an unpacked Takeout root."""
    google_photos_path = input_dir / "Takeout" / "Google Photos"
    if google_photos_path.is_dir():
        logger.debug(f"Using scan root: {{'path': {str(google_photos_path)!r}}}")
        return google_photos_path
    return input_dir


def discover_media(input_dir: Path) -> DiscoveryResult:
    """Discover all media files under ``input_dir``.

    Blocking; the engine runs it in a worker thread.

    Args:
        input_dir: Input directory (absolute)

    Returns:
        DiscoveryResult with entries and per-directory sidecar indexes
    """
    scan_root = resolve_scan_root(input_dir)
    logger.info(f"Starting file discovery: {{'path': {str(scan_root)!r}}}")
    start = time.time()

    result = DiscoveryResult()
    for dirpath, dirnames, filenames in os.walk(scan_root):
        dirnames.sort()
        directory = Path(dirpath)
        names = sorted(n for n in filenames if should_scan_file(n))

        media_names = [n for n in names if is_media_extension(split_name(n)[1])]
        result.sidecar_count += sum(1 for n in names if n.lower().endswith('.json'))
        if not media_names:
            continue

        result.indexes[directory] = SidecarIndex(names)
        for name in media_names:
            path = directory / name
            result.entries.append(MediaEntry(
                path=path,
                relative_path=path.relative_to(input_dir),
            ))

    elapsed = time.time() - start
    if not result.entries:
        logger.warning(f"No media files discovered: {{'path': {str(scan_root)!r}}}")
    logger.info(
        f"File discovery complete: {{'media_files': {len(result.entries)}, "
        f"'json_files': {result.sidecar_count}, 'directories': {len(result.indexes)}, "
        f"'duration_seconds': {elapsed:.1f}}}"
    )
    return result
