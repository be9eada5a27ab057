"""Pairing media files with Google Takeout JSON sidecars.

Takeout names a sidecar after its media file with ``.json`` appended, but
the name is frequently altered:

- long names are truncated, sometimes cutting into the extension
  (``Some_very_long_file_name_that_was_cut_o.json``, ``IMG_1234.jp.json``);
- the duplicate index moves behind the extension
  (``IMG(1).jpg`` -> ``IMG.jpg(1).json``);
- edited copies share the sidecar of the original
  (``IMG-edited.jpg`` -> ``IMG.jpg.json``);
- since 2024 a ``.supplemental-metadata`` tail is inserted before ``.json``,
  itself subject to truncation.

Matching is pure: it only looks at the names of the files in the media
file's directory. Not finding a sidecar is a normal result.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .media_types import is_media_extension, is_video_extension, split_name

logger = logging.getLogger(__name__)

JSON_RE = re.compile(r'\.json$', re.I)
PAREN_NUM_RE = re.compile(r'\((\d+)\)$')

# s / supp / supplemen / supplement / supplemental, then -meta / -metadata
SUPP_TAIL_RE = re.compile(r'''
    \.
    (?:s|su|sup|supp(?:l(?:e(?:m(?:e(?:n(?:t(?:a(?:l)?)?)?)?)?)?)?)?)
    (?:-(?:m(?:e(?:t(?:a(?:d(?:a(?:t(?:a)?)?)?)?)?)?)?)?)?
    $
''', re.I | re.X)

# Suffixes Google appends to edited copies, by locale
EDITED_SUFFIXES = ('edited', 'bearbeitet', 'modifié', 'redigert', 'bewerkt')
EDITED_RE = re.compile(
    r'-(?:' + '|'.join(re.escape(s) for s in EDITED_SUFFIXES) + r')$',
    re.I,
)

# Album-level JSON files that never describe a single media file
ALBUM_METADATA_NAMES = frozenset({
    'metadata.json',
    'print-subscriptions.json',
    'shared_album_comments.json',
    'user-generated-memory-titles.json',
})

# Takeout cuts sidecar names to about 46 characters before ".json"; a shorter
# prefix only counts as truncated when the cut falls inside the extension
TRUNCATED_MIN_BYTES = 40


def _fold(name: str) -> str:
    return unicodedata.normalize('NFC', name).casefold()


def _nfc(name: str) -> str:
    return unicodedata.normalize('NFC', name)


@dataclass(frozen=True)
class ParsedSidecar:
    """Sidecar file name split into the media name it refers to and its index.

    Attributes:
        name: The sidecar file name as found on disk
        core: Media file name the sidecar refers to, possibly truncated
        dup_index: Duplicate index found right before ``.json``, if any
    """
    name: str
    core: str
    dup_index: Optional[int]

    @property
    def stem(self) -> str:
        """Sidecar name without the duplicate index and ``.json``."""
        return PAREN_NUM_RE.sub('', JSON_RE.sub('', self.name))


def parse_sidecar_name(name: str) -> Optional[ParsedSidecar]:
    """Parse a sibling file name as a sidecar.

    Returns:
        ParsedSidecar, or None if the name is not a per-media JSON sidecar

    Examples:
        >>> parse_sidecar_name('IMG.jpg(1).json')
        ParsedSidecar(name='IMG.jpg(1).json', core='IMG.jpg', dup_index=1)
        >>> parse_sidecar_name('IMG.jpg.supplemental-met.json').core
        'IMG.jpg'
    """
    if not JSON_RE.search(name) or name.lower() in ALBUM_METADATA_NAMES:
        return None

    core = JSON_RE.sub('', name)
    dup_index = None
    m = PAREN_NUM_RE.search(core)
    if m:
        dup_index = int(m.group(1))
        core = core[:m.start()]
    core = SUPP_TAIL_RE.sub('', core)

    if not core:
        return None
    return ParsedSidecar(name=name, core=core, dup_index=dup_index)


def split_dup_index(stem: str) -> Tuple[str, Optional[int]]:
    """Split ``IMG(2)`` into ``('IMG', 2)``; stems without an index get None."""
    m = PAREN_NUM_RE.search(stem)
    if not m:
        return stem, None
    return stem[:m.start()], int(m.group(1))


def strip_edited_suffix(stem: str) -> Optional[str]:
    """Remove an edited-copy suffix from a stem, keeping any duplicate index.

    Handles both ``IMG-edited(1)`` and ``IMG(1)-edited``.

    Returns:
        Stripped stem, or None if the stem carries no edited suffix
    """
    stem = _nfc(stem)
    base, dup = split_dup_index(stem)
    if EDITED_RE.search(base):
        base = EDITED_RE.sub('', base)
        return f"{base}({dup})" if dup is not None else base
    if EDITED_RE.search(stem):
        return EDITED_RE.sub('', stem)
    return None


class SidecarIndex:
    """Sidecar lookup structure for one directory.

    Built once per directory from the names of all files in it, then shared
    read-only by every pipeline working on a file of that directory.
    """

    def __init__(self, names: Iterable[str]):
        self._sidecars: List[ParsedSidecar] = []
        self._media_names: List[str] = []
        self._exact: Dict[Tuple[str, Optional[int]], List[ParsedSidecar]] = {}
        self._folded: Dict[Tuple[str, Optional[int]], List[ParsedSidecar]] = {}

        for name in sorted(names):
            parsed = parse_sidecar_name(name)
            if parsed is not None:
                self._sidecars.append(parsed)
                self._exact.setdefault((_nfc(parsed.core), parsed.dup_index), []).append(parsed)
                self._folded.setdefault((_fold(parsed.core), parsed.dup_index), []).append(parsed)
            elif is_media_extension(split_name(name)[1]):
                self._media_names.append(name)

        for bucket in (*self._exact.values(), *self._folded.values()):
            bucket.sort(key=lambda s: (len(s.name), s.name))

        self._owned = self._compute_owned()

    @property
    def sidecar_names(self) -> List[str]:
        return [s.name for s in self._sidecars]

    def _lookup(self, core: str, dup_index: Optional[int]) -> Optional[str]:
        """Find a sidecar by referenced media name; exact first, then case-insensitive."""
        bucket = self._exact.get((_nfc(core), dup_index))
        if not bucket:
            bucket = self._folded.get((_fold(core), dup_index))
        return bucket[0].name if bucket else None

    def _lookup_direct(self, media_name: str) -> Optional[str]:
        """Strategies (a) and (b) for one candidate media name."""
        # (a) IMG(1).jpg -> IMG(1).jpg.json
        found = self._lookup(media_name, None)
        if found:
            return found

        # (b) IMG(1).jpg -> IMG.jpg(1).json
        stem, ext = split_name(media_name)
        base, dup = split_dup_index(stem)
        if dup is not None:
            return self._lookup(f"{base}{ext}", dup)
        return None

    def _compute_owned(self) -> Dict[str, str]:
        """Map sidecar name -> media name for sidecars with an exact owner."""
        owned: Dict[str, str] = {}
        for media_name in self._media_names:
            found = self._lookup_direct(media_name)
            if found is not None:
                owned.setdefault(found, media_name)
        return owned

    def _lookup_truncated(self, media_name: str) -> Optional[str]:
        """Strategy (d): longest sidecar core that is a proper prefix of the name.

        A core cut inside the stem must come from a sidecar name long enough
        to have been truncated by Takeout.
        """
        stem, ext = split_name(media_name)
        base, dup = split_dup_index(stem)
        target = _fold(f"{base}{ext}")
        base_length = len(_fold(base))

        best: Optional[ParsedSidecar] = None
        best_key = None
        for sidecar in self._sidecars:
            if sidecar.dup_index != dup:
                continue
            core = _fold(sidecar.core)
            if len(core) >= len(target) or not target.startswith(core):
                continue
            if len(core) < base_length and len(sidecar.stem.encode('utf-8')) < TRUNCATED_MIN_BYTES:
                continue
            owner = self._owned.get(sidecar.name)
            if owner is not None and owner != media_name:
                continue
            key = (-len(core), len(sidecar.name), sidecar.name)
            if best_key is None or key < best_key:
                best, best_key = sidecar, key
        return best.name if best else None

    def _match_own(self, media_name: str) -> Optional[Tuple[str, str]]:
        """Strategies (a)-(d); returns (sidecar name, strategy)."""
        found = self._lookup_direct(media_name)
        if found:
            return found, "direct"

        stem, ext = split_name(media_name)
        stripped = strip_edited_suffix(stem)
        if stripped is not None:
            found = self._lookup_direct(f"{stripped}{ext}")
            if found:
                return found, "edited"

        found = self._lookup_truncated(media_name)
        if found:
            return found, "truncated"
        return None

    def _lookup_live_photo(self, media_name: str) -> Optional[str]:
        """Strategy (e): IMG_1234.MP4 shares IMG_1234.HEIC.json with its still image."""
        stem, ext = split_name(media_name)
        if not stem or not is_video_extension(ext):
            return None
        folded = _fold(stem)
        for sibling in self._media_names:
            sibling_stem, sibling_ext = split_name(sibling)
            if is_video_extension(sibling_ext) or _fold(sibling_stem) != folded:
                continue
            found = self._lookup_direct(sibling)
            if found:
                return found
        return None

    def match(self, media_name: str) -> Optional[str]:
        """Find the sidecar name for a media file name in this directory.

        Args:
            media_name: Media file name (no directory)

        Returns:
            Sidecar file name, or None when no strategy applies
        """
        result = self._match_own(media_name)
        if result is None:
            found = self._lookup_live_photo(media_name)
            if found:
                result = (found, "live_photo")

        if result is None:
            logger.debug(f"No sidecar: {{'media': {media_name!r}}}")
            return None

        logger.debug(
            f"Sidecar matched: {{'media': {media_name!r}, 'sidecar': {result[0]!r}, "
            f"'strategy': {result[1]!r}}}"
        )
        return result[0]


def match_sidecar(media_path: Path, sibling_names: Iterable[str]) -> Optional[Path]:
    """Locate the JSON sidecar of a media file.

    Args:
        media_path: Path to the media file
        sibling_names: Names of all files in the media file's directory

    Returns:
        Path of the sidecar next to the media file, or None
    """
    name = SidecarIndex(sibling_names).match(media_path.name)
    return media_path.parent / name if name is not None else None
