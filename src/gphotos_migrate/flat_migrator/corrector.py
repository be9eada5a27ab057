"""Metadata corrector: decides which tags to write into a media file.

The sidecar's capture time is authoritative. Title, description and
location are only filled in where the file has none; values already in the
file win over the sidecar.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from gphotos_migrate.common import sanitize_filename

from .media_types import MetaType, is_media_extension, split_name
from .metadata.tags import format_exiftool_datetime
from .models import CorrectionSet, ExistingTags, GeoData, MediaEntry, SidecarMetadata

logger = logging.getLogger(__name__)

UTC_OFFSET = "+00:00"

# Room left under the usual 255-byte limit for the extension and a collision suffix
MAX_NAME_STEM_BYTES = 200

# Tags written for the capture time, per metadata family
TIMESTAMP_TAGS = {
    MetaType.EXIF: ('DateTimeOriginal', 'CreateDate'),
    MetaType.QUICKTIME: ('CreateDate', 'ModifyDate', 'TrackCreateDate', 'MediaCreateDate'),
    MetaType.NONE: (),
}

DESCRIPTION_TAG = {
    MetaType.EXIF: 'ImageDescription',
    MetaType.QUICKTIME: 'Description',
}


@dataclass(frozen=True)
class CorrectionOptions:
    """Options of the corrector, taken from the migration config."""
    skip_corrections: bool = False
    rename_empty: bool = False
    timestamp_tolerance_seconds: float = 1.0


def timestamps_match(a: datetime, b: datetime, tolerance_seconds: float) -> bool:
    return abs((a - b).total_seconds()) <= tolerance_seconds


def compute_corrections(
    media: MediaEntry,
    sidecar: Optional[SidecarMetadata],
    existing: ExistingTags,
    options: CorrectionOptions,
) -> CorrectionSet:
    """
    Compute the corrections for one media file.

    Args:
        media: The media file
        sidecar: Parsed sidecar, or None when no sidecar was found
        existing: Tags already embedded in the file
        options: Corrector options

    Returns:
        CorrectionSet; empty when nothing needs to change
    """
    if options.skip_corrections:
        return CorrectionSet()

    rename_to = _synthesize_name(media, sidecar) if options.rename_empty else None
    if sidecar is None:
        return CorrectionSet(rename_to=rename_to)

    tags: List[Tuple[str, str]] = []
    meta_type = media.meta_type

    if sidecar.taken_time is not None:
        if existing.taken_time is not None and timestamps_match(
            existing.taken_time, sidecar.taken_time, options.timestamp_tolerance_seconds
        ):
            logger.debug(f"Timestamp already correct: {{'path': {str(media.path)!r}}}")
        else:
            tags.extend(_timestamp_tags(meta_type, sidecar.taken_time))

    if meta_type is not MetaType.NONE:
        tags.extend(_text_tag(media, 'Title', sidecar.title, existing.title))
        tags.extend(_text_tag(
            media, DESCRIPTION_TAG[meta_type], sidecar.description, existing.description
        ))
        tags.extend(_geo_tags(media, meta_type, sidecar.geo, existing.geo))

    return CorrectionSet(tags=tuple(tags), rename_to=rename_to)


def _timestamp_tags(meta_type: MetaType, taken_time: datetime) -> List[Tuple[str, str]]:
    value = format_exiftool_datetime(taken_time)
    tags = [(tag, value) for tag in TIMESTAMP_TAGS[meta_type]]
    if meta_type is MetaType.EXIF:
        tags.append(('OffsetTimeOriginal', UTC_OFFSET))
    tags.append(('FileModifyDate', format_exiftool_datetime(taken_time, with_offset=True)))
    return tags


def _text_tag(
    media: MediaEntry,
    tag: str,
    value: Optional[str],
    existing: Optional[str],
) -> List[Tuple[str, str]]:
    if value is None:
        return []
    if existing is not None:
        if existing != value:
            logger.debug(
                f"Keeping existing value: {{'path': {str(media.path)!r}, 'tag': {tag!r}, "
                f"'existing': {existing!r}, 'sidecar': {value!r}}}"
            )
        return []
    return [(tag, value)]


def _geo_tags(
    media: MediaEntry,
    meta_type: MetaType,
    geo: Optional[GeoData],
    existing: Optional[GeoData],
) -> List[Tuple[str, str]]:
    if geo is None:
        return []
    if existing is not None:
        if (round(existing.latitude, 5), round(existing.longitude, 5)) != (
            round(geo.latitude, 5), round(geo.longitude, 5)
        ):
            logger.debug(
                f"Keeping existing location: {{'path': {str(media.path)!r}, "
                f"'existing': {(existing.latitude, existing.longitude)!r}, "
                f"'sidecar': {(geo.latitude, geo.longitude)!r}}}"
            )
        return []

    if meta_type is MetaType.QUICKTIME:
        parts = [f"{geo.latitude}", f"{geo.longitude}"]
        if geo.altitude is not None:
            parts.append(f"{geo.altitude}")
        return [('GPSCoordinates', ", ".join(parts))]

    tags = [
        ('GPSLatitude', f"{abs(geo.latitude)}"),
        ('GPSLatitudeRef', 'S' if geo.latitude < 0 else 'N'),
        ('GPSLongitude', f"{abs(geo.longitude)}"),
        ('GPSLongitudeRef', 'W' if geo.longitude < 0 else 'E'),
    ]
    if geo.altitude is not None:
        tags.append(('GPSAltitude', f"{abs(geo.altitude)}"))
        tags.append(('GPSAltitudeRef', 'Below Sea Level' if geo.altitude < 0 else 'Above Sea Level'))
    return tags


def _synthesize_name(media: MediaEntry, sidecar: Optional[SidecarMetadata]) -> Optional[str]:
    """
    Output name for a file exported without a title (``.jpg``).

    Uses the sidecar title when there is one, otherwise the album folders
    the file came from.

    Returns:
        New file name, or None when the file already has a name
    """
    if media.stem:
        return None

    base = None
    if sidecar is not None and sidecar.title:
        title_stem, title_ext = split_name(sidecar.title)
        if not is_media_extension(title_ext):
            title_stem = sidecar.title
        base = sanitize_filename(title_stem, fallback="", max_bytes=MAX_NAME_STEM_BYTES)
    if not base:
        folders = [p for p in media.relative_path.parent.parts if p not in ('.', '')]
        base = sanitize_filename(
            "_".join(folders), fallback="untitled", max_bytes=MAX_NAME_STEM_BYTES
        )

    name = f"{base}{split_name(media.name)[1]}"
    logger.debug(f"Renaming untitled file: {{'path': {str(media.path)!r}, 'name': {name!r}}}")
    return name
