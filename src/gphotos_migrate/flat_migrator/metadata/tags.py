"""Embedded metadata tags: reading exiftool output and formatting values.

ExifTool is always invoked with ``-n`` so numbers arrive unconverted;
the degree/minute/second parser below covers output from files where
exiftool still prints coordinates as text.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..media_types import MetaType
from ..models import ExistingTags, GeoData

logger = logging.getLogger(__name__)

EXIFTOOL_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

_EXIFTOOL_DATETIME_RE = re.compile(
    r'^(\d{4}):(\d{2}):(\d{2})[ T](\d{2}):(\d{2}):(\d{2})'
    r'(?:\.\d+)?'
    r'(Z|[+-]\d{2}:?\d{2})?'
)
_DMS_RE = re.compile(r"(\d+) deg (\d+)' ([\d.]+)\"\s*([NSEW])?")

# Tags requested when reading, per metadata family
READ_TAGS: Dict[MetaType, List[str]] = {
    MetaType.EXIF: [
        'DateTimeOriginal', 'OffsetTimeOriginal', 'CreateDate',
        'Title', 'Description', 'ImageDescription',
        'GPSLatitude', 'GPSLatitudeRef', 'GPSLongitude', 'GPSLongitudeRef',
        'GPSAltitude', 'GPSAltitudeRef',
    ],
    MetaType.QUICKTIME: [
        'CreateDate', 'Title', 'Description', 'GPSCoordinates',
    ],
    MetaType.NONE: [
        'FileModifyDate',
    ],
}


def format_exiftool_datetime(dt: datetime, with_offset: bool = False) -> str:
    """
    Format an aware datetime as an exiftool value in UTC.

    Args:
        dt: Timezone-aware datetime
        with_offset: Append ``+00:00`` (for tags that carry a zone)

    Examples:
        >>> from datetime import datetime, timezone
        >>> format_exiftool_datetime(datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        '2020:01:02 03:04:05'
    """
    value = dt.astimezone(timezone.utc).strftime(EXIFTOOL_DATETIME_FORMAT)
    return f"{value}+00:00" if with_offset else value


def parse_exiftool_datetime(value: Any, offset: Any = None) -> Optional[datetime]:
    """
    Parse an exiftool datetime value.

    ExifTool format: "2020:01:01 12:00:00", optionally with sub-seconds and a
    zone ("+02:00" or "Z"). Values without a zone, and without ``offset``,
    are taken as UTC.

    Args:
        value: Datetime value from exiftool JSON
        offset: Separate offset tag value such as OffsetTimeOriginal

    Returns:
        Aware UTC datetime, or None for empty/zero/unparseable values
    """
    if not isinstance(value, str):
        return None
    match = _EXIFTOOL_DATETIME_RE.match(value.strip())
    if not match:
        return None

    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    try:
        dt = datetime(year, month, day, hour, minute, second)
    except ValueError:
        # 0000:00:00 00:00:00 and friends
        return None

    zone = match.group(7) or (offset.strip() if isinstance(offset, str) else None)
    return dt.replace(tzinfo=_parse_offset(zone)).astimezone(timezone.utc)


def _parse_offset(zone: Optional[str]) -> timezone:
    if not zone or zone == 'Z':
        return timezone.utc
    m = re.match(r'^([+-])(\d{2}):?(\d{2})$', zone)
    if not m:
        return timezone.utc
    sign = -1 if m.group(1) == '-' else 1
    return timezone(sign * timedelta(hours=int(m.group(2)), minutes=int(m.group(3))))


def parse_gps_coordinate(value: Any, ref: Any = None) -> Optional[float]:
    """
    Parse an exiftool GPS coordinate to signed decimal degrees.

    Accepts numbers (``-n`` output), decimal strings and the
    "37 deg 46' 29.64\\" N" form. A ``ref`` of S or W makes the value negative.
    """
    direction = None
    if isinstance(value, (int, float)):
        decimal = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        match = _DMS_RE.match(stripped)
        if match:
            decimal = (
                float(match.group(1))
                + float(match.group(2)) / 60.0
                + float(match.group(3)) / 3600.0
            )
            direction = match.group(4)
        else:
            try:
                decimal = float(stripped.rstrip('NSEW '))
            except ValueError:
                logger.debug(f"Could not parse GPS coordinate: {{'value': {value!r}}}")
                return None
            if stripped[-1:] in ('N', 'S', 'E', 'W'):
                direction = stripped[-1]
    else:
        return None

    if isinstance(ref, str) and ref.strip():
        direction = ref.strip()[0].upper()
    if direction in ('S', 'W'):
        decimal = -abs(decimal)
    return decimal


def _parse_number(value: Any) -> Optional[float]:
    """Parse exiftool numeric value, removing units."""
    try:
        if isinstance(value, (int, float)):
            return float(value)
        return float(str(value).split()[0])
    except (ValueError, IndexError):
        return None


def _parse_coordinate_list(value: Any) -> Optional[GeoData]:
    """Parse QuickTime GPSCoordinates ("lat lon [alt]", optionally comma separated)."""
    if not isinstance(value, str):
        return None
    parts = value.replace(',', ' ').split()
    try:
        numbers = [float(p) for p in parts]
    except ValueError:
        return None
    if len(numbers) < 2:
        return None
    return GeoData(
        latitude=numbers[0],
        longitude=numbers[1],
        altitude=numbers[2] if len(numbers) > 2 else None,
    )


def _text(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value
    return None


def parse_existing_tags(data: Dict[str, Any], meta_type: MetaType) -> ExistingTags:
    """
    Build ExistingTags from one exiftool ``-json`` record.

    Args:
        data: The single object exiftool prints for a file
        meta_type: Metadata family of the file

    Returns:
        ExistingTags with the fields the file carries
    """
    if meta_type is MetaType.NONE:
        return ExistingTags(taken_time=parse_exiftool_datetime(data.get('FileModifyDate')))

    if meta_type is MetaType.QUICKTIME:
        return ExistingTags(
            taken_time=parse_exiftool_datetime(data.get('CreateDate')),
            title=_text(data, 'Title'),
            description=_text(data, 'Description'),
            geo=_parse_coordinate_list(data.get('GPSCoordinates')),
        )

    taken_time = parse_exiftool_datetime(
        data.get('DateTimeOriginal'), data.get('OffsetTimeOriginal')
    )
    if taken_time is None:
        taken_time = parse_exiftool_datetime(data.get('CreateDate'))

    geo = None
    latitude = parse_gps_coordinate(data.get('GPSLatitude'), data.get('GPSLatitudeRef'))
    longitude = parse_gps_coordinate(data.get('GPSLongitude'), data.get('GPSLongitudeRef'))
    if latitude is not None and longitude is not None:
        altitude = _parse_number(data.get('GPSAltitude')) if 'GPSAltitude' in data else None
        # GPSAltitudeRef 1 (-n) or "Below Sea Level"
        if altitude is not None and str(data.get('GPSAltitudeRef', '')).strip().lower() in ('1', 'below sea level'):
            altitude = -altitude
        geo = GeoData(latitude=latitude, longitude=longitude, altitude=altitude)

    return ExistingTags(
        taken_time=taken_time,
        title=_text(data, 'Title'),
        description=_text(data, 'Description', 'ImageDescription'),
        geo=geo,
    )
