"""Parser for Google Takeout JSON sidecar files."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

import aiofiles

from ..models import GeoData, SidecarMetadata, SkipReason

logger = logging.getLogger(__name__)

# Google Photos formatted timestamps, tried in order
FORMATTED_TIMESTAMP_FORMATS = [
    "%b %d, %Y, %I:%M:%S %p UTC",  # Jan 1, 2020, 12:00:00 AM UTC
    "%b %d, %Y, %I:%M:%S %p",      # Jan 1, 2020, 12:00:00 AM
    "%Y-%m-%d %H:%M:%S UTC",       # 2020-01-01 00:00:00 UTC
    "%Y-%m-%d %H:%M:%S",           # 2020-01-01 00:00:00
]


class _CorruptValue(ValueError):
    pass


async def read_sidecar(json_path: Path) -> bytes:
    """
    Read a sidecar file without blocking the event loop.

    Raises:
        OSError: If the file cannot be read
    """
    async with aiofiles.open(json_path, 'rb') as f:
        return await f.read()


def parse_sidecar(raw: Union[bytes, str]) -> Union[SidecarMetadata, SkipReason]:
    """
    Parse the content of a Google Takeout JSON sidecar.

    Args:
        raw: File content

    Returns:
        SidecarMetadata, or ``SkipReason.CORRUPT_SIDECAR`` when the content is
        not valid JSON, is not a JSON object, or carries an unusable
        timestamp or location
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Corrupt sidecar: {{'error': {str(e)!r}}}")
        return SkipReason.CORRUPT_SIDECAR

    if not isinstance(data, dict):
        logger.warning(f"Corrupt sidecar: {{'error': 'not an object', 'type': {type(data).__name__!r}}}")
        return SkipReason.CORRUPT_SIDECAR

    try:
        taken_time = _parse_timestamp(data.get('photoTakenTime'))
        # creationTime is the upload time; only a fallback
        if taken_time is None:
            taken_time = _parse_timestamp(data.get('creationTime'))

        geo = _parse_geo_data(data.get('geoData'))
        if geo is None:
            geo = _parse_geo_data(data.get('geoDataExif'))
    except _CorruptValue as e:
        logger.warning(f"Corrupt sidecar: {{'error': {str(e)!r}}}")
        return SkipReason.CORRUPT_SIDECAR

    return SidecarMetadata(
        taken_time=taken_time,
        title=_parse_text(data.get('title')),
        description=_parse_text(data.get('description')),
        geo=geo,
    )


def _parse_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _parse_timestamp(timestamp_data: Any) -> Optional[datetime]:
    """
    Parse a Takeout time object (``{"timestamp": "...", "formatted": "..."}``).

    Returns:
        UTC datetime, or None when the object is absent

    Raises:
        _CorruptValue: If the object is present but its timestamp is unusable
    """
    if timestamp_data is None:
        return None
    if not isinstance(timestamp_data, dict):
        raise _CorruptValue(f"time object is {type(timestamp_data).__name__}")

    if 'timestamp' in timestamp_data:
        try:
            timestamp = int(timestamp_data['timestamp'])
            return datetime.fromtimestamp(timestamp, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise _CorruptValue(f"invalid timestamp {timestamp_data['timestamp']!r}") from e

    if 'formatted' in timestamp_data:
        return _parse_formatted_timestamp(str(timestamp_data['formatted']))

    return None


def _parse_formatted_timestamp(formatted: str) -> datetime:
    """
    Parse formatted timestamp string.

    Google uses various formats like:
    - "Jan 1, 2020, 12:00:00 AM UTC"
    - "2020-01-01T00:00:00Z"
    """
    # Newer exports put a narrow no-break space before AM/PM
    formatted = formatted.replace("\u202f", " ").strip()
    if 'T' in formatted:
        try:
            dt = datetime.fromisoformat(formatted.replace('Z', '+00:00'))
            return dt.astimezone(timezone.utc) if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
        except ValueError:
            pass

    for fmt in FORMATTED_TIMESTAMP_FORMATS:
        try:
            dt = datetime.strptime(formatted, fmt)
        except ValueError:
            continue
        # Google Photos timestamps are UTC
        return dt.replace(tzinfo=timezone.utc)

    raise _CorruptValue(f"unrecognized timestamp format {formatted!r}")


def _parse_geo_data(geo_data: Any) -> Optional[GeoData]:
    """
    Parse a geoData object.

    Returns:
        GeoData, or None when absent or at (0, 0), which Takeout uses for
        "no location"
    """
    if geo_data is None:
        return None
    if not isinstance(geo_data, dict):
        raise _CorruptValue(f"geo object is {type(geo_data).__name__}")
    if 'latitude' not in geo_data or 'longitude' not in geo_data:
        return None

    try:
        latitude = float(geo_data['latitude'])
        longitude = float(geo_data['longitude'])
        altitude = float(geo_data['altitude']) if geo_data.get('altitude') is not None else None
    except (TypeError, ValueError) as e:
        raise _CorruptValue(f"invalid coordinates {geo_data!r}") from e

    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        raise _CorruptValue(f"coordinates out of range ({latitude}, {longitude})")
    if latitude == 0.0 and longitude == 0.0:
        return None

    return GeoData(latitude=latitude, longitude=longitude, altitude=altitude)

