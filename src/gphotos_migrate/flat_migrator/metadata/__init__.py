"""Metadata reading, parsing and writing."""

from .exiftool_service import ExifToolService
from .service import MetadataService
from .sidecar import parse_sidecar, read_sidecar
from .tags import parse_existing_tags

__all__ = [
    'ExifToolService',
    'MetadataService',
    'parse_sidecar',
    'read_sidecar',
    'parse_existing_tags',
]
