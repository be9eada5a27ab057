"""Common utilities for gphotos-flat-migrate."""

from .config import ConfigLoader
from .config_utils import auto_detect_workers, auto_detect_io_workers
from .logging import setup_logging, LogContext
from .logging_config import LoggingConfig
from .errors import GPMigrateError
from .path_utils import normalize_path, sanitize_filename

__all__ = [
    'ConfigLoader',
    'LoggingConfig',
    'auto_detect_workers',
    'auto_detect_io_workers',
    'setup_logging',
    'LogContext',
    'GPMigrateError',
    'normalize_path',
    'sanitize_filename',
]
