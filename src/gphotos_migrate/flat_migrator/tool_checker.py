"""Tool availability checker for external dependencies."""

import logging
import shutil
import subprocess

from .errors import ToolNotFoundError

logger = logging.getLogger(__name__)

INSTALLATION_INSTRUCTIONS = (
    "ExifTool is required to correct metadata. Install it:\n"
    "  - Windows: Download from https://exiftool.org/\n"
    "  - macOS: brew install exiftool\n"
    "  - Linux: sudo apt-get install libimage-exiftool-perl\n"
    "or pass --skip-corrections to migrate without correcting metadata."
)


def check_exiftool(executable: str = "exiftool", timeout: float = 10.0) -> str:
    """
    Verify that exiftool can be executed.

    Args:
        executable: Name or path of the exiftool executable
        timeout: Seconds to wait for ``exiftool -ver``

    Returns:
        The exiftool version string

    Raises:
        ToolNotFoundError: If exiftool is missing or does not answer
    """
    resolved = shutil.which(executable)
    if resolved is None:
        logger.error(f"Tool not found: {{'tool': {executable!r}, 'required': True}}")
        raise ToolNotFoundError(
            f"Tool '{executable}' is not available.\n\n{INSTALLATION_INSTRUCTIONS}",
            tool=executable,
        )

    try:
        result = subprocess.run(
            [resolved, '-ver'],
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        logger.error(f"Tool not usable: {{'tool': {resolved!r}, 'error': {str(e)!r}}}")
        raise ToolNotFoundError(
            f"Tool '{executable}' could not be executed: {e}\n\n{INSTALLATION_INSTRUCTIONS}",
            tool=executable,
        ) from e

    version = result.stdout.strip()
    logger.info(f"Tool available: {{'tool': 'exiftool', 'path': {resolved!r}, 'version': {version!r}}}")
    return version
