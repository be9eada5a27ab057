"""Progress tracking for a migration run."""

import logging
import time

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """Format seconds as human-readable time (e.g., "2h 15m 30s").

    Examples:
        >>> format_duration(8130)
        '2h 15m 30s'
        >>> format_duration(0)
        '0s'
    """
    if seconds <= 0:
        return "0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")

    return " ".join(parts)


class ProgressTracker:
    """Counts outcomes and logs progress with an ETA every ``log_interval`` files."""

    def __init__(self, total_files: int, log_interval: int = 100):
        self.total_files = total_files
        self.log_interval = log_interval

        self.succeeded = 0
        self.failed = 0
        self.start_time = time.time()

    @property
    def files_processed(self) -> int:
        return self.succeeded + self.failed

    def record(self, success: bool) -> None:
        if success:
            self.succeeded += 1
        else:
            self.failed += 1

        if self.files_processed % self.log_interval == 0:
            self._log_progress()

    def _log_progress(self) -> None:
        elapsed = time.time() - self.start_time
        rate = self.files_processed / elapsed if elapsed > 0 else 0.0
        remaining = self.total_files - self.files_processed
        eta = remaining / rate if rate > 0 and remaining > 0 else 0.0
        percentage = (self.files_processed / self.total_files) * 100 if self.total_files else 0.0

        logger.info(
            f"Progress: {self.files_processed}/{self.total_files} "
            f"({percentage:.1f}%) - {rate:.1f} files/sec - "
            f"ETA: {format_duration(eta)}"
        )

    def log_final_summary(self) -> None:
        elapsed = time.time() - self.start_time
        logger.info(
            f"Migration complete: {{'processed': {self.files_processed}, "
            f"'succeeded': {self.succeeded}, 'failed': {self.failed}, "
            f"'duration': {format_duration(elapsed)!r}}}"
        )
