"""Configuration utilities."""

import os


def get_cpu_count() -> int:
    """Get number of CPU cores, with fallback."""
    return os.cpu_count() or 4


def auto_detect_workers(multiplier: float = 1.0, min_workers: int = 2) -> int:
    """Number of concurrent external tool calls to allow.

    Args:
        multiplier: Multiplier for CPU count (e.g., 0.5 for half cores)
        min_workers: Minimum number of workers

    Returns:
        Number of workers
    """
    return max(min_workers, int(get_cpu_count() * multiplier))


def auto_detect_io_workers(multiplier: float = 2.0, min_workers: int = 4) -> int:
    """Number of file pipelines to run concurrently.

    Pipelines mostly wait on disk and on the metadata tool, so this defaults
    to a multiple of the CPU count.

    Args:
        multiplier: Multiplier for CPU count
        min_workers: Minimum number of workers

    Returns:
        Number of pipelines
    """
    return max(min_workers, int(get_cpu_count() * multiplier))
