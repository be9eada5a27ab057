"""Error classes for the flat migrator."""

from gphotos_migrate.common import GPMigrateError

from .models import FailureReason


class MigratorError(GPMigrateError):
    """Base error for migration operations."""
    pass


class CorruptSidecarError(MigratorError):
    """JSON sidecar could not be parsed."""
    pass


class ToolNotFoundError(MigratorError):
    """Required external tool is not available."""
    pass


class MetadataServiceError(MigratorError):
    """The metadata tool failed to read or write a file."""
    pass


class WriteTimeoutError(MetadataServiceError):
    """The metadata tool did not answer within the configured timeout."""
    pass


class WriteRejectedError(MetadataServiceError):
    """The metadata tool exited with an error."""
    pass


class ServiceClosedError(MetadataServiceError):
    """A call was made after the metadata service session was closed."""
    pass


class RelocationError(MigratorError):
    """Moving a file to the output or error directory failed.

    Fatal for the whole run: once a move fails the migration can no longer
    guarantee that no file is lost.
    """
    pass


def classify_error(exception: Exception) -> FailureReason:
    """
    Map a file-level exception to the failure reason reported in outcomes.

    Args:
        exception: Exception raised while correcting or writing a file

    Returns:
        FailureReason for the outcome
    """
    if isinstance(exception, CorruptSidecarError):
        return FailureReason.CORRUPT_SIDECAR
    elif isinstance(exception, WriteTimeoutError):
        return FailureReason.WRITE_TIMEOUT
    elif isinstance(exception, MetadataServiceError):
        return FailureReason.WRITE_REJECTED
    elif isinstance(exception, (OSError, UnicodeDecodeError)):
        return FailureReason.READ_FAILED
    else:
        return FailureReason.UNEXPECTED
