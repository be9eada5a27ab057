"""Data model for the flat migrator.

All records are frozen: a MediaEntry and the values derived from it are owned
by the single pipeline that processes that file.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from .media_types import MetaType, meta_type_for, split_name


class MigrationStage(str, Enum):
    """Pipeline stage identifiers, in processing order."""

    DISCOVERED = "discovered"
    MATCHING = "matching"
    CORRECTING = "correcting"
    WRITING = "writing"
    RELOCATING = "relocating"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class SkipReason(str, Enum):
    """Why the corrector refused to produce a CorrectionSet."""

    CORRUPT_SIDECAR = "corrupt_sidecar"


class FailureReason(str, Enum):
    """Reason attached to a failed outcome."""

    CORRUPT_SIDECAR = "corrupt_sidecar"
    WRITE_TIMEOUT = "write_timeout"
    WRITE_REJECTED = "write_rejected"
    READ_FAILED = "read_failed"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class MediaEntry:
    """A media file discovered under the input tree.

    Attributes:
        path: Absolute path to the media file
        relative_path: Path relative to the input directory
    """
    path: Path
    relative_path: Path

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def stem(self) -> str:
        return split_name(self.name)[0]

    @property
    def extension(self) -> str:
        """Lowercase extension without the leading dot."""
        return split_name(self.name)[1].lower().lstrip('.')

    @property
    def meta_type(self) -> MetaType:
        return meta_type_for(self.extension)


@dataclass(frozen=True)
class GeoData:
    latitude: float
    longitude: float
    altitude: Optional[float] = None


@dataclass(frozen=True)
class SidecarMetadata:
    """Fields of interest from a Google Takeout JSON sidecar."""
    taken_time: Optional[datetime] = None
    title: Optional[str] = None
    description: Optional[str] = None
    geo: Optional[GeoData] = None


@dataclass(frozen=True)
class ExistingTags:
    """Metadata already embedded in a media file."""
    taken_time: Optional[datetime] = None
    title: Optional[str] = None
    description: Optional[str] = None
    geo: Optional[GeoData] = None


@dataclass(frozen=True)
class CorrectionSet:
    """Ordered tag writes plus an optional output file name.

    An empty ``tags`` tuple means the file is relocated without invoking the
    metadata tool; ``rename_to`` only changes the flat output name.
    """
    tags: Tuple[Tuple[str, str], ...] = ()
    rename_to: Optional[str] = None

    @property
    def needs_write(self) -> bool:
        return bool(self.tags)

    @property
    def is_empty(self) -> bool:
        return not self.tags and self.rename_to is None


@dataclass(frozen=True)
class MigrationOutcome:
    """Result for one media file, tagged by ``kind``.

    Success: ``final_path`` is the file in the output directory and
    ``applied_corrections`` what was written. Failure: ``final_path`` is the
    preserved copy in the error directory, ``stage`` and ``reason`` say what
    went wrong.
    """
    kind: OutcomeKind
    original_path: Path
    final_path: Optional[Path] = None
    applied_corrections: CorrectionSet = field(default_factory=CorrectionSet)
    stage: Optional[MigrationStage] = None
    reason: Optional[FailureReason] = None
    message: str = ""

    @classmethod
    def success(
        cls,
        original_path: Path,
        final_path: Path,
        applied_corrections: CorrectionSet,
    ) -> "MigrationOutcome":
        return cls(
            kind=OutcomeKind.SUCCESS,
            original_path=original_path,
            final_path=final_path,
            applied_corrections=applied_corrections,
        )

    @classmethod
    def failure(
        cls,
        original_path: Path,
        stage: MigrationStage,
        reason: FailureReason,
        message: str,
        final_path: Optional[Path] = None,
    ) -> "MigrationOutcome":
        return cls(
            kind=OutcomeKind.FAILURE,
            original_path=original_path,
            final_path=final_path,
            stage=stage,
            reason=reason,
            message=message,
        )

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def describe(self) -> str:
        """Human-readable one-liner for CLI output."""
        if self.is_success:
            return f"{self.original_path} -> {self.final_path}"
        return (
            f"[{self.stage.value}] {self.original_path}: "
            f"{self.reason.value}: {self.message}"
        )
