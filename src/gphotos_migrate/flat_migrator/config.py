"""Configuration models for the flat migrator."""

from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gphotos_migrate.common import LoggingConfig, auto_detect_io_workers, auto_detect_workers

from .corrector import CorrectionOptions


class MigrationConfig(BaseModel):
    """Migration run configuration."""

    model_config = ConfigDict(extra='forbid')

    input_dir: str = Field(
        default="",
        description="Path to the 'Google Photos' directory of an extracted Takeout"
    )
    output_dir: str = Field(
        default="",
        description="Flat directory receiving migrated files (must exist)"
    )
    error_dir: str = Field(
        default="",
        description="Flat directory receiving files that failed (must exist)"
    )
    force: bool = Field(
        default=False,
        description="Allow non-empty output and error directories"
    )
    timeout_ms: int = Field(
        default=30000,
        gt=0,
        description="Upper bound for a single exiftool call, in milliseconds"
    )
    skip_corrections: bool = Field(
        default=False,
        description="Relocate files without correcting their metadata"
    )
    rename_empty: bool = Field(
        default=False,
        description="Give untitled files (e.g. '.jpg') a name derived from their title or album"
    )
    verbose: bool = Field(
        default=False,
        description="Log non-fatal diagnostics such as metadata conflicts"
    )
    exiftool_path: str = Field(
        default="exiftool",
        description="Name or path of the exiftool executable"
    )
    exiftool_args: List[str] = Field(
        default_factory=list,
        description="Extra arguments passed to exiftool on every write"
    )
    workers: int = Field(
        default_factory=auto_detect_io_workers,
        ge=1,
        description="Number of concurrent file pipelines (default: 2 x CPU cores)"
    )
    max_concurrent_calls: int = Field(
        default_factory=auto_detect_workers,
        ge=1,
        description="Maximum number of exiftool processes at once (default: CPU cores)"
    )
    timestamp_tolerance_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Embedded timestamps this close to the sidecar's are left alone"
    )
    copy_sidecar_on_error: bool = Field(
        default=True,
        description="Copy the matched sidecar next to files moved to the error directory"
    )

    @field_validator('exiftool_args', mode='before')
    @classmethod
    def split_exiftool_args(cls, v):
        """Accept a single whitespace-separated string."""
        if isinstance(v, str):
            return v.split()
        return v

    @property
    def input_path(self) -> Path:
        return Path(self.input_dir).resolve()

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir).resolve()

    @property
    def error_path(self) -> Path:
        return Path(self.error_dir).resolve()

    def correction_options(self) -> CorrectionOptions:
        return CorrectionOptions(
            skip_corrections=self.skip_corrections,
            rename_empty=self.rename_empty,
            timestamp_tolerance_seconds=self.timestamp_tolerance_seconds,
        )


class FlatMigratorConfig(BaseModel):
    """Root configuration for the flat migrator."""

    model_config = ConfigDict(extra='forbid')

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
