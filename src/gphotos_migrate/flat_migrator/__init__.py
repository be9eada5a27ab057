"""Flat migration of Google Photos Takeout exports."""

from .config import FlatMigratorConfig, MigrationConfig
from .engine import migrate_flat
from .models import (
    CorrectionSet,
    FailureReason,
    MediaEntry,
    MigrationOutcome,
    MigrationStage,
    OutcomeKind,
)
from .sidecar_matcher import match_sidecar

__all__ = [
    'FlatMigratorConfig',
    'MigrationConfig',
    'migrate_flat',
    'match_sidecar',
    'CorrectionSet',
    'FailureReason',
    'MediaEntry',
    'MigrationOutcome',
    'MigrationStage',
    'OutcomeKind',
]
