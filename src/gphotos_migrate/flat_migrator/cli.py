"""CLI command for flat migration of a Google Photos Takeout."""

import argparse
import asyncio
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError

from gphotos_migrate.common import ConfigLoader, LogContext, setup_logging

from .config import FlatMigratorConfig, MigrationConfig
from .engine import migrate_flat
from .errors import MigratorError

APP_NAME = "gphotos-flat-migrate"

logger = logging.getLogger(__package__ or __name__)


def is_empty_dir(path: Path) -> bool:
    with os.scandir(path) as entries:
        return not any(True for _ in entries)


def check_directories(config: MigrationConfig) -> List[str]:
    """
    Validate the directories of a run before touching anything.

    Returns:
        Error messages; empty when the run may start
    """
    errors = []
    if not config.error_dir:
        errors.append("No error directory given. Pass --error-dir.")
    for label, value in (
        ("google", config.input_dir),
        ("output", config.output_dir),
        ("error", config.error_dir),
    ):
        if value and not Path(value).is_dir():
            errors.append(f"The specified {label} directory does not exist: {value}")
    if errors:
        return errors

    if not config.force and not is_empty_dir(config.output_path):
        errors.append('The output directory is not empty. Pass "-f" to force the operation.')
    if not config.force and not is_empty_dir(config.error_path):
        errors.append('The error directory is not empty. Pass "-f" to force the operation.')
    if is_empty_dir(config.input_path):
        errors.append(f"Nothing to do, the source directory is empty: {config.input_dir}")
    return errors


async def run_migration(config: MigrationConfig) -> int:
    """Consume the outcome stream, report failures and print totals.

    Returns:
        Exit code (0 for a completed run, 1 for a fatal error)
    """
    succeeded = 0
    failed = 0
    exit_code = 0

    print("Started migration.")
    try:
        async for outcome in migrate_flat(config):
            if outcome.is_success:
                succeeded += 1
            else:
                failed += 1
                print(f"Error: {outcome.describe()}", file=sys.stderr)
    except MigratorError as e:
        logger.error(f"Migration aborted: {{'error': {e.message!r}, 'context': {e.context!r}}}")
        print(f"Fatal: {e.message}", file=sys.stderr)
        exit_code = 1

    print(f"Done! Processed {succeeded + failed} files.")
    print(f"Files migrated: {succeeded}")
    print(f"Files failed: {failed}")
    return exit_code


def split_passthrough(argv: Sequence[str]) -> tuple[List[str], List[str]]:
    """Split ``argv`` at ``--``; everything after it goes to exiftool."""
    argv = list(argv)
    if "--" in argv:
        idx = argv.index("--")
        return argv[:idx], argv[idx + 1:]
    return argv, []


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=(
            "Migrate a Google Photos Takeout into one flat directory, "
            "restoring metadata from the JSON sidecars."
        ),
        epilog="Arguments after -- are passed to exiftool on every write.",
    )
    parser.add_argument(
        "input_dir",
        type=Path,
        help='The path to your "Google Photos" directory'
    )
    parser.add_argument(
        "output_dir",
        type=Path,
        help="The path to your flat output directory"
    )
    parser.add_argument(
        "--error-dir",
        type=Path,
        help="Directory receiving files that failed to migrate"
    )
    parser.add_argument(
        "-f", "--force",
        action="store_true",
        help="Proceed even if the output or error directory is not empty"
    )
    parser.add_argument(
        "--timeout",
        type=int,
        metavar="MS",
        help="Timeout for a single exiftool call in milliseconds (overrides config)"
    )
    parser.add_argument(
        "--skip-corrections",
        action="store_true",
        help="Move files without correcting their metadata"
    )
    parser.add_argument(
        "--rename-empty",
        action="store_true",
        help="Give untitled files such as '.jpg' a name"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log diagnostics such as metadata conflicts"
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of files processed concurrently (overrides config)"
    )
    parser.add_argument(
        "--max-concurrent-calls",
        type=int,
        help="Maximum number of exiftool processes at once (overrides config)"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (defaults.toml)"
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the flat migration command."""
    own_args, exiftool_args = split_passthrough(sys.argv[1:] if argv is None else argv)
    args = build_parser().parse_args(own_args)

    loader = ConfigLoader(app_name=APP_NAME, config_class=FlatMigratorConfig)
    try:
        config = loader.load(defaults_path=args.config)

        overrides = {
            "input_dir": str(args.input_dir),
            "output_dir": str(args.output_dir),
        }
        if args.error_dir is not None:
            overrides["error_dir"] = str(args.error_dir)
        if args.force:
            overrides["force"] = True
        if args.timeout is not None:
            overrides["timeout_ms"] = args.timeout
        if args.skip_corrections:
            overrides["skip_corrections"] = True
        if args.rename_empty:
            overrides["rename_empty"] = True
        if args.verbose:
            overrides["verbose"] = True
        if args.workers is not None:
            overrides["workers"] = args.workers
        if args.max_concurrent_calls is not None:
            overrides["max_concurrent_calls"] = args.max_concurrent_calls
        if exiftool_args:
            overrides["exiftool_args"] = exiftool_args

        migration = MigrationConfig(**{**config.migration.model_dump(), **overrides})
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 1

    level = "DEBUG" if migration.verbose else config.logging.level
    setup_logging(
        level=level,
        format=config.logging.format,
        log_file=Path(config.logging.file) if config.logging.file else None,
    )

    errors = check_directories(migration)
    if errors:
        for error in errors:
            print(error, file=sys.stderr)
        return 1

    with LogContext(logger, run_id=str(uuid.uuid4())):
        logger.info(
            f"Configuration: {{'input_dir': {str(migration.input_path)!r}, "
            f"'output_dir': {str(migration.output_path)!r}, 'error_dir': {str(migration.error_path)!r}, "
            f"'workers': {migration.workers}, 'max_concurrent_calls': {migration.max_concurrent_calls}, "
            f"'timeout_ms': {migration.timeout_ms}, 'skip_corrections': {migration.skip_corrections}}}"
        )
        try:
            return asyncio.run(run_migration(migration))
        except KeyboardInterrupt:
            print("Interrupted.", file=sys.stderr)
            return 130


if __name__ == "__main__":
    sys.exit(main())
