"""Migration engine: discovers media files and runs one pipeline per file.

Each pipeline goes Matching -> Correcting -> Writing (only when there is
something to write) -> Relocating and ends in exactly one outcome. A bounded
pool of worker tasks pulls files from a work queue and pushes outcomes to a
result queue, which ``migrate_flat`` exposes as an async generator.

File-level problems become ``Failure`` outcomes and the file is moved,
unmodified, to the error directory. A failed move is fatal: the remaining
pipelines are cancelled, outcomes already produced are still yielded and
the error propagates to the consumer.
"""

import asyncio
import logging
from contextlib import aclosing
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union

from gphotos_migrate.common import GPMigrateError, normalize_path

from .config import MigrationConfig
from .corrector import compute_corrections
from .discovery import DiscoveryResult, discover_media
from .errors import CorruptSidecarError, classify_error
from .metadata.exiftool_service import ExifToolService
from .metadata.service import MetadataService
from .metadata.sidecar import parse_sidecar, read_sidecar
from .models import (
    CorrectionSet,
    ExistingTags,
    MediaEntry,
    MigrationOutcome,
    MigrationStage,
    SkipReason,
)
from .progress import ProgressTracker
from .relocation import preserve_failed, relocate

logger = logging.getLogger(__name__)

_Result = Union[MigrationOutcome, BaseException]


class _Pipeline:
    """Per-file processing shared by all worker tasks of a run.

    Holds only read-only state; everything mutable lives in the coroutine
    frames of a single file's pipeline.
    """

    def __init__(
        self,
        config: MigrationConfig,
        discovery: DiscoveryResult,
        service: Optional[MetadataService],
    ):
        self.config = config
        self.options = config.correction_options()
        self.discovery = discovery
        self.service = service
        self.output_dir = config.output_path
        self.error_dir = config.error_path
        # Caps metadata calls whatever service is plugged in
        self.call_slots = asyncio.Semaphore(config.max_concurrent_calls)

    def match(self, entry: MediaEntry) -> Optional[Path]:
        name = self.discovery.index_for(entry).match(entry.name)
        return entry.path.parent / name if name is not None else None

    async def correct(self, entry: MediaEntry, sidecar_path: Optional[Path]) -> CorrectionSet:
        """Read the sidecar and the embedded tags, then decide on corrections.

        Raises:
            CorruptSidecarError: If the sidecar cannot be parsed
            OSError: If the sidecar cannot be read
            MetadataServiceError: If the embedded tags cannot be read
        """
        if self.options.skip_corrections:
            return CorrectionSet()

        sidecar = None
        if sidecar_path is not None:
            parsed = parse_sidecar(await read_sidecar(sidecar_path))
            if parsed is SkipReason.CORRUPT_SIDECAR:
                raise CorruptSidecarError(
                    f"Corrupt sidecar {sidecar_path.name}", sidecar=str(sidecar_path)
                )
            sidecar = parsed

        # Without a sidecar there is nothing to compare the file against
        existing = ExistingTags()
        if sidecar is not None:
            async with self.call_slots:
                existing = await self.service.read_tags(entry)

        return compute_corrections(entry, sidecar, existing, self.options)

    async def run(self, entry: MediaEntry) -> MigrationOutcome:
        """Process one file to its terminal state.

        Raises:
            RelocationError: If the file cannot be moved anywhere
        """
        stage = MigrationStage.MATCHING
        sidecar_path = None
        try:
            sidecar_path = self.match(entry)

            stage = MigrationStage.CORRECTING
            corrections = await self.correct(entry, sidecar_path)

            if corrections.needs_write:
                stage = MigrationStage.WRITING
                async with self.call_slots:
                    await self.service.write_tags(entry, corrections)
        except Exception as e:
            return await self.fail(entry, stage, e, sidecar_path)

        final_path = await relocate(entry.path, self.output_dir, corrections.rename_to)
        logger.debug(
            f"Migrated: {{'source': {normalize_path(entry.relative_path)!r}, 'destination': {final_path.name!r}, "
            f"'tags': {len(corrections.tags)}}}"
        )
        return MigrationOutcome.success(entry.path, final_path, corrections)

    async def fail(
        self,
        entry: MediaEntry,
        stage: MigrationStage,
        error: Exception,
        sidecar_path: Optional[Path],
    ) -> MigrationOutcome:
        reason = classify_error(error)
        message = error.message if isinstance(error, GPMigrateError) else f"{type(error).__name__}: {error}"

        if isinstance(error, GPMigrateError):
            logger.warning(
                f"Migration failed: {{'path': {normalize_path(entry.relative_path)!r}, 'stage': {stage.value!r}, "
                f"'reason': {reason.value!r}, 'error': {message!r}}}"
            )
        else:
            logger.error(
                f"Migration failed: {{'path': {normalize_path(entry.relative_path)!r}, 'stage': {stage.value!r}, "
                f"'reason': {reason.value!r}, 'error': {message!r}}}",
                exc_info=error,
            )

        keep_sidecar = sidecar_path if self.config.copy_sidecar_on_error else None
        final_path = await preserve_failed(entry.path, self.error_dir, keep_sidecar)
        return MigrationOutcome.failure(
            entry.path, stage, reason, message, final_path=final_path
        )


async def _worker(
    worker_id: int,
    pipeline: _Pipeline,
    work_queue: asyncio.Queue,
    results_queue: asyncio.Queue,
) -> None:
    """Pull entries until the work queue is empty.

    Anything escaping a pipeline is fatal; it is handed to the consumer
    through the results queue and the worker stops.
    """
    logger.debug(f"Worker started: {{'worker': {worker_id}}}")
    while True:
        try:
            entry = work_queue.get_nowait()
        except asyncio.QueueEmpty:
            break

        try:
            outcome = await pipeline.run(entry)
        except Exception as e:
            await results_queue.put(e)
            return
        await results_queue.put(outcome)
    logger.debug(f"Worker finished: {{'worker': {worker_id}}}")


async def _stop_workers(workers: List[asyncio.Task]) -> None:
    for task in workers:
        task.cancel()
    await asyncio.gather(*workers, return_exceptions=True)


async def run_pipelines(
    config: MigrationConfig,
    discovery: DiscoveryResult,
    service: Optional[MetadataService],
) -> AsyncIterator[MigrationOutcome]:
    """Run the pipelines of all discovered files and yield outcomes as they complete.

    Raises:
        RelocationError: If a file could not be moved (after yielding the
            outcomes already produced)
    """
    entries = discovery.entries
    pipeline = _Pipeline(config, discovery, service)
    progress = ProgressTracker(total_files=len(entries))

    work_queue: asyncio.Queue = asyncio.Queue()
    for entry in entries:
        work_queue.put_nowait(entry)
    results_queue: asyncio.Queue = asyncio.Queue()

    worker_count = max(1, min(config.workers, len(entries)))
    logger.info(f"Starting pipelines: {{'files': {len(entries)}, 'workers': {worker_count}}}")
    workers = [
        asyncio.create_task(_worker(i, pipeline, work_queue, results_queue))
        for i in range(worker_count)
    ]

    try:
        remaining = len(entries)
        while remaining:
            result: _Result = await results_queue.get()
            if isinstance(result, BaseException):
                logger.error(f"Aborting migration: {{'error': {str(result)!r}}}")
                await _stop_workers(workers)
                while not results_queue.empty():
                    pending = results_queue.get_nowait()
                    if isinstance(pending, MigrationOutcome):
                        progress.record(pending.is_success)
                        yield pending
                raise result

            remaining -= 1
            progress.record(result.is_success)
            yield result
    finally:
        await _stop_workers(workers)

    progress.log_final_summary()


async def migrate_flat(
    config: MigrationConfig,
    service: Optional[MetadataService] = None,
    close_service: bool = True,
) -> AsyncIterator[MigrationOutcome]:
    """
    Migrate a Takeout tree into a flat directory.

    Lazily yields one MigrationOutcome per discovered media file, in
    completion order. The generator finishes after the last file and after
    the metadata service session has been released.

    Args:
        config: Migration configuration
        service: Metadata service to use; an ExifToolService is created
            from ``config`` when omitted and corrections are enabled
        close_service: Close a caller-supplied service when done

    Raises:
        ToolNotFoundError: If exiftool is required but missing
        RelocationError: If a file could not be moved; fatal for the run
    """
    discovery = await asyncio.to_thread(discover_media, config.input_path)
    if not discovery.entries:
        if service is not None and close_service:
            await service.close()
        return

    owns_service = False
    if service is None and not config.skip_corrections:
        service = ExifToolService(
            executable=config.exiftool_path,
            timeout_ms=config.timeout_ms,
            max_concurrent_calls=config.max_concurrent_calls,
            extra_args=config.exiftool_args,
        )
        owns_service = True

    try:
        if owns_service:
            await service.start()
        async with aclosing(run_pipelines(config, discovery, service)) as outcomes:
            async for outcome in outcomes:
                yield outcome
    finally:
        if service is not None and (owns_service or close_service):
            await service.close()
