"""ExifTool-backed metadata service.

Every call runs one ``exiftool`` child process. Calls are bounded in two
ways: a semaphore caps how many run at once, and each is killed when it
exceeds the configured timeout.

A call still waiting for a free slot is cancelled with the pipeline that
issued it. Once its child is started the call is shielded: when a run is
aborted the child keeps going until it exits or times out, so the file it
is rewriting is never left behind in an intermediate state.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import List, Sequence, Set

from ..errors import (
    ServiceClosedError,
    WriteRejectedError,
    WriteTimeoutError,
)
from ..models import CorrectionSet, ExistingTags, MediaEntry
from ..tool_checker import check_exiftool
from .service import MetadataService
from .tags import READ_TAGS, parse_existing_tags

logger = logging.getLogger(__name__)

# Extra time granted to in-flight calls on close, on top of the call timeout
CLOSE_GRACE_SECONDS = 5.0


def exiftool_temp_path(path: Path) -> Path:
    """Temporary file exiftool writes next to the file it is rewriting."""
    return path.with_name(f"{path.name}_exiftool_tmp")


def build_read_args(executable: str, media: MediaEntry) -> List[str]:
    """Command line that prints the tags of interest as JSON."""
    tags = [f"-{tag}" for tag in READ_TAGS[media.meta_type]]
    return [executable, '-json', '-n', *tags, str(media.path)]


def build_write_args(
    executable: str,
    media: MediaEntry,
    corrections: CorrectionSet,
    extra_args: Sequence[str] = (),
) -> List[str]:
    """Command line that writes ``corrections.tags`` in place."""
    assignments = [f"-{tag}={value}" for tag, value in corrections.tags]
    return [executable, '-overwrite_original', *extra_args, *assignments, str(media.path)]


class ExifToolService(MetadataService):
    """Metadata service running exiftool as a subprocess per call.

    Args:
        executable: Name or path of the exiftool executable
        timeout_ms: Upper bound for a single call, in milliseconds
        max_concurrent_calls: Maximum number of exiftool processes at once
        extra_args: Arguments passed to exiftool on every write
    """

    def __init__(
        self,
        executable: str = "exiftool",
        timeout_ms: int = 30000,
        max_concurrent_calls: int = 4,
        extra_args: Sequence[str] = (),
    ):
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if max_concurrent_calls < 1:
            raise ValueError("max_concurrent_calls must be at least 1")

        self.executable = executable
        self.timeout = timeout_ms / 1000.0
        self.max_concurrent_calls = max_concurrent_calls
        self.extra_args = list(extra_args)

        self._semaphore = asyncio.Semaphore(max_concurrent_calls)
        self._inflight: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Verify exiftool is runnable.

        Raises:
            ToolNotFoundError: If exiftool is missing
        """
        if self._closed:
            raise ServiceClosedError("exiftool service is closed")
        await asyncio.to_thread(check_exiftool, self.executable, self.timeout)

    async def read_tags(self, media: MediaEntry) -> ExistingTags:
        stdout = await self._call(build_read_args(self.executable, media), media.path)
        try:
            records = json.loads(stdout.decode('utf-8', errors='replace'))
        except json.JSONDecodeError as e:
            raise WriteRejectedError(
                f"exiftool returned invalid JSON: {e}", path=str(media.path)
            ) from e
        if not isinstance(records, list) or not records or not isinstance(records[0], dict):
            raise WriteRejectedError("exiftool returned no record", path=str(media.path))
        return parse_existing_tags(records[0], media.meta_type)

    async def write_tags(self, media: MediaEntry, corrections: CorrectionSet) -> None:
        if not corrections.needs_write:
            return
        args = build_write_args(self.executable, media, corrections, self.extra_args)
        await self._call(args, media.path)
        logger.debug(
            f"Tags written: {{'path': {str(media.path)!r}, 'tags': {len(corrections.tags)}}}"
        )

    async def _call(self, args: List[str], path: Path) -> bytes:
        """Run one exiftool call.

        Waiting for a free slot can be cancelled; once the child process is
        started the call is shielded from the caller's cancellation.
        """
        if self._closed:
            raise ServiceClosedError("exiftool service is closed", path=str(path))

        await self._semaphore.acquire()
        if self._closed:
            self._semaphore.release()
            raise ServiceClosedError("exiftool service is closed", path=str(path))

        task = asyncio.ensure_future(self._execute(args, path))
        self._inflight.add(task)
        task.add_done_callback(self._call_done)
        return await asyncio.shield(task)

    def _call_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        self._semaphore.release()
        # Mark the exception retrieved when the caller was cancelled
        if not task.cancelled():
            task.exception()

    async def _execute(self, args: List[str], path: Path) -> bytes:
        """Run exiftool in a slot already held by the caller."""
        logger.debug(f"Running exiftool: {{'args': {args[1:-1]!r}, 'path': {str(path)!r}}}")
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise WriteRejectedError(
                f"could not start exiftool: {e}", path=str(path)
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
        except asyncio.TimeoutError:
            await self._kill(process, path)
            logger.warning(
                f"exiftool timed out: {{'path': {str(path)!r}, 'timeout_seconds': {self.timeout}}}"
            )
            raise WriteTimeoutError(
                f"exiftool did not finish within {int(self.timeout * 1000)} ms",
                path=str(path),
            )
        except asyncio.CancelledError:
            await self._kill(process, path)
            raise

        if process.returncode != 0:
            message = stderr.decode('utf-8', errors='replace').strip()
            raise WriteRejectedError(
                f"exiftool exited with code {process.returncode}: {message}",
                path=str(path),
                returncode=process.returncode,
            )
        return stdout

    async def _kill(self, process: asyncio.subprocess.Process, path: Path) -> None:
        """Kill a child process and remove the temp file it may leave behind."""
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        temp_path = exiftool_temp_path(path)
        try:
            os.remove(temp_path)
            logger.debug(f"Removed exiftool temp file: {{'path': {str(temp_path)!r}}}")
        except FileNotFoundError:
            pass

    async def close(self) -> None:
        """Wait for in-flight calls, kill stragglers and reject later calls."""
        if self._closed:
            return
        self._closed = True

        pending: Set[asyncio.Task] = set(self._inflight)
        if pending:
            logger.info(f"Waiting for exiftool calls: {{'in_flight': {len(pending)}}}")
            _, pending = await asyncio.wait(pending, timeout=self.timeout + CLOSE_GRACE_SECONDS)
        if pending:
            logger.warning(f"Killing exiftool calls: {{'remaining': {len(pending)}}}")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        logger.debug("exiftool service closed")

