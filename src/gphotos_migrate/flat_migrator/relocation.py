"""Relocation of media files into a flat directory.

Destination names are reserved with an exclusive create, so concurrent
pipelines never pick the same name and existing files are never
overwritten. The reservation is then replaced by the moved file.
"""

import asyncio
import logging
import os
import shutil
from itertools import count
from pathlib import Path
from typing import Optional

from .errors import RelocationError
from .media_types import split_name

logger = logging.getLogger(__name__)


def candidate_names(name: str):
    """Yield ``stem.ext``, ``stem_1.ext``, ``stem_2.ext``, ...

    Examples:
        >>> names = candidate_names('IMG.jpg')
        >>> [next(names) for _ in range(3)]
        ['IMG.jpg', 'IMG_1.jpg', 'IMG_2.jpg']
    """
    stem, ext = split_name(name)
    yield name
    for i in count(1):
        yield f"{stem}_{i}{ext}"


def reserve_destination(directory: Path, name: str) -> Path:
    """
    Atomically claim the first free name in ``directory``.

    Creates an empty placeholder file with ``O_CREAT | O_EXCL``; the caller
    must replace it (see ``move_file``) or remove it.

    Args:
        directory: Target directory
        name: Preferred file name

    Returns:
        Path of the reserved destination

    Raises:
        OSError: If the directory is not writable
    """
    names = candidate_names(name)
    while True:
        path = directory / next(names)
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            continue
        os.close(fd)
        return path


def _release(path: Path) -> None:
    try:
        os.remove(path)
    except OSError as e:
        logger.warning(f"Could not remove reservation: {{'path': {str(path)!r}, 'error': {str(e)!r}}}")


def move_file(source: Path, directory: Path, name: Optional[str] = None) -> Path:
    """
    Move ``source`` into ``directory`` under a collision-free name.

    Args:
        source: File to move
        directory: Flat target directory
        name: Preferred name; defaults to the source file name

    Returns:
        Final path of the moved file

    Raises:
        RelocationError: If the move fails for any reason
    """
    try:
        destination = reserve_destination(directory, name or source.name)
    except OSError as e:
        raise RelocationError(
            f"Cannot create file in {directory}: {e}",
            source=str(source),
            directory=str(directory),
        ) from e

    try:
        shutil.move(os.fspath(source), os.fspath(destination))
    except OSError as e:
        _release(destination)
        raise RelocationError(
            f"Cannot move {source} to {destination}: {e}",
            source=str(source),
            destination=str(destination),
        ) from e

    logger.debug(f"Moved: {{'source': {str(source)!r}, 'destination': {str(destination)!r}}}")
    return destination


def copy_file(source: Path, directory: Path, name: str) -> Path:
    """
    Copy ``source`` into ``directory`` under a collision-free name.

    Raises:
        RelocationError: If the copy fails
    """
    try:
        destination = reserve_destination(directory, name)
    except OSError as e:
        raise RelocationError(
            f"Cannot create file in {directory}: {e}",
            source=str(source),
            directory=str(directory),
        ) from e

    try:
        shutil.copy2(os.fspath(source), os.fspath(destination))
    except OSError as e:
        _release(destination)
        raise RelocationError(
            f"Cannot copy {source} to {destination}: {e}",
            source=str(source),
            destination=str(destination),
        ) from e
    return destination


async def relocate(source: Path, directory: Path, name: Optional[str] = None) -> Path:
    """Async wrapper of ``move_file`` running the move in a worker thread.

    A cancelled caller still waits for the thread, so a file is never left
    half moved when a run is aborted.
    """
    move = asyncio.ensure_future(asyncio.to_thread(move_file, source, directory, name))
    try:
        return await asyncio.shield(move)
    except asyncio.CancelledError:
        await asyncio.gather(move, return_exceptions=True)
        raise


async def preserve_failed(
    source: Path,
    error_dir: Path,
    sidecar: Optional[Path] = None,
) -> Path:
    """
    Move a failed media file into the error directory, unmodified.

    The matched sidecar, if any, is copied next to it as ``<name>.json`` so
    the pair can be fixed by hand and migrated again. A sidecar that cannot
    be copied is logged, not fatal: the media file is already safe.

    Returns:
        Path of the preserved media file

    Raises:
        RelocationError: If the media file cannot be moved
    """
    destination = await relocate(source, error_dir)
    if sidecar is not None:
        try:
            await asyncio.to_thread(copy_file, sidecar, error_dir, f"{destination.name}.json")
        except RelocationError as e:
            logger.warning(f"Sidecar not preserved: {{'sidecar': {str(sidecar)!r}, 'error': {e.message!r}}}")
    return destination
