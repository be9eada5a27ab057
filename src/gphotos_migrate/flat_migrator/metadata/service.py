"""Interface of the metadata-editing service used by the engine."""

from abc import ABC, abstractmethod

from ..models import CorrectionSet, ExistingTags, MediaEntry


class MetadataService(ABC):
    """A session with an external metadata tool.

    One session is shared by every pipeline of a run. It is an async context
    manager: ``start()`` on entry, ``close()`` on exit.
    """

    async def __aenter__(self) -> "MetadataService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Acquire the session. The default does nothing."""

    @abstractmethod
    async def read_tags(self, media: MediaEntry) -> ExistingTags:
        """Read the metadata already embedded in ``media``."""

    @abstractmethod
    async def write_tags(self, media: MediaEntry, corrections: CorrectionSet) -> None:
        """Write ``corrections.tags`` into ``media``, all or nothing."""

    @abstractmethod
    async def close(self) -> None:
        """Release the session. Idempotent; later calls must be rejected."""
