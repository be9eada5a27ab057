"""Tests for the migration engine."""

import asyncio
import json
from contextlib import aclosing
from datetime import datetime, timezone
from pathlib import Path

import pytest

from gphotos_migrate.flat_migrator import engine
from gphotos_migrate.flat_migrator.config import MigrationConfig
from gphotos_migrate.flat_migrator.engine import migrate_flat
from gphotos_migrate.flat_migrator.errors import (
    RelocationError,
    ToolNotFoundError,
    WriteRejectedError,
    WriteTimeoutError,
)
from gphotos_migrate.flat_migrator.metadata.service import MetadataService
from gphotos_migrate.flat_migrator.models import (
    ExistingTags,
    FailureReason,
    MigrationStage,
    OutcomeKind,
)
from gphotos_migrate.flat_migrator.relocation import relocate

TAKEN_EPOCH = "1577880000"  # 2020-01-01 12:00:00 UTC


class FakeMetadataService(MetadataService):
    """In-memory metadata service recording every call."""

    def __init__(self, read_errors=None, write_errors=None, existing=None):
        self.read_errors = read_errors or {}
        self.existing = existing or ExistingTags()
        self.write_errors = write_errors or {}
        self.reads = []
        self.writes = []
        self.closed = False

    async def read_tags(self, media):
        if media.name in self.read_errors:
            raise self.read_errors[media.name]
        self.reads.append(media.name)
        return self.existing

    async def write_tags(self, media, corrections):
        if media.name in self.write_errors:
            raise self.write_errors[media.name]
        self.writes.append((media.name, corrections))

    async def close(self):
        self.closed = True


class SlowMetadataService(FakeMetadataService):
    """Fake service whose calls take a while, tracking how many overlap."""

    def __init__(self, delay=0.05):
        super().__init__()
        self.delay = delay
        self.active = 0
        self.peak = 0

    async def _busy(self):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1

    async def read_tags(self, media):
        await self._busy()
        return await super().read_tags(media)

    async def write_tags(self, media, corrections):
        await self._busy()
        await super().write_tags(media, corrections)


@pytest.fixture
def dirs(tmp_path):
    """Input, output and error directories."""
    root = tmp_path.resolve()
    paths = {name: root / name for name in ("input", "output", "errors")}
    for path in paths.values():
        path.mkdir()
    return paths


def make_config(dirs, **overrides) -> MigrationConfig:
    values = dict(
        input_dir=str(dirs["input"]),
        output_dir=str(dirs["output"]),
        error_dir=str(dirs["errors"]),
        workers=4,
        max_concurrent_calls=2,
    )
    values.update(overrides)
    return MigrationConfig(**values)


def add_media(root: Path, relative: str, content: bytes = b"media", sidecar=None) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if sidecar is not None:
        raw = sidecar if isinstance(sidecar, bytes) else json.dumps(sidecar).encode()
        path.with_name(path.name + ".json").write_bytes(raw)
    return path


def media_files(directory: Path):
    return sorted(p.name for p in directory.rglob("*") if p.is_file() and p.suffix != ".json")


async def collect(generator):
    return [outcome async for outcome in generator]


class TestMigrateFlat:
    """Test end-to-end runs with a fake metadata service."""

    @pytest.mark.asyncio
    async def test_success_with_sidecar(self, dirs):
        """Test that a file is corrected and moved into the flat output."""
        add_media(dirs["input"], "Album/IMG.jpg", sidecar={
            "title": "IMG.jpg",
            "photoTakenTime": {"timestamp": TAKEN_EPOCH},
        })
        service = FakeMetadataService()

        outcomes = await collect(migrate_flat(make_config(dirs), service))

        assert len(outcomes) == 1
        outcome = outcomes[0]
        assert outcome.kind is OutcomeKind.SUCCESS
        assert outcome.final_path == dirs["output"] / "IMG.jpg"
        assert outcome.final_path.read_bytes() == b"media"
        assert dict(outcome.applied_corrections.tags)["DateTimeOriginal"] == "2020:01:01 12:00:00"
        assert service.reads == ["IMG.jpg"]
        assert [name for name, _ in service.writes] == ["IMG.jpg"]
        assert service.closed
        assert media_files(dirs["input"]) == []

    @pytest.mark.asyncio
    async def test_without_sidecar_no_tool_calls(self, dirs):
        """Test that a file without a sidecar is moved without reading or writing."""
        add_media(dirs["input"], "Album/IMG.jpg")
        service = FakeMetadataService()

        outcomes = await collect(migrate_flat(make_config(dirs), service))

        assert outcomes[0].is_success
        assert outcomes[0].applied_corrections.is_empty
        assert service.reads == []
        assert service.writes == []

    @pytest.mark.asyncio
    async def test_already_corrected_is_idempotent(self, dirs):
        """Test that a file whose embedded time matches is moved without a write."""
        add_media(dirs["input"], "Album/photo.jpg", sidecar={"photoTakenTime": {"timestamp": TAKEN_EPOCH}})
        service = FakeMetadataService(
            existing=ExistingTags(taken_time=datetime(2020, 1, 1, 12, 0, tzinfo=timezone.utc)),
        )

        outcome = (await collect(migrate_flat(make_config(dirs), service)))[0]

        assert outcome.is_success
        assert outcome.applied_corrections.is_empty
        assert service.reads == ["photo.jpg"]
        assert service.writes == []
        assert outcome.final_path.read_bytes() == b"media"

    @pytest.mark.asyncio
    async def test_corrupt_sidecar(self, dirs):
        """Test that a corrupt sidecar sends the file, unmodified, to the error directory."""
        add_media(dirs["input"], "Album/IMG.jpg", content=b"\xff\xd8original", sidecar=b"{broken")
        service = FakeMetadataService()

        outcomes = await collect(migrate_flat(make_config(dirs), service))

        outcome = outcomes[0]
        assert outcome.kind is OutcomeKind.FAILURE
        assert outcome.reason is FailureReason.CORRUPT_SIDECAR
        assert outcome.stage is MigrationStage.CORRECTING
        assert outcome.final_path == dirs["errors"] / "IMG.jpg"
        assert outcome.final_path.read_bytes() == b"\xff\xd8original"
        assert (dirs["errors"] / "IMG.jpg.json").read_bytes() == b"{broken"
        assert service.writes == []
        assert media_files(dirs["output"]) == []

    @pytest.mark.asyncio
    async def test_write_timeout(self, dirs):
        """Test that a timed out write is reported with its stage."""
        add_media(dirs["input"], "Album/IMG.jpg", sidecar={"photoTakenTime": {"timestamp": TAKEN_EPOCH}})
        service = FakeMetadataService(write_errors={
            "IMG.jpg": WriteTimeoutError("exiftool did not finish within 100 ms"),
        })

        outcome = (await collect(migrate_flat(make_config(dirs), service)))[0]

        assert outcome.reason is FailureReason.WRITE_TIMEOUT
        assert outcome.stage is MigrationStage.WRITING
        assert "100 ms" in outcome.message
        assert outcome.final_path.read_bytes() == b"media"

    @pytest.mark.asyncio
    async def test_read_rejected(self, dirs):
        """Test that a failed tag read fails the file while correcting."""
        add_media(dirs["input"], "Album/IMG.jpg", sidecar={"title": "x"})
        service = FakeMetadataService(read_errors={
            "IMG.jpg": WriteRejectedError("exiftool exited with code 1"),
        })

        outcome = (await collect(migrate_flat(make_config(dirs), service)))[0]

        assert outcome.reason is FailureReason.WRITE_REJECTED
        assert outcome.stage is MigrationStage.CORRECTING

    @pytest.mark.asyncio
    async def test_unexpected_error(self, dirs):
        """Test that an unexpected exception fails only its file."""
        add_media(dirs["input"], "A/bad.jpg", sidecar={"title": "x"})
        add_media(dirs["input"], "A/good.jpg", sidecar={"title": "y"})
        service = FakeMetadataService(write_errors={"bad.jpg": RuntimeError("boom")})

        outcomes = await collect(migrate_flat(make_config(dirs), service))

        by_name = {o.original_path.name: o for o in outcomes}
        assert by_name["bad.jpg"].reason is FailureReason.UNEXPECTED
        assert "boom" in by_name["bad.jpg"].message
        assert by_name["good.jpg"].is_success

    @pytest.mark.asyncio
    async def test_skip_corrections(self, dirs):
        """Test that skipping corrections never touches the metadata tool."""
        add_media(dirs["input"], "Album/IMG.jpg", sidecar={"photoTakenTime": {"timestamp": TAKEN_EPOCH}})
        service = FakeMetadataService()

        outcomes = await collect(migrate_flat(make_config(dirs, skip_corrections=True), service))

        assert outcomes[0].is_success
        assert service.reads == [] and service.writes == []
        assert service.closed

    @pytest.mark.asyncio
    async def test_skip_corrections_without_service(self, dirs):
        """Test that no exiftool is needed when corrections are skipped."""
        add_media(dirs["input"], "Album/IMG.jpg")
        config = make_config(dirs, skip_corrections=True, exiftool_path="definitely-not-exiftool-xyz")

        outcomes = await collect(migrate_flat(config))

        assert outcomes[0].is_success

    @pytest.mark.asyncio
    async def test_missing_exiftool_is_fatal(self, dirs):
        """Test that a run needing exiftool fails before moving anything."""
        add_media(dirs["input"], "Album/IMG.jpg")
        config = make_config(dirs, exiftool_path="definitely-not-exiftool-xyz")

        with pytest.raises(ToolNotFoundError):
            await collect(migrate_flat(config))
        assert media_files(dirs["input"]) == ["IMG.jpg"]

    @pytest.mark.asyncio
    async def test_collisions_are_injective(self, dirs):
        """Test that equal names from different albums never overwrite each other."""
        for i in range(3):
            add_media(dirs["input"], f"Album {i}/IMG.jpg", content=str(i).encode())
        service = FakeMetadataService()

        outcomes = await collect(migrate_flat(make_config(dirs), service))

        finals = {o.final_path.name for o in outcomes}
        assert finals == {"IMG.jpg", "IMG_1.jpg", "IMG_2.jpg"}
        contents = sorted((dirs["output"] / name).read_bytes() for name in finals)
        assert contents == [b"0", b"1", b"2"]

    @pytest.mark.asyncio
    async def test_one_outcome_per_file(self, dirs):
        """Test that every discovered file ends in exactly one outcome."""
        expected = set()
        for album in range(5):
            for i in range(5):
                sidecar = {"title": f"{i}"} if i % 2 else (b"[]" if i == 4 else None)
                path = add_media(dirs["input"], f"Album {album}/IMG_{i}.jpg", sidecar=sidecar)
                expected.add(path)
        service = FakeMetadataService()

        outcomes = await collect(migrate_flat(make_config(dirs, workers=3), service))

        assert len(outcomes) == 25
        assert {o.original_path for o in outcomes} == expected
        assert len(media_files(dirs["output"])) + len(media_files(dirs["errors"])) == 25
        assert sum(1 for o in outcomes if not o.is_success) == 5

    @pytest.mark.asyncio
    async def test_rename_empty(self, dirs):
        """Test that untitled files are renamed after their album."""
        add_media(dirs["input"], "Summer Trip/.jpg")
        config = make_config(dirs, rename_empty=True)

        outcomes = await collect(migrate_flat(config, FakeMetadataService()))

        assert outcomes[0].final_path == dirs["output"] / "Summer Trip.jpg"

    @pytest.mark.asyncio
    async def test_rename_long_title(self, dirs):
        """Test that an overlong sidecar title still gives a usable output name."""
        add_media(dirs["input"], "A/.jpg", sidecar={"title": "x" * 300})
        add_media(dirs["input"], "A/ok.jpg")
        config = make_config(dirs, rename_empty=True)

        outcomes = await collect(migrate_flat(config, FakeMetadataService()))

        assert all(o.is_success for o in outcomes)
        assert media_files(dirs["output"]) == sorted(["ok.jpg", "x" * 200 + ".jpg"])

    @pytest.mark.asyncio
    async def test_metadata_calls_respect_limit(self, dirs):
        """Test that a supplied service never sees more calls at once than allowed."""
        for i in range(8):
            add_media(dirs["input"], f"Album/IMG_{i}.jpg", sidecar={"photoTakenTime": {"timestamp": TAKEN_EPOCH}})
        service = SlowMetadataService()

        outcomes = await collect(migrate_flat(make_config(dirs, workers=8, max_concurrent_calls=1), service))

        assert all(o.is_success for o in outcomes)
        assert len(service.writes) == 8
        assert service.peak == 1

    @pytest.mark.asyncio
    async def test_empty_input(self, dirs):
        """Test that a tree without media yields nothing and closes the service."""
        (dirs["input"] / "notes.txt").write_text("x")
        service = FakeMetadataService()

        assert await collect(migrate_flat(make_config(dirs), service)) == []
        assert service.closed

    @pytest.mark.asyncio
    async def test_caller_keeps_service_open(self, dirs):
        """Test that close_service=False leaves a supplied session open."""
        add_media(dirs["input"], "Album/IMG.jpg")
        service = FakeMetadataService()

        await collect(migrate_flat(make_config(dirs), service, close_service=False))

        assert not service.closed


class TestFatalErrors:
    """Test run-level failures."""

    @pytest.mark.asyncio
    async def test_relocation_failure_aborts(self, dirs, monkeypatch):
        """Test that a failed move stops the run and propagates."""
        for name in ("a.jpg", "bad.jpg", "c.jpg"):
            add_media(dirs["input"], f"Album/{name}")

        async def failing_relocate(source, directory, name=None):
            if source.name == "bad.jpg":
                raise RelocationError(f"Cannot move {source}", source=str(source))
            return await relocate(source, directory, name)

        monkeypatch.setattr(engine, "relocate", failing_relocate)
        service = FakeMetadataService()
        seen = []

        with pytest.raises(RelocationError):
            async for outcome in migrate_flat(make_config(dirs, workers=1), service):
                seen.append(outcome)

        assert [o.original_path.name for o in seen] == ["a.jpg"]
        assert service.closed
        assert media_files(dirs["input"]) == ["bad.jpg", "c.jpg"]

    @pytest.mark.asyncio
    async def test_consumer_stops_early(self, dirs):
        """Test that abandoning the stream stops workers and closes the service."""
        for i in range(10):
            add_media(dirs["input"], f"Album/IMG_{i}.jpg")
        service = FakeMetadataService()

        async with aclosing(migrate_flat(make_config(dirs, workers=2), service)) as outcomes:
            async for _ in outcomes:
                break

        assert service.closed
        total = (
            len(media_files(dirs["input"]))
            + len(media_files(dirs["output"]))
            + len(media_files(dirs["errors"]))
        )
        assert total == 10
        assert media_files(dirs["errors"]) == []
