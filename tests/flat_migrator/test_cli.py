"""Tests for the flat migration command line."""

import pytest

from gphotos_migrate.common.config import ConfigLoader
from gphotos_migrate.flat_migrator import cli
from gphotos_migrate.flat_migrator.config import MigrationConfig


@pytest.fixture
def dirs(tmp_path):
    root = tmp_path.resolve()
    paths = {name: root / name for name in ("google", "output", "errors")}
    for path in paths.values():
        path.mkdir()
    return paths


@pytest.fixture
def isolated(monkeypatch, tmp_path):
    """Keep the command away from real config files and root logging."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(ConfigLoader, "_load_system_config", lambda self: None)
    monkeypatch.setattr(ConfigLoader, "_load_user_config", lambda self: None)
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)


def config_for(dirs, **overrides) -> MigrationConfig:
    kwargs = {
        "input_dir": str(dirs["google"]),
        "output_dir": str(dirs["output"]),
        "error_dir": str(dirs["errors"]),
    }
    kwargs.update(overrides)
    return MigrationConfig(**kwargs)


class TestSplitPassthrough:
    """Test split_passthrough function."""

    def test_without_separator(self):
        """Test that everything is ours without --."""
        assert cli.split_passthrough(["in", "out"]) == (["in", "out"], [])

    def test_with_separator(self):
        """Test that arguments after -- go to exiftool."""
        own, extra = cli.split_passthrough(["in", "out", "-f", "--", "-m", "-P"])
        assert own == ["in", "out", "-f"]
        assert extra == ["-m", "-P"]


class TestCheckDirectories:
    """Test check_directories function."""

    def test_ready(self, dirs):
        """Test that valid directories pass."""
        (dirs["google"] / "IMG.jpg").write_bytes(b"x")
        assert cli.check_directories(config_for(dirs)) == []

    def test_missing_error_dir(self, dirs):
        """Test that the error directory is required."""
        (dirs["google"] / "IMG.jpg").write_bytes(b"x")
        errors = cli.check_directories(config_for(dirs, error_dir=""))
        assert errors == ["No error directory given. Pass --error-dir."]

    def test_nonexistent(self, dirs, tmp_path):
        """Test that nonexistent directories are reported."""
        missing = tmp_path / "missing"
        errors = cli.check_directories(config_for(dirs, output_dir=str(missing)))
        assert errors == [f"The specified output directory does not exist: {missing}"]

    def test_non_empty_output(self, dirs):
        """Test that a non-empty output directory needs -f."""
        (dirs["google"] / "IMG.jpg").write_bytes(b"x")
        (dirs["output"] / "old.jpg").write_bytes(b"x")
        assert cli.check_directories(config_for(dirs)) == [
            'The output directory is not empty. Pass "-f" to force the operation.'
        ]
        assert cli.check_directories(config_for(dirs, force=True)) == []

    def test_empty_input(self, dirs):
        """Test that an empty source directory is refused."""
        errors = cli.check_directories(config_for(dirs))
        assert errors == [f"Nothing to do, the source directory is empty: {dirs['google']}"]


class TestMain:
    """Test the main entry point."""

    def test_migrates_without_corrections(self, dirs, isolated, capsys):
        """Test a complete run with --skip-corrections."""
        album = dirs["google"] / "Album"
        album.mkdir()
        (album / "IMG.jpg").write_bytes(b"x")

        code = cli.main([
            str(dirs["google"]), str(dirs["output"]),
            "--error-dir", str(dirs["errors"]), "--skip-corrections",
        ])

        out = capsys.readouterr().out
        assert code == 0
        assert "Started migration." in out
        assert "Done! Processed 1 files." in out
        assert "Files migrated: 1" in out
        assert (dirs["output"] / "IMG.jpg").exists()

    def test_guard_failure(self, dirs, isolated, capsys):
        """Test that guard errors are printed and nothing runs."""
        code = cli.main([str(dirs["google"]), str(dirs["output"]), "--error-dir", str(dirs["errors"])])

        assert code == 1
        assert "Nothing to do" in capsys.readouterr().err

    def test_invalid_option(self, dirs, isolated, capsys):
        """Test that invalid values are reported as configuration errors."""
        code = cli.main([
            str(dirs["google"]), str(dirs["output"]),
            "--error-dir", str(dirs["errors"]), "--timeout", "0",
        ])

        assert code == 1
        assert "Invalid configuration" in capsys.readouterr().err

    def test_missing_exiftool(self, dirs, isolated, capsys, monkeypatch):
        """Test that a missing exiftool aborts with exit code 1."""
        (dirs["google"] / "IMG.jpg").write_bytes(b"x")
        monkeypatch.setenv("GPHOTOS_FLAT_MIGRATE_MIGRATION__EXIFTOOL_PATH", "definitely-not-exiftool-xyz")

        code = cli.main([str(dirs["google"]), str(dirs["output"]), "--error-dir", str(dirs["errors"])])

        assert code == 1
        assert "Fatal: Tool 'definitely-not-exiftool-xyz' is not available." in capsys.readouterr().err
        assert (dirs["google"] / "IMG.jpg").exists()
