"""Tests for the command-line interface."""

import pytest
from rich.console import Console
from typer.testing import CliRunner

from geode_installer import __version__, cli, config
from geode_installer.cli import app
from geode_installer.registry import Installation, InstallationRegistry

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, tmp_path):
    """Point the CLI at throwaway directories on the Linux platform."""
    monkeypatch.setenv("GEODE_PLATFORM", "linux")
    monkeypatch.setenv("GEODE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("GEODE_SDK_DIR", str(tmp_path / "sdk"))
    monkeypatch.setattr(cli, "console", Console(width=200))
    monkeypatch.setattr(config, "_settings_instance", None)


@pytest.fixture
def recorded(platform, game_dir):
    """Registry on disk with one installation of the game."""
    registry = InstallationRegistry(platform)
    registry.load()
    installation = Installation(path=game_dir, exe="GeometryDash.exe")
    registry.add_installation(installation)
    assert registry.save().ok
    return installation


class TestBasics:
    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_list_empty(self):
        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert "No installations found" in result.output

    def test_list_recorded(self, recorded):
        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert "GeometryDash.exe" in result.output
        assert "Loader only" in result.output

    def test_info(self):
        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "Linux" in result.output
        assert "First run" in result.output


class TestCheck:
    def test_clean_directory(self, game_dir):
        result = runner.invoke(app, ["check", str(game_dir)])

        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_other_loaders(self, game_dir):
        (game_dir / "absoluteldr.dll").write_bytes(b"")
        (game_dir / "minhook.dll").write_bytes(b"")

        result = runner.invoke(app, ["check", str(game_dir / "GeometryDash.exe")])

        assert result.exit_code == 0
        assert "WARN" in result.output
        assert "Mega Hack v6" in result.output
        assert "another mod loader" in result.output


class TestInstall:
    def test_missing_executable(self, tmp_path):
        result = runner.invoke(app, ["install", str(tmp_path / "nope.exe")])

        assert result.exit_code == 1
        assert "Game executable not found" in result.output

    def test_blocked_by_other_loader(self, game_dir):
        (game_dir / "hackproldr.dll").write_bytes(b"")

        result = runner.invoke(app, ["install", str(game_dir / "GeometryDash.exe")])

        assert result.exit_code == 1
        assert "Mega Hack v7" in result.output
        assert "--force" in result.output


class TestUninstall:
    def test_unknown_installation(self, game_dir):
        result = runner.invoke(app, ["uninstall", str(game_dir)])

        assert result.exit_code == 1
        assert "No Geode installation recorded" in result.output

    def test_removes_loader_and_record(self, recorded, platform, game_dir):
        (game_dir / "Geode.dll").write_bytes(b"geode")
        (game_dir / "geode" / "mods").mkdir(parents=True)

        result = runner.invoke(app, ["uninstall", str(game_dir)])

        assert result.exit_code == 0
        assert not (game_dir / "Geode.dll").exists()
        assert not (game_dir / "geode").exists()

        registry = InstallationRegistry(platform)
        registry.load()
        assert registry.installations == []

    def test_relative_path_finds_recorded_installation(self, recorded, platform, game_dir, monkeypatch):
        monkeypatch.chdir(game_dir.parent)

        result = runner.invoke(app, ["uninstall", "Geometry Dash"])

        assert result.exit_code == 0
        registry = InstallationRegistry(platform)
        registry.load()
        assert registry.installations == []

    def test_uninstall_sdk_not_installed(self):
        result = runner.invoke(app, ["uninstall-sdk"])

        assert result.exit_code == 0
        assert "SDK is not installed" in result.output


class TestReset:
    def test_reset_confirmed(self, recorded, platform):
        result = runner.invoke(app, ["reset", "--yes"])

        assert result.exit_code == 0
        assert not platform.default_data_directory().exists()

    def test_reset_declined(self, recorded, platform):
        result = runner.invoke(app, ["reset"], input="n\n")

        assert result.exit_code == 1
        assert platform.default_data_directory().exists()
