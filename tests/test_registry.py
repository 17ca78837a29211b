"""Tests for the installation registry and its persistence."""

import json
from pathlib import Path

import pytest
from conftest import MemoryPointer

from geode_installer.errors import DirectoryCreateError, ParseError, RegistryWriteError
from geode_installer.registry import INSTALL_DATA_JSON, Installation, InstallationRegistry


@pytest.fixture
def registry(platform):
    reg = InstallationRegistry(platform)
    assert reg.load().ok
    return reg


def _write_state(platform, payload) -> Path:
    data_dir = platform.default_data_directory()
    data_dir.mkdir(parents=True, exist_ok=True)
    path = data_dir / INSTALL_DATA_JSON
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload))
    return path


class TestInstallation:
    """Identity of Installation records."""

    def test_equality_uses_path_only(self):
        a = Installation(path=Path("/games/gd"), exe="GeometryDash.exe")
        b = Installation(path=Path("/games/gd"), exe="Renamed.exe")

        assert a == b
        assert hash(a) == hash(b)

    def test_ordering_by_path(self):
        items = [
            Installation(path=Path("/b"), exe="x.exe"),
            Installation(path=Path("/a"), exe="y.exe"),
        ]
        assert [i.path for i in sorted(items)] == [Path("/a"), Path("/b")]

    def test_derived_paths(self):
        inst = Installation(path=Path("/games/gd"), exe="GeometryDash.exe")
        assert inst.exe_path == Path("/games/gd/GeometryDash.exe")
        assert inst.mods_dir == Path("/games/gd/geode/mods")


class TestRegistryMutation:
    def test_add_replaces_same_path(self, registry, tmp_path):
        registry.add_installation(Installation(path=tmp_path / "gd", exe="old.exe"))
        registry.add_installation(Installation(path=tmp_path / "gd", exe="new.exe"))

        assert len(registry.installations) == 1
        assert registry.installations[0].exe == "new.exe"

    def test_remove_and_get(self, registry, tmp_path):
        inst = Installation(path=tmp_path / "gd", exe="GeometryDash.exe")
        registry.add_installation(inst)

        assert registry.get_installation(tmp_path / "gd") == inst
        assert registry.remove_installation(inst)
        assert not registry.remove_installation(inst)
        assert registry.get_installation(tmp_path / "gd") is None

    def test_relative_paths_are_resolved(self, registry, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        registry.add_installation(Installation(path=Path("gd"), exe="GeometryDash.exe"))

        assert registry.installations[0].path == (tmp_path / "gd").resolve()
        assert registry.get_installation(tmp_path / "gd") is not None
        assert registry.get_installation(Path("gd")) is not None
        assert registry.remove_installation(Installation(path=Path("./gd"), exe="x.exe"))

    def test_sdk_directory(self, registry, platform, tmp_path):
        registry.set_sdk_directory(tmp_path / "custom-sdk")
        assert registry.sdk_installed
        assert registry.sdk_directory == tmp_path / "custom-sdk"

        registry.clear_sdk()
        assert not registry.sdk_installed
        assert registry.sdk_directory == platform.default_sdk_directory()


class TestRegistryLoad:
    def test_missing_file_is_fresh_install(self, platform):
        registry = InstallationRegistry(platform)
        result = registry.load()

        assert result.ok
        assert registry.installations == []
        assert not registry.sdk_installed
        assert registry.is_first_time()
        assert registry.data_directory == platform.default_data_directory()
        assert registry.sdk_directory == platform.default_sdk_directory()

    def test_malformed_file(self, platform):
        _write_state(platform, "{ this is not json")
        registry = InstallationRegistry(platform)

        result = registry.load()

        assert isinstance(result.error, ParseError)
        assert result.message.startswith("Unable to load installation info")
        assert registry.installations == []

    def test_record_missing_exe_is_rejected_whole(self, platform):
        _write_state(platform, {
            "installations": [
                {"path": "/games/one", "exe": "GeometryDash.exe"},
                {"path": "/games/two"},
            ]
        })
        registry = InstallationRegistry(platform)

        result = registry.load()

        assert isinstance(result.error, ParseError)
        assert registry.installations == []

    def test_unknown_fields_ignored(self, platform):
        _write_state(platform, {
            "sdk": None,
            "schema": 7,
            "installations": [{"path": "/games/gd", "exe": "GeometryDash.exe", "channel": "beta"}],
        })
        registry = InstallationRegistry(platform)

        assert registry.load().ok
        assert not registry.sdk_installed
        assert registry.installations == [Installation(path=Path("/games/gd"), exe="GeometryDash.exe")]
        assert not registry.is_first_time()

    def test_pointer_overrides_data_directory(self, platform, tmp_path):
        elsewhere = tmp_path / "elsewhere"
        registry = InstallationRegistry(platform, MemoryPointer(elsewhere))

        assert registry.load().ok
        assert registry.data_directory == elsewhere
        assert not registry.is_first_time()

    def test_load_resets_previous_state(self, registry, tmp_path):
        registry.add_installation(Installation(path=tmp_path / "gd", exe="a.exe"))

        assert registry.load().ok
        assert registry.installations == []


class TestRegistrySave:
    def test_round_trip(self, registry, platform, tmp_path):
        registry.set_sdk_directory(tmp_path / "sdk-here")
        registry.add_installation(Installation(path=tmp_path / "b", exe="GeometryDash.exe"))
        registry.add_installation(Installation(path=tmp_path / "a", exe="GD.exe"))
        assert registry.save().ok

        reloaded = InstallationRegistry(platform)
        assert reloaded.load().ok

        assert reloaded.sdk_installed
        assert reloaded.sdk_directory == tmp_path / "sdk-here"
        assert reloaded.installations == registry.installations
        assert [i.exe for i in reloaded.installations] == ["GD.exe", "GeometryDash.exe"]

    def test_unset_sdk_is_omitted(self, registry, platform, tmp_path):
        registry.add_installation(Installation(path=tmp_path / "gd", exe="GeometryDash.exe"))
        assert registry.save().ok

        text = registry.state_path.read_text()
        data = json.loads(text)
        assert "sdk" not in data
        assert data["installations"] == [{"path": str(tmp_path / "gd"), "exe": "GeometryDash.exe"}]
        assert '\n    "installations"' in text

        reloaded = InstallationRegistry(platform)
        assert reloaded.load().ok
        assert not reloaded.sdk_installed

    def test_save_creates_data_directory(self, registry):
        assert not registry.data_directory.exists()
        assert registry.save().ok
        assert registry.state_path.exists()

    def test_directory_create_error(self, registry, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        registry.data_directory = blocker / "data"

        result = registry.save()

        assert isinstance(result.error, DirectoryCreateError)

    def test_save_writes_pointer(self, platform):
        pointer = MemoryPointer()
        registry = InstallationRegistry(platform, pointer)
        registry.load()

        assert registry.save().ok
        assert pointer.value == registry.data_directory

    def test_pointer_failure_after_file_written(self, platform):
        registry = InstallationRegistry(platform, MemoryPointer(fail_write=True))
        registry.load()

        result = registry.save()

        assert isinstance(result.error, RegistryWriteError)
        assert registry.state_path.exists()


class TestRegistryDelete:
    def test_delete_removes_everything(self, platform):
        pointer = MemoryPointer()
        registry = InstallationRegistry(platform, pointer)
        registry.load()
        registry.save()

        assert registry.delete().ok
        assert not registry.data_directory.exists()
        assert pointer.value is None

        fresh = InstallationRegistry(platform, pointer)
        fresh.load()
        assert fresh.is_first_time()

    def test_delete_without_data(self, registry):
        assert registry.delete().ok
