"""Shared fixtures for the installer test suite."""

import zipfile
from pathlib import Path

import pytest

from geode_installer.errors import RegistryWriteError, Result
from geode_installer.platforms import DataDirectoryPointer, LinuxPaths


def write_zip(path: Path, members: dict[str, bytes | None]) -> Path:
    """Write a zip at path. A member whose data is None becomes a directory entry."""
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in members.items():
            if data is None:
                info = zipfile.ZipInfo(name.rstrip("/") + "/")
                info.external_attr = (0o40755 << 16) | 0x10
                zf.writestr(info, b"")
            else:
                zf.writestr(name, data)
    return path


class MemoryPointer(DataDirectoryPointer):
    """Data-directory pointer kept in memory, standing in for the Windows registry."""

    def __init__(self, value: Path | None = None, fail_write: bool = False):
        self.value = value
        self.fail_write = fail_write

    def read(self) -> Path | None:
        return self.value

    def write(self, data_dir: Path) -> Result[None]:
        if self.fail_write:
            return Result.failure(RegistryWriteError("Unable to save Registry Key"))
        self.value = data_dir
        return Result.success()

    def delete(self) -> Result[None]:
        self.value = None
        return Result.success()


@pytest.fixture
def make_zip():
    return write_zip


@pytest.fixture
def platform(tmp_path):
    """Linux platform with SDK and data directories inside tmp_path."""
    return LinuxPaths(sdk_dir=tmp_path / "sdk", data_dir=tmp_path / "data")


@pytest.fixture
def game_dir(tmp_path):
    """A Steam-style game directory containing the executable."""
    directory = tmp_path / "steamapps" / "common" / "Geometry Dash"
    directory.mkdir(parents=True)
    (directory / "GeometryDash.exe").write_bytes(b"MZ")
    return directory
