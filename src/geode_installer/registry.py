"""Durable record of known game installations and the SDK location.

The registry is an ordinary object created once at startup and handed to
whoever needs it. Call load() before anything else, save() after every
mutation and delete() on explicit teardown.
"""

import logging
import shutil
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from geode_installer.errors import (
    DeleteError,
    DirectoryCreateError,
    ParseError,
    Result,
    StateWriteError,
)
from geode_installer.platforms import DataDirectoryPointer, PlatformPaths

logger = logging.getLogger(__name__)

INSTALL_DATA_JSON = "installer.json"


@dataclass(frozen=True, order=True)
class Installation:
    """The loader applied to one copy of the game.

    Identity is the directory holding the executable; the executable name
    does not take part in equality or ordering.
    """

    path: Path
    exe: str = field(compare=False)

    @property
    def exe_path(self) -> Path:
        return self.path / self.exe

    @property
    def mods_dir(self) -> Path:
        return self.path / "geode" / "mods"


class InstallationRecord(BaseModel):
    """One entry of the "installations" array in installer.json."""

    path: str
    exe: str

    model_config = {"extra": "ignore"}


class StateFile(BaseModel):
    """Shape of installer.json. Unknown keys are ignored on read."""

    sdk: str | None = None
    installations: list[InstallationRecord] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class InstallationRegistry:
    """Holds the installation set and persists it under the data directory."""

    def __init__(self, platform: PlatformPaths, pointer: DataDirectoryPointer | None = None):
        self.platform = platform
        self.pointer = pointer or DataDirectoryPointer()
        self._lock = threading.RLock()
        self._installations: dict[Path, Installation] = {}
        self.sdk_directory: Path = platform.default_sdk_directory()
        self.sdk_installed = False
        self.data_directory: Path = platform.default_data_directory()
        self.data_loaded = False

    @property
    def state_path(self) -> Path:
        return self.data_directory / INSTALL_DATA_JSON

    @property
    def installations(self) -> list[Installation]:
        """Installations ordered by path."""
        with self._lock:
            return sorted(self._installations.values())

    def is_first_time(self) -> bool:
        return not self.data_loaded

    # --- Mutation ---

    def add_installation(self, installation: Installation) -> None:
        """Insert installation, replacing any record for the same directory."""
        key = _key(installation.path)
        if key != installation.path:
            installation = replace(installation, path=key)
        with self._lock:
            self._installations[key] = installation

    def remove_installation(self, installation: Installation) -> bool:
        with self._lock:
            return self._installations.pop(_key(installation.path), None) is not None

    def get_installation(self, path: Path) -> Installation | None:
        with self._lock:
            return self._installations.get(_key(path))

    def set_sdk_directory(self, path: Path) -> None:
        with self._lock:
            self.sdk_directory = Path(path)
            self.sdk_installed = True

    def clear_sdk(self) -> None:
        with self._lock:
            self.sdk_installed = False
            self.sdk_directory = self.platform.default_sdk_directory()

    # --- Persistence ---

    def load(self) -> Result[None]:
        """Reset to platform defaults, then read the pointer and installer.json.

        A missing state file means a fresh install and is not an error. A
        malformed one is reported and leaves the installation set empty.
        """
        with self._lock:
            self.data_directory = self.platform.default_data_directory()
            self.sdk_directory = self.platform.default_sdk_directory()
            self.sdk_installed = False
            self.data_loaded = False
            self._installations = {}

            pointed = self.pointer.read()
            if pointed is not None:
                logger.debug("Data directory pointer found: %s", pointed)
                self.data_directory = pointed
                self.data_loaded = True

            state_path = self.state_path
            if not state_path.exists():
                logger.info("No installation data at %s", state_path)
                return Result.success()

            try:
                raw = state_path.read_bytes()
            except OSError as e:
                return Result.failure(ParseError(f"Unable to load installation info: {e}"))
            try:
                state = StateFile.model_validate_json(raw)
            except ValidationError as e:
                return Result.failure(ParseError(f"Unable to load installation info: {e}"))

            self.data_loaded = True
            if state.sdk is not None:
                self.sdk_directory = Path(state.sdk)
                self.sdk_installed = True
            for record in state.installations:
                self.add_installation(Installation(path=Path(record.path), exe=record.exe))

            logger.info("Loaded %d installation(s) from %s", len(self._installations), state_path)
            return Result.success()

    def save(self) -> Result[None]:
        """Write installer.json and refresh the data-directory pointer."""
        with self._lock:
            try:
                self.data_directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                return Result.failure(DirectoryCreateError(
                    f"Unable to create GeodeSDK directory at {self.data_directory}: {e}"
                ))

            state = StateFile(
                sdk=str(self.sdk_directory) if self.sdk_installed else None,
                installations=[
                    InstallationRecord(path=str(i.path), exe=i.exe) for i in self.installations
                ],
            )
            state_path = self.state_path
            try:
                state_path.write_text(state.model_dump_json(indent=4, exclude_none=True), encoding="utf-8")
            except OSError as e:
                return Result.failure(StateWriteError(f"Can't save file at {state_path}: {e}"))

            return self.pointer.write(self.data_directory)

    def delete(self) -> Result[None]:
        """Remove the pointer and the whole data directory."""
        with self._lock:
            removed = self.pointer.delete()
            if not removed.ok:
                return removed

            if self.data_directory.exists():
                try:
                    shutil.rmtree(self.data_directory)
                except OSError as e:
                    return Result.failure(DeleteError(
                        f"Unable to delete Geode directory {self.data_directory}: {e}"
                    ))
            self.data_loaded = False
            return Result.success()


def _key(path: Path) -> Path:
    # Records are keyed by absolute path
    return Path(path).resolve()
