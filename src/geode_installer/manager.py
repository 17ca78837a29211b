"""Install, update and uninstall Geode for a game installation."""

from __future__ import annotations

import asyncio
import enum
import logging
import shutil
from pathlib import Path

from geode_installer.archive import ArchiveExtractor
from geode_installer.errors import (
    CopyError,
    DeleteError,
    DirectoryCreateError,
    NotFound,
    RegistryCreateError,
    RegistryWriteError,
    Result,
)
from geode_installer.platforms import LOADER_DIR_NAME, OtherMods, PlatformPaths
from geode_installer.registry import Installation, InstallationRegistry
from geode_installer.releases import (
    CancelToken,
    DownloadCallbacks,
    ReleaseFetcher,
    is_geode_package,
)

logger = logging.getLogger(__name__)


class InstallState(enum.Enum):
    """How much of Geode a game directory has."""

    NOT_INSTALLED = "not_installed"
    LOADER_INSTALLED = "loader_installed"
    LOADER_AND_API_INSTALLED = "loader_and_api_installed"


class InstallationManager:
    """Applies Geode to game directories and keeps the registry in step."""

    def __init__(
        self,
        registry: InstallationRegistry,
        platform: PlatformPaths,
        fetcher: ReleaseFetcher | None = None,
        extractor: ArchiveExtractor | None = None,
    ):
        self.registry = registry
        self.platform = platform
        self.fetcher = fetcher or ReleaseFetcher()
        self.extractor = extractor or ArchiveExtractor()

    @property
    def installations(self) -> list[Installation]:
        return self.registry.installations

    def find_default_game_path(self) -> Path | None:
        return self.platform.find_default_game_path()

    def state_of(self, path: Path) -> InstallState:
        """Work out which components are installed in the game directory path."""
        installation = self.registry.get_installation(path)
        if installation is None:
            return InstallState.NOT_INSTALLED
        mods_dir = installation.mods_dir
        if mods_dir.is_dir() and any(is_geode_package(p.name) for p in mods_dir.iterdir()):
            return InstallState.LOADER_AND_API_INSTALLED
        return InstallState.LOADER_INSTALLED

    # --- Single-step transitions ---

    def install_loader_for(self, exe_path: Path, archive: Path) -> Result[Installation]:
        """Unpack the loader archive next to the game executable and record it.

        Args:
            exe_path: Full path to the game executable
            archive: Downloaded loader zip

        Returns:
            Result carrying the new Installation
        """
        exe_path = Path(exe_path)
        installation = Installation(path=exe_path.parent.resolve(), exe=exe_path.name)

        extracted = self.extractor.extract(archive, installation.path)
        if not extracted.ok:
            error = extracted.error
            return Result.failure(type(error)(f"Loader unzip error: {error}"))

        previous = self.registry.get_installation(installation.path)
        self.registry.add_installation(installation)
        logger.info("Installed loader into %s", installation.path)

        persisted = self._persist()
        if not persisted.ok:
            # Keep memory in step with installer.json
            if previous is None:
                self.registry.remove_installation(installation)
            else:
                self.registry.add_installation(previous)
            return Result.failure(persisted.error)
        return Result.success(installation)

    def install_api_for(self, installation: Installation, archive: Path, filename: str) -> Result[Path]:
        """Copy the API package into the installation's geode/mods directory."""
        target_dir = installation.mods_dir
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Result.failure(DirectoryCreateError(
                f"Unable to create Geode mods directory under {target_dir}: {e}"
            ))

        target = target_dir / filename
        try:
            shutil.copyfile(archive, target)
        except OSError as e:
            return Result.failure(CopyError(f"Unable to copy Geode API: {e}"))

        logger.info("Installed %s into %s", filename, target_dir)
        return Result.success(target)

    def uninstall_from(self, installation: Installation) -> Result[None]:
        """Remove the loader payload from the game directory.

        Files that are already gone are skipped. The registry record is left
        alone; use uninstall() for a complete removal.
        """
        targets = [installation.path / LOADER_DIR_NAME]
        targets += [installation.path / name for name in self.platform.loader_files]

        for target in targets:
            if not target.exists() and not target.is_symlink():
                continue
            try:
                if target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                else:
                    target.unlink()
            except OSError as e:
                return Result.failure(DeleteError(f"Unable to delete {target}: {e}"))
            logger.debug("Removed %s", target)

        return Result.success()

    def delete_save_data_from(self, installation: Installation) -> Result[None]:
        """Remove Geode's save data for the installation."""
        save_dir = self.platform.save_data_directory(installation.path, installation.exe) / LOADER_DIR_NAME
        if not save_dir.is_dir():
            return Result.failure(NotFound(f"Save data directory not found! ({save_dir})"))
        try:
            shutil.rmtree(save_dir)
        except OSError as e:
            return Result.failure(DeleteError(f"Unable to delete save data at {save_dir}: {e}"))
        return Result.success()

    def does_directory_contain_other_mods(self, path: Path) -> OtherMods:
        """Report which known third-party loaders have files in path."""
        path = Path(path)
        flags = OtherMods.NONE
        for marker, flag in self.platform.mod_markers.items():
            if (path / marker).exists():
                flags |= flag
        return flags

    def uninstall_sdk(self) -> Result[None]:
        """Delete the SDK directory tree and forget about it."""
        sdk_dir = self.registry.sdk_directory
        if sdk_dir.exists():
            try:
                shutil.rmtree(sdk_dir)
            except OSError as e:
                return Result.failure(DeleteError(f"Unable to delete Geode directory {sdk_dir}: {e}"))
        self.registry.clear_sdk()
        return self._persist()

    # --- Full flows ---

    async def install(
        self,
        exe_path: Path,
        callbacks: DownloadCallbacks | None = None,
        with_api: bool = True,
        cancel: CancelToken | None = None,
    ) -> Result[Installation]:
        """Download and install the latest loader (and API) for exe_path."""
        loader = await self.fetcher.download_loader(self.platform, callbacks, cancel)
        if not loader.ok:
            return Result.failure(loader.error)

        try:
            installed = await asyncio.to_thread(self.install_loader_for, Path(exe_path), loader.value.path)
        finally:
            loader.value.path.unlink(missing_ok=True)
        if not installed.ok or not with_api:
            return installed

        api = await self.fetcher.download_api(callbacks, cancel)
        if not api.ok:
            return Result.failure(api.error)
        try:
            copied = self.install_api_for(installed.value, api.value.path, api.value.name)
        finally:
            api.value.path.unlink(missing_ok=True)
        if not copied.ok:
            return Result.failure(copied.error)

        return installed

    async def update(
        self,
        installation: Installation,
        callbacks: DownloadCallbacks | None = None,
        cancel: CancelToken | None = None,
    ) -> Result[Installation]:
        """Reinstall the latest release over an existing installation."""
        with_api = self.state_of(installation.path) is not InstallState.LOADER_INSTALLED
        return await self.install(installation.exe_path, callbacks, with_api=with_api, cancel=cancel)

    async def update_all(
        self,
        callbacks: DownloadCallbacks | None = None,
        cancel: CancelToken | None = None,
    ) -> dict[Path, Result[Installation]]:
        """Update every known installation, one after another."""
        results = {}
        for installation in self.installations:
            results[installation.path] = await self.update(installation, callbacks, cancel)
        return results

    def uninstall(self, installation: Installation, delete_save_data: bool = False) -> Result[None]:
        """Remove Geode from the installation and drop its record."""
        removed = self.uninstall_from(installation)
        if not removed.ok:
            return removed

        if delete_save_data:
            deleted = self.delete_save_data_from(installation)
            if not deleted.ok and not isinstance(deleted.error, NotFound):
                return deleted

        self.registry.remove_installation(installation)
        return self._persist()

    def _persist(self) -> Result[None]:
        """Save the registry. A failed registry pointer only warrants a warning."""
        saved = self.registry.save()
        if isinstance(saved.error, (RegistryCreateError, RegistryWriteError)):
            logger.warning("%s", saved.error)
            return Result.success()
        return saved
