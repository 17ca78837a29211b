"""Per-platform capabilities: default paths, loader layout and the data-directory pointer.

Each supported OS gets one PlatformPaths subclass. The installer core only
talks to the base-class interface, so adding a platform never touches the
manager or the registry.
"""

import enum
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

from geode_installer.config import PlatformName, Settings
from geode_installer.errors import (
    DeleteError,
    RegistryCreateError,
    RegistryWriteError,
    Result,
)

logger = logging.getLogger(__name__)

GAME_FOLDER = "Geometry Dash"
GAME_STEAM_APP_ID = "322170"
LOADER_DIR_NAME = "geode"

REGKEY_GEODE = r"Software\GeodeSDK"
REGVAL_INSTALLDIR = "InstallInfo"
REGKEY_STEAM = r"Software\WOW6432Node\Valve\Steam"


class OtherMods(enum.Flag):
    """Known third-party mod loaders that conflict with Geode."""

    NONE = 0
    MHV6 = enum.auto()
    MHV7 = enum.auto()
    GDHM = enum.auto()
    SOME = enum.auto()


# Marker file -> loader it belongs to
WINDOWS_MOD_MARKERS: Mapping[str, OtherMods] = MappingProxyType({
    "absoluteldr.dll": OtherMods.MHV6,
    "hackproldr.dll": OtherMods.MHV7,
    "ToastedMarshmellow.dll": OtherMods.GDHM,
    "Geode.dll": OtherMods.SOME,
    "quickldr.dll": OtherMods.SOME,
    "GDDLLLoader.dll": OtherMods.SOME,
    "ModLdr.dll": OtherMods.SOME,
    "minhook.dll": OtherMods.SOME,
    "XInput9_1_0.dll": OtherMods.SOME,
})

MACOS_MOD_MARKERS: Mapping[str, OtherMods] = MappingProxyType({
    "Geode.dylib": OtherMods.SOME,
    "GeodeBootstrapper.dylib": OtherMods.SOME,
    "quickldr.dylib": OtherMods.SOME,
})


class PlatformPaths(ABC):
    """Filesystem knowledge for one target platform."""

    name: str = ""
    asset_identifier: str = ""
    loader_files: tuple[str, ...] = ()
    mod_markers: Mapping[str, OtherMods] = MappingProxyType({})

    def __init__(self, sdk_dir: Path | None = None, data_dir: Path | None = None):
        self._sdk_override = sdk_dir
        self._data_override = data_dir

    def default_sdk_directory(self) -> Path:
        if self._sdk_override is not None:
            return self._sdk_override
        return self._platform_sdk_directory()

    def default_data_directory(self) -> Path:
        if self._data_override is not None:
            return self._data_override
        return self._platform_data_directory()

    @abstractmethod
    def _platform_sdk_directory(self) -> Path: ...

    @abstractmethod
    def _platform_data_directory(self) -> Path: ...

    @abstractmethod
    def save_data_directory(self, game_dir: Path, exe_name: str) -> Path:
        """Directory the game writes its save files to for this installation."""

    def steam_roots(self) -> list[Path]:
        return []

    @abstractmethod
    def game_executable_in(self, steam_root: Path) -> Path: ...

    def find_default_game_path(self) -> Path | None:
        """Look for the game executable in the default Steam library."""
        for root in self.steam_roots():
            candidate = self.game_executable_in(root)
            if candidate.is_file():
                return candidate
        return None

    def loader_asset_selector(self, name: str) -> bool:
        return self.asset_identifier in name

    def __repr__(self):
        return f"{type(self).__name__}()"


class WindowsPaths(PlatformPaths):
    name = "Windows"
    asset_identifier = "win"
    loader_files = ("XInput9_1_0.dll", "Geode.dll")
    mod_markers = WINDOWS_MOD_MARKERS

    def _local_app_data(self) -> Path:
        local = os.environ.get("LOCALAPPDATA")
        if local:
            return Path(local)
        return Path.home() / "AppData" / "Local"

    def _platform_sdk_directory(self) -> Path:
        return Path(os.environ.get("ProgramFiles", r"C:\Program Files")) / "GeodeSDK"

    def _platform_data_directory(self) -> Path:
        return self._local_app_data() / "GeodeSDK"

    def save_data_directory(self, game_dir: Path, exe_name: str) -> Path:
        return self._local_app_data() / Path(exe_name).stem

    def steam_roots(self) -> list[Path]:
        roots = []
        try:
            import winreg

            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, REGKEY_STEAM) as key:
                value, _ = winreg.QueryValueEx(key, "InstallPath")
                roots.append(Path(str(value).replace("\\\\", "\\")))
        except (ImportError, OSError) as e:
            logger.debug("Steam install path not in registry: %s", e)
        roots.append(Path(os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)")) / "Steam")
        return roots

    def game_executable_in(self, steam_root: Path) -> Path:
        return steam_root / "steamapps" / "common" / GAME_FOLDER / "GeometryDash.exe"


class MacOSPaths(PlatformPaths):
    name = "MacOS"
    asset_identifier = "mac"
    loader_files = ("Geode.dylib", "GeodeBootstrapper.dylib")
    mod_markers = MACOS_MOD_MARKERS

    def _application_support(self) -> Path:
        return Path.home() / "Library" / "Application Support"

    def _platform_sdk_directory(self) -> Path:
        return self._application_support() / "GeodeSDK"

    def _platform_data_directory(self) -> Path:
        return self._platform_sdk_directory()

    def save_data_directory(self, game_dir: Path, exe_name: str) -> Path:
        return self._application_support() / exe_name.replace(" ", "")

    def steam_roots(self) -> list[Path]:
        return [self._application_support() / "Steam"]

    def game_executable_in(self, steam_root: Path) -> Path:
        return (
            steam_root / "steamapps" / "common" / GAME_FOLDER
            / "Geometry Dash.app" / "Contents" / "MacOS" / "Geometry Dash"
        )


class LinuxPaths(PlatformPaths):
    """Linux runs the Windows build of the game under Proton."""

    name = "Linux"
    asset_identifier = "win"
    loader_files = WindowsPaths.loader_files
    mod_markers = WINDOWS_MOD_MARKERS

    @staticmethod
    def _xdg(var: str, fallback: str) -> Path:
        value = os.environ.get(var)
        if value:
            return Path(value)
        return Path.home() / fallback

    def _platform_sdk_directory(self) -> Path:
        return self._xdg("XDG_DATA_HOME", ".local/share") / "GeodeSDK"

    def _platform_data_directory(self) -> Path:
        return self._xdg("XDG_CONFIG_HOME", ".config") / "GeodeSDK"

    def save_data_directory(self, game_dir: Path, exe_name: str) -> Path:
        # The Proton prefix lives in the same Steam library as the game
        steamapps = next((p for p in game_dir.parents if p.name == "steamapps"), None)
        if steamapps is None:
            steamapps = self.steam_roots()[0] / "steamapps"
        return (
            steamapps / "compatdata" / GAME_STEAM_APP_ID / "pfx" / "drive_c" / "users"
            / "steamuser" / "AppData" / "Local" / Path(exe_name).stem
        )

    def steam_roots(self) -> list[Path]:
        home = Path.home()
        return [
            self._xdg("XDG_DATA_HOME", ".local/share") / "Steam",
            home / ".steam" / "steam",
            home / ".var" / "app" / "com.valvesoftware.Steam" / ".local" / "share" / "Steam",
        ]

    def game_executable_in(self, steam_root: Path) -> Path:
        return steam_root / "steamapps" / "common" / GAME_FOLDER / "GeometryDash.exe"


_PLATFORMS: dict[str, type[PlatformPaths]] = {
    "windows": WindowsPaths,
    "macos": MacOSPaths,
    "linux": LinuxPaths,
}


def get_platform(settings: Settings) -> PlatformPaths:
    """Build the PlatformPaths for the configured platform."""
    return _PLATFORMS[settings.platform](sdk_dir=settings.sdk_dir, data_dir=settings.data_dir)


# --- Secondary data-directory pointer ---


class DataDirectoryPointer:
    """A platform store that remembers where the data directory lives.

    The base implementation is a no-op for platforms without such a store.
    """

    def read(self) -> Path | None:
        return None

    def write(self, data_dir: Path) -> Result[None]:
        return Result.success()

    def delete(self) -> Result[None]:
        return Result.success()


class WindowsRegistryPointer(DataDirectoryPointer):
    """Stores the data directory under HKEY_LOCAL_MACHINE."""

    def __init__(self, key: str = REGKEY_GEODE, value_name: str = REGVAL_INSTALLDIR):
        self.key = key
        self.value_name = value_name

    def read(self) -> Path | None:
        import winreg

        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, self.key) as key:
                value, _ = winreg.QueryValueEx(key, self.value_name)
        except OSError:
            return None
        return Path(value) if value else None

    def write(self, data_dir: Path) -> Result[None]:
        import winreg

        try:
            key = winreg.CreateKey(winreg.HKEY_LOCAL_MACHINE, self.key)
        except OSError as e:
            return Result.failure(RegistryCreateError(
                f"Unable to create Registry Key - the installer won't be able to uninstall Geode! ({e})"
            ))
        try:
            with key:
                winreg.SetValueEx(key, self.value_name, 0, winreg.REG_SZ, str(data_dir))
        except OSError as e:
            return Result.failure(RegistryWriteError(
                f"Unable to save Registry Key - the installer won't be able to uninstall Geode! ({e})"
            ))
        return Result.success()

    def delete(self) -> Result[None]:
        import winreg

        try:
            winreg.DeleteKey(winreg.HKEY_LOCAL_MACHINE, self.key)
        except FileNotFoundError:
            pass
        except OSError as e:
            return Result.failure(DeleteError(f"Unable to delete registry key: {e}"))
        return Result.success()


def get_pointer(platform: PlatformName) -> DataDirectoryPointer:
    if platform == "windows":
        return WindowsRegistryPointer()
    return DataDirectoryPointer()
