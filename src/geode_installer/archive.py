"""Unpack downloaded release archives into a target directory."""

import logging
import os
import stat
import zipfile
import zlib
from pathlib import Path, PurePosixPath

from geode_installer.errors import (
    ArchiveOpenError,
    ArchiveReadError,
    ArchiveWriteError,
    InstallerError,
    Result,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

_READ_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, OSError, RuntimeError, NotImplementedError)


class ArchiveExtractor:
    """Streams zip entries to disk in archive order.

    Extraction is not transactional: on the first failing entry it stops and
    leaves whatever was already written in place.
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        self.chunk_size = chunk_size

    def extract(self, archive_path: Path, destination: Path) -> Result[None]:
        """Extract every entry of archive_path under destination.

        Args:
            archive_path: Path to a zip archive
            destination: Directory the entry tree is recreated in

        Returns:
            Result with no value on success, or the first error hit
        """
        try:
            zf = zipfile.ZipFile(archive_path, "r")
        except (zipfile.BadZipFile, OSError) as e:
            return Result.failure(ArchiveOpenError(f'Unable to open zip "{archive_path}": {e}'))

        try:
            with zf:
                entries = zf.infolist()
                logger.info("Extracting %d entries from %s to %s", len(entries), archive_path, destination)
                for info in entries:
                    self._extract_entry(zf, info, destination)
        except InstallerError as e:
            logger.warning("Extraction of %s stopped: %s", archive_path, e)
            return Result.failure(e)

        return Result.success()

    def _extract_entry(self, zf: zipfile.ZipFile, info: zipfile.ZipInfo, destination: Path) -> None:
        target = self._resolve(destination, info.filename)
        mode = (info.external_attr >> 16) & 0o7777

        if info.is_dir():
            self._make_dirs(target)
            if mode:
                self._chmod(target, mode | stat.S_IRWXU)
            return

        self._make_dirs(target.parent)

        try:
            src = zf.open(info, "r")
        except _READ_ERRORS as e:
            raise ArchiveReadError(f'Unable to read the zip entry "{info.filename}": {e}') from e

        with src:
            try:
                dst = open(target, "wb")
            except OSError as e:
                raise ArchiveWriteError(f'Unable to create file "{target}": {e}') from e
            with dst:
                while True:
                    try:
                        chunk = src.read(self.chunk_size)
                    except _READ_ERRORS as e:
                        raise ArchiveReadError(
                            f'Unable to read the zip entry "{info.filename}": {e}'
                        ) from e
                    if not chunk:
                        break
                    try:
                        dst.write(chunk)
                    except OSError as e:
                        raise ArchiveWriteError(f'Unable to write file "{target}": {e}') from e

        if mode:
            # Owner keeps write access so a later extraction can overwrite
            self._chmod(target, mode | stat.S_IWUSR)

    @staticmethod
    def _resolve(destination: Path, name: str) -> Path:
        """Map an entry name onto destination, refusing names that escape it."""
        rel = PurePosixPath(name.replace("\\", "/"))
        parts = rel.parts
        if rel.is_absolute() or ".." in parts or (parts and parts[0].endswith(":")):
            raise ArchiveReadError(f'Refusing to extract zip entry "{name}" outside of {destination}')
        return destination.joinpath(*parts)

    @staticmethod
    def _make_dirs(path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveWriteError(f'Unable to create directory "{path}": {e}') from e

    @staticmethod
    def _chmod(path: Path, mode: int) -> None:
        # Windows only honours the read-only bit
        if os.name == "nt":
            return
        try:
            os.chmod(path, mode)
        except OSError as e:
            logger.debug("Could not apply mode %o to %s: %s", mode, path, e)
