"""Error taxonomy and the Result type returned by core operations.

Core operations never let exceptions escape across component boundaries.
Internally a step may raise one of the errors below; the public entry point
catches it and hands it back inside a Result.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class InstallerError(Exception):
    """Base class for every failure the installer reports."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NetworkError(InstallerError):
    """Request creation failed, non-200 status, unauthorized, cancelled or failed."""


class ParseError(InstallerError):
    """Malformed JSON in a release feed or the state file."""


class NoMatchingAsset(InstallerError):
    """The release has no asset for this platform."""


class ArchiveOpenError(InstallerError):
    pass


class ArchiveReadError(InstallerError):
    pass


class ArchiveWriteError(InstallerError):
    pass


class DirectoryCreateError(InstallerError):
    pass


class CopyError(InstallerError):
    pass


class DeleteError(InstallerError):
    pass


class NotFound(InstallerError):
    pass


class StateWriteError(InstallerError):
    """installer.json could not be written."""


class RegistryCreateError(InstallerError):
    """The Windows registry key pointing at the data directory could not be created."""


class RegistryWriteError(InstallerError):
    """The Windows registry value pointing at the data directory could not be set."""


@dataclass
class Result(Generic[T]):
    """Outcome of a fallible operation: either a value or an error."""

    value: T | None = None
    error: InstallerError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        return self.error.message if self.error else ""

    def unwrap(self) -> T:
        """Return the value, raising the stored error if there is one."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: InstallerError) -> "Result[T]":
        return cls(error=error)
