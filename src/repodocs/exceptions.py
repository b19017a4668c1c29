from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum, auto
from typing import ClassVar


@dataclass(frozen=True)
class RepoDocsError(Exception):
    """Base exception for errors in the repodocs package."""

    exit_code: ClassVar[int] = 1
    suggestion: ClassVar[str | None] = None

    def __str__(self) -> str:
        return str(getattr(self, "message", "") or self.__doc__ or type(self).__name__)


@dataclass(frozen=True)
class InputValidationError(RepoDocsError):
    """Raised when untrusted input (URL or path) is rejected before any work starts."""

    exit_code: ClassVar[int] = 2


@dataclass(frozen=True)
class InvalidRepositoryUrlError(InputValidationError):
    """Raised when a repository URL does not pass validation."""

    suggestion: ClassVar[str | None] = (
        "Use a repository URL such as https://github.com/owner/repo (no embedded credentials)."
    )

    url: str
    reason: str

    @property
    def message(self) -> str:
        return f"Invalid repository URL {self.url!r}: {self.reason}"


@dataclass(frozen=True)
class UnsafePathError(InputValidationError):
    """Raised when a path could resolve outside of its intended root."""

    path: str
    reason: str

    @property
    def message(self) -> str:
        return f"Unsafe path {self.path!r}: {self.reason}"


@dataclass(frozen=True)
class ConfigError(RepoDocsError):
    """Raised when the merged configuration is invalid."""

    suggestion: ClassVar[str | None] = (
        "Check your configuration file syntax and the values passed on the command line."
    )

    message: str


class CloneFailure(StrEnum):
    """Typed reasons a clone can fail."""

    TIMEOUT = auto()
    AUTH_REQUIRED = auto()
    NETWORK_ERROR = auto()
    NOT_FOUND = auto()
    GIT_ERROR = auto()


_CLONE_EXIT_CODES: dict[CloneFailure, int] = {
    CloneFailure.NOT_FOUND: 3,
    CloneFailure.AUTH_REQUIRED: 4,
    CloneFailure.NETWORK_ERROR: 5,
    CloneFailure.TIMEOUT: 9,
}

_CLONE_SUGGESTIONS: dict[CloneFailure, str] = {
    CloneFailure.NOT_FOUND: "Verify the repository exists and that you have access to it.",
    CloneFailure.AUTH_REQUIRED: (
        "Set the GITHUB_TOKEN environment variable (or add it to .env) for private repositories."
    ),
    CloneFailure.NETWORK_ERROR: "Check your internet connection and try again.",
    CloneFailure.TIMEOUT: "Try again or increase the timeout with --timeout.",
}


@dataclass(frozen=True)
class CloneError(RepoDocsError):
    """Raised when the repository could not be cloned."""

    url: str
    failure: CloneFailure
    detail: str = ""

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return _CLONE_EXIT_CODES.get(self.failure, 1)

    @property
    def suggestion(self) -> str | None:  # type: ignore[override]
        return _CLONE_SUGGESTIONS.get(self.failure)

    @property
    def message(self) -> str:
        text = f"Clone of {self.url} failed ({self.failure})"
        return f"{text}: {self.detail}" if self.detail else text


@dataclass(frozen=True)
class ExtractionIoError(RepoDocsError):
    """Raised when a filesystem operation of the extraction fails."""

    path: str
    detail: str = ""

    @property
    def message(self) -> str:
        return f"I/O error on {self.path}: {self.detail}" if self.detail else f"I/O error on {self.path}"


@dataclass(frozen=True)
class OutputDirectoryExistsError(ExtractionIoError):
    """Raised when the output directory exists and overwriting was not authorized."""

    exit_code: ClassVar[int] = 8
    suggestion: ClassVar[str | None] = (
        "Remove the existing directory, choose another one with --output, or use --force to overwrite."
    )

    @property
    def message(self) -> str:
        return f"Output directory already exists and is not empty: {self.path}"


@dataclass(frozen=True)
class ReportWriteError(RepoDocsError):
    """Raised when the extraction report cannot be written."""

    path: str
    detail: str = ""

    @property
    def message(self) -> str:
        return f"Failed to write report {self.path}: {self.detail}"


@dataclass(frozen=True)
class OperationCancelledError(RepoDocsError):
    """Operation was cancelled by user."""

    exit_code: ClassVar[int] = 130
