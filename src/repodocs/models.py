from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path, PurePosixPath
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, computed_field


class SkipReason(StrEnum):
    """Why an entry was not extracted."""

    EXCEEDS_MAX_SIZE = auto()
    EXCLUDED_DIRECTORY = auto()
    EXCLUDED_PATTERN = auto()
    UNSUPPORTED_EXTENSION = auto()
    EXCEEDS_MAX_DEPTH = auto()
    PATH_ESCAPES_ROOT = auto()
    IO_ERROR = auto()
    ALREADY_VISITED = auto()


ERROR_REASONS = frozenset({SkipReason.PATH_ESCAPES_ROOT, SkipReason.IO_ERROR})


class Decision(StrEnum):
    """Outcome kind of the filter engine for one entry."""

    INCLUDE = auto()
    DESCEND = auto()
    SKIP = auto()


class RunStatus(StrEnum):
    """Final status of a completed run."""

    SUCCESS = auto()
    PARTIAL = auto()


class RepositorySource(BaseModel):
    """A repository identifier that passed URL validation.

    Only `repodocs.url_validator.validate_repository_url` builds these.
    """

    model_config = ConfigDict(frozen=True)

    scheme: str
    host: str
    owner: str
    name: str
    branch: str | None = None
    ssh_user: str = "git"

    @property
    def url(self) -> str:
        """Canonical browse URL, used in reports."""
        return f"https://{self.host}/{self.owner}/{self.name}"

    @property
    def clone_url(self) -> str:
        """URL handed to git, rebuilt from validated parts only."""
        if self.scheme == "ssh":
            return f"ssh://{self.ssh_user}@{self.host}/{self.owner}/{self.name}.git"
        return f"{self.scheme}://{self.host}/{self.owner}/{self.name}.git"


class RepositoryInfo(BaseModel):
    """Repository identification written into the report."""

    model_config = ConfigDict(frozen=True)

    owner: str = ""
    name: str
    branch: str | None = None
    url: str | None = None
    local_path: str | None = None

    @classmethod
    def from_source(cls, source: RepositorySource, branch: str | None = None) -> RepositoryInfo:
        return cls(owner=source.owner, name=source.name, branch=branch or source.branch, url=source.url)

    @classmethod
    def from_local(cls, path: Path) -> RepositoryInfo:
        return cls(name=path.name, local_path=str(path))


class CandidateEntry(BaseModel):
    """A filesystem node met during traversal.

    Attributes:
        source_path: Absolute path read from; for symlinks, the validated real target.
        rel_path: POSIX path relative to the traversal root.
        depth: Number of directory separators in `rel_path` (root entries are at depth 0).
        is_dir: Whether the entry is (or links to) a directory.
        size: File size in bytes, from metadata (0 for directories).
        is_symlink: Whether the entry itself is a symbolic link.
    """

    model_config = ConfigDict(frozen=True)

    source_path: Path
    rel_path: str
    depth: int = Field(..., ge=0)
    is_dir: bool = False
    size: int = Field(default=0, ge=0)
    is_symlink: bool = False

    @property
    def name(self) -> str:
        return PurePosixPath(self.rel_path).name

    @property
    def extension(self) -> str:
        """Lower-cased extension without the leading dot ("" when there is none)."""
        return PurePosixPath(self.rel_path).suffix.lower().lstrip(".")


class FilterOutcome(BaseModel):
    """Tagged decision returned by the filter engine."""

    model_config = ConfigDict(frozen=True)

    decision: Decision
    reason: SkipReason | None = None
    detail: str = ""

    @classmethod
    def include(cls) -> FilterOutcome:
        return cls(decision=Decision.INCLUDE)

    @classmethod
    def descend(cls) -> FilterOutcome:
        return cls(decision=Decision.DESCEND)

    @classmethod
    def skip(cls, reason: SkipReason, detail: str = "") -> FilterOutcome:
        return cls(decision=Decision.SKIP, reason=reason, detail=detail)


class WalkStep(NamedTuple):
    entry: CandidateEntry
    outcome: FilterOutcome


class ExtractedFile(BaseModel):
    """A file that was (or, in dry-run, would be) copied into the output root."""

    model_config = ConfigDict(frozen=True)

    order: int = Field(..., ge=0, description="Discovery index")
    rel_path: str = Field(..., description="Path relative to the repository root")
    dest_path: str = Field(..., description="Path relative to the output root")
    size: int = Field(..., ge=0, description="File size in bytes")
    sha256: str = Field("", description="SHA-256 hex digest (empty when not computed)")
    mtime: float = Field(0.0, description="POSIX modification time of the source")

    @computed_field
    @property
    def extension(self) -> str:
        return PurePosixPath(self.rel_path).suffix.lower().lstrip(".")


class SkipRecord(BaseModel):
    """An entry that was visited but not extracted."""

    model_config = ConfigDict(frozen=True)

    order: int = Field(..., ge=0)
    rel_path: str
    is_dir: bool = False
    reason: SkipReason
    detail: str = ""

    @classmethod
    def from_step(cls, order: int, entry: CandidateEntry, outcome: FilterOutcome) -> SkipRecord:
        return cls(
            order=order,
            rel_path=entry.rel_path,
            is_dir=entry.is_dir,
            reason=outcome.reason or SkipReason.IO_ERROR,
            detail=outcome.detail,
        )


class ExtractionSummary(BaseModel):
    """Aggregated counters of a run."""

    model_config = ConfigDict(frozen=True)

    entries_visited: int = 0
    files_processed: int = 0
    bytes_processed: int = 0
    files_skipped: int = 0
    files_by_extension: dict[str, int] = Field(default_factory=dict)
    skipped_by_reason: dict[str, int] = Field(default_factory=dict)
    largest_file: str | None = None
    largest_file_size: int = 0
    average_file_size: int = 0


class ExtractionReport(BaseModel):
    """Structured report of one run, written once as `report.json`."""

    model_config = ConfigDict(frozen=True)

    repository: RepositoryInfo
    summary: ExtractionSummary
    status: RunStatus
    dry_run: bool = False
    generated_at: str
    config: dict[str, Any] = Field(default_factory=dict)
    files: list[ExtractedFile] = Field(default_factory=list)
    skipped: list[SkipRecord] = Field(default_factory=list)
