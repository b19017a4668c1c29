from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomlkit
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from tomlkit.exceptions import TOMLKitError

from repodocs.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from repodocs.settings import Settings

METADATA_DIR = ".repodocs"
REPORT_FILE = "report.json"
INDEX_FILE = "index.txt"
SUMMARY_FILE = "summary.md"

MIB = 1024 * 1024
DEFAULT_MAX_FILE_SIZE = 10 * MIB
DEFAULT_MAX_DEPTH = 10
DEFAULT_CLONE_TIMEOUT = 300.0

DEFAULT_EXTENSIONS = (
    "md",
    "markdown",
    "mdown",
    "rst",
    "rest",
    "adoc",
    "asciidoc",
    "asc",
    "txt",
    "text",
    "org",
    "wiki",
    "tex",
    "latex",
)

DEFAULT_EXCLUDE_DIRS = (
    "node_modules",
    ".git",
    "target",
    "build",
    "dist",
    "vendor",
    ".vscode",
    ".idea",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
)

DEFAULT_EXCLUDE_PATTERNS = (
    r".*\.min\..*",
    r".*\.lock",
    r"package-lock\.json",
    r"yarn\.lock",
)

EXTENSIONLESS_DOCS = (
    "readme",
    "license",
    "licence",
    "changelog",
    "contributing",
    "authors",
    "notice",
    "install",
    "usage",
    "todo",
    "copying",
    "news",
    "history",
    "credits",
    "maintainers",
    "thanks",
    "acknowledgments",
    "acknowledgements",
    "code_of_conduct",
    "security",
    "support",
    "codeofconduct",
)

DEFAULT_CONFIG_FILES = (
    "repodocs.toml",
    "repodocs.config.toml",
    ".repodocs.toml",
    "repodocs.yaml",
    "repodocs.yml",
)

_FILTER_KEYS = frozenset(
    {"extensions", "max_file_size", "exclude_dirs", "exclude_patterns", "max_depth", "extensionless_names"},
)
_OUTPUT_KEYS = frozenset({"preserve_structure", "create_index", "compute_hash", "base_directory"})
_GIT_KEYS = frozenset({"clone_depth", "timeout", "branch"})


def _split_names(value: Any) -> list[str]:  # noqa: ANN401
    items = value.split(",") if isinstance(value, str) else list(value or [])
    return [str(item).strip() for item in items if str(item).strip()]


@lru_cache(maxsize=64)
def compile_patterns(patterns: tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    """Compile exclusion patterns once per distinct configuration."""
    return tuple(re.compile(p) for p in patterns)


class ExtractionConfig(BaseModel):
    """Immutable filtering and output rules for one extraction run.

    Attributes:
        extensions: Allowed extensions, lower-cased, without leading dot.
        exclude_dirs: Directory names pruned from the walk (exact, case-sensitive).
        exclude_patterns: Regexes searched against the relative path, in order.
        extensionless_names: File names accepted without an extension (lower-cased).
        max_file_size: Maximum file size in bytes.
        max_depth: Maximum traversal depth; entries of the root are at depth 0.
        preserve_structure: Keep relative directories, or flatten into the output root.
        create_index: Emit the plain index listing.
        compute_hash: Record a SHA-256 digest of every extracted file.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    extensions: frozenset[str] = Field(default=frozenset(DEFAULT_EXTENSIONS))
    exclude_dirs: frozenset[str] = Field(default=frozenset(DEFAULT_EXCLUDE_DIRS))
    exclude_patterns: tuple[str, ...] = Field(default=DEFAULT_EXCLUDE_PATTERNS)
    extensionless_names: frozenset[str] = Field(default=frozenset(EXTENSIONLESS_DOCS))
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0)
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=0)
    preserve_structure: bool = True
    create_index: bool = True
    compute_hash: bool = True

    @field_validator("extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Any) -> frozenset[str]:  # noqa: ANN401
        return frozenset(ext.lower().lstrip(".") for ext in _split_names(value) if ext.lstrip("."))

    @field_validator("extensions")
    @classmethod
    def _require_extensions(cls, value: frozenset[str]) -> frozenset[str]:
        if not value:
            msg = "at least one file extension must be specified"
            raise ValueError(msg)
        return value

    @field_validator("exclude_dirs", mode="before")
    @classmethod
    def _normalize_dirs(cls, value: Any) -> frozenset[str]:  # noqa: ANN401
        return frozenset(_split_names(value))

    @field_validator("extensionless_names", mode="before")
    @classmethod
    def _normalize_names(cls, value: Any) -> frozenset[str]:  # noqa: ANN401
        return frozenset(name.lower() for name in _split_names(value))

    @field_validator("exclude_patterns", mode="before")
    @classmethod
    def _normalize_patterns(cls, value: Any) -> tuple[str, ...]:  # noqa: ANN401
        if isinstance(value, str):
            value = [value]
        return tuple(p for p in (value or ()) if p)

    @field_validator("exclude_patterns")
    @classmethod
    def _check_patterns(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as exc:
                msg = f"invalid exclude pattern {pattern!r}: {exc}"
                raise ValueError(msg) from exc
        return value

    @property
    def compiled_patterns(self) -> tuple[re.Pattern[str], ...]:
        return compile_patterns(self.exclude_patterns)

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-friendly, deterministic view of the configuration."""
        return {
            "extensions": sorted(self.extensions),
            "exclude_dirs": sorted(self.exclude_dirs),
            "exclude_patterns": list(self.exclude_patterns),
            "extensionless_names": sorted(self.extensionless_names),
            "max_file_size": self.max_file_size,
            "max_depth": self.max_depth,
            "preserve_structure": self.preserve_structure,
            "create_index": self.create_index,
            "compute_hash": self.compute_hash,
        }


class CloneConfig(BaseModel):
    """Settings handed to the clone collaborator."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    depth: int | None = Field(default=None, ge=1, description="Shallow clone depth; None clones full history.")
    timeout: float = Field(default=DEFAULT_CLONE_TIMEOUT, gt=0, description="Clone timeout in seconds.")
    branch: str | None = Field(default=None, description="Branch to check out; None uses the default branch.")


class RunConfig(BaseModel):
    """Fully merged configuration for one run."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    clone: CloneConfig = Field(default_factory=CloneConfig)
    base_directory: Path = Field(default_factory=Path.cwd)


def find_config_file(explicit: Path | None = None, cwd: Path | None = None) -> Path | None:
    """Locate the configuration file to use.

    Args:
        explicit (Path | None): path given on the command line, if any
        cwd (Path | None): directory searched for the default file names

    Raises:
        ConfigError: if an explicit path does not exist

    Returns:
        Path | None: the configuration file, or None to use defaults only
    """
    if explicit is not None:
        if not explicit.is_file():
            raise ConfigError(message=f"Configuration file not found: {explicit}")
        return explicit
    base = cwd or Path.cwd()
    for name in DEFAULT_CONFIG_FILES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


def load_config_file(path: Path) -> dict[str, Any]:
    """Parse a TOML or YAML configuration file into plain Python data.

    Args:
        path (Path): the configuration file; `.yaml`/`.yml` are read as YAML, anything else as TOML

    Raises:
        ConfigError: if the file cannot be read or parsed, or its top level is not a table

    Returns:
        dict[str, Any]: the parsed configuration
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(message=f"Failed to read config file {path}: {exc}") from exc
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        else:
            data = tomlkit.parse(text).unwrap()
    except (yaml.YAMLError, TOMLKitError) as exc:
        raise ConfigError(message=f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(message=f"Config file {path} must contain a table at the top level")
    return data


def _table(data: Mapping[str, Any], name: str, allowed: frozenset[str]) -> dict[str, Any]:
    table = data.get(name) or {}
    if not isinstance(table, dict):
        raise ConfigError(message=f"[{name}] must be a table")
    unknown = sorted(set(table) - allowed)
    if unknown:
        raise ConfigError(message=f"Unknown key(s) in [{name}]: {', '.join(unknown)}")
    return dict(table)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        where = ".".join(str(loc) for loc in err["loc"])
        parts.append(f"{where}: {err['msg']}")
    return "Invalid configuration: " + "; ".join(parts)


def _apply_overrides(
    filters: dict[str, Any],
    output: dict[str, Any],
    git: dict[str, Any],
    settings: Settings,
) -> None:
    if settings.formats:
        filters["extensions"] = settings.formats
    extra_dirs = [d for item in settings.exclude for d in _split_names(item)]
    if extra_dirs:
        filters["exclude_dirs"] = [*_split_names(filters.get("exclude_dirs", DEFAULT_EXCLUDE_DIRS)), *extra_dirs]
    if settings.max_size is not None:
        filters["max_file_size"] = settings.max_size * MIB
    if settings.max_depth is not None:
        filters["max_depth"] = settings.max_depth
    if settings.preserve_structure is not None:
        output["preserve_structure"] = settings.preserve_structure
    if settings.no_index:
        output["create_index"] = False
    if settings.no_hash:
        output["compute_hash"] = False
    if settings.timeout is not None:
        git["timeout"] = settings.timeout
    if settings.branch:
        git["branch"] = settings.branch
    if settings.depth is not None:
        git["clone_depth"] = settings.depth


def build_run_config(data: Mapping[str, Any], settings: Settings | None = None) -> RunConfig:
    """Merge file data and CLI settings over the defaults into a frozen `RunConfig`.

    Args:
        data (Mapping[str, Any]): parsed configuration file (`filters`, `output`, `git` tables)
        settings (Settings | None): command-line settings overriding the file values

    Raises:
        ConfigError: on unknown tables/keys or values that fail validation

    Returns:
        RunConfig: the immutable configuration of the run
    """
    unknown = sorted(set(data) - {"filters", "output", "git"})
    if unknown:
        raise ConfigError(message=f"Unknown configuration table(s): {', '.join(unknown)}")
    filters = _table(data, "filters", _FILTER_KEYS)
    output = _table(data, "output", _OUTPUT_KEYS)
    git = _table(data, "git", _GIT_KEYS)
    if settings is not None:
        _apply_overrides(filters, output, git, settings)

    extraction_data = {**filters, **{k: v for k, v in output.items() if k != "base_directory"}}
    clone_data: dict[str, Any] = {}
    if "clone_depth" in git:
        clone_data["depth"] = git["clone_depth"]
    if "timeout" in git:
        clone_data["timeout"] = git["timeout"]
    if git.get("branch"):
        clone_data["branch"] = git["branch"]
    run_data: dict[str, Any] = {}
    if output.get("base_directory"):
        run_data["base_directory"] = Path(str(output["base_directory"])).expanduser()
    try:
        return RunConfig(
            extraction=ExtractionConfig(**extraction_data),
            clone=CloneConfig(**clone_data),
            **run_data,
        )
    except ValidationError as exc:
        raise ConfigError(message=_format_validation_error(exc)) from exc


def load_run_config(settings: Settings, cwd: Path | None = None) -> RunConfig:
    """Find, load and merge the configuration for a CLI run."""
    path = find_config_file(settings.config, cwd=cwd)
    data = load_config_file(path) if path is not None else {}
    return build_run_config(data, settings)


def _string_array(values: Iterable[str], *, literal: bool = False) -> tomlkit.items.Array:
    arr = tomlkit.array()
    for value in values:
        arr.append(tomlkit.string(value, literal=literal) if literal else value)
    return arr.multiline(True)


def sample_config_toml() -> str:
    """Render the default configuration as a commented TOML document."""
    defaults = ExtractionConfig()
    clone = CloneConfig()

    doc = tomlkit.document()
    doc.add(tomlkit.comment("repodocs configuration"))
    doc.add(tomlkit.comment("Command-line options override the values below."))
    doc.add(tomlkit.nl())

    filters = tomlkit.table()
    filters.add("extensions", _string_array(DEFAULT_EXTENSIONS))
    filters.add("max_file_size", defaults.max_file_size)
    filters["max_file_size"].comment("bytes")
    filters.add("max_depth", defaults.max_depth)
    filters.add("exclude_dirs", _string_array(DEFAULT_EXCLUDE_DIRS))
    filters.add("exclude_patterns", _string_array(DEFAULT_EXCLUDE_PATTERNS, literal=True))
    filters.add("extensionless_names", _string_array(EXTENSIONLESS_DOCS))
    doc.add("filters", filters)

    output = tomlkit.table()
    output.add("preserve_structure", defaults.preserve_structure)
    output.add("create_index", defaults.create_index)
    output.add("compute_hash", defaults.compute_hash)
    output.add("base_directory", ".")
    doc.add("output", output)

    git = tomlkit.table()
    git.add(tomlkit.comment("clone_depth = 1  # shallow clone"))
    git.add("timeout", int(clone.timeout))
    git["timeout"].comment("seconds")
    git.add(tomlkit.comment('branch = "main"'))
    doc.add("git", git)

    return tomlkit.dumps(doc)
