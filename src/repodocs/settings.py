from __future__ import annotations

from pathlib import Path
from typing import Literal

from dotenv import find_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_FILE = find_dotenv(usecwd=True)


class Settings(BaseModel):
    """Command-line settings for a repodocs run, before merging with the config file."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    repository_url: str = Field(default="", description="Repository URL.")
    source_dir: Path | None = Field(default=None, description="Extract from a local directory.")
    output: str = Field(default="", description="Output directory.")
    formats: str = Field(default="", description="Comma list of extensions.")
    exclude: list[str] = Field(default_factory=list, description="Extra excluded directory names.")
    max_size: int | None = Field(default=None, gt=0, description="Maximum file size (MiB).")
    max_depth: int | None = Field(default=None, ge=0, description="Maximum traversal depth.")
    config: Path | None = Field(default=None, description="Configuration file.")
    output_format: Literal["human", "json", "plain"] = Field(default="human", description="Result format.")
    preserve_structure: bool | None = Field(default=None, description="Keep directory nesting.")
    no_index: bool = Field(default=False, description="Do not write the index file.")
    no_hash: bool = Field(default=False, description="Do not compute sha256 digests.")
    timeout: float | None = Field(default=None, gt=0, description="Clone timeout (seconds).")
    branch: str = Field(default="", description="Branch to clone.")
    depth: int | None = Field(default=None, ge=1, description="Shallow clone depth.")
    verbose: int = Field(default=0, ge=0, description="Verbosity level.")
    quiet: bool = Field(default=False, description="Only report errors.")
    force: bool = Field(default=False, description="Overwrite a non-empty output directory.")
    dry_run: bool = Field(default=False, description="Classify without writing anything.")
    generate_config: bool = Field(default=False, description="Write a sample configuration file.")
    workers: int = Field(default=4, ge=1, description="Parallel copy workers.")
    log_file: str = Field(default="", description="Log file path.")
