"""
repodocs: extract the documentation of a repository into a local folder.

Overview
--------
The repository is cloned into a temporary directory (or read from a local
directory with `--source-dir`), walked with the configured filters, and every
documentation file is copied verbatim into the output directory. A report is
written under `<output>/.repodocs/`:

- `report.json`: the structured report (summary, extracted files, skips),
- `index.txt`: the extracted paths, one per line, in discovery order,
- `summary.md`: a readable summary with a tree of the extracted files.

Usage
-----
Run `repodocs --help` for full options. Common examples:
    - Extract a public repository:
        repodocs https://github.com/owner/repo

    - Only markdown and reStructuredText, flattened, into a chosen directory:
        repodocs https://github.com/owner/repo -f md,rst --flatten -o docs_out

    - Classify a local checkout without writing anything:
        repodocs --source-dir ./checkout --dry-run --output-format json

    - Write a sample configuration file:
        repodocs --generate-config
"""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from repodocs import __version__
from repodocs.cancellation import CancellationToken, install_interrupt_handler
from repodocs.config import DEFAULT_CONFIG_FILES, load_run_config, sample_config_toml
from repodocs.exceptions import ConfigError, OperationCancelledError, RepoDocsError
from repodocs.logging import setup_logging
from repodocs.output_construction import render_clone_plan, render_report
from repodocs.path_sanitizer import validate_output_root
from repodocs.pipeline import default_output_root, extract_local, extract_repository
from repodocs.settings import Settings
from repodocs.url_validator import validate_repository_url

if TYPE_CHECKING:
    from collections.abc import Sequence


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    p = argparse.ArgumentParser(
        prog="repodocs",
        description="Extract documentation files from a git repository.",
    )
    p.add_argument("repository_url", nargs="?", default="", help="Repository URL (https, ssh or git).")
    p.add_argument("--source-dir", type=Path, default=None, help="Extract from a local directory instead.")
    p.add_argument("-o", "--output", type=str, default="", help="Output directory (default: docs_<repo>).")
    p.add_argument("-f", "--formats", type=str, default="", help="Comma list of extensions, e.g. md,rst,txt.")
    p.add_argument(
        "-e",
        "--exclude",
        action="append",
        default=[],
        help="Extra directory name to exclude (repeatable, comma lists accepted).",
    )
    p.add_argument("--max-size", type=int, default=None, help="Maximum file size in MiB.")
    p.add_argument("--max-depth", type=int, default=None, help="Maximum directory depth.")
    p.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help=f"Configuration file (default: first of {', '.join(DEFAULT_CONFIG_FILES)}).",
    )
    p.add_argument(
        "--output-format",
        choices=["human", "json", "plain"],
        default="human",
        help="Format of the result printed on stdout.",
    )

    structure = p.add_mutually_exclusive_group()
    structure.add_argument(
        "--preserve-structure",
        dest="preserve_structure",
        action="store_const",
        const=True,
        default=None,
        help="Keep the repository's directory structure (default).",
    )
    structure.add_argument(
        "--flatten",
        dest="preserve_structure",
        action="store_const",
        const=False,
        help="Put every file directly in the output directory.",
    )

    p.add_argument("--no-index", action="store_true", help="Do not write the index file.")
    p.add_argument("--no-hash", action="store_true", help="Do not compute sha256 digests.")
    p.add_argument("--timeout", type=float, default=None, help="Clone timeout in seconds.")
    p.add_argument("-b", "--branch", type=str, default="", help="Branch to clone.")
    p.add_argument("--depth", type=int, default=None, help="Shallow clone depth.")

    chatter = p.add_mutually_exclusive_group()
    chatter.add_argument("-v", "--verbose", action="count", default=0, help="More logs (-vv for debug).")
    chatter.add_argument("-q", "--quiet", action="store_true", help="Only report errors.")

    p.add_argument("--force", action="store_true", help="Overwrite a non-empty output directory.")
    p.add_argument("--dry-run", action="store_true", help="Show what would be extracted, write nothing.")
    p.add_argument("--generate-config", action="store_true", help="Write a sample repodocs.toml and exit.")
    p.add_argument("--workers", type=int, default=4, help="Parallel copy workers.")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = p.parse_args(argv)

    if not args.generate_config:
        if args.repository_url and args.source_dir is not None:
            p.error("give either a repository URL or --source-dir, not both")
        if not args.repository_url and args.source_dir is None:
            p.error("a repository URL or --source-dir is required")
    return Settings(**vars(args))


def write_sample_config(settings: Settings) -> Path:
    """Write the sample configuration to `--output` (default `repodocs.toml`)."""
    path = Path(settings.output or DEFAULT_CONFIG_FILES[0])
    if path.exists() and not settings.force:
        raise ConfigError(message=f"{path} already exists (use --force to overwrite it)")
    try:
        path.write_text(sample_config_toml(), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(message=f"Failed to write {path}: {exc}") from exc
    return path


def run(settings: Settings, cancel_token: CancellationToken) -> int:
    """Execute one run described by `settings`; errors propagate as `RepoDocsError`."""
    if settings.generate_config:
        path = write_sample_config(settings)
        print(f"Wrote {path}")
        return 0

    run_config = load_run_config(settings)
    output = Path(settings.output).expanduser() if settings.output else None

    if settings.source_dir is not None:
        result = extract_local(
            settings.source_dir,
            run_config,
            output=output,
            force=settings.force,
            dry_run=settings.dry_run,
            workers=settings.workers,
            cancel_token=cancel_token,
        )
    elif settings.dry_run:
        source = validate_repository_url(settings.repository_url)
        output_root = validate_output_root(output or default_output_root(run_config, source.name))
        print(render_clone_plan(source, run_config, output_root, settings.output_format), end="")
        return 0
    else:
        result = extract_repository(
            settings.repository_url,
            run_config,
            output=output,
            force=settings.force,
            workers=settings.workers,
            cancel_token=cancel_token,
        )

    if not (settings.quiet and settings.output_format == "human"):
        print(render_report(result.report, settings.output_format, result.output_root), end="")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
    except ValidationError as exc:
        print(f"Error: invalid arguments: {exc}", file=sys.stderr)
        return 2
    logger = setup_logging(
        settings.log_file or None,
        verbose=settings.verbose,
        quiet=settings.quiet,
        force=True,
    )

    cancel_token = CancellationToken()
    previous_handler = install_interrupt_handler(cancel_token)
    try:
        return run(settings, cancel_token)
    except OperationCancelledError as exc:
        logger.warning("run_cancelled")
        print(f"Error: {exc}", file=sys.stderr)
        return exc.exit_code
    except RepoDocsError as exc:
        logger.error("run_failed", error=type(exc).__name__, message=str(exc), exit_code=exc.exit_code)
        print(f"Error: {exc}", file=sys.stderr)
        if exc.suggestion:
            print(f"Suggestion: {exc.suggestion}", file=sys.stderr)
        return exc.exit_code
    except KeyboardInterrupt:
        print("Error: interrupted", file=sys.stderr)
        return OperationCancelledError.exit_code
    finally:
        signal.signal(signal.SIGINT, previous_handler)


if __name__ == "__main__":
    raise SystemExit(main())
