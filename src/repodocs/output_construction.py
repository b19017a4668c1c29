from __future__ import annotations

import io
import json
from typing import TYPE_CHECKING, Literal

from repodocs.file_manipulation import build_tree_lines, format_bytes
from repodocs.models import ERROR_REASONS

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from repodocs.config import RunConfig
    from repodocs.models import ExtractedFile, ExtractionReport, RepositorySource

OutputFormat = Literal["human", "json", "plain"]


def _repository_label(report: ExtractionReport) -> str:
    repo = report.repository
    return f"{repo.owner}/{repo.name}" if repo.owner else repo.name


def build_index(files: Sequence[ExtractedFile]) -> str:
    """Render the plain index: one destination path per line, in discovery order."""
    return "".join(f"{f.dest_path}\n" for f in files)


def build_summary_markdown(report: ExtractionReport) -> str:
    """Build the human-readable summary written next to the JSON report.

    The summary lists the run statistics, the file types found, a tree of the
    extracted files and every entry skipped because of an error.

    Args:
        report (ExtractionReport): the finalized report

    Returns:
        str: the markdown document
    """
    summary = report.summary
    repo = report.repository
    out = io.StringIO()
    out.write("# Documentation Extraction Summary\n\n")
    if repo.url:
        out.write(f"**Repository:** [{_repository_label(report)}]({repo.url})\n")
    else:
        out.write(f"**Repository:** {repo.local_path or repo.name}\n")
    if repo.branch:
        out.write(f"**Branch:** {repo.branch}\n")
    out.write(f"**Extracted:** {report.generated_at}\n")
    out.write(f"**Status:** {report.status}\n\n")

    out.write("## Statistics\n\n")
    out.write(f"- **Entries visited:** {summary.entries_visited}\n")
    out.write(f"- **Files processed:** {summary.files_processed}\n")
    out.write(f"- **Total size:** {format_bytes(summary.bytes_processed)}\n")
    out.write(f"- **Average file size:** {format_bytes(summary.average_file_size)}\n")
    if summary.largest_file:
        out.write(f"- **Largest file:** {summary.largest_file} ({format_bytes(summary.largest_file_size)})\n")
    out.write(f"- **Entries skipped:** {summary.files_skipped}\n\n")

    if summary.files_by_extension:
        out.write("## File Types\n\n")
        for ext, count in sorted(summary.files_by_extension.items(), key=lambda kv: (-kv[1], kv[0])):
            label = "no extension" if ext == "no_extension" else ext
            out.write(f"- **{label}**: {count} files\n")
        out.write("\n")

    if report.files:
        out.write("## Structure\n\n")
        out.write("```text\n")
        out.write("\n".join(build_tree_lines(repo.name, [f.dest_path for f in report.files])))
        out.write("\n```\n\n")

    if summary.skipped_by_reason:
        out.write("## Skipped\n\n")
        for reason, count in summary.skipped_by_reason.items():
            out.write(f"- {reason}: {count}\n")
        out.write("\n")

    issues = [s for s in report.skipped if s.reason in ERROR_REASONS]
    if issues:
        out.write("## Issues Encountered\n\n")
        for issue in issues:
            out.write(f"- `{issue.rel_path}` ({issue.reason}): {issue.detail}\n")
        out.write("\n")

    out.write("---\n")
    out.write("*Generated by repodocs*\n")
    return out.getvalue()


def render_report(report: ExtractionReport, fmt: OutputFormat, output_root: Path | None = None) -> str:
    """Render the outcome of a run for the terminal.

    Args:
        report (ExtractionReport): the finalized report
        fmt (OutputFormat): `human`, `json` (the full report) or `plain` (`key=value` lines)
        output_root (Path | None): where files were written; None for dry-runs

    Returns:
        str: the text to print, ending with a newline
    """
    summary = report.summary
    if fmt == "json":
        return report.model_dump_json(indent=2) + "\n"

    if fmt == "plain":
        out = io.StringIO()
        out.write(f"status={report.status}\n")
        out.write(f"dry_run={str(report.dry_run).lower()}\n")
        out.write(f"repository={_repository_label(report)}\n")
        if output_root is not None:
            out.write(f"output={output_root}\n")
        out.write(f"entries_visited={summary.entries_visited}\n")
        out.write(f"files_processed={summary.files_processed}\n")
        out.write(f"bytes_processed={summary.bytes_processed}\n")
        out.write(f"files_skipped={summary.files_skipped}\n")
        for reason, count in summary.skipped_by_reason.items():
            out.write(f"skipped.{reason}={count}\n")
        return out.getvalue()

    out = io.StringIO()
    title = "Dry run completed" if report.dry_run else "Documentation extraction completed"
    if report.status == "partial":
        title += " with errors"
    out.write(f"{title}: {_repository_label(report)}\n\n")
    if output_root is not None:
        out.write(f"  Output:          {output_root}\n")
    out.write(f"  Files processed: {summary.files_processed}\n")
    out.write(f"  Bytes processed: {format_bytes(summary.bytes_processed)}\n")
    out.write(f"  Entries skipped: {summary.files_skipped}\n")
    for reason, count in summary.skipped_by_reason.items():
        out.write(f"    {reason}: {count}\n")
    if report.dry_run and report.files:
        out.write("\nWould extract:\n")
        for f in report.files:
            out.write(f"  {f.dest_path} ({format_bytes(f.size)})\n")
    return out.getvalue()


def render_clone_plan(
    source: RepositorySource,
    run_config: RunConfig,
    output_root: Path,
    fmt: OutputFormat,
) -> str:
    """Describe what a run would do for a repository URL, without cloning it."""
    plan = {
        "repository": f"{source.owner}/{source.name}",
        "url": source.url,
        "clone_url": source.clone_url,
        "branch": run_config.clone.branch or source.branch,
        "output": str(output_root),
        "clone": run_config.clone.model_dump(),
        "config": run_config.extraction.snapshot(),
    }
    if fmt == "json":
        return json.dumps(plan, indent=2) + "\n"
    out = io.StringIO()
    if fmt == "human":
        out.write(f"Dry run: {plan['repository']} would be cloned from {source.clone_url}\n\n")
    for key, value in plan.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                shown = ",".join(map(str, sub_value)) if isinstance(sub_value, list) else sub_value
                out.write(f"{key}.{sub_key}={shown}\n")
        else:
            out.write(f"{key}={'' if value is None else value}\n")
    return out.getvalue()
