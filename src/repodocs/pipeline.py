from __future__ import annotations

import shutil
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple

from repodocs.cloner import CloneWorkspace, GitCloner
from repodocs.exceptions import ExtractionIoError, OutputDirectoryExistsError, UnsafePathError
from repodocs.extractor import DEFAULT_WORKERS, CopyJob, DestinationPlanner, Extractor, planned_file
from repodocs.logging import logger
from repodocs.models import Decision, ExtractionReport, RepositoryInfo, SkipReason, SkipRecord
from repodocs.path_sanitizer import validate_output_root
from repodocs.report import ReportBuilder
from repodocs.url_validator import DEFAULT_ALLOWED_HOSTS, validate_repository_url
from repodocs.walker import walk

if TYPE_CHECKING:
    from collections.abc import Iterator

    from repodocs.cancellation import CancellationToken
    from repodocs.config import ExtractionConfig, RunConfig


class RunResult(NamedTuple):
    report: ExtractionReport
    output_root: Path | None


def default_output_root(run_config: RunConfig, name: str) -> Path:
    return run_config.base_directory / f"docs_{name}"


def check_output_root(path: Path, *, force: bool) -> None:
    """Fail fast when the output root cannot be used.

    Raises:
        ExtractionIoError: if the path exists and is not a directory
        OutputDirectoryExistsError: if the directory is not empty and `force` is False
    """
    if not path.exists():
        return
    if not path.is_dir():
        raise ExtractionIoError(path=str(path), detail="exists and is not a directory")
    if not force and any(path.iterdir()):
        raise OutputDirectoryExistsError(path=str(path))


def prepare_output_root(path: Path, *, force: bool) -> Path:
    """Create the output root, emptying it first when `force` allows it.

    Raises:
        ExtractionIoError: if the directory cannot be cleared or created
        OutputDirectoryExistsError: if it is not empty and `force` is False
    """
    check_output_root(path, force=force)
    try:
        if force and path.is_dir():
            for child in path.iterdir():
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            logger.info("output_cleared", path=str(path))
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ExtractionIoError(path=str(path), detail=f"cannot prepare output directory: {exc}") from exc
    return path


def run_extraction(
    root: Path,
    config: ExtractionConfig,
    repository: RepositoryInfo,
    *,
    output_root: Path | None = None,
    dry_run: bool = False,
    workers: int = DEFAULT_WORKERS,
    cancel_token: CancellationToken | None = None,
) -> ExtractionReport:
    """Walk `root`, copy the included files and build the report.

    Traversal, filtering and destination planning happen on the calling
    thread; copies run in the extractor's pool while the walk goes on. In
    dry-run mode (or without an output root) nothing is written and the
    report describes the files that would be extracted.

    Args:
        root (Path): the traversal root
        config (ExtractionConfig): the immutable extraction rules
        repository (RepositoryInfo): identification for the report
        output_root (Path | None): the prepared output root
        dry_run (bool): classify only
        workers (int): copy worker count
        cancel_token (CancellationToken | None): checked between entries and copies

    Raises:
        UnsafePathError: if the traversal root cannot be read
        ReportWriteError: if the report artifacts cannot be written
        OperationCancelledError: if the run was cancelled

    Returns:
        ExtractionReport: the finalized report
    """
    dry_run = dry_run or output_root is None
    builder = ReportBuilder(repository, config, dry_run=dry_run)
    planner = DestinationPlanner(preserve_structure=config.preserve_structure)

    def jobs() -> Iterator[CopyJob]:
        for order, (entry, outcome) in enumerate(walk(root, config, cancel_token=cancel_token)):
            builder.record_visit(outcome)
            if outcome.decision == Decision.SKIP:
                logger.debug("entry_filtered", path=entry.rel_path, reason=str(outcome.reason))
                builder.record_skip(SkipRecord.from_step(order, entry, outcome))
            elif outcome.decision == Decision.INCLUDE:
                try:
                    dest = planner.plan(entry)
                except UnsafePathError as exc:
                    builder.record_skip(
                        SkipRecord(
                            order=order,
                            rel_path=entry.rel_path,
                            reason=SkipReason.PATH_ESCAPES_ROOT,
                            detail=exc.reason,
                        ),
                    )
                    continue
                yield CopyJob(order, entry, dest)

    logger.info("extraction_started", root=str(root), output=str(output_root), dry_run=dry_run)
    if dry_run or output_root is None:
        results = [planned_file(job) for job in jobs()]
    else:
        extractor = Extractor(
            output_root,
            workers=workers,
            compute_hash=config.compute_hash,
            cancel_token=cancel_token,
        )
        results = extractor.extract(jobs())
    for result in results:
        builder.record(result)

    if not dry_run and output_root is not None:
        builder.write(output_root)
    report = builder.finalize()
    logger.info(
        "extraction_finished",
        status=str(report.status),
        files=report.summary.files_processed,
        skipped=report.summary.files_skipped,
    )
    return report


def extract_local(
    source_dir: Path,
    run_config: RunConfig,
    *,
    output: Path | None = None,
    force: bool = False,
    dry_run: bool = False,
    workers: int = DEFAULT_WORKERS,
    cancel_token: CancellationToken | None = None,
) -> RunResult:
    """Extract documentation from a local directory, without cloning.

    Raises:
        UnsafePathError: if the source directory is missing or the output root is unsafe
        OutputDirectoryExistsError: if the output root is not empty and `force` is False
    """
    source = source_dir.expanduser()
    if not source.is_dir():
        raise UnsafePathError(path=str(source_dir), reason="source directory does not exist")
    source = source.resolve()
    repository = RepositoryInfo.from_local(source)
    if dry_run:
        report = run_extraction(source, run_config.extraction, repository, dry_run=True, cancel_token=cancel_token)
        return RunResult(report, None)

    output_root = validate_output_root(output or default_output_root(run_config, source.name), forbidden=(source,))
    prepare_output_root(output_root, force=force)
    report = run_extraction(
        source,
        run_config.extraction,
        repository,
        output_root=output_root,
        workers=workers,
        cancel_token=cancel_token,
    )
    return RunResult(report, output_root)


def extract_repository(
    url: str,
    run_config: RunConfig,
    *,
    output: Path | None = None,
    force: bool = False,
    workers: int = DEFAULT_WORKERS,
    cancel_token: CancellationToken | None = None,
    cloner: GitCloner | None = None,
    allowed_hosts: frozenset[str] = DEFAULT_ALLOWED_HOSTS,
) -> RunResult:
    """Validate `url`, clone it into a temporary workspace and extract its documentation.

    The URL and the output root are checked before any network access. The
    workspace is removed on every exit path.

    Raises:
        InvalidRepositoryUrlError: if the URL is rejected
        UnsafePathError: if the output root is unsafe
        OutputDirectoryExistsError: if the output root is not empty and `force` is False
        CloneError: if the clone fails
        OperationCancelledError: if the run was cancelled
    """
    source = validate_repository_url(url, allowed_hosts=allowed_hosts)
    output_root = validate_output_root(output or default_output_root(run_config, source.name))
    check_output_root(output_root, force=force)
    cloner = cloner or GitCloner(run_config.clone)
    repository = RepositoryInfo.from_source(source, run_config.clone.branch)

    with CloneWorkspace() as workspace:
        checkout = cloner.clone(source, workspace / "repo", cancel_token=cancel_token)
        prepare_output_root(output_root, force=force)
        report = run_extraction(
            checkout,
            run_config.extraction,
            repository,
            output_root=output_root,
            workers=workers,
            cancel_token=cancel_token,
        )
    return RunResult(report, output_root)
