from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, NamedTuple

from repodocs.config import METADATA_DIR
from repodocs.exceptions import ExtractionIoError, OperationCancelledError, UnsafePathError
from repodocs.file_manipulation import copy_verbatim
from repodocs.logging import logger
from repodocs.models import CandidateEntry, ExtractedFile, SkipReason, SkipRecord
from repodocs.path_sanitizer import normalize_relative, resolve_within

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from repodocs.cancellation import CancellationToken

ExtractionResult = ExtractedFile | SkipRecord

DEFAULT_WORKERS = 4
DEFAULT_GRACE_PERIOD = 5.0
_POLL_INTERVAL = 0.2


class CopyJob(NamedTuple):
    order: int
    entry: CandidateEntry
    dest_rel: str


class DestinationPlanner:
    """Assign output-relative destinations in discovery order.

    In flatten mode every file lands directly under the output root; a name
    already taken (compared case-insensitively) gets a `_1`, `_2`, ... suffix
    before its extension, so the first file seen keeps its name.
    """

    def __init__(self, *, preserve_structure: bool) -> None:
        self.preserve_structure = preserve_structure
        self._taken: set[str] = {METADATA_DIR.lower()}

    def plan(self, entry: CandidateEntry) -> str:
        """Return the sanitized destination of `entry`, relative to the output root.

        Raises:
            UnsafePathError: if the destination would be unsafe or reserved
        """
        if self.preserve_structure:
            dest = normalize_relative(entry.rel_path)
            if dest.parts[0] == METADATA_DIR:
                raise UnsafePathError(path=entry.rel_path, reason="reserved metadata directory")
            return dest.as_posix()

        name = PurePosixPath(entry.rel_path).name
        candidate = name
        counter = 0
        while candidate.lower() in self._taken:
            counter += 1
            stem, suffix = _split_name(name)
            candidate = f"{stem}_{counter}{suffix}"
        self._taken.add(candidate.lower())
        return normalize_relative(candidate).as_posix()


def _split_name(name: str) -> tuple[str, str]:
    path = PurePosixPath(name)
    return path.stem, path.suffix


def planned_file(job: CopyJob) -> ExtractedFile:
    """Describe the file a job would produce, without touching the filesystem."""
    return ExtractedFile(order=job.order, rel_path=job.entry.rel_path, dest_path=job.dest_rel, size=job.entry.size)


class Extractor:
    """Copy included files into the output root with a bounded worker pool.

    Workers only read their source and write their own destination; they
    return a result instead of touching shared state. The caller's thread is
    the single collector.
    """

    def __init__(
        self,
        output_root: Path,
        *,
        workers: int = DEFAULT_WORKERS,
        compute_hash: bool = True,
        cancel_token: CancellationToken | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ) -> None:
        self.output_root = output_root
        self.workers = max(1, workers)
        self.compute_hash = compute_hash
        self.cancel_token = cancel_token
        self.grace_period = grace_period

    @property
    def max_in_flight(self) -> int:
        return self.workers * 2

    def copy_one(self, job: CopyJob) -> ExtractionResult:
        """Copy a single file, turning any per-file failure into a skip record."""
        try:
            dest = resolve_within(self.output_root, job.dest_rel)
            result = copy_verbatim(
                job.entry.source_path,
                dest,
                expected_size=job.entry.size,
                output_root=self.output_root,
                compute_hash=self.compute_hash,
            )
        except UnsafePathError as exc:
            logger.warning("copy_rejected", path=job.entry.rel_path, reason=exc.reason)
            return SkipRecord(
                order=job.order,
                rel_path=job.entry.rel_path,
                reason=SkipReason.PATH_ESCAPES_ROOT,
                detail=exc.reason,
            )
        except ExtractionIoError as exc:
            logger.warning("copy_failed", path=job.entry.rel_path, detail=exc.detail)
            return SkipRecord(
                order=job.order,
                rel_path=job.entry.rel_path,
                reason=SkipReason.IO_ERROR,
                detail=exc.detail,
            )
        logger.debug("file_copied", path=job.entry.rel_path, dest=job.dest_rel, size=result.size)
        return ExtractedFile(
            order=job.order,
            rel_path=job.entry.rel_path,
            dest_path=job.dest_rel,
            size=result.size,
            sha256=result.sha256,
            mtime=result.mtime,
        )

    def _check_cancelled(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled()

    def extract(self, jobs: Iterable[CopyJob]) -> list[ExtractionResult]:
        """Run the copies of `jobs`, consumed lazily, and return results in discovery order.

        Args:
            jobs (Iterable[CopyJob]): copy jobs, typically produced while the tree is walked

        Raises:
            OperationCancelledError: once the cancellation token is set; in-flight copies
                get `grace_period` seconds to finish and queued ones are dropped

        Returns:
            list[ExtractionResult]: one `ExtractedFile` or `SkipRecord` per job, sorted by order
        """
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="repodocs-copy")
        pending: set[Future[ExtractionResult]] = set()
        results: list[ExtractionResult] = []
        try:
            for job in jobs:
                self._check_cancelled()
                while len(pending) >= self.max_in_flight:
                    done, pending = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                    results.extend(f.result() for f in done)
                    self._check_cancelled()
                pending.add(executor.submit(self.copy_one, job))
            while pending:
                done, pending = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                results.extend(f.result() for f in done)
                self._check_cancelled()
        except OperationCancelledError:
            logger.warning("extraction_cancelled", in_flight=len(pending), grace_period=self.grace_period)
            _, unfinished = wait(pending, timeout=self.grace_period)
            executor.shutdown(wait=False, cancel_futures=True)
            abandoned = sum(1 for f in unfinished if not f.done())
            if abandoned:
                logger.warning(
                    "copy_workers_abandoned",
                    count=abandoned,
                    output=str(self.output_root),
                    grace_period=self.grace_period,
                )
            raise
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        return sorted(results, key=lambda r: r.order)
