from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from repodocs.config import INDEX_FILE, METADATA_DIR, REPORT_FILE, SUMMARY_FILE
from repodocs.exceptions import ReportWriteError
from repodocs.file_manipulation import now_iso
from repodocs.logging import logger
from repodocs.models import (
    ERROR_REASONS,
    Decision,
    ExtractedFile,
    ExtractionReport,
    ExtractionSummary,
    RunStatus,
    SkipRecord,
)
from repodocs.output_construction import build_index, build_summary_markdown

if TYPE_CHECKING:
    from pathlib import Path

    from repodocs.config import ExtractionConfig
    from repodocs.models import FilterOutcome, RepositoryInfo

NO_EXTENSION = "no_extension"


class ReportBuilder:
    """Single collector of a run's results.

    Only the thread driving the pipeline calls it. `finalize` caches its
    result until new input arrives, so repeated calls return the same object
    and serialize byte for byte the same.
    """

    def __init__(self, repository: RepositoryInfo, config: ExtractionConfig, *, dry_run: bool = False) -> None:
        self.repository = repository
        self.config = config
        self.dry_run = dry_run
        self._files: list[ExtractedFile] = []
        self._skipped: list[SkipRecord] = []
        self._visited = 0
        self._generated_at: str | None = None
        self._report: ExtractionReport | None = None

    def record_visit(self, outcome: FilterOutcome) -> None:
        """Count a classified entry; descended directories are not counted as visited entries."""
        if outcome.decision != Decision.DESCEND:
            self._visited += 1
            self._report = None

    def record_extracted(self, record: ExtractedFile) -> None:
        self._files.append(record)
        self._report = None

    def record_skip(self, record: SkipRecord) -> None:
        self._skipped.append(record)
        self._report = None

    def record(self, result: ExtractedFile | SkipRecord) -> None:
        if isinstance(result, ExtractedFile):
            self.record_extracted(result)
        else:
            self.record_skip(result)

    def _summary(self, files: list[ExtractedFile], skipped: list[SkipRecord]) -> ExtractionSummary:
        total_bytes = sum(f.size for f in files)
        by_ext = Counter(f.extension or NO_EXTENSION for f in files)
        by_reason = Counter(str(s.reason) for s in skipped)
        largest = max(files, key=lambda f: (f.size, -f.order), default=None)
        return ExtractionSummary(
            entries_visited=self._visited,
            files_processed=len(files),
            bytes_processed=total_bytes,
            files_skipped=len(skipped),
            files_by_extension=dict(sorted(by_ext.items())),
            skipped_by_reason=dict(sorted(by_reason.items())),
            largest_file=largest.rel_path if largest else None,
            largest_file_size=largest.size if largest else 0,
            average_file_size=total_bytes // len(files) if files else 0,
        )

    def finalize(self) -> ExtractionReport:
        """Build the report from everything recorded so far.

        Returns:
            ExtractionReport: files and skips in discovery order, with the run status
        """
        if self._report is not None:
            return self._report
        if self._generated_at is None:
            self._generated_at = now_iso()
        files = sorted(self._files, key=lambda f: f.order)
        skipped = sorted(self._skipped, key=lambda s: s.order)
        partial = any(s.reason in ERROR_REASONS for s in skipped)
        self._report = ExtractionReport(
            repository=self.repository,
            summary=self._summary(files, skipped),
            status=RunStatus.PARTIAL if partial else RunStatus.SUCCESS,
            dry_run=self.dry_run,
            generated_at=self._generated_at,
            config=self.config.snapshot(),
            files=files,
            skipped=skipped,
        )
        return self._report

    def write(self, output_root: Path) -> Path:
        """Write the report artifacts under `<output_root>/.repodocs/`.

        Args:
            output_root (Path): the output root of the run

        Raises:
            ReportWriteError: if any artifact cannot be written

        Returns:
            Path: the path of `report.json`
        """
        report = self.finalize()
        meta = output_root / METADATA_DIR
        report_path = meta / REPORT_FILE
        artifacts = {report_path: report.model_dump_json(indent=2) + "\n"}
        if self.config.create_index:
            artifacts[meta / INDEX_FILE] = build_index(report.files)
        artifacts[meta / SUMMARY_FILE] = build_summary_markdown(report)
        try:
            meta.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ReportWriteError(path=str(meta), detail=str(exc)) from exc
        for path, content in artifacts.items():
            try:
                path.write_text(content, encoding="utf-8")
            except OSError as exc:
                raise ReportWriteError(path=str(path), detail=str(exc)) from exc
        logger.info("report_written", path=str(report_path), status=str(report.status))
        return report_path
