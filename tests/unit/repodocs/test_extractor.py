from __future__ import annotations

import threading
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from repodocs import extractor as extractor_module
from repodocs.cancellation import CancellationToken
from repodocs.exceptions import OperationCancelledError, UnsafePathError
from repodocs.extractor import CopyJob, DestinationPlanner, Extractor, planned_file
from repodocs.models import CandidateEntry, ExtractedFile, SkipReason, SkipRecord

if TYPE_CHECKING:
    from collections.abc import Iterator

    from pytest_mock import MockerFixture


def make_entry(root: Path, rel: str, content: bytes = b"doc") -> CandidateEntry:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return CandidateEntry(source_path=path, rel_path=rel, depth=rel.count("/"), size=len(content))


@pytest.mark.unit
def test_planner_preserves_structure(tmp_path: Path) -> None:
    planner = DestinationPlanner(preserve_structure=True)

    assert planner.plan(make_entry(tmp_path, "docs/guide/intro.md")) == "docs/guide/intro.md"


@pytest.mark.unit
def test_planner_flatten_suffixes_collisions_in_discovery_order(tmp_path: Path) -> None:
    planner = DestinationPlanner(preserve_structure=False)
    rels = ["a/README.md", "b/README.md", "c/readme.md", "d/README_1.md", "LICENSE", "x/LICENSE"]

    planned = [planner.plan(make_entry(tmp_path, rel)) for rel in rels]

    assert planned == ["README.md", "README_1.md", "readme_2.md", "README_1_1.md", "LICENSE", "LICENSE_1"]


@pytest.mark.unit
def test_planner_never_hands_out_the_metadata_directory(tmp_path: Path) -> None:
    planner = DestinationPlanner(preserve_structure=False)
    entry = CandidateEntry(source_path=tmp_path / "x", rel_path="sub/.repodocs", depth=1)

    assert planner.plan(entry) == ".repodocs_1"


@pytest.mark.unit
def test_planner_rejects_reserved_prefix_in_structure_mode(tmp_path: Path) -> None:
    planner = DestinationPlanner(preserve_structure=True)
    entry = CandidateEntry(source_path=tmp_path / "x", rel_path=".repodocs/report.md", depth=1)

    with pytest.raises(UnsafePathError):
        planner.plan(entry)


@pytest.mark.unit
def test_planned_file_has_no_hash(tmp_path: Path) -> None:
    entry = make_entry(tmp_path, "README.md", b"12345")

    planned = planned_file(CopyJob(3, entry, "README.md"))

    assert planned == ExtractedFile(order=3, rel_path="README.md", dest_path="README.md", size=5)


@pytest.mark.unit
def test_extract_returns_results_in_discovery_order(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    out.mkdir()
    jobs = [
        CopyJob(order, make_entry(src, f"doc{order}.md", b"x" * (order + 1)), f"doc{order}.md")
        for order in (7, 2, 5, 0, 9)
    ]

    results = Extractor(out, workers=3).extract(iter(jobs))

    assert [r.order for r in results] == [0, 2, 5, 7, 9]
    assert all(isinstance(r, ExtractedFile) for r in results)
    for result in results:
        assert (out / result.dest_path).stat().st_size == result.size


@pytest.mark.unit
def test_extract_turns_size_change_into_io_error_skip(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    out.mkdir()
    entry = make_entry(src, "grown.md", b"z" * 5000)
    stale = entry.model_copy(update={"size": 10})

    results = Extractor(out).extract([CopyJob(0, stale, "grown.md")])

    assert results == [
        SkipRecord(order=0, rel_path="grown.md", reason=SkipReason.IO_ERROR, detail=results[0].detail),
    ]
    assert not (out / "grown.md").exists()


@pytest.mark.unit
def test_extract_rejects_destinations_outside_output_root(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    out.mkdir()
    entry = make_entry(src, "README.md")

    results = Extractor(out).extract([CopyJob(0, entry, "../escaped.md")])

    assert isinstance(results[0], SkipRecord)
    assert results[0].reason == SkipReason.PATH_ESCAPES_ROOT
    assert not (tmp_path / "escaped.md").exists()


@pytest.mark.unit
def test_extract_stops_scheduling_once_cancelled(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    out.mkdir()
    token = CancellationToken()
    scheduled: list[int] = []

    def jobs() -> Iterator[CopyJob]:
        for order in range(20):
            scheduled.append(order)
            if order == 3:
                token.cancel()
            yield CopyJob(order, make_entry(src, f"doc{order}.md"), f"doc{order}.md")

    with pytest.raises(OperationCancelledError):
        Extractor(out, workers=2, cancel_token=token, grace_period=1.0).extract(jobs())

    assert scheduled == [0, 1, 2, 3]
    assert not (out / "doc3.md").exists()
    assert len(list(out.iterdir())) <= 3


@pytest.mark.unit
def test_copies_outliving_the_grace_period_are_logged(tmp_path: Path, mocker: MockerFixture) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    out.mkdir()
    token = CancellationToken()
    release = threading.Event()
    started = threading.Event()

    def slow_copy(job: CopyJob) -> ExtractedFile:
        started.set()
        release.wait(timeout=5.0)
        return planned_file(job)

    extractor = Extractor(out, workers=1, cancel_token=token, grace_period=0.1)
    mocker.patch.object(extractor, "copy_one", side_effect=slow_copy)
    logger = mocker.patch.object(extractor_module, "logger")

    def jobs() -> Iterator[CopyJob]:
        yield CopyJob(0, make_entry(src, "a.md"), "a.md")
        started.wait(timeout=5.0)
        token.cancel()
        yield CopyJob(1, make_entry(src, "b.md"), "b.md")

    try:
        with pytest.raises(OperationCancelledError):
            extractor.extract(jobs())
    finally:
        release.set()

    events = {c.args[0]: c.kwargs for c in logger.warning.call_args_list}
    assert events["copy_workers_abandoned"]["count"] == 1
    assert events["copy_workers_abandoned"]["output"] == str(out)
