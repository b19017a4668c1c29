from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from repodocs.exceptions import UnsafePathError
from repodocs.filters import evaluate
from repodocs.logging import logger
from repodocs.models import CandidateEntry, Decision, FilterOutcome, SkipReason, WalkStep
from repodocs.path_sanitizer import is_within, normalize_relative, resolve_symlink

if TYPE_CHECKING:
    from collections.abc import Iterator

    from repodocs.cancellation import CancellationToken
    from repodocs.config import ExtractionConfig


def list_directory(path: Path) -> list[os.DirEntry[str]]:
    """Read one directory, children sorted by name for a deterministic walk.

    Symlinks come after their non-link siblings, so a directory reached both
    directly and through an alias is walked under its real name.
    """
    with os.scandir(path) as it:
        return sorted(it, key=lambda e: (e.is_symlink(), e.name))


def _skip(rel: str, source: Path, *, is_dir: bool, reason: SkipReason, detail: str) -> WalkStep:
    entry = CandidateEntry(source_path=source, rel_path=rel, depth=rel.count("/"), is_dir=is_dir)
    return WalkStep(entry, FilterOutcome.skip(reason, detail))


class _Walk:
    """State of one traversal: the real root and the real paths already descended."""

    def __init__(self, root: Path, config: ExtractionConfig) -> None:
        self.root = root
        self.config = config
        self.visited: set[Path] = {root}

    def classify(self, dir_entry: os.DirEntry[str], rel: str) -> tuple[WalkStep, list[os.DirEntry[str]] | None]:
        """Build the candidate for one directory entry and decide on it.

        Returns the step and, when the entry is a directory to descend, its listing.
        """
        path = Path(dir_entry.path)
        try:
            normalize_relative(rel)
        except UnsafePathError as exc:
            return _skip(rel, path, is_dir=False, reason=SkipReason.PATH_ESCAPES_ROOT, detail=exc.reason), None

        is_link = dir_entry.is_symlink()
        source = path
        try:
            if is_link:
                source = resolve_symlink(path, self.root)
                st = source.stat()
            else:
                st = dir_entry.stat(follow_symlinks=False)
        except UnsafePathError as exc:
            return _skip(rel, path, is_dir=False, reason=SkipReason.PATH_ESCAPES_ROOT, detail=exc.reason), None
        except OSError as exc:
            detail = f"broken symlink: {exc}" if is_link else str(exc)
            return _skip(rel, path, is_dir=False, reason=SkipReason.IO_ERROR, detail=detail), None

        is_dir = stat.S_ISDIR(st.st_mode)
        if not is_dir and not stat.S_ISREG(st.st_mode):
            return _skip(rel, path, is_dir=False, reason=SkipReason.IO_ERROR, detail="not a regular file"), None

        entry = CandidateEntry(
            source_path=source,
            rel_path=rel,
            depth=rel.count("/"),
            is_dir=is_dir,
            size=0 if is_dir else st.st_size,
            is_symlink=is_link,
        )
        outcome = evaluate(self.config, entry)
        if outcome.decision != Decision.DESCEND:
            return WalkStep(entry, outcome), None

        if source in self.visited:
            if is_link and is_within(path.parent.resolve(), source):
                seen = FilterOutcome.skip(SkipReason.IO_ERROR, f"symlink cycle: {source} is an ancestor")
            else:
                seen = FilterOutcome.skip(SkipReason.ALREADY_VISITED, f"{source} already walked")
            return WalkStep(entry, seen), None
        self.visited.add(source)
        try:
            children = list_directory(source)
        except OSError as exc:
            return WalkStep(entry, FilterOutcome.skip(SkipReason.IO_ERROR, str(exc))), None
        return WalkStep(entry, outcome), children


def walk(
    root: Path,
    config: ExtractionConfig,
    *,
    cancel_token: CancellationToken | None = None,
) -> Iterator[WalkStep]:
    """Walk `root` depth-first and classify every entry met.

    The sequence is lazy and single-pass: directories are listed only when
    they are descended, so a pruned subtree is never read. Per-entry problems
    become `io_error` or `path_escapes_root` skips and the walk continues with
    the siblings.

    Args:
        root (Path): the traversal root (the cloned or local repository)
        config (ExtractionConfig): filtering rules
        cancel_token (CancellationToken | None): checked between entries

    Raises:
        UnsafePathError: if the root is missing, not a directory or unreadable
        OperationCancelledError: if the token is cancelled during the walk

    Yields:
        WalkStep: one `(entry, outcome)` pair per visited entry, in pre-order
    """
    try:
        real_root = root.resolve(strict=True)
        if not real_root.is_dir():
            raise UnsafePathError(path=str(root), reason="traversal root is not a directory")
        first = list_directory(real_root)
    except OSError as exc:
        raise UnsafePathError(path=str(root), reason=f"cannot read traversal root: {exc}") from exc

    state = _Walk(real_root, config)
    stack: list[tuple[str, Iterator[os.DirEntry[str]]]] = [("", iter(first))]
    while stack:
        parent_rel, entries = stack[-1]
        dir_entry = next(entries, None)
        if dir_entry is None:
            stack.pop()
            continue
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        rel = f"{parent_rel}/{dir_entry.name}" if parent_rel else dir_entry.name
        step, children = state.classify(dir_entry, rel)
        if step.outcome.reason in {SkipReason.IO_ERROR, SkipReason.PATH_ESCAPES_ROOT}:
            logger.warning("entry_skipped", path=rel, reason=str(step.outcome.reason), detail=step.outcome.detail)
        yield step
        if children is not None:
            stack.append((rel, iter(children)))
