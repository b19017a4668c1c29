from __future__ import annotations

import hashlib
import os
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, NamedTuple

from repodocs.exceptions import ExtractionIoError
from repodocs.path_sanitizer import ensure_real_path_within

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

COPY_CHUNK_SIZE = 64 * 1024


class CopyResult(NamedTuple):
    size: int
    sha256: str
    mtime: float


def copy_verbatim(
    source: Path,
    dest: Path,
    *,
    expected_size: int,
    output_root: Path,
    compute_hash: bool = True,
) -> CopyResult:
    """Copy a file byte for byte, guarding against files that change during the copy.

    The destination is created exclusively, so an existing file is never
    overwritten. If the source yields more bytes than `expected_size`, or a
    different count at end of file, the partial output is removed.

    Args:
        source (Path): the validated source file
        dest (Path): the destination, already sanitized against `output_root`
        expected_size (int): the size observed when the file was filtered
        output_root (Path): the only allowed ancestor of `dest`
        compute_hash (bool): whether to compute a SHA-256 digest while copying

    Raises:
        ExtractionIoError: on any read/write failure or size mismatch
        UnsafePathError: if the real destination directory is outside `output_root`

    Returns:
        CopyResult: bytes written, hex digest ("" when not computed), source mtime
    """
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ExtractionIoError(path=str(dest), detail=f"cannot create directory: {exc}") from exc
    ensure_real_path_within(dest.parent, output_root)

    try:
        src = source.open("rb")
    except OSError as exc:
        raise ExtractionIoError(path=str(source), detail=str(exc)) from exc

    digest = hashlib.sha256() if compute_hash else None
    total = 0
    with src:
        try:
            dst = dest.open("xb")
        except OSError as exc:
            raise ExtractionIoError(path=str(dest), detail=str(exc)) from exc
        try:
            with dst:
                st = os.fstat(src.fileno())
                for blk in iter(lambda: src.read(COPY_CHUNK_SIZE), b""):
                    total += len(blk)
                    if total > expected_size:
                        raise ExtractionIoError(
                            path=str(source),
                            detail=f"file grew during copy (expected {expected_size} bytes)",
                        )
                    if digest is not None:
                        digest.update(blk)
                    dst.write(blk)
            if total != expected_size:
                raise ExtractionIoError(
                    path=str(source),
                    detail=f"size changed during copy ({total} of {expected_size} bytes read)",
                )
            os.utime(dest, ns=(st.st_atime_ns, st.st_mtime_ns))
        except ExtractionIoError:
            dest.unlink(missing_ok=True)
            raise
        except OSError as exc:
            dest.unlink(missing_ok=True)
            raise ExtractionIoError(path=str(source), detail=str(exc)) from exc

    return CopyResult(size=total, sha256=digest.hexdigest() if digest else "", mtime=st.st_mtime)


def build_tree_lines(root_name: str, rel_paths: Sequence[str]) -> list[str]:
    """Build a visual tree representation of file paths.

    Args:
        root_name (str): the name to use for the root of the tree
        rel_paths (Sequence[str]): the list of file paths relative to the root, using POSIX separators (e.g. "docs/intro.md")

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    rels = sorted({p.strip("/") for p in rel_paths if p.strip()}, key=str.lower)
    tree: dict[str, Any] = {}
    for rp in rels:
        cur = tree
        parts = rp.split("/")
        for part in parts[:-1]:
            cur = cur.setdefault(part, {})
        cur.setdefault("__files__", set()).add(parts[-1])

    lines: list[str] = [f"{root_name}/"]

    def walk(node: dict[str, Any], prefix: str) -> None:
        dirs = sorted([k for k in node if k != "__files__"], key=str.lower)
        files = sorted(node.get("__files__", set()), key=str.lower)
        entries: list[tuple[str, Any]] = [(d, node[d]) for d in dirs]
        entries.extend((f, None) for f in files)
        for idx, (name, child) in enumerate(entries):
            last = idx == len(entries) - 1
            branch = "└── " if last else "├── "
            lines.append(prefix + branch + name + ("/" if child is not None else ""))
            if child is not None:
                walk(child, prefix + ("    " if last else "│   "))

    walk(tree, "")
    return lines


def now_iso() -> str:
    """Return the current date and time in ISO 8601 format with timezone.

    Returns:
        str: the current date and time in ISO 8601 format with timezone
    """
    return datetime.now(UTC).astimezone().isoformat(timespec="seconds")


def format_bytes(size: float) -> str:
    """Render a byte count with a binary unit, e.g. `1.5 KiB`."""
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(size) < 1024 or unit == "GiB":  # noqa: PLR2004
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GiB"
