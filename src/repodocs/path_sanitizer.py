from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath

from repodocs.exceptions import UnsafePathError

_HOSTILE_CHARS = frozenset('<>:"|?*\\')
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def normalize_relative(path: str | PurePosixPath) -> PurePosixPath:
    """Normalize an untrusted relative path lexically.

    `.` segments are dropped and `..` segments consume their parent without
    touching the filesystem, so a symlink can never influence the result.

    Args:
        path (str | PurePosixPath): the relative path, with POSIX separators

    Raises:
        UnsafePathError: if the path is empty, absolute, carries a drive letter,
            contains null bytes, control characters or filesystem-hostile
            characters, or climbs above its root

    Returns:
        PurePosixPath: the normalized path, never absolute and never starting with `..`
    """
    raw = str(path)
    if not raw:
        raise UnsafePathError(path=raw, reason="empty path")
    if "\x00" in raw:
        raise UnsafePathError(path=raw, reason="null byte in path")
    if _CONTROL_RE.search(raw):
        raise UnsafePathError(path=raw, reason="control character in path")
    if raw.startswith("/") or _DRIVE_RE.match(raw):
        raise UnsafePathError(path=raw, reason="absolute path where a relative path is expected")
    bad = sorted(set(raw) & _HOSTILE_CHARS)
    if bad:
        raise UnsafePathError(path=raw, reason=f"forbidden character(s) {''.join(bad)!r}")

    parts: list[str] = []
    for part in raw.split("/"):
        if part in {"", "."}:
            continue
        if part == "..":
            if not parts:
                raise UnsafePathError(path=raw, reason="path escapes its root")
            parts.pop()
            continue
        parts.append(part)
    if not parts:
        raise UnsafePathError(path=raw, reason="path resolves to the root itself")
    return PurePosixPath(*parts)


def is_within(path: Path, root: Path) -> bool:
    """Return True when `path` equals `root` or is one of its descendants."""
    try:
        return os.path.commonpath([str(root), str(path)]) == str(root)
    except ValueError:
        return False


def resolve_within(root: Path, rel: str | PurePosixPath) -> Path:
    """Join a sanitized relative path to `root` and check the result stays beneath it.

    Raises:
        UnsafePathError: if `rel` is unsafe or the joined path leaves `root`
    """
    normalized = normalize_relative(rel)
    base = Path(os.path.abspath(root))
    candidate = Path(os.path.normpath(base.joinpath(*normalized.parts)))
    if candidate == base or not is_within(candidate, base):
        raise UnsafePathError(path=str(rel), reason=f"path escapes {base}")
    return candidate


def resolve_symlink(link: Path, root: Path) -> Path:
    """Resolve a symlink to its real target and require it to stay under `root`.

    Args:
        link (Path): the symbolic link met during traversal
        root (Path): the traversal root

    Raises:
        OSError: if the link is broken or cannot be resolved (including loops)
        UnsafePathError: if the real target lies outside the real root

    Returns:
        Path: the real target path
    """
    real_root = root.resolve(strict=True)
    target = link.resolve(strict=True)
    if not is_within(target, real_root):
        raise UnsafePathError(path=str(link), reason=f"symlink target {target} is outside {real_root}")
    return target


def ensure_real_path_within(path: Path, root: Path) -> Path:
    """Check that the real (symlink-resolved) form of `path` lies under the real `root`."""
    real_root = root.resolve()
    real = path.resolve()
    if not is_within(real, real_root):
        raise UnsafePathError(path=str(path), reason=f"real path {real} is outside {real_root}")
    return real


def validate_output_root(path: Path, *, forbidden: tuple[Path, ...] = ()) -> Path:
    """Validate a user-supplied output root before anything is written there.

    Args:
        path (Path): the requested output directory
        forbidden (tuple[Path, ...]): trees the output root must neither contain nor sit in
            (typically the source directory)

    Raises:
        UnsafePathError: if the path contains null bytes or control characters, is the
            filesystem root or the home directory, or overlaps a forbidden tree

    Returns:
        Path: the absolute, resolved output root
    """
    raw = str(path)
    if "\x00" in raw or _CONTROL_RE.search(raw):
        raise UnsafePathError(path=raw, reason="control character in output path")
    resolved = path.expanduser().resolve()
    if resolved == Path(resolved.anchor):
        raise UnsafePathError(path=raw, reason="refusing to use the filesystem root as output")
    if resolved == Path.home().resolve():
        raise UnsafePathError(path=raw, reason="refusing to use the home directory as output")
    for tree in forbidden:
        other = tree.resolve()
        if is_within(resolved, other) or is_within(other, resolved):
            raise UnsafePathError(path=raw, reason=f"output overlaps the source tree {other}")
    return resolved
