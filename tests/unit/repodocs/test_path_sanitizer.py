from __future__ import annotations

import itertools
from pathlib import Path, PurePosixPath

import pytest

from repodocs.exceptions import UnsafePathError
from repodocs.path_sanitizer import (
    ensure_real_path_within,
    is_within,
    normalize_relative,
    resolve_symlink,
    resolve_within,
    validate_output_root,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw",
    [
        "../../etc/passwd",
        "a/../../b",
        "..",
        ".",
        "",
        "/etc/passwd",
        "C:/Windows/system.ini",
        "docs\\..\\..\\secret",
        "a\x00b.md",
        "bad\nname.md",
        "what?.md",
        "pipe|name.md",
        "a/b:c.md",
    ],
)
def test_normalize_relative_rejects_hostile_paths(raw: str) -> None:
    with pytest.raises(UnsafePathError):
        normalize_relative(raw)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("docs/intro.md", "docs/intro.md"),
        ("docs/./guide/../intro.md", "docs/intro.md"),
        ("a//b.md", "a/b.md"),
        ("./README", "README"),
        ("a/b/../../c.md", "c.md"),
    ],
)
def test_normalize_relative_resolves_dots_lexically(raw: str, expected: str) -> None:
    assert normalize_relative(raw) == PurePosixPath(expected)


@pytest.mark.unit
def test_accepted_relative_paths_never_escape_the_root(tmp_path: Path) -> None:
    segments = ["a", "..", ".", "b", "../.."]
    accepted = 0
    for length in range(1, 5):
        for combo in itertools.product(segments, repeat=length):
            raw = "/".join(combo)
            try:
                resolved = resolve_within(tmp_path, raw)
            except UnsafePathError:
                continue
            accepted += 1
            assert is_within(resolved, tmp_path)
            assert resolved != tmp_path

    assert accepted > 0


@pytest.mark.unit
def test_resolve_within_joins_under_root(tmp_path: Path) -> None:
    assert resolve_within(tmp_path, "docs/intro.md") == tmp_path / "docs" / "intro.md"


@pytest.mark.unit
def test_is_within_does_not_match_sibling_prefixes(tmp_path: Path) -> None:
    assert not is_within(tmp_path / "repo-other", tmp_path / "repo")
    assert is_within(tmp_path / "repo" / "x", tmp_path / "repo")


@pytest.mark.unit
def test_resolve_symlink_accepts_targets_inside_root(tmp_path: Path) -> None:
    target = tmp_path / "docs" / "guide.md"
    target.parent.mkdir()
    target.write_text("guide", encoding="utf-8")
    link = tmp_path / "link.md"
    link.symlink_to(target)

    assert resolve_symlink(link, tmp_path) == target.resolve()


@pytest.mark.unit
def test_resolve_symlink_rejects_targets_outside_root(tmp_path: Path) -> None:
    root = tmp_path / "repo"
    root.mkdir()
    outside = tmp_path / "secret.md"
    outside.write_text("secret", encoding="utf-8")
    link = root / "leak.md"
    link.symlink_to(outside)

    with pytest.raises(UnsafePathError):
        resolve_symlink(link, root)


@pytest.mark.unit
def test_resolve_symlink_raises_oserror_for_broken_links(tmp_path: Path) -> None:
    link = tmp_path / "broken.md"
    link.symlink_to(tmp_path / "missing.md")

    with pytest.raises(OSError):  # noqa: PT011
        resolve_symlink(link, tmp_path)


@pytest.mark.unit
def test_ensure_real_path_within_rejects_symlinked_parent(tmp_path: Path) -> None:
    out = tmp_path / "out"
    out.mkdir()
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    (out / "sub").symlink_to(elsewhere, target_is_directory=True)

    with pytest.raises(UnsafePathError):
        ensure_real_path_within(out / "sub", out)


@pytest.mark.unit
def test_validate_output_root_rejects_filesystem_root_and_home() -> None:
    with pytest.raises(UnsafePathError):
        validate_output_root(Path("/"))
    with pytest.raises(UnsafePathError):
        validate_output_root(Path.home())


@pytest.mark.unit
def test_validate_output_root_rejects_overlap_with_source(tmp_path: Path) -> None:
    source = tmp_path / "src"
    source.mkdir()

    with pytest.raises(UnsafePathError):
        validate_output_root(source / "out", forbidden=(source,))
    with pytest.raises(UnsafePathError):
        validate_output_root(tmp_path, forbidden=(source,))
    assert validate_output_root(tmp_path / "out", forbidden=(source,)) == (tmp_path / "out").resolve()
