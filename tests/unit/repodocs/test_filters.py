from __future__ import annotations

from pathlib import Path

import pytest

from repodocs.config import ExtractionConfig
from repodocs.filters import FILTER_RULES, evaluate
from repodocs.models import CandidateEntry, Decision, SkipReason


def make_entry(rel_path: str, *, is_dir: bool = False, size: int = 10) -> CandidateEntry:
    return CandidateEntry(
        source_path=Path("/repo") / rel_path,
        rel_path=rel_path,
        depth=rel_path.count("/"),
        is_dir=is_dir,
        size=0 if is_dir else size,
    )


@pytest.mark.unit
def test_filter_rules_run_in_documented_order() -> None:
    assert [name for name, _ in FILTER_RULES] == [
        "depth",
        "excluded_directory",
        "excluded_pattern",
        "extension",
        "size",
    ]


@pytest.mark.unit
def test_scenario_a_size_and_extension_rules() -> None:
    config = ExtractionConfig(extensions=["md", "txt"], max_file_size=1000)

    readme = evaluate(config, make_entry("README.md", size=500))
    notes = evaluate(config, make_entry("notes.txt", size=2000))
    image = evaluate(config, make_entry("image.png", size=100))

    assert readme.decision == Decision.INCLUDE
    assert notes.reason == SkipReason.EXCEEDS_MAX_SIZE
    assert image.reason == SkipReason.UNSUPPORTED_EXTENSION


@pytest.mark.unit
def test_depth_rule_applies_to_files_and_directories() -> None:
    config = ExtractionConfig(max_depth=1)

    assert evaluate(config, make_entry("a/b/c.md")).reason == SkipReason.EXCEEDS_MAX_DEPTH
    assert evaluate(config, make_entry("a/b/c", is_dir=True)).reason == SkipReason.EXCEEDS_MAX_DEPTH
    assert evaluate(config, make_entry("a/b", is_dir=True)).decision == Decision.DESCEND


@pytest.mark.unit
def test_depth_rule_wins_over_directory_exclusion() -> None:
    config = ExtractionConfig(max_depth=0)

    outcome = evaluate(config, make_entry("pkg/node_modules", is_dir=True))

    assert outcome.reason == SkipReason.EXCEEDS_MAX_DEPTH


@pytest.mark.unit
def test_excluded_directories_match_exact_case_sensitive_names() -> None:
    config = ExtractionConfig()

    assert evaluate(config, make_entry("node_modules", is_dir=True)).reason == SkipReason.EXCLUDED_DIRECTORY
    assert evaluate(config, make_entry("pkg/.git", is_dir=True)).reason == SkipReason.EXCLUDED_DIRECTORY
    assert evaluate(config, make_entry("Node_Modules", is_dir=True)).decision == Decision.DESCEND
    assert evaluate(config, make_entry("node_modules_docs", is_dir=True)).decision == Decision.DESCEND


@pytest.mark.unit
def test_excluded_directory_names_do_not_apply_to_files() -> None:
    config = ExtractionConfig(extensionless_names=["build"])

    assert evaluate(config, make_entry("build")).decision == Decision.INCLUDE


@pytest.mark.unit
def test_metadata_directory_is_always_excluded() -> None:
    config = ExtractionConfig(exclude_dirs=[])

    assert evaluate(config, make_entry(".repodocs", is_dir=True)).reason == SkipReason.EXCLUDED_DIRECTORY
    assert evaluate(config, make_entry("docs/.repodocs", is_dir=True)).reason == SkipReason.EXCLUDED_DIRECTORY


@pytest.mark.unit
def test_file_named_like_the_metadata_directory_is_filtered_as_a_file() -> None:
    outcome = evaluate(ExtractionConfig(), make_entry(".repodocs"))

    assert outcome.reason == SkipReason.UNSUPPORTED_EXTENSION


@pytest.mark.unit
def test_patterns_are_searched_against_the_relative_path() -> None:
    config = ExtractionConfig(exclude_patterns=[r"^docs/internal/", r".*\.min\..*"])

    internal = evaluate(config, make_entry("docs/internal/plan.md"))
    minified = evaluate(config, make_entry("assets/app.min.md"))

    assert internal.reason == SkipReason.EXCLUDED_PATTERN
    assert internal.detail == r"^docs/internal/"
    assert minified.reason == SkipReason.EXCLUDED_PATTERN
    assert evaluate(config, make_entry("docs/public/plan.md")).decision == Decision.INCLUDE


@pytest.mark.unit
def test_pattern_rule_runs_before_extension_rule() -> None:
    config = ExtractionConfig()

    assert evaluate(config, make_entry("yarn.lock")).reason == SkipReason.EXCLUDED_PATTERN


@pytest.mark.unit
def test_extension_match_is_case_insensitive() -> None:
    config = ExtractionConfig(extensions=["MD", ".Rst"])

    assert evaluate(config, make_entry("GUIDE.MD")).decision == Decision.INCLUDE
    assert evaluate(config, make_entry("docs/index.rst")).decision == Decision.INCLUDE
    assert evaluate(config, make_entry("notes.txt")).reason == SkipReason.UNSUPPORTED_EXTENSION


@pytest.mark.unit
def test_extensionless_allow_list() -> None:
    config = ExtractionConfig()

    assert evaluate(config, make_entry("LICENSE")).decision == Decision.INCLUDE
    assert evaluate(config, make_entry("docs/Changelog")).decision == Decision.INCLUDE
    assert evaluate(config, make_entry("Makefile")).reason == SkipReason.UNSUPPORTED_EXTENSION


@pytest.mark.unit
def test_extension_rule_runs_before_size_rule() -> None:
    config = ExtractionConfig(max_file_size=10)

    assert evaluate(config, make_entry("big.png", size=5000)).reason == SkipReason.UNSUPPORTED_EXTENSION
    assert evaluate(config, make_entry("big.md", size=5000)).reason == SkipReason.EXCEEDS_MAX_SIZE
    assert evaluate(config, make_entry("edge.md", size=10)).decision == Decision.INCLUDE
