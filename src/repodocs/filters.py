from __future__ import annotations

from functools import wraps
from typing import TYPE_CHECKING, Any

from repodocs.config import METADATA_DIR
from repodocs.models import FilterOutcome, SkipReason

if TYPE_CHECKING:
    from collections.abc import Callable

    from repodocs.config import ExtractionConfig
    from repodocs.models import CandidateEntry

    FilterRuleFn = Callable[[ExtractionConfig, CandidateEntry], FilterOutcome | None]

FILTER_RULES: list[tuple[str, FilterRuleFn]] = []


def register_rule(name: str) -> Callable[[FilterRuleFn], FilterRuleFn]:
    """Decorator appending a filter rule to `FILTER_RULES`.

    Rules run in registration order and the first one returning an outcome wins.
    A rule returns None to let the next rule decide.

    Args:
        name (str): a short name for the rule, used in logs and tests

    Returns:
        Callable[[FilterRuleFn], FilterRuleFn]: the registering decorator
    """

    def decorator(func: FilterRuleFn) -> FilterRuleFn:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:  # noqa: ANN401
            return func(*args, **kwargs)

        FILTER_RULES.append((name, wrapper))
        return wrapper

    return decorator


@register_rule("depth")
def check_depth(config: ExtractionConfig, entry: CandidateEntry) -> FilterOutcome | None:
    if entry.depth > config.max_depth:
        return FilterOutcome.skip(
            SkipReason.EXCEEDS_MAX_DEPTH,
            f"depth {entry.depth} > {config.max_depth}",
        )
    return None


@register_rule("excluded_directory")
def check_excluded_directory(config: ExtractionConfig, entry: CandidateEntry) -> FilterOutcome | None:
    """Prune excluded directories; the metadata directory is always excluded."""
    if entry.is_dir and entry.name == METADATA_DIR:
        return FilterOutcome.skip(SkipReason.EXCLUDED_DIRECTORY, "reserved metadata directory")
    if entry.is_dir and entry.name in config.exclude_dirs:
        return FilterOutcome.skip(SkipReason.EXCLUDED_DIRECTORY, entry.name)
    return None


@register_rule("excluded_pattern")
def check_excluded_pattern(config: ExtractionConfig, entry: CandidateEntry) -> FilterOutcome | None:
    for pattern in config.compiled_patterns:
        if pattern.search(entry.rel_path):
            return FilterOutcome.skip(SkipReason.EXCLUDED_PATTERN, pattern.pattern)
    return None


@register_rule("extension")
def check_extension(config: ExtractionConfig, entry: CandidateEntry) -> FilterOutcome | None:
    if entry.is_dir:
        return None
    ext = entry.extension
    if ext and ext in config.extensions:
        return None
    if not ext and entry.name.lower() in config.extensionless_names:
        return None
    return FilterOutcome.skip(SkipReason.UNSUPPORTED_EXTENSION, ext or "no extension")


@register_rule("size")
def check_size(config: ExtractionConfig, entry: CandidateEntry) -> FilterOutcome | None:
    if not entry.is_dir and entry.size > config.max_file_size:
        return FilterOutcome.skip(
            SkipReason.EXCEEDS_MAX_SIZE,
            f"{entry.size} bytes > {config.max_file_size} bytes",
        )
    return None


def evaluate(config: ExtractionConfig, entry: CandidateEntry) -> FilterOutcome:
    """Decide what to do with one traversal entry.

    Args:
        config (ExtractionConfig): the immutable extraction rules
        entry (CandidateEntry): the entry to classify

    Returns:
        FilterOutcome: the first skip produced by a rule, else `descend` for
            directories and `include` for files
    """
    for _name, rule in FILTER_RULES:
        outcome = rule(config, entry)
        if outcome is not None:
            return outcome
    return FilterOutcome.descend() if entry.is_dir else FilterOutcome.include()
