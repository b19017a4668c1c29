from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

LOGGER_NAME = "repodocs"

_LOGGING_CONFIGURED = False


def _level_for(verbose: int, *, quiet: bool) -> int:
    if quiet:
        return logging.ERROR
    if verbose >= 2:  # noqa: PLR2004
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


def setup_logging(
    filename: str | Path | None = None,
    *,
    verbose: int = 0,
    quiet: bool = False,
    force: bool = False,
) -> structlog.BoundLogger:
    """Set up structured logging for the repodocs package.

    The first call configures logging; later calls only return the logger,
    unless `force` is set. Without `force`, handlers already installed on the
    root logger by an importing application are left untouched.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        verbose: Verbosity count (0 = warnings, 1 = info, 2+ = debug).
        quiet: Only log errors.
        force: Replace the root handlers and level; used by the CLI once its
            arguments are parsed.

    Returns:
        A structlog logger instance configured for the repodocs package.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if not _LOGGING_CONFIGURED or force:
        level = _level_for(verbose, quiet=quiet)
        handlers: list[logging.Handler] = []
        if filename:
            handlers.append(logging.FileHandler(str(filename), encoding="utf-8"))
        else:
            handlers.append(logging.StreamHandler(sys.stderr))

        logging.basicConfig(
            level=level,
            handlers=handlers,
            format="%(message)s",
            force=force,
        )
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )
        _LOGGING_CONFIGURED = True

    return structlog.get_logger(LOGGER_NAME)


logger = setup_logging()
