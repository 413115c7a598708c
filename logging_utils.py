"""Logging setup for the pxb CLI and logger injection for library code."""

from __future__ import annotations

import logging
import sys

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Loggers that emit a line per callback or per parsed chunk at DEBUG.
# They only follow the root level from -vv (or an explicit --log-level) on.
TRACE_LOGGERS = ("streams.relay", "PIL")

LOG_FORMAT = "%(levelname)-7s %(name)s: %(message)s"


def add_logging_args(parser) -> None:
    """Add --log-level, -v and -q to an argparse parser."""
    group = parser.add_argument_group("logging")
    group.add_argument(
        "--log-level",
        choices=tuple(LOG_LEVELS),
        help="Set log verbosity explicitly (overrides -v/-q)",
    )
    group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="More output: -v for debug, -vv to add per-callback stream traces",
    )
    group.add_argument(
        "-q", "--quiet",
        action="count",
        default=0,
        help="Less output: -q for warnings only, -qq for errors only",
    )


def resolve_log_level(
    log_level: str | None = None,
    verbose: int = 0,
    quiet: int = 0,
) -> int:
    """Turn the CLI flags into a numeric level; ``log_level`` wins when set."""
    if log_level:
        return LOG_LEVELS[log_level.lower()]
    offset = verbose - quiet
    if offset > 0:
        return logging.DEBUG
    return {0: logging.INFO, -1: logging.WARNING}.get(offset, logging.ERROR)


def configure_logging(
    log_level: str | None = None,
    verbose: int = 0,
    quiet: int = 0,
) -> int:
    """Configure root logging on stderr and return the active level.

    stdout stays free for image bytes (``pxb convert - -``).
    """
    level = resolve_log_level(log_level=log_level, verbose=verbose, quiet=quiet)
    root_logger = logging.getLogger()

    if root_logger.handlers:
        for handler in root_logger.handlers:
            handler.setLevel(level)
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    trace_level = level if (log_level or verbose >= 2) else max(level, logging.INFO)
    for name in TRACE_LOGGERS:
        logging.getLogger(name).setLevel(trace_level)
    return level


def get_logger(name: str, logger: logging.Logger | None = None) -> logging.Logger:
    """Return the injected logger, or the module logger called ``name``.

    Stream adapters and image operations take an optional ``logger``
    argument instead of routing through a process-wide handler.
    """
    if logger is not None:
        return logger
    return logging.getLogger(name)
