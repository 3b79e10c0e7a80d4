"""
Logging configuration — one call at CLI startup.

Every module logs through ``logging.getLogger(__name__)``; this module
only decides where records go and how they look.

Console level precedence:
    --debug / --verbose / --quiet  >  HOPS_LOG_LEVEL  >  WARNING

An install log can be kept with HOPS_LOG_FILE (level HOPS_LOG_FILE_LEVEL,
defaulting to the console level).  Rotation is left to logrotate.
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LOG_LEVEL = "HOPS_LOG_LEVEL"
ENV_LOG_FILE = "HOPS_LOG_FILE"
ENV_LOG_FILE_LEVEL = "HOPS_LOG_FILE_LEVEL"

# ── Formats ─────────────────────────────────────────────────────

# (threshold, format, datefmt): first threshold >= level wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(process)d] %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LOG_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers with the HOPS console (and file) handler.

    Args:
        level: Console level name.  Unknown names fall back to WARNING.
        log_file: Optional path of an append-mode install log.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_console_handler(console_level))

    root_level = console_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root.addHandler(_file_handler(log_file, file_level))
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    # A broken stderr must not abort an install midway
    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next(
        (f, d) for threshold, f, d in _CONSOLE_FORMATS if level <= threshold
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def _parse_level(level: str | None) -> int:
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
