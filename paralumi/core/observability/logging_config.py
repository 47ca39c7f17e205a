"""
Logging configuration — central setup for the paralumi CLI.

Called once by the CLI group in main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    CLI flag  >  PARALUMI_LOG_LEVEL env var  >  WARNING (default)

Optional file output via PARALUMI_LOG_FILE / PARALUMI_LOG_FILE_LEVEL.

Environments are worked on concurrently, so every record is tagged
with the environment its worker is handling (``-`` outside a worker):

    with environment_scope("prod"):
        logger.info("...")      # 12:00:01 [prod] ...
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

# ── Format strings ──────────────────────────────────────────────

# WARNING level — one line per diagnostic
_FMT_MINIMAL = "%(message)s"

# INFO level — timestamped, with the environment being worked on
_FMT_VERBOSE = "%(asctime)s [%(environment)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

# DEBUG level — full diagnostic with file:line
_FMT_DEBUG = (
    "%(asctime)s %(levelname)-5s [%(threadName)s %(environment)s] "
    "%(name)s:%(lineno)d — %(message)s"
)
_DATEFMT_DEBUG = "%H:%M:%S"

# File output — always full detail
_FMT_FILE = _FMT_DEBUG
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# The Pulumi SDK and its gRPC transport log heavily below WARNING
_NOISY_LOGGERS = ("pulumi", "grpc", "urllib3", "asyncio")

_environment: ContextVar[str] = ContextVar("paralumi_environment", default="-")


@contextmanager
def environment_scope(environment: str) -> Iterator[None]:
    """Tag log records emitted in this block with ``environment``."""
    token = _environment.set(environment)
    try:
        yield
    finally:
        _environment.reset(token)


class EnvironmentFilter(logging.Filter):
    """Add ``record.environment`` so handler formats can use it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.environment = _environment.get()
        return True


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the whole process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Optional separate level for the log file.
            Defaults to the same as ``level``.
        quiet_third_party: Keep SDK loggers at WARNING unless at DEBUG.
    """
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    console.addFilter(EnvironmentFilter())

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console)

    effective_level = numeric_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        fh.addFilter(EnvironmentFilter())
        root.addHandler(fh)

    root.setLevel(effective_level)

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env_level: str | None = None,
) -> str:
    """Pick the console level from CLI flags, falling back to the env var."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return env_level or "WARNING"


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
