"""structlog configuration for the API process."""

from __future__ import annotations

import logging
import sys
from typing import IO

import structlog

from app.config import settings


class _TeeWriter:
    """Mirror log lines to stdout and an append-only JSON-lines file.

    If the file can't be opened or written, file logging is switched off
    and stdout keeps working.
    """

    def __init__(self, file_path: str) -> None:
        self._path = file_path
        self._file: IO[str] | None = None
        try:
            self._file = open(file_path, "a")  # noqa: SIM115
        except OSError as exc:
            # structlog is not configured yet at this point
            print(f"WARNING: cannot open log file {file_path!r}: {exc}", file=sys.stderr)

    def _disable(self, reason: str) -> None:
        self._file = None
        print(f"WARNING: log file {self._path!r} disabled ({reason})", file=sys.stderr)

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        if self._file is None:
            return
        try:
            self._file.write(data)
            self._file.flush()
        except (OSError, ValueError) as exc:
            self._disable(str(exc))

    def flush(self) -> None:
        sys.stdout.flush()
        if self._file is None:
            return
        try:
            self._file.flush()
        except (OSError, ValueError) as exc:
            self._disable(str(exc))


def configure_logging() -> None:
    """Console renderer in development, JSON everywhere else.

    LOG_FILE additionally tees every entry to a file.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.environment == "development"
        else structlog.processors.JSONRenderer()
    )
    level = logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)

    if settings.log_file:
        logger_factory = structlog.PrintLoggerFactory(file=_TeeWriter(settings.log_file))  # type: ignore[arg-type]
    else:
        logger_factory = structlog.PrintLoggerFactory()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )
