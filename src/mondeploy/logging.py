"""Logging utilities for mondeploy.

This module provides:
- The per-invocation deployment log (file + leveled console output)
- Pruning of old deployment logs
- Log scoping and performance timing context managers
"""

import getpass
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.text import Text

from .types import LogEntry, Severity

# Standard log format
DEFAULT_FORMAT = "%(levelname)s [%(name)s] %(message)s"
DEBUG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(funcName)s:%(lineno)d] %(message)s"

LOG_FILE_PREFIX = "deployment-"
LOG_FILE_PATTERN = f"{LOG_FILE_PREFIX}*.log"

SEVERITY_STYLES = {
    Severity.DEBUG: "blue",
    Severity.INFO: "green",
    Severity.WARN: "yellow",
    Severity.ERROR: "bold red",
}

logger = logging.getLogger(__name__)


def configure_logging(
    level: int = logging.WARNING,
    format_string: str | None = None,
    debug: bool = False,
) -> None:
    """Configure diagnostic logging for mondeploy modules.

    Module loggers (``mondeploy.config``, ``mondeploy.process`` ...) report
    to stderr through the root logger. The deployment log itself is handled
    by DeploymentLog and does not propagate here.

    Args:
        level: Logging level for console (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string (uses default if None)
        debug: If True, use debug format with timestamps and line numbers

    Example:
        >>> configure_logging(level=logging.INFO)
        >>> configure_logging(debug=True)
    """
    if format_string is None:
        if debug or level <= logging.DEBUG:
            format_string = DEBUG_FORMAT
        else:
            format_string = DEFAULT_FORMAT

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(format_string))
    root_logger.addHandler(console_handler)


class LazyFileHandler(logging.FileHandler):
    """File handler that creates the file and its directory on first write."""

    def __init__(self, filename: str | Path) -> None:
        super().__init__(filename, encoding="utf-8", delay=True)

    def _open(self):  # type: ignore[override]
        Path(self.baseFilename).parent.mkdir(parents=True, exist_ok=True)
        return super()._open()


class LogFileFormatter(logging.Formatter):
    """Formats records as ``[YYYY-mm-dd HH:MM:SS] LEVEL: message``.

    Raw collaborator output is written unchanged.
    """

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, "raw", False):
            return record.getMessage()
        entry = getattr(record, "entry", None)
        if entry is None:
            entry = LogEntry(
                timestamp=datetime.fromtimestamp(record.created),
                severity=_severity_for_level(record.levelno),
                message=record.getMessage(),
            )
        return entry.format_line()


class ConsoleHandler(logging.Handler):
    """Writes leveled, colored lines to the interactive console with rich."""

    def __init__(self, console: Console | None = None, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.console = console or Console(highlight=False)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            if getattr(record, "raw", False):
                text = Text(message)
            else:
                severity = getattr(record, "severity", None) or _severity_for_level(record.levelno)
                text = Text.assemble(
                    (f"[{severity.value}]", SEVERITY_STYLES[severity]), " ", message
                )
            self.console.print(text, soft_wrap=True)
        except Exception:
            self.handleError(record)


def _severity_for_level(levelno: int) -> Severity:
    if levelno >= logging.ERROR:
        return Severity.ERROR
    if levelno >= logging.WARNING:
        return Severity.WARN
    if levelno >= logging.INFO:
        return Severity.INFO
    return Severity.DEBUG


def log_file_name(started: datetime) -> str:
    """Name of the log file for an invocation started at ``started``."""
    return f"{LOG_FILE_PREFIX}{started:%Y%m%d-%H%M%S}.log"


def prune_logs(
    log_dir: Path,
    retention_days: int,
    keep: Path | None = None,
    now: datetime | None = None,
) -> list[Path]:
    """Delete deployment logs older than the retention window.

    Best effort: files that cannot be inspected or removed are skipped.

    Args:
        log_dir: Directory holding deployment logs
        retention_days: Files last modified more than this many days ago are deleted
        keep: Log file that must never be deleted (the active one)
        now: Reference time (defaults to the current time)

    Returns:
        List of deleted log files
    """
    deleted: list[Path] = []
    if not log_dir.is_dir():
        return deleted

    cutoff = (now or datetime.now()) - timedelta(days=retention_days)
    keep_resolved = keep.resolve() if keep is not None else None

    for path in sorted(log_dir.glob(LOG_FILE_PATTERN)):
        try:
            if keep_resolved is not None and path.resolve() == keep_resolved:
                continue
            if not path.is_file():
                continue
            modified = datetime.fromtimestamp(path.stat().st_mtime)
            if modified < cutoff:
                path.unlink()
                deleted.append(path)
        except OSError as e:
            logger.debug(f"Could not prune {path}: {e}")

    return deleted


class DeploymentLog:
    """Append-only log for one mondeploy invocation.

    Every entry is written to a timestamped file in the log directory. Entries
    at or above the console threshold (INFO, or DEBUG when verbose) are also
    printed to the console as ``[LEVEL] message``.

    Attributes:
        log_dir: Directory holding deployment logs
        path: Log file for this invocation
        verbose: Whether DEBUG entries reach the console
        entries: Entries recorded so far, in emission order

    Example:
        >>> log = DeploymentLog(Path("logs"), verbose=True)
        >>> log.start_session(["mondeploy", "check"])
        >>> log.info("Checking prerequisites...")
        >>> log.echo("localhost | SUCCESS => {...}")
    """

    def __init__(
        self,
        log_dir: Path,
        verbose: bool = False,
        retention_days: int = 7,
        console: Console | None = None,
        started: datetime | None = None,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.verbose = verbose
        self.retention_days = retention_days
        self.started = started or datetime.now()
        self.path = self.log_dir / log_file_name(self.started)
        self.entries: list[LogEntry] = []

        self._logger = logging.getLogger("mondeploy.run")
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False
        for handler in self._logger.handlers[:]:
            self._logger.removeHandler(handler)
            handler.close()

        self._file_handler = LazyFileHandler(self.path)
        self._file_handler.setLevel(logging.DEBUG)
        self._file_handler.setFormatter(LogFileFormatter())
        self._logger.addHandler(self._file_handler)

        self._console_handler = ConsoleHandler(
            console, level=logging.DEBUG if verbose else logging.INFO
        )
        self._logger.addHandler(self._console_handler)

    def start_session(self, argv: list[str]) -> list[Path]:
        """Prune old logs and write the session header.

        Args:
            argv: Command line of this invocation

        Returns:
            Log files removed by pruning
        """
        pruned = prune_logs(self.log_dir, self.retention_days, keep=self.path)

        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            user = "unknown"

        self._write_file_only(f"=== Deployment Log Started at {self.started:%Y-%m-%d %H:%M:%S} ===")
        self._write_file_only(f"Command: {' '.join(argv)}")
        self._write_file_only(f"User: {user}")
        self._write_file_only(f"Working Directory: {os.getcwd()}")
        self._write_file_only("=" * 41)
        return pruned

    def record(self, severity: Severity, message: str) -> LogEntry:
        """Append an entry to the log and echo it to the console if loud enough."""
        entry = LogEntry(timestamp=datetime.now(), severity=severity, message=message)
        self.entries.append(entry)
        self._logger.log(severity.level, message, extra={"severity": severity, "entry": entry})
        return entry

    def debug(self, message: str) -> LogEntry:
        return self.record(Severity.DEBUG, message)

    def info(self, message: str) -> LogEntry:
        return self.record(Severity.INFO, message)

    def warning(self, message: str) -> LogEntry:
        return self.record(Severity.WARN, message)

    def error(self, message: str) -> LogEntry:
        return self.record(Severity.ERROR, message)

    def echo(self, line: str) -> None:
        """Write collaborator output verbatim to the log file and the console."""
        self._logger.info(line, extra={"raw": True})

    def file_only(self, severity: Severity, message: str) -> LogEntry:
        """Append an entry to the log file without printing it."""
        entry = LogEntry(timestamp=datetime.now(), severity=severity, message=message)
        self.entries.append(entry)
        record = self._logger.makeRecord(
            self._logger.name, severity.level, __file__, 0, message, None, None,
            extra={"severity": severity, "entry": entry},
        )
        self._file_handler.handle(record)
        return entry

    def _write_file_only(self, line: str) -> None:
        record = self._logger.makeRecord(
            self._logger.name, logging.INFO, __file__, 0, line, None, None, extra={"raw": True}
        )
        self._file_handler.handle(record)

    def close(self) -> None:
        """Flush and close the log file."""
        for handler in (self._file_handler, self._console_handler):
            self._logger.removeHandler(handler)
            handler.close()


@contextmanager
def log_scope(
    logger: logging.Logger,
    message: str,
    level: int = logging.INFO,
    **context: Any,
) -> Generator[None, None, None]:
    """Context manager for scoped logging.

    Logs entry and exit of a scope with optional context data.

    Args:
        logger: Logger instance to use
        message: Message describing the scope
        level: Log level to use
        **context: Additional context to include in logs

    Example:
        >>> logger = logging.getLogger(__name__)
        >>> with log_scope(logger, "Running pipeline", command="deploy"):
        ...     pass
        INFO: Entering: Running pipeline (command=deploy)
        INFO: Exiting: Running pipeline (command=deploy)
    """
    context_str = ", ".join(f"{k}={v}" for k, v in context.items())
    full_message = f"{message} ({context_str})" if context else message

    logger.log(level, f"Entering: {full_message}")
    try:
        yield
    finally:
        logger.log(level, f"Exiting: {full_message}")


@contextmanager
def log_performance(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    threshold: float | None = None,
    **context: Any,
) -> Generator[None, None, None]:
    """Context manager for performance logging.

    Times an operation and logs the duration.

    Args:
        logger: Logger instance to use
        operation: Description of the operation being timed
        level: Log level to use
        threshold: Only log if duration exceeds this threshold (seconds)
        **context: Additional context to include in logs

    Example:
        >>> logger = logging.getLogger(__name__)
        >>> with log_performance(logger, "ansible-playbook", mode="apply"):
        ...     time.sleep(0.1)
        INFO: ansible-playbook completed in 0.100s (mode=apply)
    """
    start_time = time.perf_counter()
    context_str = ", ".join(f"{k}={v}" for k, v in context.items())

    try:
        yield
    finally:
        duration = time.perf_counter() - start_time

        # Only log if threshold not set or exceeded
        if threshold is None or duration >= threshold:
            full_message = f"{operation} completed in {duration:.3f}s"
            if context:
                full_message += f" ({context_str})"
            logger.log(level, full_message)
