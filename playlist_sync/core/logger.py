"""
Logging configuration for playlist-sync.

This module sets up the logging system with multiple outputs:
    - Console: Real-time messages with tqdm-compatible, colored formatting
    - log_full_{timestamp}.log: Complete log of all events (DEBUG and above)
    - log_errors_{timestamp}.log: Only ERROR and CRITICAL level messages
    - sync_failures_{timestamp}.log: Playlists whose remote mirror failed

Remote failures never stop a save (the local write still stands), so they
are easy to miss on the console. The sync failures report collects them
in one place so the user can retry or migrate later.

Usage:
    from playlist_sync.core.logger import setup_logging, get_logger

    setup_logging(data_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Sharing playlist")
    log_sync_failure(logger, record.name, record.share_code, "save", str(e))
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


LOG_FULL_FILENAME = "log_full"
LOG_ERRORS_FILENAME = "log_errors"
SYNC_FAILURES_FILENAME = "sync_failures"

# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that colors the level name on console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes through tqdm.write().

    Progress bars redraw in place with carriage returns; writing through
    tqdm keeps log lines above any active bar instead of corrupting it.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class SyncFailureHandler(logging.Handler):
    """
    Handler that captures remote sync failures for the report file.

    Records carrying the 'sync_failed_playlist' extra field are written in
    a simple, human-readable format:

        Party Mix [AB12CD34]
        save: Remote rejected document create (HTTP 400)

    The handler looks for these extra fields:
        - 'sync_failed_playlist': Playlist name
        - 'sync_failed_code': Share code (optional)
        - 'sync_failed_operation': Operation that failed (save, rate, ...)
        - 'sync_failed_reason': Short failure description

    Attributes:
        report_path: Path to the sync_failures log file.
        report_file: Open file handle (set by open()).
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "sync_failed_playlist"):
            return

        if self.report_file is None:
            return

        try:
            name = getattr(record, "sync_failed_playlist", "Unknown")
            code = getattr(record, "sync_failed_code", None)
            operation = getattr(record, "sync_failed_operation", "sync")
            reason = getattr(record, "sync_failed_reason", "")

            header = f"{name} [{code}]" if code else name
            self.report_file.write(f"{header}\n")
            self.report_file.write(f"{operation}: {reason}\n\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(output_dir: Path, console_level: int = logging.INFO) -> None:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        output_dir: Directory where log files will be created.
                    Logs are stored in a 'logs' subdirectory.
        console_level: Minimum level shown on the console.

    Behavior:
        1. Create output_dir/logs if it doesn't exist
        2. Generate timestamp for this run's log files
        3. Configure root logger level to DEBUG
        4. Console handler (TqdmLoggingHandler), colored, console_level
        5. Full log file handler, DEBUG
        6. Error log file handler, filtered to ERROR+ by ErrorOnlyFilter
        7. Sync failures report handler
        8. Quiet the aiohttp loggers below WARNING
    """
    logs_dir = output_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_log_path = logs_dir / f"{LOG_FULL_FILENAME}_{timestamp}.log"
    full_handler = logging.FileHandler(full_log_path, mode="w", encoding="utf-8")
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_log_path = logs_dir / f"{LOG_ERRORS_FILENAME}_{timestamp}.log"
    error_handler = logging.FileHandler(error_log_path, mode="w", encoding="utf-8")
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    failures_path = logs_dir / f"{SYNC_FAILURES_FILENAME}_{timestamp}.log"
    failures_handler = SyncFailureHandler(failures_path)
    failures_handler.open()
    root_logger.addHandler(failures_handler)

    for noisy in ("aiohttp.access", "aiohttp.client", "aiohttp.internal"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Note:
        Loggers obtained before setup_logging() is called have no handlers
        of their own; records propagate to whatever the root logger has.
    """
    return logging.getLogger(name)


def log_sync_failure(
    logger: logging.Logger,
    playlist_name: str,
    share_code: str | None,
    operation: str,
    reason: str
) -> None:
    """
    Log a remote sync failure with the extras SyncFailureHandler expects.

    Logged at WARNING: the operation still succeeded locally.
    """
    logger.warning(
        f"Remote {operation} failed for '{playlist_name}': {reason} (kept locally)",
        extra={
            "sync_failed_playlist": playlist_name,
            "sync_failed_code": share_code,
            "sync_failed_operation": operation,
            "sync_failed_reason": reason,
        }
    )


def shutdown_logging() -> None:
    """
    Flush and close all handlers of the root logger.

    Typically called in a finally block at application exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
