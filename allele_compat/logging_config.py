"""
Centralized logging configuration for comparison runs.

Provides:
- Console handler: only high-level output (WARNING level by default)
- File handler: full detail with rotation (DEBUG level), optional
- Progress logger: always prints to console for run announcements
"""

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


PROGRESS_LOGGER = "allele_compat.progress"
PROGRESS_HANDLER = "allele_compat.progress.console"

# Module-level state
_logging_initialized = False
_log_file_path: Optional[str] = None


def setup_logging(
    log_dir: Optional[str] = None,
    job_name: str = "allele_compat",
    console_level: int = logging.WARNING,
    file_level: int = logging.DEBUG,
    max_bytes: int = 5 * 1024 * 1024,  # 5MB
    backup_count: int = 3,
    verbosity: int = 0,
) -> Optional[str]:
    """
    Initialize logging with a console handler and, when ``log_dir`` is
    given, a rotating file handler.

    Args:
        log_dir: Directory for log files. If None, no log file is written.
        job_name: Name prefix for log file.
        console_level: Log level for console output (default: WARNING).
        file_level: Log level for file output (default: DEBUG).
        max_bytes: Maximum size per log file before rotation.
        backup_count: Number of backup files to keep.
        verbosity: 1 lowers the console level to INFO, 2 or more to DEBUG.

    Returns:
        Path to the log file, or None when logging to console only.
    """
    global _logging_initialized, _log_file_path

    # Avoid re-initialization
    if _logging_initialized:
        return _log_file_path

    if verbosity >= 2:
        console_level = logging.DEBUG
    elif verbosity == 1:
        console_level = min(console_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture everything, handlers filter
    root_logger.handlers.clear()

    # Console handler - minimal output
    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir) / "logs"
        log_path.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_path / f"{job_name}_{timestamp}.log"
        _log_file_path = str(log_file)

        # File handler - detailed output with rotation
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s"
        ))
        root_logger.addHandler(file_handler)

    # pysam reports through its own loggers; keep them quiet
    logging.getLogger("pysam").setLevel(logging.WARNING)

    _logging_initialized = True

    return _log_file_path


def get_progress_logger() -> logging.Logger:
    """
    Get a logger that always prints to console.

    Use this for run announcements that should always be visible:
    files loaded, comparison start/completion, final summaries.
    """
    logger = logging.getLogger(PROGRESS_LOGGER)

    if not any(h.get_name() == PROGRESS_HANDLER for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.set_name(PROGRESS_HANDLER)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(console_handler)
        logger.setLevel(logging.INFO)
        # Prevent propagation to avoid duplicate messages
        logger.propagate = False

    return logger


def get_log_file_path() -> Optional[str]:
    """Get the path to the current log file."""
    return _log_file_path


def reset_logging() -> None:
    """Reset logging state. Useful for testing."""
    global _logging_initialized, _log_file_path
    _logging_initialized = False
    _log_file_path = None

    logging.getLogger().handlers.clear()
    progress_logger = logging.getLogger(PROGRESS_LOGGER)
    for handler in [h for h in progress_logger.handlers if h.get_name() == PROGRESS_HANDLER]:
        progress_logger.removeHandler(handler)
