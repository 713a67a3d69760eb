"""
Structured logging configuration using structlog.

Provides consistent, structured logging across the application with:
- JSON output in production
- Pretty console output in development
- Context binding (session_id) for turn tracing
- File output to logs/ directory, one file per process run
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.typing import Processor

from src.core.config import settings

LOG_FILE_PREFIX = "mycel_"


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete old log files, keeping only the N most recent."""
    log_files = sorted(
        logs_dir.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )

    for old_file in log_files[max(keep, 0):]:
        try:
            os.remove(old_file)
        except OSError as e:
            logging.getLogger(__name__).warning(
                "log_cull_failed file=%s error=%s", old_file, e
            )


def configure_logging(
    log_sessions_to_keep: int = 5,
    logs_dir: Optional[Path] = None,
    level: Optional[int] = None,
) -> Path:
    """Configure structlog for the application.

    Call this once at process startup, before any logging.

    Args:
        log_sessions_to_keep: Number of recent log files to retain
        logs_dir: Directory for log files (default: ./logs)
        level: Log level override (DEBUG when settings.debug, else INFO)

    Returns:
        Path of the log file created for this run
    """
    logs_dir = logs_dir or Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    # keep-1 to make room for the new file
    _cull_old_logs(logs_dir, keep=log_sessions_to_keep - 1)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"{LOG_FILE_PREFIX}{timestamp}.log"

    if level is None:
        level = logging.DEBUG if settings.debug else logging.INFO

    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if settings.debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    # Clear existing handlers (reconfiguration in tests / long-running processes)
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(file_handler)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return log_file


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from src.core.logging import get_logger

        log = get_logger(__name__)
        log.info("turn_processed", turn_number=3)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind context variables that will be included in all subsequent logs.

        bind_context(session_id=session.id)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables from the logging context."""
    structlog.contextvars.clear_contextvars()
