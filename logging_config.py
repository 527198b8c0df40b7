"""
Centralized logging configuration for StudioManager.

Log lines carry the name of the thread that produced them. Two kinds of
threads write logs: web-server threads handling API requests, and the
single "SyncLoop" thread that runs the asyncio event loop where sign-in,
collection notifications and store writes happen.

Features:
    - Automatic thread name in all log messages
    - Console output (always enabled)
    - Rotating file logs (optional, for production)
    - Separate error log for ERROR/CRITICAL messages
    - supabase client library loggers capped at WARNING
    - Helper functions for getting loggers with consistent naming

Log Format:
    2026-10-18 10:15:30 [INFO    ] [MainThread] studio_manager.app - Starting application
    2026-10-18 10:15:31 [INFO    ] [SyncLoop] studio_manager.services.session_manager - Session ready
    2026-10-18 10:15:32 [WARNING ] [SyncLoop] studio_manager.services.collection_sync - orders subscription error

Usage:
    # At application startup
    from logging_config import setup_logging, get_logger

    setup_logging(log_level=logging.INFO, enable_file_logging=True)

    # In modules
    logger = get_logger(__name__)
    logger.info("This message includes thread context automatically")
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


APP_LOGGER_NAME = "studio_manager"


# =============================================================================
# THREAD CONTEXT FILTER
# =============================================================================

class ThreadContextFilter(logging.Filter):
    """
    Logging filter that adds thread context to all log records.

    Adds ``thread_name`` and ``thread_id`` to each record; the format
    string uses them to tell loop-thread lines from request-thread lines.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        current_thread = threading.current_thread()
        record.thread_name = current_thread.name
        record.thread_id = threading.get_ident()
        return True


# =============================================================================
# LOGGING SETUP
# =============================================================================

# Third-party loggers used by the supabase client; chatty at INFO/DEBUG
NOISY_LIBRARY_LOGGERS = ("httpx", "httpcore", "hpack", "websockets", "realtime", "gotrue", "postgrest")

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 10 * 1024 * 1024  # 10 MB per file
LOG_BACKUP_COUNT = 5


def _make_handler(
    handler: logging.Handler,
    level: int,
    formatter: logging.Formatter,
    thread_filter: logging.Filter
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(thread_filter)
    return handler


def _rotating_file(path: Path) -> RotatingFileHandler:
    return RotatingFileHandler(
        filename=path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8"
    )


def setup_logging(
    app_name: str = APP_LOGGER_NAME,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure application logging with thread context.

    Console output is always on. With file logging enabled, everything at
    ``log_level`` goes to ``{app_name}.log`` and ERROR/CRITICAL also go to
    ``{app_name}_error.log``, both rotating. Library loggers from the
    supabase client stack are capped at WARNING.

    Safe to call again (e.g. once per create_app() in tests): existing
    handlers are replaced.

    Args:
        app_name: Name of the root logger (default: "studio_manager")
        log_level: Minimum log level (default: INFO)
        log_dir: Directory for log files (default: ./logs relative to this file)
        enable_file_logging: Whether to write to log files (default: True)

    Returns:
        Configured root logger instance
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    thread_filter = ThreadContextFilter()

    handlers = [
        _make_handler(logging.StreamHandler(sys.stdout), log_level, formatter, thread_filter)
    ]

    app_log_file = None
    if enable_file_logging:
        log_dir = log_dir or Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        app_log_file = log_dir / f"{app_name}.log"
        handlers.append(
            _make_handler(_rotating_file(app_log_file), log_level, formatter, thread_filter)
        )
        handlers.append(
            _make_handler(_rotating_file(log_dir / f"{app_name}_error.log"), logging.ERROR, formatter, thread_filter)
        )

    for handler in handlers:
        logger.addHandler(handler)

    for name in NOISY_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    if app_log_file is not None:
        logger.info(f"File logging enabled: {app_log_file}")
    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


# =============================================================================
# LOGGER FACTORY FUNCTIONS
# =============================================================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger with the application namespace.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance, e.g. "studio_manager.services.collection_sync"
    """
    if not name.startswith(APP_LOGGER_NAME):
        name = f"{APP_LOGGER_NAME}.{name}"

    return logging.getLogger(name)


def set_thread_name(name: str) -> None:
    """
    Set the name of the current thread.

    This name appears in log messages in the [thread_name] field.

    Example:
        # First thing inside the event-loop thread
        set_thread_name("SyncLoop")
    """
    threading.current_thread().name = name
