"""
Centralized logging configuration for the credential market.

Checkouts, payment-code verifications and the expiry sweeper all run
concurrently, so every log line carries the name of the thread that wrote
it. Secret credential payloads must never be passed to a logger; log
listing ids, counts, order numbers and payment codes instead.

Features:
    - Automatic thread name in all log messages
    - Console output (always enabled)
    - Rotating file logs (optional, for production)
    - Separate error log for ERROR/CRITICAL messages
    - Per-request child loggers for tracing a single sale

Log Format:
    2026-10-19 10:15:30 [INFO    ] [MainThread] credential_market.app - Starting
    2026-10-19 10:15:31 [INFO    ] [PaymentCodeSweeper] ...payment_codes - Sweep: 2 expired
    2026-10-19 10:15:32 [INFO    ] [Thread-7] credential_market.request.ORD-1760 - Order saved

Usage:
    # At application startup
    from logging_config import setup_logging, get_logger

    setup_logging(log_level=logging.INFO, enable_file_logging=True)

    # In modules
    logger = get_logger(__name__)

    # For one checkout or verification
    request_logger = get_request_logger(order_number)
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


ROOT_LOGGER_NAME = "credential_market"


# =============================================================================
# THREAD CONTEXT FILTER
# =============================================================================

class ThreadContextFilter(logging.Filter):
    """
    Logging filter that adds thread context to all log records.

    Adds ``thread_name`` and ``thread_id`` to each record so the format
    string can show which worker produced the message.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        current_thread = threading.current_thread()
        record.thread_name = current_thread.name
        record.thread_id = threading.get_ident()

        # Context only, never drop a record
        return True


# =============================================================================
# LOGGING SETUP
# =============================================================================

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Rotation policy for file logs
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


def _attach(
    logger: logging.Logger,
    handler: logging.Handler,
    level: int,
    formatter: logging.Formatter,
    context: logging.Filter,
) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(context)
    logger.addHandler(handler)


def setup_logging(
    app_name: str = ROOT_LOGGER_NAME,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure the credential market's logger tree.

    Handlers:
        - stdout, at ``log_level`` (always)
        - ``<app_name>.log``, at ``log_level`` (file logging only)
        - ``<app_name>_error.log``, ERROR and above (file logging only)

    File logs rotate at 10 MB and keep 5 backups. Calling this again
    replaces the handlers, so each test app starts clean.

    Args:
        app_name: Name of the root logger (default: "credential_market")
        log_level: Minimum log level (default: INFO)
        log_dir: Directory for log files (default: ./logs next to this file)
        enable_file_logging: Whether to write to log files (default: True)

    Returns:
        Configured root logger instance
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    context = ThreadContextFilter()

    _attach(logger, logging.StreamHandler(sys.stdout), log_level, formatter, context)

    if enable_file_logging:
        log_dir = log_dir or Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        targets = (
            (log_dir / f"{app_name}.log", log_level),
            (log_dir / f"{app_name}_error.log", logging.ERROR),
        )
        for path, level in targets:
            handler = RotatingFileHandler(
                filename=path,
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
            _attach(logger, handler, level, formatter, context)

        logger.info(f"File logging enabled in {log_dir}")

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
        Logger instance, e.g. "credential_market.services.allocation"
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)


def get_request_logger(reference: str) -> logging.Logger:
    """
    Get a logger for one checkout or payment-code verification.

    Only the last 8 characters of the reference are used in the name,
    which is enough to tell concurrent sales apart when filtering logs.

    Args:
        reference: Order number, payment code or payment reference

    Returns:
        Logger named "credential_market.request.<reference[-8:]>"
    """
    short_ref = reference[-8:] if len(reference) >= 8 else reference
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.request.{short_ref}")


def set_thread_name(name: str) -> None:
    """
    Set the name of the current thread.

    This name appears in log messages in the [thread_name] field.
    """
    threading.current_thread().name = name
