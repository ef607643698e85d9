"""
Logging configuration for the issue lifecycle service.
Provides structured logging with different levels and formats.

File handlers sit behind a QueueHandler so log writes never block the event
loop; a QueueListener thread performs the file I/O.
"""

import atexit
import logging
import logging.handlers
import queue
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel


# Global queue listener for cleanup
_queue_listener: Optional[logging.handlers.QueueListener] = None


class LogConfig(BaseModel):
    """Logging configuration settings."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    enable_file_logging: bool = True
    log_dir: str = "logs"
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    enable_console: bool = True
    quiet_loggers: List[str] = []


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    grey = "\x1b[38;21m"
    yellow = "\x1b[33;21m"
    red = "\x1b[31;21m"
    bold_red = "\x1b[31;1m"
    blue = "\x1b[34;21m"
    reset = "\x1b[0m"

    COLORS = {
        logging.DEBUG: grey,
        logging.INFO: blue,
        logging.WARNING: yellow,
        logging.ERROR: red,
        logging.CRITICAL: bold_red,
    }

    def format(self, record):
        # Color a copy so file handlers sharing the record stay plain
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelno, self.grey)
        record.levelname = f"{color}{record.levelname}{self.reset}"
        return f"{super().format(record)}{self.reset}"


class _LoggerPrefixFilter(logging.Filter):
    """Pass only records whose logger name starts with one of the prefixes."""

    def __init__(self, *prefixes: str):
        super().__init__()
        self.prefixes = prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(self.prefixes)


def _rotating_handler(config: LogConfig, filename: str, formatter: logging.Formatter):
    handler = logging.handlers.RotatingFileHandler(
        Path(config.log_dir) / filename,
        maxBytes=config.max_file_size,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setLevel(getattr(logging, config.level.upper()))
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: Optional[LogConfig] = None) -> None:
    """Setup application logging with configuration.

    - Console handler writes directly (stdout is non-blocking)
    - app.log receives everything; lifecycle.log only lifecycle and service records
    - File handlers are driven by a QueueListener thread
    """
    global _queue_listener

    if config is None:
        config = LogConfig()

    if _queue_listener:
        _queue_listener.stop()
        _queue_listener = None

    if config.enable_file_logging:
        Path(config.log_dir).mkdir(parents=True, exist_ok=True)

    level = getattr(logging, config.level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if config.enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            ColoredFormatter(
                fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
                datefmt=config.date_format,
            )
        )
        root_logger.addHandler(console_handler)

    file_handlers = []

    if config.enable_file_logging:
        file_formatter = logging.Formatter(
            fmt="%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt=config.date_format,
        )
        file_handlers.append(_rotating_handler(config, "app.log", file_formatter))

        lifecycle_handler = _rotating_handler(config, "lifecycle.log", file_formatter)
        lifecycle_handler.addFilter(_LoggerPrefixFilter("lifecycle.", "services."))
        file_handlers.append(lifecycle_handler)

    if file_handlers:
        log_queue = queue.Queue(-1)
        root_logger.addHandler(logging.handlers.QueueHandler(log_queue))

        _queue_listener = logging.handlers.QueueListener(
            log_queue,
            *file_handlers,
            respect_handler_level=True,
        )
        _queue_listener.start()
        atexit.register(stop_queue_listener)

    from .config import settings

    for name in config.quiet_loggers:
        if name == "sqlalchemy.engine" and settings.performance.enable_query_logging:
            logging.getLogger(name).setLevel(level)
        else:
            logging.getLogger(name).setLevel(logging.WARNING)


def stop_queue_listener() -> None:
    """Stop the queue listener gracefully.

    Called automatically on exit via atexit.
    Can also be called manually during shutdown.
    """
    global _queue_listener

    if _queue_listener:
        _queue_listener.stop()
        _queue_listener = None


class LifecycleLogger:
    """Structured logger for issue lifecycle events."""

    def __init__(self, name: str = "issues"):
        self.logger = logging.getLogger(f"lifecycle.{name}")

    def status_changed(
        self,
        ticket_no: str,
        from_status: Optional[str],
        to_status: str,
        actor_id: Optional[str] = None,
    ) -> None:
        """Log an internal status transition."""
        self.logger.info(
            f"Status changed | Ticket: {ticket_no} | {from_status} -> {to_status} | "
            f"Actor: {actor_id or 'system'}"
        )

    def operation_rejected(
        self,
        operation: str,
        error_kind: str,
        reason: str,
        actor_id: Optional[str] = None,
    ) -> None:
        """Log a domain rule violation that aborted an operation."""
        self.logger.warning(
            f"Operation rejected | Operation: {operation} | Kind: {error_kind} | "
            f"Actor: {actor_id or 'unknown'} | Reason: {reason}"
        )

    def visit_counter_adjusted(
        self, engineer_id: str, pending_delta: int, completed_delta: int
    ) -> None:
        self.logger.debug(
            f"Visit counters adjusted | Engineer: {engineer_id} | "
            f"Pending: {pending_delta:+d} | Completed: {completed_delta:+d}"
        )

    def notification_failed(self, recipient_id: str, title: str, error: str) -> None:
        """Log a push notification that could not be delivered."""
        self.logger.error(
            f"Notification failed | Recipient: {recipient_id} | Title: {title} | "
            f"Error: {error}"
        )
