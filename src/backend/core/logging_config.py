"""
Logging configuration for the reporting service.
Provides structured logging with different levels and formats.

File output goes through a QueueHandler so report assembly running on the
event loop never blocks on disk writes; a QueueListener thread owns the
rotating file handlers.
"""

import atexit
import logging
import logging.handlers
import queue
import sys
from pathlib import Path
from typing import Optional

from pydantic import BaseModel


# Global queue listener for cleanup
_queue_listener: Optional[logging.handlers.QueueListener] = None


class LogConfig(BaseModel):
    """Logging configuration settings."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    enable_file_logging: bool = False
    log_dir: str = "logs"
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    enable_console: bool = True


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
        color = self.COLORS.get(record.levelno, self.grey)
        original_levelname = record.levelname
        record.levelname = f"{color}{record.levelname}{self.reset}"
        try:
            formatted = super().format(record)
        finally:
            record.levelname = original_levelname
        return f"{formatted}{self.reset}"


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

    - Console handler writes directly with colors
    - File handlers (app.log, reports.log) run behind a QueueListener
    - reports.log only receives records from the ``reports.*`` loggers
    """
    global _queue_listener

    if config is None:
        config = LogConfig()

    if _queue_listener:
        _queue_listener.stop()
        _queue_listener = None

    if config.enable_file_logging:
        Path(config.log_dir).mkdir(exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()

    if config.enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, config.level.upper()))
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

        report_handler = _rotating_handler(config, "reports.log", file_formatter)
        report_handler.addFilter(logging.Filter("reports"))
        file_handlers.append(report_handler)

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

    # Keep SQL echo out of the report logs unless debugging the store
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def stop_queue_listener() -> None:
    """Stop the queue listener gracefully.

    Called automatically on exit via atexit.
    Can also be called manually during shutdown.
    """
    global _queue_listener

    if _queue_listener:
        _queue_listener.stop()
        _queue_listener = None


class ReportLogger:
    """Structured logger for report assembly and export."""

    def __init__(self, name: str = "assembler"):
        self.logger = logging.getLogger(f"reports.{name}")

    def report_started(self, view: str, window_start, window_end, filters: dict) -> None:
        """Log when a report view starts assembling."""
        applied = ", ".join(f"{k}={v}" for k, v in sorted(filters.items())) or "none"
        self.logger.info(
            f"Report started | View: {view} | Window: {window_start.isoformat()} -> "
            f"{window_end.isoformat()} | Filters: {applied}"
        )

    def report_completed(self, view: str, row_count: int, elapsed_ms: float) -> None:
        """Log when a report view finishes."""
        self.logger.info(
            f"Report completed | View: {view} | Rows: {row_count} | "
            f"Elapsed: {elapsed_ms:.1f} ms"
        )

    def trend_day_degraded(self, label: str, attempts: int, error: str) -> None:
        """Log when a trend sub-fetch is reported as zero after retries."""
        self.logger.warning(
            f"Trend entry degraded to zero | Entry: {label} | Attempts: {attempts} | "
            f"Error: {error}"
        )

    def export_rendered(self, view: str, export_format: str, size_bytes: int) -> None:
        """Log when an export document is rendered."""
        self.logger.info(
            f"Export rendered | View: {view} | Format: {export_format} | "
            f"Size: {size_bytes} bytes"
        )

    def error_occurred(self, operation: str, view: Optional[str] = None, error: str = "") -> None:
        """Log errors with context."""
        context_str = f"View: {view}" if view else "No context"
        self.logger.error(
            f"Report error | Operation: {operation} | {context_str} | Error: {error}"
        )
