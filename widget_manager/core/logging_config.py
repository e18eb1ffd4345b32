"""
Logging setup for the widget-manager command line.

Library modules only ask ``logging.getLogger(__name__)`` for a logger and
attach context through the ``log_*`` helpers below; handlers and formatters
are installed once, by ``setup_logging``, from ``config.LOGGING_CONFIG``.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

LOG_FILE_NAME = "widget_manager.log"

# Libraries that are chatty at DEBUG while a kernel websocket is open
QUIET_LOGGERS = ("websockets", "asyncio")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with the record's context merged in"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Context attached through extra={"extra_data": {...}}
        if hasattr(record, "extra_data"):
            log_entry.update(record.extra_data)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """``[time] [LEVEL] [logger] message key=value ...``, colored on a terminal"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[92m',     # Green
        'WARNING': '\033[93m',  # Yellow
        'ERROR': '\033[91m',    # Red
        'CRITICAL': '\033[95m', # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_color: bool = False):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self.use_color:
            levelname = f"{self.COLORS.get(levelname, '')}{levelname}{self.RESET}"

        formatted = f"[{datetime.now().strftime('%H:%M:%S')}] [{levelname}] [{record.name}] {record.getMessage()}"
        context = getattr(record, "extra_data", None)
        if context:
            formatted += " " + " ".join(f"{key}={value}" for key, value in context.items())

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def setup_logging(settings: Optional[Dict[str, Any]] = None, verbose: bool = False) -> None:
    """
    Install the root handlers.

    Args:
        settings: Dict shaped like ``config.LOGGING_CONFIG`` (the default)
        verbose: Log at DEBUG regardless of the configured level
    """
    if settings is None:
        from ..config import LOGGING_CONFIG
        settings = LOGGING_CONFIG

    level = logging.DEBUG if verbose else getattr(logging, str(settings.get("log_level", "INFO")).upper())
    structured = settings.get("structured_logging", False)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    if settings.get("enable_console_logging", True):
        # stderr keeps stdout free for the JSON report
        console_handler = logging.StreamHandler(sys.stderr)
        if structured:
            console_handler.setFormatter(StructuredFormatter())
        else:
            console_handler.setFormatter(ConsoleFormatter(use_color=sys.stderr.isatty()))
        root_logger.addHandler(console_handler)

    log_file = None
    if settings.get("enable_file_logging", False):
        log_dir = Path(settings.get("log_dir") or "./logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / LOG_FILE_NAME
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=int(settings.get("max_log_size_mb", 10)) * 1024 * 1024,
            backupCount=int(settings.get("backup_count", 5)),
            encoding='utf-8'
        )
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    log_with_context(logging.getLogger(__name__), logging.DEBUG, "Logging configured",
                     log_level=logging.getLevelName(level), structured=structured,
                     log_file=str(log_file) if log_file else None)


def log_with_context(logger: logging.Logger, level: int, message: str, **context) -> None:
    """Log ``message`` with ``context`` attached as structured fields"""
    logger.log(level, message, extra={"extra_data": context})


def log_performance(logger: logging.Logger, operation: str, duration_ms: float, **context) -> None:
    log_with_context(logger, logging.INFO, f"{operation} took {duration_ms:.1f}ms",
                     operation=operation, duration_ms=round(duration_ms, 3), **context)


def log_error_with_context(logger: logging.Logger, error: BaseException,
                           operation: str, **context) -> None:
    """Log ``error`` (with its traceback) as the failure of ``operation``"""
    logger.error(f"Error in {operation}: {error}", exc_info=error, extra={"extra_data": {
        "operation": operation,
        "error_type": type(error).__name__,
        "error_message": str(error),
        **context
    }})
